"""
Keyword extraction and conversational cue detection.
"""
import re
from typing import List

STOP_WORDS = {
    "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for",
    "of", "with", "by", "from", "about", "what", "which", "where", "how",
    "is", "are", "was", "were", "been", "be", "have", "has", "had", "do",
    "does", "did", "will", "would", "could", "should", "may", "might",
    "must", "can", "programs", "program", "course", "courses", "want",
    "need", "like", "find", "show", "tell", "give", "list", "just", "see",
    "job", "jobs", "career", "careers", "data", "me", "my", "more", "that",
    "this", "these", "those", "some", "any", "all",
    # Conversational filler
    "you", "your", "interested", "instead", "actually", "now", "switch",
    "change", "wait", "yes", "yeah", "yep", "yup", "sure", "okay", "please",
    "there", "options", "explore", "learn", "know", "looking", "get",
}

# English-only triggers, anchored at the start of the message
TOPIC_PIVOT_PATTERN = re.compile(
    r"^(what about|how about|tell me about|instead|actually|now|switch to|change to|no|wait)\b",
    re.IGNORECASE
)
AFFIRMATIVE_PATTERN = re.compile(r"^(yes|yeah|yep|sure|ok|okay)\b", re.IGNORECASE)
PURE_AFFIRMATIVE_PATTERN = re.compile(
    r"^(yes|yeah|yep|yup|sure|ok|okay|yea|ye|affirmative|correct|right|exactly|indeed|"
    r"certainly|absolutely|definitely|sounds good|that works|that's right)$",
    re.IGNORECASE
)

_NON_WORD = re.compile(r"[^\w\s]")
_TRAILING_PUNCTUATION = re.compile(r"[\s.!?,]+$")


def extract_keywords(text: str) -> List[str]:
    """
    Extract content keywords from free text.

    Lower-cases, replaces punctuation with spaces, and keeps alphabetic
    tokens longer than two characters that are not stop words. Order of
    first appearance is kept and duplicates are removed.

    Args:
        text: Message text

    Returns:
        List of keywords
    """
    if not text:
        return []

    keywords = []
    for token in _NON_WORD.sub(" ", text.lower()).split():
        if len(token) > 2 and token.isalpha() and token not in STOP_WORDS and token not in keywords:
            keywords.append(token)
    return keywords


def normalize_message(text: str) -> str:
    """Lower-case, trim, and drop trailing punctuation."""
    return _TRAILING_PUNCTUATION.sub("", (text or "").strip().lower())


def is_topic_pivot(text: str) -> bool:
    """True when the message opens with an explicit change of subject."""
    return bool(TOPIC_PIVOT_PATTERN.match(normalize_message(text)))


def is_affirmative(text: str) -> bool:
    """True when the message opens with a confirmation."""
    return bool(AFFIRMATIVE_PATTERN.match(normalize_message(text)))


def is_pure_affirmative(text: str) -> bool:
    """True when the whole message is nothing but a confirmation."""
    return bool(PURE_AFFIRMATIVE_PATTERN.match(normalize_message(text)))
