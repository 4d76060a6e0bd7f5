"""
Service scoring retrieved programs for relevance to the user's question.
"""
import asyncio
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from config import FEATURES
from models.parameters import UserProfile
from models.pathway import CollegeProgramResult, SchoolProgramResult
from utils.llm import get_llm, asafe_llm_call, extract_json
from utils.prompts import RESULT_VERIFICATION_PROMPT, format_history

logger = logging.getLogger(__name__)

BATCH_SIZE = 5
MAX_SCHOOL_PROGRAMS = 20
MAX_COLLEGE_PROGRAMS = 30
STRONG_MATCH_SCORE = 8
DEFAULT_THRESHOLD = 5
SCHOOL_STRICT_THRESHOLD = 7
COLLEGE_STRICT_THRESHOLD = 6
# Score given to every row of a batch the model could not score
NEUTRAL_SCORE = 7

def format_profile(profile: Optional[UserProfile]) -> str:
    """Render the profile fields the verifier cares about."""
    if profile is None:
        return "Not provided"
    return "\n".join([
        f"Interests: {', '.join(profile.interests) or 'none'}",
        f"Career goals: {', '.join(profile.career_goals) or 'none'}",
        f"Education level: {profile.education_level or 'unknown'}",
        f"Location: {profile.location or 'unknown'}",
    ])

class ResultVerifier:
    """LLM relevance scoring with strict/lenient thresholds per tier."""

    def __init__(self, llm=None, enabled: Optional[bool] = None):
        """
        Initialize the verifier.

        Args:
            llm: Chat model to use, defaults to the configured Gemini model
            enabled: Score with the model; when False rows pass through unchanged
        """
        self._llm = llm
        self.enabled = FEATURES["use_llm_verification"] if enabled is None else enabled

    @property
    def llm(self):
        if self._llm is None:
            self._llm = get_llm()
        return self._llm

    async def _score_batch(self,
                           query: str,
                           intent: str,
                           names: List[str],
                           tier: str,
                           history: List[Dict[str, str]],
                           profile: Optional[UserProfile]) -> List[float]:
        chain = RESULT_VERIFICATION_PROMPT | self.llm
        response = await asafe_llm_call(
            chain=chain,
            inputs={
                "query": query,
                "intent": intent,
                "tier": tier,
                "history": format_history(history),
                "profile": format_profile(profile),
                "programs": "\n".join(f"{i + 1}. {name}" for i, name in enumerate(names)),
            },
            default_response=""
        )

        parsed = extract_json(response)
        if not isinstance(parsed, list):
            raise ValueError(f"Unparseable verification output: {response[:100]!r}")

        scores = [float(NEUTRAL_SCORE)] * len(names)
        for item in parsed:
            try:
                index = int(item["index"]) - 1
                score = float(item["score"])
            except (KeyError, TypeError, ValueError):
                continue
            if 0 <= index < len(names):
                scores[index] = max(0.0, min(10.0, score))
        return scores

    async def _verify(self,
                      query: str,
                      items: Sequence[Any],
                      names: List[str],
                      tier: str,
                      limit: int,
                      strict_threshold: int,
                      history: List[Dict[str, str]],
                      intent: str,
                      profile: Optional[UserProfile]) -> Tuple[List[Any], List[str]]:
        if not items:
            return [], []
        if not self.enabled:
            return list(items), []

        items = list(items)[:limit]
        names = names[:limit]
        batches = [range(start, min(start + BATCH_SIZE, len(items))) for start in range(0, len(items), BATCH_SIZE)]

        outcomes = await asyncio.gather(*[
            self._score_batch(query, intent, [names[i] for i in batch], tier, history, profile)
            for batch in batches
        ], return_exceptions=True)

        errors = []
        scored: List[Tuple[Any, float]] = []
        for batch, outcome in zip(batches, outcomes):
            if isinstance(outcome, Exception):
                logger.warning(f"Verification of {tier} batch failed, using neutral scores: {str(outcome)}")
                errors.append(f"Verification failed for {tier} batch {batch.start // BATCH_SIZE + 1}: {str(outcome)}")
                outcome = [float(NEUTRAL_SCORE)] * len(batch)
            scored.extend((items[i], score) for i, score in zip(batch, outcome))

        has_strong_matches = any(score >= STRONG_MATCH_SCORE for _, score in scored)
        threshold = strict_threshold if has_strong_matches else DEFAULT_THRESHOLD
        kept = sorted(
            [(item, score) for item, score in scored if score >= threshold],
            key=lambda pair: pair[1],
            reverse=True
        )

        logger.info(f"Verified {tier} programs: {len(items)} -> {len(kept)} (threshold {threshold})")
        return [item for item, _ in kept], errors

    async def verify_school_programs(self,
                                     query: str,
                                     programs: Sequence[SchoolProgramResult],
                                     history: Optional[List[Dict[str, str]]] = None,
                                     intent: Optional[str] = None,
                                     profile: Optional[UserProfile] = None) -> Tuple[List[SchoolProgramResult], List[str]]:
        """
        Score high school programs and keep the relevant ones.

        Args:
            query: Original user message
            programs: Collected school programs
            history: Recent conversation turns
            intent: Primary intent token, defaults to the query
            profile: Profile used for scoring, None to score without it

        Returns:
            (verified programs best first, recorded errors)
        """
        return await self._verify(
            query, programs, [p.name for p in programs], "high school",
            MAX_SCHOOL_PROGRAMS, SCHOOL_STRICT_THRESHOLD, history or [], intent or query, profile
        )

    async def verify_college_programs(self,
                                      query: str,
                                      programs: Sequence[CollegeProgramResult],
                                      history: Optional[List[Dict[str, str]]] = None,
                                      intent: Optional[str] = None,
                                      profile: Optional[UserProfile] = None) -> Tuple[List[CollegeProgramResult], List[str]]:
        """
        Score college programs and keep the relevant ones.

        Args:
            query: Original user message
            programs: Collected college programs
            history: Recent conversation turns
            intent: Primary intent token, defaults to the query
            profile: Profile used for scoring, None to score without it

        Returns:
            (verified programs best first, recorded errors)
        """
        names = [(p.program_names[0] if p.program_names else p.cip_code) for p in programs]
        return await self._verify(
            query, programs, names, "college",
            MAX_COLLEGE_PROGRAMS, COLLEGE_STRICT_THRESHOLD, history or [], intent or query, profile
        )
