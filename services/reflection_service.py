"""
Heuristic quality reflection and retry strategy generation.

Scoring is pure logic, no model calls: completeness (0-3), quantity (0-2),
keyword relevance (0-3) and profile alignment (0-2). A score of 6 or more
is good enough.
"""
import logging
from typing import Dict, List, Optional

from models.parameters import ReflectionResult, RerunContext, SearchStrategy, UserProfile
from models.pathway import CollectedData
from utils.keywords import extract_keywords

logger = logging.getLogger(__name__)

MIN_QUALITY_SCORE = 6
MAX_CATEGORY_KEYWORDS = 6

RELATED_TERMS = {
    # Technology
    "computer": ["technology", "programming", "software"],
    "technology": ["computer", "digital", "tech"],
    "programming": ["coding", "software", "computer science"],
    "cyber": ["security", "networking", "information technology"],
    # Arts
    "arts": ["creative", "design", "visual", "performing"],
    "music": ["audio", "performance", "arts"],
    "dance": ["performance", "arts", "theatre"],
    "design": ["creative", "art", "graphic", "visual"],
    # Health
    "health": ["medical", "nursing", "healthcare"],
    "medical": ["health", "nursing", "healthcare"],
    "nursing": ["health", "medical", "healthcare"],
    # Business
    "business": ["management", "finance", "entrepreneurship"],
    "management": ["business", "leadership", "administration"],
    # Engineering and trades
    "engineering": ["technical", "mechanical", "electrical"],
    "construction": ["building", "trades", "carpentry"],
    "automotive": ["mechanic", "repair", "transportation"],
    # Education
    "education": ["teaching", "learning", "school"],
    "teaching": ["education", "instruction", "learning"],
    # Culinary and hospitality
    "culinary": ["cooking", "food", "chef", "hospitality"],
    "cooking": ["culinary", "food service", "chef"],
    "hospitality": ["tourism", "hotel", "culinary"],
}

CATEGORY_TERMS = {
    "technology": ["computer", "tech", "software", "programming", "cyber", "network"],
    "arts": ["art", "music", "dance", "theatre", "theater", "creative", "design", "visual", "media", "film"],
    "health": ["health", "medical", "nursing", "dental", "pharmacy", "therapy"],
    "business": ["business", "management", "marketing", "finance", "accounting", "entrepreneurship"],
    "engineering": ["engineering", "mechanical", "electrical", "civil", "construction"],
    "education": ["education", "teaching", "learning", "school"],
    "culinary": ["culinary", "cooking", "food", "chef", "hospitality", "restaurant"],
    "science": ["science", "biology", "chemistry", "physics", "environmental"],
    "trades": ["automotive", "welding", "carpentry", "plumbing", "hvac"],
    "social": ["psychology", "sociology", "social work", "counseling"],
}

def _program_names(data: CollectedData, limit: int = 5) -> List[str]:
    names = [program.name for program in data.school_programs[:limit]]
    names += [
        (program.program_names[0] if program.program_names else "")
        for program in data.college_programs[:limit]
    ]
    return [name.lower() for name in names]

def related_terms(keywords: List[str]) -> List[str]:
    """Related search terms for the keywords, deduplicated in order."""
    related: List[str] = []
    for keyword in keywords:
        for term in RELATED_TERMS.get(keyword.lower(), []):
            if term not in related:
                related.append(term)
    return related

def category_keywords(keywords: List[str], profile_keywords: List[str]) -> List[str]:
    """
    Broad category keywords: each matching category name plus its first three terms.

    Falls back to the keywords themselves when no category matches.
    """
    all_keywords = [keyword.lower() for keyword in keywords + profile_keywords]
    categories: List[str] = []
    for category, terms in CATEGORY_TERMS.items():
        if any(term in keyword or keyword in term for keyword in all_keywords for term in terms):
            for value in [category] + terms[:3]:
                if value not in categories:
                    categories.append(value)

    if not categories:
        categories = list(dict.fromkeys(keywords))

    return categories[:MAX_CATEGORY_KEYWORDS]

class ReflectionService:
    """Scores collected results and proposes retry strategies."""

    def __init__(self, min_quality_score: int = MIN_QUALITY_SCORE):
        self.min_quality_score = min_quality_score

    async def reflect(self,
                      query: str,
                      data: CollectedData,
                      profile: Optional[UserProfile] = None,
                      history: Optional[List[Dict[str, str]]] = None,
                      attempt: int = 1,
                      keywords: Optional[List[str]] = None) -> ReflectionResult:
        """
        Score the verified results of one attempt.

        Args:
            query: Original user message
            data: Verified data of the attempt
            profile: User profile
            history: Recent conversation turns
            attempt: Attempt number
            keywords: Search keywords of the attempt, defaults to the query keywords

        Returns:
            ReflectionResult with a 0-10 score
        """
        profile = profile or UserProfile()
        school_count = len(data.school_programs)
        college_count = len(data.college_programs)
        career_count = len(data.careers)
        score = 0
        issues: List[str] = []
        suggestions: List[str] = []

        # Completeness
        if school_count and college_count and career_count:
            score += 3
        elif school_count and college_count:
            score += 2
            suggestions.append("Add career pathways")
        elif college_count:
            score += 1
            suggestions.append("Include high school preparation programs")
        else:
            issues.append("Missing educational pathway data")

        # Quantity
        total_programs = school_count + college_count
        if total_programs >= 8:
            score += 2
        elif total_programs >= 3:
            score += 1
            suggestions.append("Expand search to find more programs")
        elif total_programs == 0:
            issues.append("No programs found")
            suggestions.append("Try broader keywords or related fields")

        # Relevance
        keywords = [k.lower() for k in (keywords or extract_keywords(query))[:3] + profile.interests]
        names = _program_names(data)
        relevance = sum(1 for name in names if keywords and any(k in name for k in keywords))
        if relevance >= 5:
            score += 3
        elif relevance >= 3:
            score += 2
        elif relevance >= 1:
            score += 1
            suggestions.append("Search more specifically for related programs")
        else:
            issues.append("Results may not match your interests")
            suggestions.append("Try different keywords or broader categories")

        # Profile alignment
        if profile.interests:
            interests = [interest.lower() for interest in profile.interests]
            matches = sum(1 for name in names if any(interest in name for interest in interests))
            alignment = 2 if matches >= 3 else 1 if matches >= 1 else 0
            score += alignment
            if alignment < 2:
                suggestions.append("Include profile interests in search")

        good_enough = score >= self.min_quality_score
        logger.info(f"Reflection attempt {attempt}: score {score}/10, "
                    f"{total_programs} programs, good_enough={good_enough}")

        return ReflectionResult(
            quality_score=score,
            good_enough=good_enough,
            issues=issues,
            suggestions=suggestions,
            reasoning=f"Heuristic: {total_programs} programs, {score}/10 quality"
        )

    async def generate_rerun_context(self,
                                     query: str,
                                     reflection: ReflectionResult,
                                     profile: Optional[UserProfile] = None,
                                     attempt: int = 2,
                                     keywords: Optional[List[str]] = None) -> RerunContext:
        """
        Build the strategy and planning query for the next attempt.

        Attempt 2 adds related terms and up to two profile interests.
        Attempt 3 switches to code-based search with broad category keywords.

        Args:
            query: Original user message
            reflection: Verdict of the previous attempt
            profile: User profile
            attempt: Number of the attempt about to run
            keywords: Keywords of the previous attempt, defaults to the query keywords

        Returns:
            RerunContext
        """
        profile = profile or UserProfile()
        base_keywords = (keywords or extract_keywords(query))[:3]
        profile_keywords = profile.interests

        strategy = SearchStrategy(
            expand_keywords=attempt >= 2,
            use_code_based_search=attempt >= 3,
            broaden_scope=attempt >= 3,
            include_related_fields=attempt >= 2,
        )

        if attempt == 2:
            strategy.additional_keywords = list(dict.fromkeys(
                related_terms(base_keywords)[:3] + profile_keywords[:2]
            ))
            enhanced_query = " ".join(base_keywords + strategy.additional_keywords)
        elif attempt >= 3:
            strategy.additional_keywords = category_keywords(base_keywords, profile_keywords)
            enhanced_query = " ".join(strategy.additional_keywords)
        else:
            enhanced_query = query

        logger.info(f"Rerun context for attempt {attempt}: '{enhanced_query}' "
                    f"(code_search={strategy.use_code_based_search}, broaden={strategy.broaden_scope})")
        return RerunContext(enhanced_query=enhanced_query or query, strategy=strategy)
