"""
Service mapping stated career goals to CIP codes and search keywords.
"""
import logging
from typing import Dict, Any, List, Optional, Tuple

logger = logging.getLogger(__name__)

# Career goal -> CIP codes and extra keywords. Matched on any alias.
DEFAULT_CAREER_MAPPINGS = [
    {
        "aliases": ["software", "programmer", "developer", "computer scientist", "web developer"],
        "cip_codes": ["11.0701", "11.0201"],
        "keywords": ["computer", "programming"],
    },
    {
        "aliases": ["cybersecurity", "security analyst", "ethical hacker", "network security"],
        "cip_codes": ["11.1003"],
        "keywords": ["cybersecurity", "security"],
    },
    {
        "aliases": ["it support", "information technology", "network administrator", "data analyst"],
        "cip_codes": ["11.0101"],
        "keywords": ["information", "computer"],
    },
    {
        "aliases": ["nurse", "nursing"],
        "cip_codes": ["51.3801", "51.3901"],
        "keywords": ["nursing"],
    },
    {
        "aliases": ["medical assistant", "healthcare", "health care"],
        "cip_codes": ["51.0801"],
        "keywords": ["medical", "health"],
    },
    {
        "aliases": ["engineer", "engineering"],
        "cip_codes": ["14.0101", "14.1001", "14.1901"],
        "keywords": ["engineering"],
    },
    {
        "aliases": ["teacher", "educator", "teaching"],
        "cip_codes": ["13.1202"],
        "keywords": ["education", "teaching"],
    },
    {
        "aliases": ["chef", "cook", "culinary", "baker", "pastry"],
        "cip_codes": ["12.0503"],
        "keywords": ["culinary"],
    },
    {
        "aliases": ["hotel", "hospitality", "tourism"],
        "cip_codes": ["52.0901"],
        "keywords": ["hospitality", "tourism"],
    },
    {
        "aliases": ["accountant", "accounting", "bookkeeper"],
        "cip_codes": ["52.0301"],
        "keywords": ["accounting"],
    },
    {
        "aliases": ["business", "manager", "entrepreneur"],
        "cip_codes": ["52.0201"],
        "keywords": ["business"],
    },
    {
        "aliases": ["marine biologist", "marine scientist", "oceanographer"],
        "cip_codes": ["26.1302"],
        "keywords": ["marine", "biology"],
    },
    {
        "aliases": ["biologist", "scientist"],
        "cip_codes": ["26.0101"],
        "keywords": ["biology"],
    },
    {
        "aliases": ["mechanic", "automotive"],
        "cip_codes": ["47.0604"],
        "keywords": ["automotive"],
    },
    {
        "aliases": ["carpenter", "construction", "builder"],
        "cip_codes": ["46.0201"],
        "keywords": ["carpentry", "construction"],
    },
    {
        "aliases": ["farmer", "agriculture", "rancher"],
        "cip_codes": ["01.0000"],
        "keywords": ["agriculture"],
    },
    {
        "aliases": ["musician", "music"],
        "cip_codes": ["50.0901"],
        "keywords": ["music"],
    },
]

class CareerMappingService:
    """Lookup of CIP codes and enhanced keywords for career goals."""

    def __init__(self, mappings: Optional[List[Dict[str, Any]]] = None):
        """
        Initialize the career mapping service.

        Args:
            mappings: Optional replacement mapping table
        """
        logger.info("Initializing career mapping service")
        self._mappings = mappings if mappings is not None else DEFAULT_CAREER_MAPPINGS

    def map_career_goal(self, career_goal: str) -> Tuple[List[str], List[str]]:
        """
        Map one career goal to CIP codes and keywords.

        The first table entry with an alias contained in the goal wins.

        Args:
            career_goal: Free text goal such as "registered nurse"

        Returns:
            (cip_codes, keywords), both empty when nothing matches
        """
        goal = career_goal.lower().strip()
        if not goal:
            return [], []

        for mapping in self._mappings:
            if any(alias in goal for alias in mapping["aliases"]):
                logger.debug(f"Career goal '{career_goal}' mapped to {mapping['cip_codes']}")
                return list(mapping["cip_codes"]), list(mapping["keywords"])

        logger.debug(f"No CIP mapping for career goal: '{career_goal}'")
        return [], []

    def map_career_goals(self, career_goals: List[str]) -> Tuple[List[str], List[str]]:
        """
        Map several goals, deduplicating codes and keywords in first-seen order.

        Args:
            career_goals: Career goals from the profile

        Returns:
            (cip_codes, keywords)
        """
        codes: List[str] = []
        keywords: List[str] = []
        for goal in career_goals:
            goal_codes, goal_keywords = self.map_career_goal(goal)
            codes.extend(code for code in goal_codes if code not in codes)
            keywords.extend(keyword for keyword in goal_keywords if keyword not in keywords)
        return codes, keywords
