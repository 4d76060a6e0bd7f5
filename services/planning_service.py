"""
Planning-assist service proposing which retrieval operations to run.
"""
import logging
from typing import Any, Dict, List, Optional

from models.parameters import TOOL_CATALOG, SCHOOL_TIER_OPERATIONS, SearchStrategy, UserProfile
from utils.llm import get_llm, asafe_llm_call
from utils.prompts import TOOL_PLANNING_PROMPT

logger = logging.getLogger(__name__)

class PlanningAssistant:
    """Asks the model for a JSON tool plan. Parsing and validation happen in the planner."""

    def __init__(self, llm=None):
        """
        Initialize the planning assistant.

        Args:
            llm: Chat model to use, defaults to the configured Gemini model
        """
        self._llm = llm

    @property
    def llm(self):
        if self._llm is None:
            self._llm = get_llm()
        return self._llm

    def build_inputs(self,
                     query: str,
                     keywords: List[str],
                     codes: List[str],
                     profile: UserProfile,
                     strategy: Optional[SearchStrategy] = None,
                     attempt: int = 1) -> Dict[str, Any]:
        """
        Build the prompt variables describing the catalog and current state.

        Args:
            query: Planning query
            keywords: Extracted keywords
            codes: Target CIP codes from career goals
            profile: User profile
            strategy: Retry strategy, if any
            attempt: Attempt number

        Returns:
            Prompt input dict
        """
        catalog = [
            description for name, description in TOOL_CATALOG.items()
            if not (profile.restricts_school_tier and name in SCHOOL_TIER_OPERATIONS)
        ]

        code_instructions = ""
        if codes:
            code_instructions = (
                "PRIORITY: The user has career goals with known CIP codes.\n"
                f"Target CIP codes: {', '.join(codes)}\n"
                "YOU MUST USE get_college_by_cip with these CIP codes for accurate program matching."
            )

        if strategy:
            strategy_instructions = (
                f"RETRY STRATEGY (Attempt {attempt}):\n"
                f"- Use CIP search: {strategy.use_code_based_search}\n"
                f"- Broaden scope: {strategy.broaden_scope}\n"
                f"- Include related fields: {strategy.include_related_fields}\n"
                f"- Additional keywords: {', '.join(strategy.additional_keywords)}"
            )
        else:
            strategy_instructions = "Use trace_pathway for comprehensive results."

        return {
            "catalog": "\n".join(f"- {line}" for line in catalog),
            "code_instructions": code_instructions,
            "strategy_instructions": strategy_instructions,
            "query": query,
            "keywords": ", ".join(keywords) or "none",
            "interests": ", ".join(profile.interests) or "none",
            "education_level": profile.education_level or "unknown",
        }

    async def propose(self, inputs: Dict[str, Any]) -> str:
        """
        Ask the model for a plan.

        Args:
            inputs: Prompt variables from build_inputs

        Returns:
            Raw model output

        Raises:
            ValueError: If the model returned nothing
        """
        chain = TOOL_PLANNING_PROMPT | self.llm
        response = await asafe_llm_call(chain=chain, inputs=inputs, default_response="")
        if not response or not response.strip():
            raise ValueError("Planning model returned no output")
        logger.debug(f"Raw plan: {response[:200]}")
        return response
