"""
Service deciding whether a message needs pathway data.
"""
import logging
import re
from typing import Dict, List, Optional

from models.parameters import ClassificationResult
from utils.keywords import extract_keywords, normalize_message
from utils.llm import get_llm, asafe_llm_call, extract_json
from utils.prompts import QUERY_CLASSIFICATION_PROMPT, format_history

logger = logging.getLogger(__name__)

SIMPLE_AFFIRMATIVE = re.compile(r"^(yes|yeah|yep|yup|sure|ok|okay)$", re.IGNORECASE)
SIMPLE_GREETING = re.compile(r"^(hi|hello|hey|aloha|thanks|thank you|got it|cool)$", re.IGNORECASE)
ACKNOWLEDGEMENT = re.compile(r"^(thanks|thank you|got it|cool)$", re.IGNORECASE)

def heuristic_classification(query: str) -> ClassificationResult:
    """
    Keyword-only classification used when the model is unavailable.

    Args:
        query: The user message

    Returns:
        Needs retrieval when the message carries any content keyword
    """
    if extract_keywords(query):
        return ClassificationResult(
            needs_retrieval=True,
            query_kind="search",
            reasoning="Keyword heuristic: message has content keywords"
        )
    return ClassificationResult(
        needs_retrieval=False,
        query_kind="reasoning",
        reasoning="Keyword heuristic: no content keywords"
    )

class QueryClassifier:
    """Classifies messages with fast regex paths and an LLM for the rest."""

    def __init__(self, llm=None):
        """
        Initialize the classifier.

        Args:
            llm: Chat model to use, defaults to the configured Gemini model
        """
        self._llm = llm

    @property
    def llm(self):
        if self._llm is None:
            self._llm = get_llm()
        return self._llm

    async def classify(self, query: str, history: Optional[List[Dict[str, str]]] = None) -> ClassificationResult:
        """
        Classify a message.

        Args:
            query: The user message
            history: Recent conversation turns

        Returns:
            ClassificationResult

        Raises:
            ValueError: If the model output cannot be parsed
        """
        message = normalize_message(query)

        if SIMPLE_AFFIRMATIVE.match(message):
            return ClassificationResult(
                needs_retrieval=True,
                query_kind="followup",
                reasoning="User gave affirmative response"
            )

        if SIMPLE_GREETING.match(message):
            return ClassificationResult(
                needs_retrieval=False,
                query_kind="clarification" if ACKNOWLEDGEMENT.match(message) else "greeting",
                reasoning="Simple greeting or acknowledgment"
            )

        chain = QUERY_CLASSIFICATION_PROMPT | self.llm
        response = await asafe_llm_call(
            chain=chain,
            inputs={"query": query, "history": format_history(history or [])},
            default_response=""
        )

        parsed = extract_json(response)
        if not isinstance(parsed, dict):
            raise ValueError(f"Unparseable classification output: {response[:100]!r}")

        result = ClassificationResult.model_validate(parsed)
        logger.debug(f"LLM classification: {result.query_kind} (needs_retrieval={result.needs_retrieval})")
        return result
