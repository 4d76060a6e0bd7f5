"""
Service turning aggregated pathway data into the reply text.
"""
import logging
from typing import Dict, List, Optional

from models.parameters import UserProfile
from models.pathway import AggregatedData
from services.aggregation_service import format_college_programs_for_display
from services.verification_service import format_profile
from utils.llm import get_llm, asafe_llm_call
from utils.prompts import CONVERSATIONAL_PROMPT, RESPONSE_FORMATTING_PROMPT, format_history

logger = logging.getLogger(__name__)

MAX_LISTED_PROGRAMS = 10
MAX_LISTED_SCHOOLS = 5

def render_data(aggregated: AggregatedData) -> str:
    """
    Render aggregated data as plain text for the formatting prompt.

    Args:
        aggregated: Aggregated pathway data

    Returns:
        One section per tier
    """
    lines = [f"HIGH SCHOOL PROGRAMS ({len(aggregated.school_programs)}):"]
    for program in aggregated.school_programs:
        lines.append(f"- {program.name}: offered at {program.school_count} schools "
                     f"({', '.join(program.schools[:MAX_LISTED_SCHOOLS])})")

    lines.append(f"COLLEGE PROGRAMS ({len(aggregated.college_programs)}):")
    for program in format_college_programs_for_display(aggregated.college_programs):
        line = f"- {program['name']} (CIP {program['cip_code']}): {', '.join(program['campuses'])}"
        if program["variants"]:
            line += f" | degrees: {'; '.join(program['variants'])}"
        lines.append(line)

    lines.append(f"CAREERS ({len(aggregated.careers)}):")
    lines.extend(f"- SOC {career.code}" for career in aggregated.careers)
    return "\n".join(lines)

def templated_summary(query: str, aggregated: AggregatedData) -> str:
    """
    Plain markdown summary used when the model cannot write the reply.

    Args:
        query: Original user message
        aggregated: Aggregated pathway data

    Returns:
        Markdown text
    """
    if aggregated.is_empty():
        return (f"I couldn't find programs matching \"{query}\". "
                "Try different keywords or a broader field of study.")

    sections = [f"Here is what I found for \"{query}\":"]

    if aggregated.school_programs:
        sections.append("**High School Programs**")
        sections.extend(
            f"- {program.name} ({program.school_count} schools)"
            for program in aggregated.school_programs[:MAX_LISTED_PROGRAMS]
        )

    if aggregated.college_programs:
        sections.append("**College Programs**")
        sections.extend(
            f"- {program['name']}: {', '.join(program['campuses'])}"
            for program in format_college_programs_for_display(aggregated.college_programs[:MAX_LISTED_PROGRAMS])
        )

    if aggregated.careers:
        sections.append("**Related Careers (SOC codes)**")
        sections.append(", ".join(career.code for career in aggregated.careers))

    return "\n".join(sections)

def canned_reply(profile: Optional[UserProfile] = None) -> str:
    """Short reply used when the conversational model is unavailable."""
    interests = (profile.interests if profile else [])[:2]
    if interests:
        return (f"Aloha! Would you like me to look up programs related to {' or '.join(interests)}? "
                "Just tell me what you'd like to explore.")
    return "Aloha! Ask me about high school programs, college programs or careers in Hawaii."

class ResponseFormatter:
    """Writes replies with the chat model and falls back to templates."""

    def __init__(self, llm=None):
        """
        Initialize the formatter.

        Args:
            llm: Chat model to use, defaults to the configured Gemini model
        """
        self._llm = llm

    @property
    def llm(self):
        if self._llm is None:
            self._llm = get_llm()
        return self._llm

    async def format(self,
                     query: str,
                     aggregated: AggregatedData,
                     history: Optional[List[Dict[str, str]]] = None,
                     profile: Optional[UserProfile] = None) -> str:
        """
        Write the reply for a retrieval query.

        Args:
            query: Original user message
            aggregated: Aggregated data of the accepted attempt
            history: Recent conversation turns
            profile: User profile

        Returns:
            Reply text

        Raises:
            ValueError: If the model returned nothing
        """
        if aggregated.is_empty():
            return templated_summary(query, aggregated)

        chain = RESPONSE_FORMATTING_PROMPT | self.llm
        response = await asafe_llm_call(
            chain=chain,
            inputs={
                "query": query,
                "profile": format_profile(profile),
                "history": format_history(history or []),
                "data": render_data(aggregated),
            },
            default_response=""
        )
        if not response.strip():
            raise ValueError("Formatting model returned no output")
        return response.strip()

    async def converse(self,
                       query: str,
                       history: Optional[List[Dict[str, str]]] = None,
                       profile: Optional[UserProfile] = None,
                       query_kind: str = "greeting") -> str:
        """
        Reply to a message that needs no data lookup.

        Raises:
            ValueError: If the model returned nothing
        """
        chain = CONVERSATIONAL_PROMPT | self.llm
        response = await asafe_llm_call(
            chain=chain,
            inputs={
                "query": query,
                "query_kind": query_kind,
                "profile": format_profile(profile),
                "history": format_history(history or []),
            },
            default_response=""
        )
        if not response.strip():
            raise ValueError("Conversational model returned no output")
        return response.strip()
