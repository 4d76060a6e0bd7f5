"""
Chat model access and helpers for reading model output.
"""
from langchain_google_genai import ChatGoogleGenerativeAI
from typing import Dict, Any, Optional, Union
import json
import logging
import re

from config import LLM_CONFIG

logger = logging.getLogger(__name__)

_FENCE_PATTERN = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)

# One client per temperature, shared by every service
_models: Dict[float, ChatGoogleGenerativeAI] = {}

def get_llm(temperature: Optional[float] = None) -> ChatGoogleGenerativeAI:
    """
    Return the shared Gemini chat model.

    Args:
        temperature: Sampling temperature, defaults to LLM_TEMPERATURE

    Returns:
        ChatGoogleGenerativeAI: Configured chat model
    """
    if temperature is None:
        temperature = LLM_CONFIG["temperature"]

    if temperature not in _models:
        try:
            _models[temperature] = ChatGoogleGenerativeAI(
                model=LLM_CONFIG["model"],
                temperature=temperature,
                api_key=LLM_CONFIG["api_key"],
                max_retries=LLM_CONFIG["max_retries"],
                timeout=LLM_CONFIG["timeout"],
            )
            logger.info(f"Created chat model {LLM_CONFIG['model']} (temperature={temperature})")
        except Exception as e:
            logger.error(f"Could not create chat model {LLM_CONFIG['model']}: {str(e)}")
            raise

    return _models[temperature]

def _message_text(message) -> str:
    content = getattr(message, "content", message)
    if isinstance(content, list):
        # Multi-part content from Gemini
        return "".join(part if isinstance(part, str) else part.get("text", "") for part in content)
    return content if isinstance(content, str) else str(content)

async def asafe_llm_call(chain, inputs: Dict[str, Any], default_response: str = "") -> str:
    """
    Run a prompt chain and return the reply text.

    Any failure is logged and replaced by default_response so that a model
    outage never aborts a pipeline node.
    """
    try:
        message = await chain.ainvoke(inputs)
    except Exception as e:
        logger.error(f"Model call failed ({type(e).__name__}): {str(e)}")
        return default_response

    text = _message_text(message)
    if not text.strip():
        logger.warning("Model returned an empty reply")
        return default_response
    return text

def extract_json(text: str) -> Optional[Union[Dict[str, Any], list]]:
    """
    Pull the first JSON object or array out of a model response.

    Markdown code fences are stripped first. Returns None when nothing
    parseable is found.
    """
    if not text:
        return None

    candidate = text.strip()
    fenced = _FENCE_PATTERN.search(candidate)
    if fenced:
        candidate = fenced.group(1).strip()

    try:
        return json.loads(candidate)
    except json.JSONDecodeError:
        pass

    decoder = json.JSONDecoder()
    for index, char in enumerate(candidate):
        if char not in "{[":
            continue
        try:
            value, _ = decoder.raw_decode(candidate[index:])
        except json.JSONDecodeError:
            continue
        return value

    logger.debug(f"No JSON found in model output: {text[:100]}")
    return None
