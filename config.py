"""
Configuration settings for the pathway query orchestration system.
"""
import os
from typing import Dict, Any, List, Optional
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# Campuses that publish detailed course data; other campuses are dropped from
# aggregated college programs.
DEFAULT_CAMPUSES_WITH_COURSE_DATA = [
    "Hawaii CC",
    "UH Hilo",
    "Honolulu CC",
    "Kapiolani CC",
    "Kauai CC",
    "Leeward CC",
    "UH Manoa",
    "UH Maui College",
    "PCATT",
    "UH West Oahu",
]


def _parse_campus_list(raw: Optional[str]) -> Optional[List[str]]:
    """
    Parse the CAMPUSES_WITH_COURSE_DATA variable.

    An unset variable keeps the default list, the literal "none" disables
    campus filtering, anything else is a comma separated list.
    """
    if raw is None:
        return list(DEFAULT_CAMPUSES_WITH_COURSE_DATA)
    if raw.strip().lower() == "none":
        return None
    return [campus.strip() for campus in raw.split(",") if campus.strip()]


# Redis configuration (for the shared cache store)
REDIS_CONFIG = {
    "host": os.environ.get("REDIS_HOST", "localhost"),
    "port": int(os.environ.get("REDIS_PORT", "6379")),
    "password": os.environ.get("REDIS_PASSWORD", ""),
    "db": int(os.environ.get("REDIS_DB", "0"))
}

# LLM configuration
LLM_CONFIG = {
    "model": os.environ.get("LLM_MODEL", "gemini-2.0-flash-lite"),
    "temperature": float(os.environ.get("LLM_TEMPERATURE", "0.1")),
    "api_key": os.environ.get("LLM_API_KEY", ""),
    "max_retries": int(os.environ.get("LLM_MAX_RETRIES", "2")),
    "timeout": float(os.environ.get("LLM_TIMEOUT", "20")),  # in seconds
}

# Cache configuration
CACHE_CONFIG = {
    "backend": os.environ.get("CACHE_BACKEND", "memory"),  # memory | redis
    "default_ttl": int(os.environ.get("CACHE_TTL", "3600")),  # in seconds
    "warmup_ttl": int(os.environ.get("CACHE_WARMUP_TTL", "7200")),
    "version": os.environ.get("CACHE_VERSION", "v1"),
    "similarity_threshold": float(os.environ.get("CACHE_SIMILARITY_THRESHOLD", "0.8")),
    "recent_window": int(os.environ.get("CACHE_RECENT_WINDOW", "50")),
}

# Orchestrator configuration
ORCHESTRATOR_CONFIG = {
    "max_attempts": min(int(os.environ.get("MAX_ATTEMPTS", "3")), 3),  # never above 3
    "career_limit": int(os.environ.get("CAREER_LIMIT", "10")),
    "keyword_limit": int(os.environ.get("KEYWORD_LIMIT", "5")),
    "history_window": int(os.environ.get("HISTORY_WINDOW", "6")),
    "max_query_length": int(os.environ.get("MAX_QUERY_LENGTH", "1000")),
    "pipeline_timeout": float(os.environ.get("PIPELINE_TIMEOUT", "60")),  # in seconds
    "campuses_with_course_data": _parse_campus_list(os.environ.get("CAMPUSES_WITH_COURSE_DATA")),
}

# Data configuration
DATA_CONFIG = {
    "jsonl_dir": os.environ.get(
        "JSONL_DATA_DIR",
        os.path.join(os.path.dirname(os.path.abspath(__file__)), "data", "jsonl")
    ),
}

# Application configuration
APP_CONFIG = {
    "debug": os.environ.get("DEBUG", "False").lower() == "true",
    "log_level": os.environ.get("LOG_LEVEL", "INFO"),
}

# Feature flags
FEATURES = {
    "use_cache": os.environ.get("USE_CACHE", "True").lower() == "true",
    "use_llm_verification": os.environ.get("USE_LLM_VERIFICATION", "True").lower() == "true",
}

def get_config() -> Dict[str, Any]:
    """Return the complete configuration dictionary."""
    return {
        "llm": LLM_CONFIG,
        "redis": REDIS_CONFIG,
        "cache": CACHE_CONFIG,
        "orchestrator": ORCHESTRATOR_CONFIG,
        "data": DATA_CONFIG,
        "app": APP_CONFIG,
        "features": FEATURES
    }
