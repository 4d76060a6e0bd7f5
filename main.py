"""
Main entry point for the pathway query orchestration system.
"""
import asyncio
import logging
from typing import Dict, Any, List, Optional

from config import APP_CONFIG, get_config
from services.pathway_service import PathwayOrchestrator

# Configure logging
logging.basicConfig(
    level=getattr(logging, APP_CONFIG["log_level"].upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

logger = logging.getLogger(__name__)

def initialize_system() -> Dict[str, Any]:
    """Initialize the pathway system."""
    logger.info("Initializing pathway query system")
    config = get_config()

    logger.info(f"System configured with: LLM={config['llm']['model']}, "
                f"Cache={config['cache']['backend']}, Features={config['features']}")

    return {
        "orchestrator": PathwayOrchestrator(),
        "config": config
    }

async def run_conversation(orchestrator: PathwayOrchestrator,
                           messages: List[str],
                           profile: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
    """
    Run a sequence of messages as one conversation.

    Args:
        orchestrator: The pathway orchestrator
        messages: User messages in order
        profile: Optional user profile

    Returns:
        One orchestration result per message
    """
    history = []
    results = []
    for message in messages:
        result = await orchestrator.orchestrate(message, profile=profile, history=history)
        history = history + [
            {"role": "user", "content": message},
            {"role": "assistant", "content": result["response_text"]},
        ]
        results.append(result)
    return results

def print_result(message: str, result: Dict[str, Any]):
    print(f"\nMESSAGE: {message}")
    print(f"Kind: {result.get('query_kind') or 'N/A'}")
    print(f"Tools: {result.get('tools_used', [])}")
    print(f"Quality: {result.get('quality_score', 0)}/10 after {result.get('attempts', 0)} attempt(s)")
    print(f"Cached: {result.get('cached', False)}")
    print(f"Errors: {result.get('errors') or 'None'}")
    print(f"Response: {result.get('response_text', 'No response')}")
    print("-" * 80)

async def main():
    system = initialize_system()
    orchestrator = system["orchestrator"]

    test_queries = [
        "show me computer science programs",
        "what careers can I get with nursing?",
        "hello!",
    ]

    test_conversation = [
        "I'm interested in nursing",
        "yes",
        "what about engineering instead?",
    ]

    print("\n=== TESTING STANDARD QUERIES ===")
    for query in test_queries:
        result = await orchestrator.orchestrate(query)
        print_result(query, result)

    print("\n=== TESTING CONVERSATION FLOW ===")
    profile = {"education_level": "high_school", "interests": ["healthcare"]}
    results = await run_conversation(orchestrator, test_conversation, profile)
    for message, result in zip(test_conversation, results):
        print_result(message, result)

    print("\n=== SYSTEM HEALTH METRICS ===")
    for metric, value in orchestrator.monitor.get_system_health().items():
        print(f"{metric}: {value}")
    print("-" * 80)

if __name__ == "__main__":
    asyncio.run(main())
