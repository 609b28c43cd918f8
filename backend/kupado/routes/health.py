"""
Health check endpoints.
"""
import os

from fastapi import APIRouter

from kupado.core.circuit_breaker import CircuitState
from kupado.core.database import is_store_ready
from kupado.core.logging import get_logger
from kupado.services.ai.llm_client import get_providers

logger = get_logger(__name__)
router = APIRouter()


@router.get("/")
async def health_check():
    """
    Basic health check endpoint.
    """
    return {
        "status": "ok",
        "message": "API is running"
    }


@router.get("/dependencies")
async def dependencies_health():
    """
    Configuration status of the external dependencies.

    Returns:
        - database: whether the Supabase store was initialized
        - gemini / claude: whether an API key is configured for the provider
        - stripe: whether checkout can be created
        - circuit_breakers: breaker state and recent error rate per provider
    """
    checks = {
        "database": is_store_ready(),
        "gemini": bool(os.getenv("GOOGLE_GEMINI_API_KEY")),
        "claude": bool(os.getenv("ANTHROPIC_API_KEY")),
        "stripe": bool(os.getenv("STRIPE_SECRET_KEY", "").strip()),
    }
    breakers = {name: client.circuit_breaker.get_metrics() for name, client in get_providers().items()}
    tripped = [name for name, metrics in breakers.items() if metrics["state"] != CircuitState.CLOSED.value]

    status = "ok" if all(checks.values()) and not tripped else "degraded"
    if status != "ok":
        logger.warning(
            "health_dependencies_degraded",
            missing=[name for name, ready in checks.items() if not ready],
            circuits_not_closed=tripped,
        )
    return {"status": status, "dependencies": checks, "circuit_breakers": breakers}
