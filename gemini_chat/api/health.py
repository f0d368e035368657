import time

from fastapi import APIRouter, Depends

from gemini_chat.dependencies import get_provider
from gemini_chat.schemas.health import HealthResponse
from gemini_chat.services.provider.base import GenerativeProvider

router = APIRouter()

_start_time = time.monotonic()


@router.get("/health")
async def health_check(
    provider: GenerativeProvider = Depends(get_provider),
) -> HealthResponse:
    """Relay health check; not behind the access gate."""
    provider_ok = await provider.health_check()

    return HealthResponse(
        status="ok" if provider_ok else "degraded",
        provider_status="connected" if provider_ok else "disconnected",
        uptime_seconds=round(time.monotonic() - _start_time, 1),
    )
