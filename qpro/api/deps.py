from fastapi import Depends, Request

from qpro.core.config import settings
from qpro.core.exceptions import RateLimitException
from qpro.core.rate_limiter import RateLimiter
from qpro.database import get_db
from qpro.services.strategic_plan_service import StrategicPlanService, get_plan_service


def get_rate_limiter(request: Request) -> RateLimiter:
    """Limitador creado al iniciar la aplicación (app.state)."""
    limiter = getattr(request.app.state, "rate_limiter", None)
    if limiter is None:
        limiter = RateLimiter(
            settings.RATE_LIMIT_MAX_REQUESTS, settings.RATE_LIMIT_WINDOW_SECONDS
        )
        request.app.state.rate_limiter = limiter
    return limiter


def _client_identifier(request: Request) -> str:
    user_id = request.headers.get("X-User-Id")
    if user_id:
        return f"user:{user_id}"
    return f"ip:{request.client.host if request.client else 'unknown'}"


async def enforce_rate_limit(
    request: Request,
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> None:
    identifier = _client_identifier(request)
    if not limiter.is_allowed(identifier):
        raise RateLimitException(
            "Demasiadas solicitudes, intente más tarde",
            retry_after=limiter.retry_after(identifier),
        )


__all__ = [
    "StrategicPlanService",
    "enforce_rate_limit",
    "get_db",
    "get_plan_service",
    "get_rate_limiter",
]
