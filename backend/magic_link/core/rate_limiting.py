"""Per-IP throttling of the public magic link routes (slowapi).

Link requests are limited to curb email bombing; redemptions are limited
to curb signature guessing. Routes opt in with
``@limiter.limit(settings.rate_limit_magic_link)`` and must accept a
``request: Request`` parameter.

Storage is in-process; counts are per worker.
"""

import re

from fastapi import Request, Response
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.responses import JSONResponse

from magic_link.core.config import settings
from magic_link.core.responses import ErrorResponse

limiter = Limiter(
    key_func=get_remote_address,
    enabled=settings.rate_limit_enabled,
)

# slowapi describes a limit as e.g. "5 per 1 hour"
_WINDOW_RE = re.compile(r"per (\d+) (second|minute|hour|day)")
_WINDOW_SECONDS = {"second": 1, "minute": 60, "hour": 3600, "day": 86400}
_DEFAULT_RETRY_AFTER = 60


def retry_after_seconds(detail: str) -> int:
    """Length of the limit window described by ``detail``, or 60."""
    match = _WINDOW_RE.search(str(detail))
    if match is None:
        return _DEFAULT_RETRY_AFTER
    return int(match.group(1)) * _WINDOW_SECONDS[match.group(2)]


def rate_limit_exceeded_handler(
    _request: Request,
    exc: RateLimitExceeded,
) -> Response:
    """429 in the standard error envelope with a Retry-After header."""
    return JSONResponse(
        status_code=429,
        content=ErrorResponse.build(
            "RATE_LIMITED", f"Rate limit exceeded: {exc.detail}"
        ),
        headers={"Retry-After": str(retry_after_seconds(exc.detail))},
    )
