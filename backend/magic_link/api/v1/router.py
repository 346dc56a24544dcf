"""API v1 router aggregator.

All v1 endpoint routers are included here.
"""

from fastapi import APIRouter

from magic_link.api.v1 import magic_link

router = APIRouter()

# =============================================================================
# Authentication
# =============================================================================

_AUTH_PREFIX = "/auth"

router.include_router(magic_link.router, prefix=_AUTH_PREFIX, tags=["auth"])
