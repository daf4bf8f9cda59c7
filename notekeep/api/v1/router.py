"""API v1 router aggregator.

All v1 endpoint routers are included here and mounted at /api/v1.
"""

from fastapi import APIRouter

from notekeep.api.v1 import (
    admin,
    auth,
    auth_oauth,
    me,
    notes,
    settings,
    verification,
)

router = APIRouter()

# =============================================================================
# Authentication
# =============================================================================

_AUTH_PREFIX = "/auth"

router.include_router(auth.router, prefix=_AUTH_PREFIX, tags=["auth"])
router.include_router(auth_oauth.router, prefix=_AUTH_PREFIX, tags=["auth"])
router.include_router(verification.router, prefix=_AUTH_PREFIX, tags=["auth"])

# =============================================================================
# Account
# =============================================================================

router.include_router(settings.router, prefix="/settings", tags=["settings"])
router.include_router(me.router, prefix="/me", tags=["me"])

# =============================================================================
# Resources
# =============================================================================

router.include_router(
    notes.router, prefix="/users/{username}/notes", tags=["notes"]
)
router.include_router(admin.router, prefix="/admin", tags=["admin"])
