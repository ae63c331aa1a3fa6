"""
API routes - combined router from all domain modules.

Shared infrastructure (limiter, service error mapping) lives here; every
sub-router imports what it needs from this package.
"""

import os

from fastapi import APIRouter, HTTPException
from slowapi import Limiter
from slowapi.util import get_remote_address

from footsquad.services.errors import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)

# ---------------------------------------------------------------------------
# Shared rate limiter
# ---------------------------------------------------------------------------
IS_TEST_ENV = os.getenv("ENV", "").lower() == "test"
limiter = Limiter(key_func=get_remote_address, enabled=not IS_TEST_ENV)

# ---------------------------------------------------------------------------
# Service error -> HTTP status
# ---------------------------------------------------------------------------
_STATUS_BY_ERROR = (
    (NotFoundError, 404),
    (PermissionDeniedError, 403),
    (ConflictError, 409),
    (ValidationError, 400),
)


def service_error(e: ValueError) -> HTTPException:
    """Translate a rejected service call; plain ValueError is a bad request."""
    for error_class, status_code in _STATUS_BY_ERROR:
        if isinstance(e, error_class):
            return HTTPException(status_code=status_code, detail=str(e))
    return HTTPException(status_code=400, detail=str(e))


# ---------------------------------------------------------------------------
# Import sub-routers and combine
# ---------------------------------------------------------------------------
from footsquad.api.routes.health import router as health_router  # noqa: E402
from footsquad.api.routes.players import router as players_router  # noqa: E402
from footsquad.api.routes.matches import router as matches_router  # noqa: E402
from footsquad.api.routes.roster import router as roster_router  # noqa: E402
from footsquad.api.routes.results import router as results_router  # noqa: E402
from footsquad.api.routes.notifications import router as notifications_router  # noqa: E402

router = APIRouter()
router.include_router(health_router)
router.include_router(players_router)
router.include_router(matches_router)
router.include_router(roster_router)
router.include_router(results_router)
router.include_router(notifications_router)
