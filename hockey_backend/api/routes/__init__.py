"""
API routes - combined router from all domain modules.

Shared error mapping lives here; every sub-router imports what it needs
from this package.
"""

from fastapi import APIRouter

from hockey_backend.services.registration_service import (
    CapacityConflictError,
    DuplicateRegistrationError,
    InvalidTransitionError,
)

# ---------------------------------------------------------------------------
# Shared constants
# ---------------------------------------------------------------------------
# Service errors answered with 409; NotFoundError maps to 404, other ValueError to 400
CONFLICT_ERRORS = (InvalidTransitionError, CapacityConflictError, DuplicateRegistrationError)

# ---------------------------------------------------------------------------
# Import sub-routers and combine
# ---------------------------------------------------------------------------
from hockey_backend.api.routes.registrations import router as registrations_router  # noqa: E402
from hockey_backend.api.routes.matches import router as matches_router  # noqa: E402
from hockey_backend.api.routes.settings import router as settings_router  # noqa: E402
from hockey_backend.api.routes.notifications import router as notifications_router  # noqa: E402

router = APIRouter()
router.include_router(registrations_router)
router.include_router(matches_router)
router.include_router(settings_router)
router.include_router(notifications_router)
