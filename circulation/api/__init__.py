"""API routes."""
from fastapi import APIRouter

from circulation.api.books import router as books_router
from circulation.api.copies import router as copies_router
from circulation.api.deps import ERROR_RESPONSES
from circulation.api.fines import router as fines_router
from circulation.api.loans import router as loans_router
from circulation.api.members import router as members_router
from circulation.api.reservations import router as reservations_router
from circulation.api.sweeps import router as sweeps_router

# Create main API router
api_router = APIRouter(prefix="/api/v1", responses=ERROR_RESPONSES)

# Include all route modules
api_router.include_router(loans_router)
api_router.include_router(reservations_router)
api_router.include_router(fines_router)
api_router.include_router(books_router)
api_router.include_router(copies_router)
api_router.include_router(members_router)
api_router.include_router(sweeps_router)

__all__ = ["api_router"]
