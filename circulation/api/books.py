"""Per-book API routes: copies and the reservation queue."""
from typing import Optional

from fastapi import APIRouter, Depends

from circulation.api.deps import get_actor_id, get_engine, unwrap
from circulation.api.reservations import to_response
from circulation.engine import CirculationEngine
from circulation.models.book import BookCopy, CopyStatus
from circulation.schemas.copy import CopyResponse
from circulation.schemas.reservation import ReservationResponse

router = APIRouter(prefix="/books", tags=["Books"])


@router.get("/{book_id}/copies", response_model=list[CopyResponse])
async def list_copies(
    book_id: int,
    status_filter: Optional[CopyStatus] = None,
    engine: CirculationEngine = Depends(get_engine),
) -> list[BookCopy]:
    return unwrap(await engine.copies.list_copies(book_id, status_filter))


@router.get("/{book_id}/queue", response_model=list[ReservationResponse])
async def get_queue(
    book_id: int,
    engine: CirculationEngine = Depends(get_engine),
) -> list[ReservationResponse]:
    """Active reservations for the book, in pickup order."""
    queue = unwrap(await engine.reservations.list_queue(book_id))
    return [to_response(engine, reservation, rank) for rank, reservation in enumerate(queue, start=1)]


@router.post("/{book_id}/fulfill-next", response_model=Optional[ReservationResponse])
async def fulfill_next(
    book_id: int,
    engine: CirculationEngine = Depends(get_engine),
    actor_id: Optional[int] = Depends(get_actor_id),
) -> Optional[ReservationResponse]:
    """Hand an available copy to the head of the queue; null when nobody is waiting."""
    reservation = unwrap(await engine.reservations.try_fulfill_next(book_id, actor_id=actor_id))
    if reservation is None:
        return None
    return to_response(engine, reservation)
