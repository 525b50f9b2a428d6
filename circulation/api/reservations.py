"""Reservation API routes."""
from typing import Optional

from fastapi import APIRouter, Depends, status

from circulation.api.deps import get_actor_id, get_engine, unwrap
from circulation.engine import CirculationEngine
from circulation.models.reservation import Reservation
from circulation.schemas.reservation import FulfillRequest, ReservationCreate, ReservationResponse

router = APIRouter(prefix="/reservations", tags=["Reservations"])


def to_response(
    engine: CirculationEngine,
    reservation: Reservation,
    rank: Optional[int] = None,
) -> ReservationResponse:
    response = ReservationResponse.model_validate(reservation)
    response.pickup_deadline = engine.reservations.pickup_deadline(reservation)
    response.queue_rank = rank
    return response


@router.post("", response_model=ReservationResponse, status_code=status.HTTP_201_CREATED)
async def create_reservation(
    data: ReservationCreate,
    engine: CirculationEngine = Depends(get_engine),
    actor_id: Optional[int] = Depends(get_actor_id),
) -> ReservationResponse:
    """Join the queue for a book with no available copy."""
    reservation = unwrap(
        await engine.reservations.create(data.member_id, data.book_id, actor_id=actor_id)
    )
    rank = unwrap(await engine.reservations.queue_rank(reservation.id))
    return to_response(engine, reservation, rank)


@router.get("/{reservation_id}", response_model=ReservationResponse)
async def get_reservation(
    reservation_id: int,
    engine: CirculationEngine = Depends(get_engine),
) -> ReservationResponse:
    """Get a reservation with its current queue position."""
    reservation = unwrap(await engine.reservations.get_reservation(reservation_id))
    rank = unwrap(await engine.reservations.queue_rank(reservation_id))
    return to_response(engine, reservation, rank)


@router.post("/{reservation_id}/cancel", response_model=ReservationResponse)
async def cancel_reservation(
    reservation_id: int,
    engine: CirculationEngine = Depends(get_engine),
    actor_id: Optional[int] = Depends(get_actor_id),
) -> ReservationResponse:
    reservation = unwrap(await engine.reservations.cancel(reservation_id, actor_id=actor_id))
    return to_response(engine, reservation)


@router.post("/{reservation_id}/fulfill", response_model=ReservationResponse)
async def fulfill_reservation(
    reservation_id: int,
    data: FulfillRequest,
    engine: CirculationEngine = Depends(get_engine),
    actor_id: Optional[int] = Depends(get_actor_id),
) -> ReservationResponse:
    """Hold a specific copy for a reservation."""
    reservation = unwrap(
        await engine.reservations.fulfill(reservation_id, data.book_copy_id, actor_id=actor_id)
    )
    return to_response(engine, reservation)
