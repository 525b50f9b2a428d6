"""Member-facing API routes: eligibility, balances and notification stream."""
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from circulation.api.deps import get_engine, unwrap
from circulation.api.reservations import to_response
from circulation.core.events import event_bus
from circulation.engine import CirculationEngine
from circulation.models.fine import Fine, FineStatus
from circulation.schemas.fine import BalanceResponse, FineResponse
from circulation.schemas.loan import EligibilityResponse
from circulation.schemas.reservation import ReservationResponse
from circulation.services.loan_service import LoanEligibility

router = APIRouter(prefix="/members", tags=["Members"])


@router.get("/{member_id}/eligibility", response_model=EligibilityResponse)
async def get_eligibility(
    member_id: int,
    engine: CirculationEngine = Depends(get_engine),
) -> LoanEligibility:
    """Whether the member may borrow, with reasons when not."""
    return unwrap(await engine.loans.check_eligibility(member_id))


@router.get("/{member_id}/balance", response_model=BalanceResponse)
async def get_balance(
    member_id: int,
    engine: CirculationEngine = Depends(get_engine),
) -> BalanceResponse:
    balance = unwrap(await engine.fines.outstanding_balance(member_id))
    return BalanceResponse(member_id=member_id, outstanding_balance=balance)


@router.get("/{member_id}/fines", response_model=list[FineResponse])
async def list_member_fines(
    member_id: int,
    status_filter: Optional[FineStatus] = None,
    engine: CirculationEngine = Depends(get_engine),
) -> list[Fine]:
    return unwrap(await engine.fines.list_fines(member_id, status_filter))


@router.get("/{member_id}/reservations", response_model=list[ReservationResponse])
async def list_member_reservations(
    member_id: int,
    engine: CirculationEngine = Depends(get_engine),
) -> list[ReservationResponse]:
    reservations = unwrap(await engine.reservations.list_reservations(member_id))
    return [to_response(engine, reservation) for reservation in reservations]


@router.get("/{member_id}/events")
async def stream_member_events(member_id: int) -> StreamingResponse:
    """Stream SSE notifications for a member."""
    return StreamingResponse(
        event_bus.subscribe(member_id),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",  # Disable nginx buffering
        },
    )


@router.get("/{member_id}/events/status")
async def get_stream_status(member_id: int) -> dict:
    return {
        "member_id": member_id,
        "subscriber_count": event_bus.get_subscriber_count(member_id),
    }
