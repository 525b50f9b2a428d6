"""Scheduler-triggered sweep routes."""
from typing import Optional

from fastapi import APIRouter, Depends

from circulation.api.deps import get_engine, unwrap
from circulation.engine import CirculationEngine
from circulation.schemas.common import SweepRequest, SweepResponse

router = APIRouter(prefix="/sweeps", tags=["Sweeps"])


@router.post("/overdue", response_model=SweepResponse)
async def sweep_overdue(
    data: Optional[SweepRequest] = None,
    engine: CirculationEngine = Depends(get_engine),
) -> SweepResponse:
    """Flag active loans past their due date as overdue."""
    as_of = (data.as_of if data else None) or engine.coordinator.clock()
    processed = unwrap(await engine.loans.sweep_overdue(as_of))
    return SweepResponse(sweep="overdue", as_of=as_of, processed=processed)


@router.post("/expired", response_model=SweepResponse)
async def sweep_expired(
    data: Optional[SweepRequest] = None,
    engine: CirculationEngine = Depends(get_engine),
) -> SweepResponse:
    """Expire holds not picked up in time and pass the copies on."""
    as_of = (data.as_of if data else None) or engine.coordinator.clock()
    processed = unwrap(await engine.reservations.sweep_expired(as_of))
    return SweepResponse(sweep="expired", as_of=as_of, processed=processed)
