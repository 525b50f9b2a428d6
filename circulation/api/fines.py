"""Fine API routes."""
from typing import Optional

from fastapi import APIRouter, Depends, status

from circulation.api.deps import get_actor_id, get_engine, unwrap
from circulation.engine import CirculationEngine
from circulation.models.fine import Fine
from circulation.schemas.fine import FineCreate, FinePayment, FineResponse, FineWaiver

router = APIRouter(prefix="/fines", tags=["Fines"])


@router.post("", response_model=FineResponse, status_code=status.HTTP_201_CREATED)
async def create_fine(
    data: FineCreate,
    engine: CirculationEngine = Depends(get_engine),
    actor_id: Optional[int] = Depends(get_actor_id),
) -> Fine:
    """Raise a manual fine against a member."""
    return unwrap(
        await engine.fines.create_fine(
            data.member_id,
            data.amount,
            data.fine_type,
            data.description,
            loan_id=data.loan_id,
            actor_id=actor_id,
        )
    )


@router.get("/{fine_id}", response_model=FineResponse)
async def get_fine(
    fine_id: int,
    engine: CirculationEngine = Depends(get_engine),
) -> Fine:
    return unwrap(await engine.fines.get_fine(fine_id))


@router.post("/{fine_id}/pay", response_model=FineResponse)
async def pay_fine(
    fine_id: int,
    data: FinePayment,
    engine: CirculationEngine = Depends(get_engine),
    actor_id: Optional[int] = Depends(get_actor_id),
) -> Fine:
    """Pay a pending fine; a partial payment leaves a new fine for the rest."""
    return unwrap(await engine.fines.pay(fine_id, data.amount_paid, actor_id=actor_id))


@router.post("/{fine_id}/waive", response_model=FineResponse)
async def waive_fine(
    fine_id: int,
    data: FineWaiver,
    engine: CirculationEngine = Depends(get_engine),
    actor_id: Optional[int] = Depends(get_actor_id),
) -> Fine:
    return unwrap(await engine.fines.waive(fine_id, data.reason, actor_id=actor_id))
