"""Copy status API routes."""
from typing import Optional

from fastapi import APIRouter, Depends

from circulation.api.deps import get_actor_id, get_engine, unwrap
from circulation.engine import CirculationEngine
from circulation.models.book import BookCopy
from circulation.schemas.copy import CopyResponse, CopyTransitionRequest

router = APIRouter(prefix="/copies", tags=["Copies"])


@router.post("/{copy_id}/transition", response_model=CopyResponse)
async def transition_copy(
    copy_id: int,
    data: CopyTransitionRequest,
    engine: CirculationEngine = Depends(get_engine),
    actor_id: Optional[int] = Depends(get_actor_id),
) -> BookCopy:
    """Change a copy's status through the legal transition table."""
    return unwrap(
        await engine.copies.transition(copy_id, data.from_status, data.to_status, actor_id=actor_id)
    )
