"""Book copy Pydantic schemas."""
from pydantic import BaseModel

from circulation.models.book import CopyStatus
from circulation.schemas.common import BaseSchema


class CopyTransitionRequest(BaseModel):
    """Staff status change; ``from_status`` must match the copy's current status."""

    from_status: CopyStatus
    to_status: CopyStatus


class CopyResponse(BaseSchema):
    """Schema for copy response."""

    id: int
    book_id: int
    status: CopyStatus
    version: int
