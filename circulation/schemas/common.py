"""Common Pydantic schemas."""
from datetime import datetime, timezone
from typing import Annotated, Any, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict


def to_naive_utc(value: datetime) -> datetime:
    """Stored timestamps are naive UTC; aware inputs are converted."""
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


UTCDatetime = Annotated[datetime, AfterValidator(to_naive_utc)]


class BaseSchema(BaseModel):
    """Base schema with common configuration."""

    model_config = ConfigDict(from_attributes=True)


class ErrorResponse(BaseModel):
    """Error response schema."""

    detail: str
    error_code: Optional[str] = None
    details: dict[str, Any] = {}


class SweepRequest(BaseModel):
    """Optional reference time for a sweep; defaults to now."""

    as_of: Optional[UTCDatetime] = None


class SweepResponse(BaseModel):
    """Summary of one sweep run."""

    sweep: str
    as_of: datetime
    processed: int
