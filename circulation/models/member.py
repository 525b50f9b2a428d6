"""Member projection model."""
from enum import Enum as PyEnum
from typing import Optional

from sqlalchemy import Enum, String
from sqlalchemy.orm import Mapped, mapped_column

from circulation.database import Base


class MembershipStatus(str, PyEnum):
    """Membership status enum."""
    ACTIVE = "active"
    SUSPENDED = "suspended"
    EXPIRED = "expired"


class Member(Base):
    """Library member as seen by circulation.

    Loan, reservation and fine totals are never stored here; they are summed
    from the owning tables on demand.
    """

    __tablename__ = "members"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    membership_status: Mapped[MembershipStatus] = mapped_column(
        Enum(MembershipStatus), default=MembershipStatus.ACTIVE, nullable=False
    )

    @property
    def in_good_standing(self) -> bool:
        return self.membership_status == MembershipStatus.ACTIVE

    @property
    def has_contact_info(self) -> bool:
        return bool(self.email and self.email.strip())

    def __repr__(self) -> str:
        return f"<Member(id={self.id}, status={self.membership_status})>"
