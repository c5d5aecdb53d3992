"""
Participant domain model.

Anyone who has issued an invoice or financed one, keyed by their
case-normalised address.  Participants are upserted, never deleted.
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum

from sqlalchemy import CheckConstraint, DateTime
from sqlmodel import Field, SQLModel


class ParticipantRole(str, Enum):
    """Most recently observed role; an address may switch between them."""

    ISSUER = "issuer"
    INVESTOR = "investor"


class VerificationStatus(str, Enum):
    PENDING = "pending"
    VERIFIED = "verified"


def normalize_address(address: str) -> str:
    """Addresses compare case-insensitively (``0xAbC`` == ``0xabc``)."""
    return (address or "").strip().lower()


class Participant(SQLModel, table=True):
    """
    SQLModel / SQLAlchemy table definition for participants.

    ``total_invested`` is the sum of principal committed by this address;
    ``total_returns`` the sum of interest realised at settlement.
    """

    __tablename__ = "participants"  # type: ignore[assignment]

    __table_args__ = (
        CheckConstraint("total_invested >= 0", name="ck_participants_invested_non_negative"),
        CheckConstraint("total_returns >= 0", name="ck_participants_returns_non_negative"),
    )

    address: str = Field(primary_key=True, max_length=128)
    role: ParticipantRole = Field(default=ParticipantRole.INVESTOR)
    verification_status: VerificationStatus = Field(default=VerificationStatus.PENDING)
    total_invested: Decimal = Field(default=Decimal("0"), max_digits=28, decimal_places=8)
    total_returns: Decimal = Field(default=Decimal("0"), max_digits=28, decimal_places=8)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        nullable=False,
        sa_type=DateTime(timezone=True),  # type: ignore[arg-type]
        index=True,
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        nullable=False,
        sa_type=DateTime(timezone=True),  # type: ignore[arg-type]
    )

    def __repr__(self) -> str:
        return (
            f"<Participant address={self.address} role={self.role.value} "
            f"invested={self.total_invested} returns={self.total_returns}>"
        )
