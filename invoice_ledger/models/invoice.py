"""
Invoice domain model.

An invoice raised by an MSME (the issuer) against a buyer, persisted in the
``invoices`` table.  ``status`` is the only field that changes after
creation (together with ``updated_at``).
"""

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import BigInteger, CheckConstraint, Column, DateTime
from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from invoice_ledger.models.investment import Investment


class InvoiceStatus(str, Enum):
    """Lifecycle states: pending → funded → settled."""

    PENDING = "pending"
    FUNDED = "funded"
    SETTLED = "settled"


class RiskBand(str, Enum):
    """Coarse classification of ``risk_score`` (higher score = safer)."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def bounds(self) -> tuple[Optional[int], Optional[int]]:
        """Inclusive ``(min, max)`` risk-score range; ``None`` means open-ended."""
        return _RISK_BAND_BOUNDS[self]

    def contains(self, risk_score: int) -> bool:
        low, high = self.bounds
        return (low is None or risk_score >= low) and (high is None or risk_score <= high)

    @classmethod
    def for_score(cls, risk_score: int) -> "RiskBand":
        for band in cls:
            if band.contains(risk_score):
                return band
        raise ValueError(f"risk score {risk_score} falls in no band")


_RISK_BAND_BOUNDS: dict[RiskBand, tuple[Optional[int], Optional[int]]] = {
    RiskBand.LOW: (700, None),
    RiskBand.MEDIUM: (400, 699),
    RiskBand.HIGH: (None, 399),
}


class Invoice(SQLModel, table=True):
    """
    SQLModel / SQLAlchemy table definition for invoices.

    - ``amount`` uses DECIMAL(28,8): invoices are denominated in ETH.
    - ``(status, created_at)`` are indexed for the filtered, newest-first
      listing; ``issuer_address`` for portfolio look-ups.
    """

    __tablename__ = "invoices"  # type: ignore[assignment]

    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_invoices_amount_non_negative"),
    )

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    token_id: Optional[int] = Field(default=None, sa_column=Column(BigInteger, nullable=True))
    invoice_number: str = Field(max_length=64)
    issuer_address: str = Field(index=True, max_length=128)
    buyer_address: str = Field(default="", max_length=128)
    amount: Decimal = Field(default=Decimal("0"), max_digits=28, decimal_places=8)
    due_date: datetime = Field(sa_type=DateTime(timezone=True))  # type: ignore[arg-type]
    description: str = Field(default="")
    document_hash: str = Field(default="", max_length=512)
    risk_score: int = Field(default=500, index=True)
    status: InvoiceStatus = Field(default=InvoiceStatus.PENDING, index=True)
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
        index=True,  # recent-activity feed orders by last status change
    )

    # ── Relationships ──
    investments: List["Investment"] = Relationship(back_populates="invoice")

    @property
    def risk_band(self) -> RiskBand:
        return RiskBand.for_score(self.risk_score)

    def __repr__(self) -> str:
        return (
            f"<Invoice id={self.id} number='{self.invoice_number}' "
            f"amount={self.amount} status={self.status.value}>"
        )
