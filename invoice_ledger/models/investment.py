"""
Investment domain model.

A financing commitment from an investor against exactly one invoice.
Created when the invoice is funded; updated once when it is settled.
"""

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Optional

from sqlalchemy import CheckConstraint, DateTime, Index
from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from invoice_ledger.models.invoice import Invoice


class InvestmentStatus(str, Enum):
    """An investment is active until its invoice settles."""

    ACTIVE = "active"
    SETTLED = "settled"


class Investment(SQLModel, table=True):
    """
    SQLModel / SQLAlchemy table definition for investments.

    ``settled_at`` and ``return_amount`` stay NULL until settlement.
    """

    __tablename__ = "investments"  # type: ignore[assignment]

    __table_args__ = (
        Index("ix_investments_investor_created", "investor_address", "created_at"),
        CheckConstraint("principal > 0", name="ck_investments_principal_positive"),
        CheckConstraint(
            "interest_rate >= 0 AND interest_rate <= 100",
            name="ck_investments_interest_rate_range",
        ),
    )

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    invoice_id: uuid.UUID = Field(
        foreign_key="invoices.id",
        index=True,
        ondelete="RESTRICT",  # invoices are never deleted while financed
    )
    investor_address: str = Field(index=True, max_length=128)
    principal: Decimal = Field(max_digits=28, decimal_places=8)
    interest_rate: Decimal = Field(max_digits=9, decimal_places=4)
    status: InvestmentStatus = Field(default=InvestmentStatus.ACTIVE, index=True)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        nullable=False,
        sa_type=DateTime(timezone=True),  # type: ignore[arg-type]
    )
    settled_at: Optional[datetime] = Field(
        default=None,
        sa_type=DateTime(timezone=True),  # type: ignore[arg-type]
    )
    return_amount: Optional[Decimal] = Field(default=None, max_digits=28, decimal_places=8)

    # ── Relationships ──
    invoice: Optional["Invoice"] = Relationship(back_populates="investments")

    def __repr__(self) -> str:
        return (
            f"<Investment id={self.id} invoice={self.invoice_id} "
            f"investor={self.investor_address} principal={self.principal} "
            f"rate={self.interest_rate}% status={self.status.value}>"
        )
