"""
Pydantic schemas for investment requests and responses.
"""

import uuid
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from invoice_ledger.models.investment import InvestmentStatus
from invoice_ledger.models.invoice import InvoiceStatus
from invoice_ledger.schemas.common import Money, UTCDateTime


class InvestmentCreate(BaseModel):
    """
    Schema for ``POST /invoices/{invoice_id}/investments``.

    The invoice comes from the URL path.
    """

    investor_address: str = Field(
        ...,
        min_length=1,
        max_length=128,
        description="Address of the investor committing capital",
        examples=["0xf39fd6e51aad88f6f4ce6ab8827279cfffb92266"],
    )
    principal: Decimal = Field(
        ...,
        gt=0,
        max_digits=28,
        decimal_places=8,
        description="Amount committed against the invoice (must be positive)",
        examples=[5],
    )
    interest_rate: Decimal = Field(
        ...,
        ge=0,
        le=100,
        decimal_places=4,
        description="Agreed interest, as a percentage of principal",
        examples=[12.5],
    )

    @field_validator("investor_address")
    @classmethod
    def validate_investor_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("investor_address must not be blank")
        return v


class InvestmentResponse(BaseModel):
    """Schema returned by investment endpoints."""

    id: uuid.UUID
    invoice_id: uuid.UUID
    investor_address: str
    principal: Money
    interest_rate: Money
    status: InvestmentStatus
    created_at: UTCDateTime
    settled_at: Optional[UTCDateTime] = None
    return_amount: Optional[Money] = None

    model_config = ConfigDict(from_attributes=True)


class InvoiceSummary(BaseModel):
    """The few invoice fields shown next to an investor's investment."""

    invoice_number: str
    amount: Money
    status: InvoiceStatus
    due_date: UTCDateTime

    model_config = ConfigDict(from_attributes=True)


class InvestmentWithInvoice(InvestmentResponse):
    invoice: Optional[InvoiceSummary] = None


class InvestorInvestments(BaseModel):
    """Everything an address has financed, with derived totals."""

    address: str
    total_investments: int
    active_investments: int
    settled_investments: int
    total_invested: Money = Field(description="Sum of principal over all investments")
    total_returns: Money = Field(
        description="Sum of realised return_amount (principal + interest) over settled investments"
    )
    investments: List[InvestmentWithInvoice]


class SettlementLine(BaseModel):
    """What one investor receives when an invoice settles."""

    investment_id: uuid.UUID
    investor: str
    principal: Money
    interest: Money
    total_return: Money

