"""
Pydantic schemas for invoice requests, normalised input and responses.

``InvoiceCreate`` is deliberately lenient: ``amount`` and ``risk_score``
accept any JSON value.  Unusable values are replaced by defaults during
normalisation and reported back as :class:`AppliedDefault` entries rather
than rejected.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from invoice_ledger.models.invoice import InvoiceStatus, RiskBand
from invoice_ledger.schemas.common import Money, UTCDateTime
from invoice_ledger.schemas.investment import InvestmentResponse


class InvoiceCreate(BaseModel):
    """Schema for ``POST /invoices``."""

    issuer_address: str = Field(
        ...,
        min_length=1,
        max_length=128,
        description="Address of the MSME issuing the invoice",
        examples=["0x70997970c51812dc3a010c7d01b50e0d17dc79c8"],
    )
    buyer_address: str = Field(
        default="",
        max_length=128,
        description="Address of the buyer who owes the invoice",
    )
    invoice_number: Optional[str] = Field(
        default=None,
        max_length=64,
        description="Human-readable number; generated when omitted",
        examples=["INV-2026-001"],
    )
    amount: Any = Field(
        default=None,
        description="Invoice amount; anything that is not a non-negative number becomes 0",
        examples=[5.8],
    )
    due_date: datetime = Field(..., description="When the buyer must pay (ISO-8601)")
    description: str = Field(default="", max_length=2000)
    risk_score: Any = Field(
        default=None,
        description="0–1000, higher is safer; missing or invalid values become 500",
        examples=[750],
    )
    document_hash: Optional[str] = Field(
        default=None,
        max_length=512,
        description="Reference to the invoice document (hash or URI); generated when omitted",
    )
    token_id: Optional[int] = Field(
        default=None,
        ge=0,
        description="Identifier of the on-chain mirror, if any",
    )

    @field_validator("issuer_address")
    @classmethod
    def validate_issuer_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("issuer_address must not be blank")
        return v


class AppliedDefault(BaseModel):
    """One lenient-input substitution made while normalising a request."""

    field: str
    received: Any = None
    applied: Any
    reason: str


class NormalizedInvoice(BaseModel):
    """Invoice fields after normalisation, ready to persist."""

    issuer_address: str
    buyer_address: str
    invoice_number: str
    amount: Decimal
    due_date: UTCDateTime
    description: str
    risk_score: int
    document_hash: str
    token_id: int
    applied_defaults: List[AppliedDefault] = Field(default_factory=list)

    def defaulted(self, field: str) -> bool:
        return any(d.field == field for d in self.applied_defaults)


class InvoiceResponse(BaseModel):
    """Schema returned by every invoice endpoint."""

    id: uuid.UUID
    token_id: Optional[int] = None
    invoice_number: str
    issuer_address: str
    buyer_address: str
    amount: Money
    due_date: UTCDateTime
    description: str
    document_hash: str
    risk_score: int
    risk_band: RiskBand
    status: InvoiceStatus
    created_at: UTCDateTime
    updated_at: UTCDateTime

    model_config = ConfigDict(from_attributes=True)


class InvoiceCreated(BaseModel):
    """Result of ``create``: the invoice plus every default that was applied."""

    success: bool = True
    message: str = "Invoice created successfully"
    invoice: InvoiceResponse
    applied_defaults: List[AppliedDefault] = Field(default_factory=list)


class InvoiceDetail(BaseModel):
    """An invoice with the investments financing it."""

    invoice: InvoiceResponse
    investments: List[InvestmentResponse]
    total_financed: Money


class InvoiceStatusUpdate(BaseModel):
    """Body of the operator-only status override."""

    status: InvoiceStatus
    reason: str = Field(default="", max_length=500, description="Recorded in the audit log")


class InvoiceStatusUpdated(BaseModel):
    success: bool = True
    message: str = "Invoice status overridden"
    previous_status: InvoiceStatus
    invoice: InvoiceResponse
