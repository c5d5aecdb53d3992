"""
Snapshot schemas: the whole ledger as three collections keyed by id.

Amounts stay ``Decimal`` (serialised as strings) so an export can be
reloaded without any rounding.  Values with more places than the columns
hold are rejected rather than rounded on the way in.
"""

import uuid
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from invoice_ledger.models.investment import InvestmentStatus
from invoice_ledger.models.invoice import InvoiceStatus
from invoice_ledger.models.participant import ParticipantRole, VerificationStatus
from invoice_ledger.schemas.common import StoredAmount, StoredRate, UTCDateTime


class InvoiceRecord(BaseModel):
    id: uuid.UUID
    token_id: Optional[int] = None
    invoice_number: str
    issuer_address: str
    buyer_address: str
    amount: StoredAmount
    due_date: UTCDateTime
    description: str
    document_hash: str
    risk_score: int
    status: InvoiceStatus
    created_at: UTCDateTime
    updated_at: UTCDateTime

    model_config = ConfigDict(from_attributes=True)


class InvestmentRecord(BaseModel):
    id: uuid.UUID
    invoice_id: uuid.UUID
    investor_address: str
    principal: StoredAmount
    interest_rate: StoredRate
    status: InvestmentStatus
    created_at: UTCDateTime
    settled_at: Optional[UTCDateTime] = None
    return_amount: Optional[StoredAmount] = None

    model_config = ConfigDict(from_attributes=True)


class ParticipantRecord(BaseModel):
    address: str
    role: ParticipantRole
    verification_status: VerificationStatus
    total_invested: StoredAmount
    total_returns: StoredAmount
    created_at: UTCDateTime
    updated_at: UTCDateTime

    model_config = ConfigDict(from_attributes=True)


class LedgerSnapshot(BaseModel):
    """Export format, also accepted by ``POST /admin/snapshot``."""

    invoices: Dict[str, InvoiceRecord] = Field(default_factory=dict)
    investments: Dict[str, InvestmentRecord] = Field(default_factory=dict)
    participants: Dict[str, ParticipantRecord] = Field(default_factory=dict)


class SnapshotLoaded(BaseModel):
    success: bool = True
    message: str = "Snapshot loaded"
    invoices: int
    investments: int
    participants: int
