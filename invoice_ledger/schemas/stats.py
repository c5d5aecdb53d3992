"""
Read-only aggregate views: platform statistics, portfolios and the
recent-activity feed.
"""

import uuid
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from invoice_ledger.models.invoice import InvoiceStatus
from invoice_ledger.models.participant import ParticipantRole, VerificationStatus
from invoice_ledger.schemas.common import Money, UTCDateTime
from invoice_ledger.schemas.investment import InvestmentResponse
from invoice_ledger.schemas.invoice import InvoiceResponse


class PlatformStats(BaseModel):
    """Ledger-wide counters, recomputed from the stores (cache-backed)."""

    total_invoices: int
    funded_invoices: int
    settled_invoices: int
    financed_invoices: int = Field(description="Funded plus settled invoices")
    total_volume: Money = Field(description="Summed amount of funded and settled invoices")
    average_invoice_size: Money = Field(
        description="total_volume / total_invoices, 0 when there are no invoices"
    )
    active_investors: int
    total_participants: int


class Portfolio(BaseModel):
    """
    Everything the ledger knows about one address.

    Unknown addresses get a zero-state view; nothing is persisted for them.
    """

    address: str
    role: ParticipantRole
    verification_status: VerificationStatus
    created_invoices: List[InvoiceResponse]
    funded_invoices: List[InvoiceResponse]
    investments: List[InvestmentResponse]
    total_invested: Money
    total_returns: Money
    joined: Optional[UTCDateTime] = None


class ActivityType(str, Enum):
    INVOICE_CREATED = "Invoice Created"
    INVOICE_FUNDED = "Invoice Funded"
    SETTLEMENT = "Settlement"
    INVESTMENT = "Investment"


class ActivityEntry(BaseModel):
    type: ActivityType
    invoice_id: uuid.UUID
    invoice_number: str
    investment_id: Optional[uuid.UUID] = None
    amount: Money
    status: str
    timestamp: UTCDateTime


def activity_type_for(status: InvoiceStatus) -> ActivityType:
    """Label an invoice's latest change by the status it now holds."""
    if status == InvoiceStatus.FUNDED:
        return ActivityType.INVOICE_FUNDED
    if status == InvoiceStatus.SETTLED:
        return ActivityType.SETTLEMENT
    return ActivityType.INVOICE_CREATED
