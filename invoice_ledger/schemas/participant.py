"""
Pydantic schemas for participant (directory) responses.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict

from invoice_ledger.models.participant import ParticipantRole, VerificationStatus
from invoice_ledger.schemas.common import Money, UTCDateTime


class ParticipantResponse(BaseModel):
    address: str
    role: ParticipantRole
    verification_status: VerificationStatus
    total_invested: Money
    total_returns: Money
    created_at: UTCDateTime
    updated_at: Optional[UTCDateTime] = None

    model_config = ConfigDict(from_attributes=True)
