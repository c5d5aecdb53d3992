"""
Participant directory endpoints.

- GET  /participants            — Every participant, first-seen order
- GET  /participants/{address}  — One participant and its running totals
"""

from typing import List

from fastapi import APIRouter, Depends

from invoice_ledger.api.deps import get_participant_service
from invoice_ledger.schemas.common import ErrorResponse
from invoice_ledger.schemas.participant import ParticipantResponse
from invoice_ledger.services.participant_service import ParticipantService

router = APIRouter()


@router.get("", response_model=List[ParticipantResponse], summary="List participants")
async def list_participants(
    service: ParticipantService = Depends(get_participant_service),
) -> List[ParticipantResponse]:
    return await service.list()


@router.get(
    "/{address}",
    response_model=ParticipantResponse,
    summary="Get a participant",
    responses={404: {"model": ErrorResponse, "description": "Participant not found"}},
)
async def get_participant(
    address: str,
    service: ParticipantService = Depends(get_participant_service),
) -> ParticipantResponse:
    return await service.get(address)
