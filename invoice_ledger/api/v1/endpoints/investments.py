"""
Investment API endpoints.

- GET  /investments/{investment_id}        — Investment status and estimated return
- GET  /investors/{address}/investments    — Everything an address has financed
"""

from uuid import UUID

from fastapi import APIRouter, Depends

from invoice_ledger.api.deps import get_ledger_service
from invoice_ledger.schemas.common import ErrorResponse
from invoice_ledger.schemas.investment import InvestorInvestments
from invoice_ledger.schemas.ledger import InvestmentStatusView
from invoice_ledger.services.ledger_service import LedgerService

router = APIRouter()

# Full paths: the router is mounted at the API-version root.


@router.get(
    "/investments/{investment_id}",
    response_model=InvestmentStatusView,
    summary="Get an investment",
    description="The investment, its invoice, and the interest it earns at settlement.",
    responses={404: {"model": ErrorResponse, "description": "Investment not found"}},
)
async def get_investment(
    investment_id: UUID,
    service: LedgerService = Depends(get_ledger_service),
) -> InvestmentStatusView:
    return await service.get_status(investment_id)


@router.get(
    "/investors/{address}/investments",
    response_model=InvestorInvestments,
    summary="List an investor's investments",
    description=(
        "Addresses are case-insensitive.  Unknown addresses return an empty "
        "listing with zero totals."
    ),
)
async def list_investor_investments(
    address: str,
    service: LedgerService = Depends(get_ledger_service),
) -> InvestorInvestments:
    return await service.list_by_investor(address)
