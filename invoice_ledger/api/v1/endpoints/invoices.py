"""
Invoice API endpoints.

- GET   /invoices                          — List invoices (status / risk filters)
- POST  /invoices                          — Register a new invoice
- GET   /invoices/{invoice_id}             — Invoice with its investments
- GET   /invoices/{invoice_id}/investments — Investments financing an invoice
- POST  /invoices/{invoice_id}/investments — Finance a pending invoice
- POST  /invoices/{invoice_id}/settlement  — Settle a funded invoice
"""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from invoice_ledger.api.deps import get_invoice_service, get_ledger_service
from invoice_ledger.models.invoice import InvoiceStatus, RiskBand
from invoice_ledger.schemas.common import ErrorResponse, ValidationErrorResponse
from invoice_ledger.schemas.investment import InvestmentCreate, InvestmentResponse
from invoice_ledger.schemas.invoice import InvoiceCreate, InvoiceCreated, InvoiceDetail, InvoiceResponse
from invoice_ledger.schemas.ledger import InvestmentCreated, SettlementResult
from invoice_ledger.services.invoice_service import InvoiceService
from invoice_ledger.services.ledger_service import LedgerService

router = APIRouter()


@router.get(
    "",
    response_model=List[InvoiceResponse],
    summary="List invoices",
    description=(
        "Newest first, at most 50.  ``status`` is an exact match; "
        "``risk_level`` is low (score ≥ 700), medium (400–699) or high (≤ 399)."
    ),
)
async def list_invoices(
    status: Optional[InvoiceStatus] = Query(None, description="Exact status"),
    risk_level: Optional[RiskBand] = Query(None, description="Risk band"),
    service: InvoiceService = Depends(get_invoice_service),
) -> List[InvoiceResponse]:
    return await service.list_invoices(status=status, risk_band=risk_level)


@router.post(
    "",
    response_model=InvoiceCreated,
    status_code=201,
    summary="Register a new invoice",
    description=(
        "Creates a *pending* invoice and registers the issuer.  ``amount`` and "
        "``risk_score`` are lenient: unusable values are replaced (0 and 500) "
        "and listed in ``applied_defaults``."
    ),
    responses={
        422: {"model": ValidationErrorResponse, "description": "Validation error"},
    },
)
async def create_invoice(
    invoice: InvoiceCreate,
    service: InvoiceService = Depends(get_invoice_service),
) -> InvoiceCreated:
    return await service.create(invoice)


@router.get(
    "/{invoice_id}",
    response_model=InvoiceDetail,
    summary="Get an invoice",
    responses={404: {"model": ErrorResponse, "description": "Invoice not found"}},
)
async def get_invoice(
    invoice_id: UUID,
    service: InvoiceService = Depends(get_invoice_service),
) -> InvoiceDetail:
    return await service.get_detail(invoice_id)


@router.get(
    "/{invoice_id}/investments",
    response_model=List[InvestmentResponse],
    summary="List investments for an invoice",
    responses={404: {"model": ErrorResponse, "description": "Invoice not found"}},
)
async def list_invoice_investments(
    invoice_id: UUID,
    service: LedgerService = Depends(get_ledger_service),
) -> List[InvestmentResponse]:
    return await service.list_by_invoice(invoice_id)


@router.post(
    "/{invoice_id}/investments",
    response_model=InvestmentCreated,
    status_code=201,
    summary="Finance an invoice",
    description=(
        "Commits capital against a *pending* invoice, which becomes *funded*. "
        "An invoice is financed at most once."
    ),
    responses={
        404: {"model": ErrorResponse, "description": "Invoice not found"},
        409: {"model": ErrorResponse, "description": "Invoice already funded or settled"},
        422: {"model": ValidationErrorResponse, "description": "Validation error"},
    },
)
async def invest(
    invoice_id: UUID,
    investment: InvestmentCreate,
    service: LedgerService = Depends(get_ledger_service),
) -> InvestmentCreated:
    return await service.invest(
        invoice_id,
        investment.investor_address,
        investment.principal,
        investment.interest_rate,
    )


@router.post(
    "/{invoice_id}/settlement",
    response_model=SettlementResult,
    summary="Settle an invoice",
    description=(
        "Moves a *funded* invoice to *settled* and pays every active investment "
        "its principal plus ``principal * interest_rate / 100``."
    ),
    responses={
        404: {"model": ErrorResponse, "description": "Invoice not found"},
        409: {"model": ErrorResponse, "description": "Invoice is not funded"},
    },
)
async def settle(
    invoice_id: UUID,
    service: LedgerService = Depends(get_ledger_service),
) -> SettlementResult:
    return await service.settle(invoice_id)
