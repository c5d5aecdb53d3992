"""
Operator-only endpoints.  Every route requires the ``X-Admin-Token`` header.

- PATCH  /admin/invoices/{invoice_id}/status  — Force an invoice status
- GET    /admin/snapshot                      — Export the ledger
- POST   /admin/snapshot                      — Load a snapshot into an empty ledger
"""

from uuid import UUID

from fastapi import APIRouter, Depends

from invoice_ledger.api.deps import (
    get_invoice_service,
    get_snapshot_service,
    require_operator,
)
from invoice_ledger.schemas.common import ErrorResponse
from invoice_ledger.schemas.invoice import InvoiceStatusUpdate, InvoiceStatusUpdated
from invoice_ledger.schemas.snapshot import LedgerSnapshot, SnapshotLoaded
from invoice_ledger.services.invoice_service import InvoiceService
from invoice_ledger.services.snapshot_service import SnapshotService

router = APIRouter(
    dependencies=[Depends(require_operator)],
    responses={403: {"model": ErrorResponse, "description": "Missing or wrong operator token"}},
)


@router.patch(
    "/invoices/{invoice_id}/status",
    response_model=InvoiceStatusUpdated,
    summary="Override an invoice status",
    description=(
        "Sets the status directly, bypassing the pending → funded → settled "
        "lifecycle.  Investments and participant totals are not touched."
    ),
    responses={404: {"model": ErrorResponse, "description": "Invoice not found"}},
)
async def override_status(
    invoice_id: UUID,
    update: InvoiceStatusUpdate,
    service: InvoiceService = Depends(get_invoice_service),
) -> InvoiceStatusUpdated:
    return await service.set_status(invoice_id, update.status, reason=update.reason)


@router.get("/snapshot", response_model=LedgerSnapshot, summary="Export the ledger")
async def export_snapshot(
    service: SnapshotService = Depends(get_snapshot_service),
) -> LedgerSnapshot:
    return await service.export()


@router.post(
    "/snapshot",
    response_model=SnapshotLoaded,
    status_code=201,
    summary="Load a snapshot",
    responses={
        409: {"model": ErrorResponse, "description": "Ledger is not empty"},
        422: {"model": ErrorResponse, "description": "Snapshot is inconsistent"},
    },
)
async def load_snapshot(
    snapshot: LedgerSnapshot,
    service: SnapshotService = Depends(get_snapshot_service),
) -> SnapshotLoaded:
    return await service.load(snapshot)
