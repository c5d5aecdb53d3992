"""
Request-scoped dependencies shared by the v1 routers.

FastAPI's Depends() builds a fresh set of repositories and services per
request, all bound to that request's single ``AsyncSession``: one request
is one unit of work, and swapping a factory in ``app.dependency_overrides``
is all a test needs to stub a service out.
"""

import secrets
from typing import Optional

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from invoice_ledger.core.config import settings
from invoice_ledger.core.exceptions import ForbiddenException
from invoice_ledger.db.session import get_db
from invoice_ledger.models.investment import Investment
from invoice_ledger.models.invoice import Invoice
from invoice_ledger.models.participant import Participant
from invoice_ledger.repositories.investment_repo import InvestmentRepository
from invoice_ledger.repositories.invoice_repo import InvoiceRepository
from invoice_ledger.repositories.participant_repo import ParticipantRepository
from invoice_ledger.services.invoice_service import InvoiceService
from invoice_ledger.services.ledger_service import LedgerService
from invoice_ledger.services.participant_service import ParticipantService
from invoice_ledger.services.query_service import QueryService
from invoice_ledger.services.snapshot_service import SnapshotService


def get_participant_service(db: AsyncSession = Depends(get_db)) -> ParticipantService:
    return ParticipantService(ParticipantRepository(Participant, db))


def get_invoice_service(db: AsyncSession = Depends(get_db)) -> InvoiceService:
    return InvoiceService(
        invoice_repo=InvoiceRepository(Invoice, db),
        investment_repo=InvestmentRepository(Investment, db),
        participant_service=ParticipantService(ParticipantRepository(Participant, db)),
    )


def get_ledger_service(db: AsyncSession = Depends(get_db)) -> LedgerService:
    """Build a LedgerService whose collaborators all share the request's session."""
    invoice_repo = InvoiceRepository(Invoice, db)
    investment_repo = InvestmentRepository(Investment, db)
    participants = ParticipantService(ParticipantRepository(Participant, db))
    return LedgerService(
        investment_repo=investment_repo,
        invoice_repo=invoice_repo,
        invoice_service=InvoiceService(invoice_repo, investment_repo, participants),
        participant_service=participants,
    )


def get_query_service(db: AsyncSession = Depends(get_db)) -> QueryService:
    return QueryService(
        invoice_repo=InvoiceRepository(Invoice, db),
        investment_repo=InvestmentRepository(Investment, db),
        participant_repo=ParticipantRepository(Participant, db),
    )


def get_snapshot_service(db: AsyncSession = Depends(get_db)) -> SnapshotService:
    return SnapshotService(
        invoice_repo=InvoiceRepository(Invoice, db),
        investment_repo=InvestmentRepository(Investment, db),
        participant_repo=ParticipantRepository(Participant, db),
    )


async def require_operator(
    x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
) -> None:
    """
    Gate for the admin routes.

    The ``X-Admin-Token`` header must equal ``ADMIN_API_KEY``; with no key
    configured the admin routes are closed to everyone.
    """
    if not settings.ADMIN_API_KEY or not secrets.compare_digest(
        x_admin_token or "", settings.ADMIN_API_KEY
    ):
        raise ForbiddenException()
