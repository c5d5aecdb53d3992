"""
Seed script: populates the ledger with demo invoices, investments and
participants.

The in-memory ledger lives only as long as the process, so the usual way to
get demo data is ``SEED_DEMO_DATA=true uvicorn invoice_ledger.main:app``,
which runs ``seed()`` at startup.  Against PostgreSQL it can also be run
directly:

    python -m invoice_ledger.seed

Data goes through the ledger services rather than raw inserts, so the
participant totals always agree with the investments.  The script is
idempotent: it does nothing when the ledger already holds invoices.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from invoice_ledger.core.logging import setup_logging
from invoice_ledger.db.session import AsyncSessionLocal, create_tables, engine
from invoice_ledger.models.investment import Investment
from invoice_ledger.models.invoice import Invoice
from invoice_ledger.models.participant import Participant, VerificationStatus
from invoice_ledger.repositories.investment_repo import InvestmentRepository
from invoice_ledger.repositories.invoice_repo import InvoiceRepository
from invoice_ledger.repositories.participant_repo import ParticipantRepository
from invoice_ledger.schemas.invoice import InvoiceCreate
from invoice_ledger.services.invoice_service import InvoiceService
from invoice_ledger.services.ledger_service import LedgerService
from invoice_ledger.services.participant_service import ParticipantService

logger = logging.getLogger(__name__)

ISSUER_A = "0x70997970c51812dc3a010c7d01b50e0d17dc79c8"
ISSUER_B = "0x90f79bf6eb2c4f870365e785982e1f101e93b906"
INVESTOR = "0xf39fd6e51aad88f6f4ce6ab8827279cfffb92266"

# (invoice fields, days until due, financing as (principal, rate) or None, settle?)
SAMPLE_INVOICES = [
    (
        dict(
            invoice_number="INV-2024-001",
            issuer_address=ISSUER_A,
            buyer_address="0x3c44cdddb6a900fa2b585dd299e03d12fa4293bc",
            amount="5.8",
            risk_score=750,
            description="Web Development Services",
            document_hash="QmSample1",
            token_id=1,
        ),
        30,
        None,
        False,
    ),
    (
        dict(
            invoice_number="INV-2024-002",
            issuer_address=ISSUER_B,
            buyer_address="0x15d34aaf54267db7d7c367839aaf71a00a2c6a65",
            amount="12.5",
            risk_score=620,
            description="Manufacturing Equipment",
            document_hash="QmSample2",
            token_id=2,
        ),
        45,
        (Decimal("12"), Decimal("10")),
        False,
    ),
    (
        dict(
            invoice_number="INV-2024-003",
            issuer_address=ISSUER_A,
            buyer_address="0x9965507d1a55bcc2695c58ba16fb37d819b0a4dc",
            amount="3.2",
            risk_score=850,
            description="Consulting Services",
            document_hash="QmSample3",
            token_id=3,
        ),
        -10,
        (Decimal("3"), Decimal("8")),
        True,
    ),
]


def _services(session: AsyncSession):
    invoice_repo = InvoiceRepository(Invoice, session)
    investment_repo = InvestmentRepository(Investment, session)
    participant_repo = ParticipantRepository(Participant, session)
    participants = ParticipantService(participant_repo)
    invoices = InvoiceService(invoice_repo, investment_repo, participants)
    ledger = LedgerService(investment_repo, invoice_repo, invoices, participants)
    return invoice_repo, participant_repo, invoices, ledger


async def seed(
    bind: AsyncEngine = engine,
    session_factory: async_sessionmaker[AsyncSession] = AsyncSessionLocal,
) -> int:
    """Create tables and load the sample ledger if it is empty.  Returns invoices created."""
    await create_tables(bind)

    async with session_factory() as session:
        invoice_repo, participant_repo, invoices, ledger = _services(session)
        if await invoice_repo.count():
            logger.info("Ledger already contains invoices, skipping seed")
            return 0

        now = datetime.now(timezone.utc)
        for fields, due_in_days, financing, settle in SAMPLE_INVOICES:
            created = await invoices.create(
                InvoiceCreate(due_date=now + timedelta(days=due_in_days), **fields)
            )
            if financing is None:
                continue
            principal, rate = financing
            await ledger.invest(created.invoice.id, INVESTOR, principal, rate)
            if settle:
                await ledger.settle(created.invoice.id)

        # The demo issuer has been through verification.
        issuer = await participant_repo.get(ISSUER_A)
        issuer.verification_status = VerificationStatus.VERIFIED
        await participant_repo.update(issuer)

    logger.info("Seeded %d invoices", len(SAMPLE_INVOICES))
    return len(SAMPLE_INVOICES)


if __name__ == "__main__":
    setup_logging()
    asyncio.run(seed())
