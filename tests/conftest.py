"""
Shared pytest fixtures.

Two kinds of tests live here:

- **Unit tests** build services on ``AsyncMock`` repositories, so no
  database is touched.
- **Ledger tests** run the real repositories against a fresh in-memory
  SQLite database (aiosqlite) per test, for the properties that only hold
  end-to-end: atomic transitions, concurrent callers, totals, snapshots.
"""

import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Optional
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio

from invoice_ledger.core.cache import TTLCache
from invoice_ledger.db.session import build_engine, build_session_factory, create_tables
from invoice_ledger.models.investment import Investment, InvestmentStatus
from invoice_ledger.models.invoice import Invoice, InvoiceStatus
from invoice_ledger.models.participant import Participant, ParticipantRole
from invoice_ledger.repositories.investment_repo import InvestmentRepository
from invoice_ledger.repositories.invoice_repo import InvoiceRepository
from invoice_ledger.repositories.participant_repo import ParticipantRepository
from invoice_ledger.services.invoice_service import InvoiceService
from invoice_ledger.services.ledger_service import LedgerService
from invoice_ledger.services.participant_service import ParticipantService
from invoice_ledger.services.query_service import QueryService
from invoice_ledger.services.snapshot_service import SnapshotService

# ────────────────────────────────────────────────────────────────────────────
# Factory helpers
# ────────────────────────────────────────────────────────────────────────────

INVOICE_ID = uuid.UUID("11111111-1111-1111-1111-111111111111")
INVESTMENT_ID = uuid.UUID("33333333-3333-3333-3333-333333333333")
INVOICE_ID_2 = uuid.UUID("44444444-4444-4444-4444-444444444444")

ISSUER = "0x70997970c51812dc3a010c7d01b50e0d17dc79c8"
INVESTOR = "0xf39fd6e51aad88f6f4ce6ab8827279cfffb92266"
INVESTOR_2 = "0x3c44cdddb6a900fa2b585dd299e03d12fa4293bc"


def make_invoice(
    *,
    id: uuid.UUID = INVOICE_ID,
    invoice_number: str = "INV-2024-001",
    issuer_address: str = ISSUER,
    amount: Decimal = Decimal("5"),
    risk_score: int = 750,
    status: InvoiceStatus = InvoiceStatus.PENDING,
    created_at: Optional[datetime] = None,
    updated_at: Optional[datetime] = None,
) -> Invoice:
    """Create an Invoice domain object with sensible test defaults."""
    now = datetime.now(timezone.utc)
    return Invoice(
        id=id,
        token_id=1,
        invoice_number=invoice_number,
        issuer_address=issuer_address,
        buyer_address="0x15d34aaf54267db7d7c367839aaf71a00a2c6a65",
        amount=amount,
        due_date=now + timedelta(days=30),
        description="Web Development Services",
        document_hash="QmSample1",
        risk_score=risk_score,
        status=status,
        created_at=created_at or now,
        updated_at=updated_at or created_at or now,
    )


def make_investment(
    *,
    id: uuid.UUID = INVESTMENT_ID,
    invoice_id: uuid.UUID = INVOICE_ID,
    investor_address: str = INVESTOR,
    principal: Decimal = Decimal("5"),
    interest_rate: Decimal = Decimal("10"),
    status: InvestmentStatus = InvestmentStatus.ACTIVE,
    created_at: Optional[datetime] = None,
) -> Investment:
    """Create an Investment domain object with sensible test defaults."""
    return Investment(
        id=id,
        invoice_id=invoice_id,
        investor_address=investor_address,
        principal=principal,
        interest_rate=interest_rate,
        status=status,
        created_at=created_at or datetime.now(timezone.utc),
    )


def make_participant(
    *,
    address: str = INVESTOR,
    role: ParticipantRole = ParticipantRole.INVESTOR,
    total_invested: Decimal = Decimal("0"),
    total_returns: Decimal = Decimal("0"),
) -> Participant:
    return Participant(
        address=address,
        role=role,
        total_invested=total_invested,
        total_returns=total_returns,
        created_at=datetime.now(timezone.utc),
        updated_at=datetime.now(timezone.utc),
    )


def build_ledger(session):
    """Wire every service to one session, the way the API dependencies do."""
    invoice_repo = InvoiceRepository(Invoice, session)
    investment_repo = InvestmentRepository(Investment, session)
    participant_repo = ParticipantRepository(Participant, session)
    participants = ParticipantService(participant_repo)
    invoices = InvoiceService(invoice_repo, investment_repo, participants)
    ledger = LedgerService(investment_repo, invoice_repo, invoices, participants)
    queries = QueryService(invoice_repo, investment_repo, participant_repo)
    snapshots = SnapshotService(invoice_repo, investment_repo, participant_repo)
    return participants, invoices, ledger, queries, snapshots


# ────────────────────────────────────────────────────────────────────────────
# Pytest fixtures
# ────────────────────────────────────────────────────────────────────────────


@pytest.fixture()
def mock_db():
    """A mocked AsyncSession that tracks add/flush/commit/rollback calls."""
    session = AsyncMock()
    session.add = MagicMock()
    session.flush = AsyncMock()
    session.commit = AsyncMock()
    session.refresh = AsyncMock()
    session.rollback = AsyncMock()
    session.execute = AsyncMock()
    session.get = AsyncMock()
    session.merge = AsyncMock()
    return session


@pytest.fixture()
def test_cache():
    """A fresh TTL cache instance for test isolation."""
    return TTLCache(ttl=30.0, max_size=100, enabled=True)


@pytest.fixture()
def disabled_cache():
    """A disabled TTL cache; all operations are no-ops."""
    return TTLCache(ttl=30.0, max_size=100, enabled=False)


@pytest.fixture(autouse=True)
def _clear_global_cache():
    """Clear the global cache around each test to prevent cross-test pollution."""
    from invoice_ledger.core.cache import cache

    cache.clear()
    yield
    cache.clear()


@pytest.fixture(autouse=True)
def _reset_db_breaker():
    """A test that trips the global breaker must not fail the next one."""
    from invoice_ledger.core.resilience import db_circuit_breaker

    db_circuit_breaker.reset()
    yield
    db_circuit_breaker.reset()


@pytest_asyncio.fixture()
async def engine():
    """A fresh, empty in-memory ledger database."""
    engine = build_engine("sqlite+aiosqlite://")
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return build_session_factory(engine)


@pytest_asyncio.fixture()
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture()
def ledger(session):
    """``(participants, invoices, ledger, queries, snapshots)`` on one session."""
    return build_ledger(session)
