"""
Unit tests for LedgerService (invest / settle / investor listings).

All repository and collaborator calls are mocked.  Tests cover:
- invest: happy path, unknown invoice, already funded, lost race,
  request validation, rollback on failure
- settle: interest arithmetic, participant credit, not funded, lost race,
  only active investments paid
- list_by_investor: derived totals
- get_status: estimated return
"""

import uuid
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from invoice_ledger.core.cache import cache
from invoice_ledger.core.exceptions import (
    AlreadyFundedException,
    BusinessRuleViolation,
    InvalidTransitionException,
    NotFoundException,
    NotFundedException,
)
from invoice_ledger.models.investment import InvestmentStatus
from invoice_ledger.models.invoice import InvoiceStatus
from invoice_ledger.services.ledger_service import LedgerService, compute_interest

from .conftest import (
    INVESTMENT_ID,
    INVESTOR,
    INVESTOR_2,
    INVOICE_ID,
    INVOICE_ID_2,
    make_investment,
    make_invoice,
)

# ────────────────────────────────────────────────────────────────────────────
# Fixtures
# ────────────────────────────────────────────────────────────────────────────


@pytest.fixture()
def investment_repo():
    repo = AsyncMock()
    repo.add.side_effect = lambda investment: investment
    return repo


@pytest.fixture()
def invoice_repo():
    return AsyncMock()


@pytest.fixture()
def invoices():
    return AsyncMock()


@pytest.fixture()
def participants():
    return AsyncMock()


@pytest.fixture()
def service(investment_repo, invoice_repo, invoices, participants):
    return LedgerService(investment_repo, invoice_repo, invoices, participants)


# ────────────────────────────────────────────────────────────────────────────
# compute_interest
# ────────────────────────────────────────────────────────────────────────────


class TestComputeInterest:
    @pytest.mark.parametrize(
        "principal,rate,expected",
        [
            ("5", "10", "0.5"),
            ("10", "12.5", "1.25"),
            ("3", "8", "0.24"),
            ("7", "0", "0"),
            ("2", "100", "2"),
        ],
    )
    def test_exact_decimal_interest(self, principal, rate, expected):
        assert compute_interest(Decimal(principal), Decimal(rate)) == Decimal(expected)

    @pytest.mark.parametrize(
        "principal,rate,expected",
        [
            ("3.33333333", "7.77", "0.25900000"),
            ("0.00000001", "50", "0"),
            ("0.00000003", "50", "0.00000002"),
        ],
    )
    def test_rounded_half_even_to_stored_places(self, principal, rate, expected):
        interest = compute_interest(Decimal(principal), Decimal(rate))
        assert interest == Decimal(expected)
        assert interest.as_tuple().exponent == -8


# ────────────────────────────────────────────────────────────────────────────
# invest
# ────────────────────────────────────────────────────────────────────────────


class TestInvest:
    @pytest.mark.asyncio
    async def test_funds_pending_invoice(
        self, service, invoice_repo, invoices, investment_repo, participants
    ):
        invoice_repo.get.return_value = make_invoice()
        invoices.mark_funded.return_value = make_invoice(status=InvoiceStatus.FUNDED)

        result = await service.invest(INVOICE_ID, INVESTOR.upper(), Decimal("5"), Decimal("10"))

        assert result.success is True
        assert result.invoice.status == InvoiceStatus.FUNDED
        assert result.investment.investor_address == INVESTOR
        assert result.investment.principal == Decimal("5")
        assert result.investment.status == InvestmentStatus.ACTIVE
        invoices.mark_funded.assert_awaited_once_with(INVOICE_ID)
        participants.record_investment.assert_awaited_once_with(INVESTOR, Decimal("5"))
        investment_repo.commit.assert_awaited_once()
        investment_repo.rollback.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_float_inputs_converted_exactly(self, service, invoice_repo, invoices):
        invoice_repo.get.return_value = make_invoice()
        invoices.mark_funded.return_value = make_invoice(status=InvoiceStatus.FUNDED)

        result = await service.invest(INVOICE_ID, INVESTOR, 0.1, 12.5)

        assert result.investment.principal == Decimal("0.1")
        assert result.investment.interest_rate == Decimal("12.5")

    @pytest.mark.asyncio
    async def test_unknown_invoice(self, service, invoice_repo, invoices, investment_repo):
        invoice_repo.get.return_value = None

        with pytest.raises(NotFoundException):
            await service.invest(INVOICE_ID, INVESTOR, Decimal("5"), Decimal("10"))
        invoices.mark_funded.assert_not_awaited()
        investment_repo.rollback.assert_awaited_once()

    @pytest.mark.parametrize("status", [InvoiceStatus.FUNDED, InvoiceStatus.SETTLED])
    @pytest.mark.asyncio
    async def test_non_pending_invoice_is_already_funded(
        self, service, invoice_repo, invoices, investment_repo, status
    ):
        invoice_repo.get.return_value = make_invoice(status=status)

        with pytest.raises(AlreadyFundedException) as exc_info:
            await service.invest(INVOICE_ID, INVESTOR, Decimal("5"), Decimal("10"))

        assert exc_info.value.status_code == 409
        invoices.mark_funded.assert_not_awaited()
        investment_repo.add.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_lost_race_reported_as_already_funded(
        self, service, invoice_repo, invoices, investment_repo, participants
    ):
        invoice_repo.get.return_value = make_invoice()
        invoices.mark_funded.side_effect = InvalidTransitionException(
            INVOICE_ID, InvoiceStatus.FUNDED, InvoiceStatus.FUNDED
        )

        with pytest.raises(AlreadyFundedException):
            await service.invest(INVOICE_ID, INVESTOR, Decimal("5"), Decimal("10"))

        investment_repo.add.assert_not_awaited()
        participants.record_investment.assert_not_awaited()
        investment_repo.rollback.assert_awaited_once()

    @pytest.mark.parametrize(
        "principal,rate",
        [
            (Decimal("0"), Decimal("10")),
            (Decimal("-1"), Decimal("10")),
            (Decimal("NaN"), Decimal("10")),
            (Decimal("5"), Decimal("-0.1")),
            (Decimal("5"), Decimal("100.5")),
            (Decimal("1e20"), Decimal("10")),
            (Decimal("3.333333333"), Decimal("7.77")),
            (Decimal("5"), Decimal("7.77777")),
        ],
    )
    @pytest.mark.asyncio
    async def test_invalid_terms_rejected_before_any_read(
        self, service, invoice_repo, principal, rate
    ):
        with pytest.raises(BusinessRuleViolation):
            await service.invest(INVOICE_ID, INVESTOR, principal, rate)
        invoice_repo.get.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_blank_investor_rejected(self, service, invoice_repo):
        with pytest.raises(BusinessRuleViolation):
            await service.invest(INVOICE_ID, "   ", Decimal("5"), Decimal("10"))
        invoice_repo.get.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failure_after_staging_rolls_back(
        self, service, invoice_repo, invoices, investment_repo, participants
    ):
        invoice_repo.get.return_value = make_invoice()
        invoices.mark_funded.return_value = make_invoice(status=InvoiceStatus.FUNDED)
        participants.record_investment.side_effect = ConnectionError("db down")

        with pytest.raises(ConnectionError):
            await service.invest(INVOICE_ID, INVESTOR, Decimal("5"), Decimal("10"))

        investment_repo.commit.assert_not_awaited()
        investment_repo.rollback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_invalidates_ledger_views(self, service, invoice_repo, invoices):
        cache.set("invoices:list:*:*", [])
        invoice_repo.get.return_value = make_invoice()
        invoices.mark_funded.return_value = make_invoice(status=InvoiceStatus.FUNDED)

        await service.invest(INVOICE_ID, INVESTOR, Decimal("5"), Decimal("10"))

        assert cache.get("invoices:list:*:*") is None


# ────────────────────────────────────────────────────────────────────────────
# settle
# ────────────────────────────────────────────────────────────────────────────


class TestSettle:
    @pytest.mark.asyncio
    async def test_pays_principal_plus_interest(
        self, service, invoice_repo, invoices, investment_repo, participants
    ):
        invoice_repo.get.return_value = make_invoice(status=InvoiceStatus.FUNDED)
        invoices.mark_settled.return_value = make_invoice(status=InvoiceStatus.SETTLED)
        investment = make_investment(principal=Decimal("10"), interest_rate=Decimal("12.5"))
        investment_repo.get_by_invoice.return_value = [investment]

        result = await service.settle(INVOICE_ID)

        [line] = result.settlements
        assert line.interest == Decimal("1.25")
        assert line.total_return == Decimal("11.25")
        assert result.total_paid == Decimal("11.25")
        assert result.invoice.status == InvoiceStatus.SETTLED

        assert investment.status == InvestmentStatus.SETTLED
        assert investment.return_amount == Decimal("11.25")
        assert investment.settled_at is not None
        participants.record_return.assert_awaited_once_with(INVESTOR, Decimal("1.25"))
        investment_repo.get_by_invoice.assert_awaited_once_with(
            INVOICE_ID, status=InvestmentStatus.ACTIVE
        )
        investment_repo.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_pays_every_active_investment(
        self, service, invoice_repo, invoices, investment_repo, participants
    ):
        invoice_repo.get.return_value = make_invoice(status=InvoiceStatus.FUNDED)
        invoices.mark_settled.return_value = make_invoice(status=InvoiceStatus.SETTLED)
        investment_repo.get_by_invoice.return_value = [
            make_investment(principal=Decimal("5"), interest_rate=Decimal("10")),
            make_investment(
                id=uuid.uuid4(),
                investor_address=INVESTOR_2,
                principal=Decimal("3"),
                interest_rate=Decimal("8"),
            ),
        ]

        result = await service.settle(INVOICE_ID)

        assert [line.total_return for line in result.settlements] == [
            Decimal("5.5"),
            Decimal("3.24"),
        ]
        assert result.total_paid == Decimal("8.74")
        assert participants.record_return.await_count == 2

    @pytest.mark.asyncio
    async def test_no_active_investments_settles_with_nothing_paid(
        self, service, invoice_repo, invoices, investment_repo
    ):
        invoice_repo.get.return_value = make_invoice(status=InvoiceStatus.FUNDED)
        invoices.mark_settled.return_value = make_invoice(status=InvoiceStatus.SETTLED)
        investment_repo.get_by_invoice.return_value = []

        result = await service.settle(INVOICE_ID)

        assert result.settlements == []
        assert result.total_paid == Decimal("0")

    @pytest.mark.asyncio
    async def test_unknown_invoice(self, service, invoice_repo):
        invoice_repo.get.return_value = None
        with pytest.raises(NotFoundException):
            await service.settle(INVOICE_ID)

    @pytest.mark.parametrize("status", [InvoiceStatus.PENDING, InvoiceStatus.SETTLED])
    @pytest.mark.asyncio
    async def test_requires_funded_invoice(
        self, service, invoice_repo, invoices, participants, status
    ):
        invoice_repo.get.return_value = make_invoice(status=status)

        with pytest.raises(NotFundedException) as exc_info:
            await service.settle(INVOICE_ID)

        assert exc_info.value.status_code == 409
        invoices.mark_settled.assert_not_awaited()
        participants.record_return.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_lost_race_reported_as_not_funded(
        self, service, invoice_repo, invoices, investment_repo
    ):
        invoice_repo.get.return_value = make_invoice(status=InvoiceStatus.FUNDED)
        invoices.mark_settled.side_effect = InvalidTransitionException(
            INVOICE_ID, InvoiceStatus.SETTLED, InvoiceStatus.SETTLED
        )

        with pytest.raises(NotFundedException):
            await service.settle(INVOICE_ID)

        investment_repo.get_by_invoice.assert_not_awaited()
        investment_repo.rollback.assert_awaited_once()


# ────────────────────────────────────────────────────────────────────────────
# Queries
# ────────────────────────────────────────────────────────────────────────────


class TestQueries:
    @pytest.mark.asyncio
    async def test_get_unknown_investment(self, service, investment_repo):
        investment_repo.get.return_value = None
        with pytest.raises(NotFoundException):
            await service.get(INVESTMENT_ID)

    @pytest.mark.asyncio
    async def test_status_reports_estimated_interest(self, service, investment_repo, invoices):
        investment_repo.get.return_value = make_investment(
            principal=Decimal("10"), interest_rate=Decimal("12.5")
        )
        invoices.get.return_value = make_invoice(status=InvoiceStatus.FUNDED)

        view = await service.get_status(INVESTMENT_ID)

        assert view.status == InvestmentStatus.ACTIVE
        assert view.estimated_return == Decimal("1.25")
        assert view.invoice.id == INVOICE_ID

    @pytest.mark.asyncio
    async def test_list_by_invoice_checks_invoice_exists(self, service, invoices, investment_repo):
        invoices.get.side_effect = NotFoundException("Invoice", INVOICE_ID)

        with pytest.raises(NotFoundException):
            await service.list_by_invoice(INVOICE_ID)
        investment_repo.get_by_invoice.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_list_by_investor_totals(self, service, investment_repo, invoice_repo):
        settled = make_investment(principal=Decimal("5"), status=InvestmentStatus.SETTLED)
        settled.return_amount = Decimal("5.5")
        active = make_investment(
            id=uuid.uuid4(), invoice_id=INVOICE_ID_2, principal=Decimal("3")
        )
        investment_repo.get_by_investor.return_value = [active, settled]
        invoice_repo.get_many.return_value = {INVOICE_ID: make_invoice()}

        result = await service.list_by_investor(INVESTOR.upper())

        investment_repo.get_by_investor.assert_awaited_once_with(INVESTOR)
        assert result.total_investments == 2
        assert result.active_investments == 1
        assert result.settled_investments == 1
        assert result.total_invested == Decimal("8")
        assert result.total_returns == Decimal("5.5")
        by_invoice = {i.invoice_id: i.invoice for i in result.investments}
        assert by_invoice[INVOICE_ID].invoice_number == "INV-2024-001"
        assert by_invoice[INVOICE_ID_2] is None

    @pytest.mark.asyncio
    async def test_list_by_unknown_investor_is_empty(self, service, investment_repo, invoice_repo):
        investment_repo.get_by_investor.return_value = []
        invoice_repo.get_many.return_value = {}

        result = await service.list_by_investor("0xnobody")

        assert result.total_investments == 0
        assert result.total_invested == Decimal("0")
        assert result.investments == []
