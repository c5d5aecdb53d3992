"""
Ledger service — financing commitments and settlement.

Contains the three rules the ledger exists to protect:

1. An invoice is financed at most once (``invest`` on a non-pending
   invoice → :class:`AlreadyFundedException`).
2. Only a funded invoice can be settled (otherwise
   :class:`NotFundedException`).
3. Settlement pays ``principal + principal * rate / 100`` to every active
   investment and credits the interest to the investor's ``total_returns``.

Each mutation runs under ``invoice_locks.hold(invoice_id)`` and inside a
single transaction: the status move, the investment rows and the
participant totals are staged on one session and committed once.  Any
failure rolls the whole operation back.

The status move itself is conditional (``WHERE status = expected``), so a
writer in another process that slips past the in-process lock still loses
the race cleanly; that loss is reported as the same domain error.
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, List
from uuid import UUID

from invoice_ledger.core.cache import cache
from invoice_ledger.core.exceptions import (
    AlreadyFundedException,
    BusinessRuleViolation,
    InvalidTransitionException,
    NotFoundException,
    NotFundedException,
)
from invoice_ledger.core.locks import invoice_locks
from invoice_ledger.models.investment import Investment, InvestmentStatus
from invoice_ledger.models.invoice import InvoiceStatus
from invoice_ledger.models.participant import normalize_address
from invoice_ledger.repositories.investment_repo import InvestmentRepository
from invoice_ledger.repositories.invoice_repo import InvoiceRepository
from invoice_ledger.schemas.common import MAX_AMOUNT, RATE_QUANTUM, quantize_amount
from invoice_ledger.schemas.investment import (
    InvestmentResponse,
    InvestmentWithInvoice,
    InvestorInvestments,
    InvoiceSummary,
    SettlementLine,
)
from invoice_ledger.schemas.invoice import InvoiceResponse
from invoice_ledger.schemas.ledger import (
    InvestmentCreated,
    InvestmentStatusView,
    SettlementResult,
)
from invoice_ledger.services.invoice_service import InvoiceService
from invoice_ledger.services.participant_service import ParticipantService

logger = logging.getLogger(__name__)

HUNDRED = Decimal(100)


def compute_interest(principal: Decimal, interest_rate: Decimal) -> Decimal:
    """
    ``principal * interest_rate / 100`` rounded half-even to 8 places.

    Rounded once here so the settlement response, the stored
    ``return_amount`` and the investor's ``total_returns`` carry the same value.
    """
    return quantize_amount(principal * interest_rate / HUNDRED)


def _as_decimal(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


class LedgerService:
    """
    Investment ledger built on the invoice registry and participant directory.

    ``invoice_repo`` is used for plain reads; every status change goes
    through ``invoice_service`` so the lifecycle rules live in one place.
    """

    def __init__(
        self,
        investment_repo: InvestmentRepository,
        invoice_repo: InvoiceRepository,
        invoice_service: InvoiceService,
        participant_service: ParticipantService,
    ):
        self._repo = investment_repo
        self._invoice_repo = invoice_repo
        self._invoices = invoice_service
        self._participants = participant_service

    # ── Queries ──

    async def get(self, investment_id: UUID) -> Investment:
        investment = await self._repo.get(investment_id)
        if not investment:
            raise NotFoundException("Investment", investment_id)
        return investment

    async def get_status(self, investment_id: UUID) -> InvestmentStatusView:
        """The investment, its invoice, and the interest it earns at settlement."""
        investment = await self.get(investment_id)
        invoice = await self._invoices.get(investment.invoice_id)
        return InvestmentStatusView(
            investment=InvestmentResponse.model_validate(investment),
            invoice=InvoiceResponse.model_validate(invoice),
            status=investment.status,
            estimated_return=compute_interest(investment.principal, investment.interest_rate),
        )

    async def list_by_invoice(self, invoice_id: UUID) -> List[Investment]:
        """Investments financing ``invoice_id``, oldest first; 404 for an unknown invoice."""
        await self._invoices.get(invoice_id)
        return await self._repo.get_by_invoice(invoice_id)

    async def list_by_investor(self, address: str) -> InvestorInvestments:
        """
        An address's investments with derived totals.

        Unknown addresses get an empty listing, not a 404.
        ``total_returns`` here is the realised ``return_amount``
        (principal + interest) of settled investments, unlike the
        participant's running total which counts interest only.
        """
        key = normalize_address(address)
        investments = await self._repo.get_by_investor(key)
        invoices = await self._invoice_repo.get_many([i.invoice_id for i in investments])

        detailed = []
        for investment in investments:
            invoice = invoices.get(investment.invoice_id)
            detailed.append(
                InvestmentWithInvoice(
                    **InvestmentResponse.model_validate(investment).model_dump(),
                    invoice=InvoiceSummary.model_validate(invoice) if invoice else None,
                )
            )

        settled = [i for i in investments if i.status == InvestmentStatus.SETTLED]
        return InvestorInvestments(
            address=key,
            total_investments=len(investments),
            active_investments=len(investments) - len(settled),
            settled_investments=len(settled),
            total_invested=sum((i.principal for i in investments), Decimal("0")),
            total_returns=sum((i.return_amount or Decimal("0") for i in settled), Decimal("0")),
            investments=detailed,
        )

    # ── Commands ──

    async def invest(
        self,
        invoice_id: UUID,
        investor_address: str,
        principal: Decimal,
        interest_rate: Decimal,
    ) -> InvestmentCreated:
        """
        Finance a pending invoice.

        Sequence (all under the invoice lock, one transaction):
        1. Invoice must exist → 404.
        2. Invoice must be ``pending`` → 409 AlreadyFunded.
        3. pending → funded (conditional update).
        4. Stage the active investment.
        5. Add the principal to the investor's ``total_invested``.
        """
        principal = _as_decimal(principal)
        interest_rate = _as_decimal(interest_rate)
        if not principal.is_finite() or principal <= 0 or principal >= MAX_AMOUNT:
            raise BusinessRuleViolation(
                "Principal must be positive and below 10^20", details={"principal": str(principal)}
            )
        if not interest_rate.is_finite() or not 0 <= interest_rate <= 100:
            raise BusinessRuleViolation(
                "Interest rate must be between 0 and 100 percent",
                details={"interest_rate": str(interest_rate)},
            )
        if quantize_amount(principal) != principal:
            raise BusinessRuleViolation(
                "Principal has more than 8 decimal places", details={"principal": str(principal)}
            )
        if interest_rate.quantize(RATE_QUANTUM) != interest_rate:
            raise BusinessRuleViolation(
                "Interest rate has more than 4 decimal places",
                details={"interest_rate": str(interest_rate)},
            )
        investor = normalize_address(investor_address)
        if not investor:
            raise BusinessRuleViolation("Investor address must not be blank")

        async with invoice_locks.hold(invoice_id):
            try:
                invoice = await self._invoice_repo.get(invoice_id)
                if not invoice:
                    raise NotFoundException("Invoice", invoice_id)
                if invoice.status != InvoiceStatus.PENDING:
                    raise AlreadyFundedException(invoice_id, invoice.status)

                try:
                    invoice = await self._invoices.mark_funded(invoice_id)
                except InvalidTransitionException as exc:
                    raise AlreadyFundedException(invoice_id, exc.details["current_status"])

                investment = await self._repo.add(
                    Investment(
                        invoice_id=invoice_id,
                        investor_address=investor,
                        principal=principal,
                        interest_rate=interest_rate,
                    )
                )
                await self._participants.record_investment(investor, principal)
                await self._repo.commit()
            except Exception:
                await self._repo.rollback()
                raise

        cache.invalidate_ledger_views()
        logger.info(
            "Investment %s: %s financed invoice %s with %s at %s%%",
            investment.id,
            investor,
            invoice_id,
            principal,
            interest_rate,
            extra={"invoice_id": str(invoice_id), "investment_id": str(investment.id)},
        )
        return InvestmentCreated(
            investment=InvestmentResponse.model_validate(investment),
            invoice=InvoiceResponse.model_validate(invoice),
        )

    async def settle(self, invoice_id: UUID) -> SettlementResult:
        """
        Settle a funded invoice and pay out every active investment.

        Sequence (all under the invoice lock, one transaction):
        1. Invoice must exist → 404.
        2. Invoice must be ``funded`` → 409 NotFunded.
        3. funded → settled (conditional update).
        4. For each active investment: interest, return amount, status,
           ``settled_at``; credit the interest to the investor.
        """
        async with invoice_locks.hold(invoice_id):
            try:
                invoice = await self._invoice_repo.get(invoice_id)
                if not invoice:
                    raise NotFoundException("Invoice", invoice_id)
                if invoice.status != InvoiceStatus.FUNDED:
                    raise NotFundedException(invoice_id, invoice.status)

                try:
                    invoice = await self._invoices.mark_settled(invoice_id)
                except InvalidTransitionException as exc:
                    raise NotFundedException(invoice_id, exc.details["current_status"])

                settled_at = datetime.now(timezone.utc)
                lines: List[SettlementLine] = []
                active = await self._repo.get_by_invoice(invoice_id, status=InvestmentStatus.ACTIVE)
                for investment in active:
                    interest = compute_interest(investment.principal, investment.interest_rate)
                    investment.return_amount = investment.principal + interest
                    investment.status = InvestmentStatus.SETTLED
                    investment.settled_at = settled_at
                    await self._repo.add(investment)
                    await self._participants.record_return(investment.investor_address, interest)
                    lines.append(
                        SettlementLine(
                            investment_id=investment.id,
                            investor=investment.investor_address,
                            principal=investment.principal,
                            interest=interest,
                            total_return=investment.return_amount,
                        )
                    )
                await self._repo.commit()
            except Exception:
                await self._repo.rollback()
                raise

        cache.invalidate_ledger_views()
        total_paid = sum((line.total_return for line in lines), Decimal("0"))
        logger.info(
            "Settled invoice %s: %d investment(s), %s paid out",
            invoice_id,
            len(lines),
            total_paid,
            extra={"invoice_id": str(invoice_id)},
        )
        return SettlementResult(
            invoice=InvoiceResponse.model_validate(invoice),
            settlements=lines,
            total_paid=total_paid,
        )
