"""
Query service — read-only views across the whole ledger.

Nothing here writes.  Unknown addresses get zero-state views rather than
errors, and a portfolio request for an address the directory has never
seen does not register it.

Caching:
    ``platform_stats`` is cache-backed under ``stats:`` keys; every ledger
    mutation drops it.
"""

import logging
from decimal import Decimal
from typing import List

from invoice_ledger.core.cache import STATS_PREFIX, cache
from invoice_ledger.core.config import settings
from invoice_ledger.models.invoice import InvoiceStatus
from invoice_ledger.models.participant import (
    ParticipantRole,
    VerificationStatus,
    normalize_address,
)
from invoice_ledger.repositories.investment_repo import InvestmentRepository
from invoice_ledger.repositories.invoice_repo import InvoiceRepository
from invoice_ledger.repositories.participant_repo import ParticipantRepository
from invoice_ledger.schemas.common import ensure_utc
from invoice_ledger.schemas.investment import InvestmentResponse
from invoice_ledger.schemas.invoice import InvoiceResponse
from invoice_ledger.schemas.stats import (
    ActivityEntry,
    ActivityType,
    PlatformStats,
    Portfolio,
    activity_type_for,
)

logger = logging.getLogger(__name__)

DEFAULT_ACTIVITY_LIMIT = 10

_FINANCED = (InvoiceStatus.FUNDED, InvoiceStatus.SETTLED)


class QueryService:
    """Aggregates over invoices, investments and participants."""

    CACHE_PREFIX = STATS_PREFIX

    def __init__(
        self,
        invoice_repo: InvoiceRepository,
        investment_repo: InvestmentRepository,
        participant_repo: ParticipantRepository,
    ):
        self._invoices = invoice_repo
        self._investments = investment_repo
        self._participants = participant_repo

    async def platform_stats(self) -> PlatformStats:
        """
        Ledger-wide counters (cache-backed).

        ``total_volume`` sums the amount of financed (funded or settled)
        invoices; ``average_invoice_size`` divides it by the count of *all*
        invoices and is 0 on an empty ledger.
        """
        cache_key = f"{self.CACHE_PREFIX}platform"
        cached = cache.get(cache_key)
        if cached is not None:
            logger.debug("Cache hit for %s", cache_key)
            return cached

        generation = cache.generation
        totals = await self._invoices.status_totals()
        count = {status: totals.get(status, (0, Decimal("0")))[0] for status in InvoiceStatus}
        total_invoices = sum(count.values())
        volume = sum((totals[s][1] for s in _FINANCED if s in totals), Decimal("0"))

        stats = PlatformStats(
            total_invoices=total_invoices,
            funded_invoices=count[InvoiceStatus.FUNDED],
            settled_invoices=count[InvoiceStatus.SETTLED],
            financed_invoices=count[InvoiceStatus.FUNDED] + count[InvoiceStatus.SETTLED],
            total_volume=volume,
            average_invoice_size=volume / total_invoices if total_invoices else Decimal("0"),
            active_investors=await self._participants.count_by_role(ParticipantRole.INVESTOR),
            total_participants=await self._participants.count(),
        )
        cache.set(cache_key, stats, generation=generation)
        return stats

    async def portfolio(self, address: str) -> Portfolio:
        """
        Invoices issued by ``address``, the platform's financed invoices,
        the address's investments and its running totals.
        """
        key = normalize_address(address)
        participant = await self._participants.get(key)
        created = await self._invoices.list_filtered(issuer_address=key)
        financed = await self._invoices.list_filtered(
            statuses=_FINANCED, limit=settings.INVOICE_PAGE_SIZE
        )
        investments = await self._investments.get_by_investor(key)

        return Portfolio(
            address=key,
            role=participant.role if participant else ParticipantRole.INVESTOR,
            verification_status=(
                participant.verification_status if participant else VerificationStatus.PENDING
            ),
            created_invoices=[InvoiceResponse.model_validate(i) for i in created],
            funded_invoices=[InvoiceResponse.model_validate(i) for i in financed],
            investments=[InvestmentResponse.model_validate(i) for i in investments],
            total_invested=participant.total_invested if participant else Decimal("0"),
            total_returns=participant.total_returns if participant else Decimal("0"),
            joined=participant.created_at if participant else None,
        )

    async def recent_activity(self, limit: int = DEFAULT_ACTIVITY_LIMIT) -> List[ActivityEntry]:
        """
        The latest invoice status changes merged with the latest
        investments, newest first, truncated to ``limit``.
        """
        if limit <= 0:
            return []

        invoices = await self._invoices.recently_updated(limit)
        investments = await self._investments.most_recent(limit)
        financed = await self._invoices.get_many([i.invoice_id for i in investments])

        entries = [
            ActivityEntry(
                type=activity_type_for(invoice.status),
                invoice_id=invoice.id,
                invoice_number=invoice.invoice_number,
                amount=invoice.amount,
                status=invoice.status.value,
                timestamp=ensure_utc(invoice.updated_at),
            )
            for invoice in invoices
        ]
        for investment in investments:
            invoice = financed.get(investment.invoice_id)
            entries.append(
                ActivityEntry(
                    type=ActivityType.INVESTMENT,
                    invoice_id=investment.invoice_id,
                    invoice_number=invoice.invoice_number if invoice else "N/A",
                    investment_id=investment.id,
                    amount=investment.principal,
                    status=investment.status.value,
                    timestamp=ensure_utc(investment.created_at),
                )
            )

        entries.sort(key=lambda e: e.timestamp, reverse=True)
        return entries[:limit]
