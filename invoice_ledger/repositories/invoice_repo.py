"""
Invoice repository — data-access layer for the ``invoices`` table.

Besides filtered listings it provides ``transition_status``, the
compare-and-set used for every lifecycle move: the UPDATE only matches
while the row still holds the expected status, so two writers can never
both move the same invoice out of that status.
"""

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy import func, update
from sqlalchemy.future import select

from invoice_ledger.models.invoice import Invoice, InvoiceStatus, RiskBand
from invoice_ledger.repositories.base import BaseRepository


class InvoiceRepository(BaseRepository[Invoice]):
    """Concrete repository for :class:`Invoice` entities."""

    def _default_order(self) -> list:
        return [self.model.created_at.desc(), self.model.id]

    async def list_filtered(
        self,
        status: Optional[InvoiceStatus] = None,
        risk_band: Optional[RiskBand] = None,
        statuses: Optional[Sequence[InvoiceStatus]] = None,
        issuer_address: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Invoice]:
        """
        Invoices matching every given filter, newest first.

        ``status`` is an exact match; ``statuses`` matches any of several;
        ``risk_band`` applies the band's inclusive score range.
        """
        stmt = select(self.model)
        if status is not None:
            stmt = stmt.where(self.model.status == status)
        if statuses:
            stmt = stmt.where(self.model.status.in_(list(statuses)))
        if risk_band is not None:
            low, high = risk_band.bounds
            if low is not None:
                stmt = stmt.where(self.model.risk_score >= low)
            if high is not None:
                stmt = stmt.where(self.model.risk_score <= high)
        if issuer_address is not None:
            stmt = stmt.where(self.model.issuer_address == issuer_address)
        stmt = stmt.order_by(*self._default_order())
        if limit is not None:
            stmt = stmt.limit(limit)
        return await self._scalars(stmt)

    async def recently_updated(self, limit: int) -> List[Invoice]:
        """Invoices ordered by their last status change, most recent first."""
        stmt = (
            select(self.model)
            .order_by(self.model.updated_at.desc(), self.model.id)
            .limit(limit)
        )
        return await self._scalars(stmt)

    async def get_many(self, ids: Sequence[uuid.UUID]) -> Dict[uuid.UUID, Invoice]:
        if not ids:
            return {}
        stmt = select(self.model).where(self.model.id.in_(list(set(ids))))
        return {invoice.id: invoice for invoice in await self._scalars(stmt)}

    async def status_totals(self) -> Dict[InvoiceStatus, Tuple[int, Decimal]]:
        """``{status: (invoice count, summed amount)}`` for every status present."""

        async def _totals() -> Dict[InvoiceStatus, Tuple[int, Decimal]]:
            stmt = select(
                self.model.status,
                func.count(),
                func.coalesce(func.sum(self.model.amount), 0),
            ).group_by(self.model.status)
            result = await self.db.execute(stmt)
            return {
                InvoiceStatus(status): (count, Decimal(str(total)))
                for status, count, total in result.all()
            }

        return await self._execute_with_circuit_breaker(_totals)

    async def get_current(self, invoice_id: uuid.UUID) -> Optional[Invoice]:
        """Like ``get`` but re-reads the row, discarding any cached state."""

        async def _get_current() -> Optional[Invoice]:
            return await self.db.get(self.model, invoice_id, populate_existing=True)

        return await self._execute_with_circuit_breaker(_get_current)

    async def transition_status(
        self,
        invoice_id: uuid.UUID,
        expected: InvoiceStatus,
        new: InvoiceStatus,
    ) -> Optional[Invoice]:
        """
        Move the invoice from ``expected`` to ``new`` if, and only if, it is
        still ``expected``.  Staged, not committed.

        Returns the updated invoice, or ``None`` when no row matched (unknown
        id, or another writer got there first).
        """

        async def _transition() -> Optional[Invoice]:
            stmt = (
                update(self.model)
                .where(self.model.id == invoice_id, self.model.status == expected)
                .values(status=new, updated_at=datetime.now(timezone.utc))
                .execution_options(synchronize_session="fetch")
            )
            result = await self.db.execute(stmt)
            if result.rowcount != 1:
                return None
            return await self.db.get(self.model, invoice_id)

        return await self._execute_with_circuit_breaker(_transition)
