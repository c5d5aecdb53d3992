"""
Investment repository — data-access layer for the ``investments`` table.
"""

import uuid
from typing import List, Optional

from sqlalchemy.future import select

from invoice_ledger.models.investment import Investment, InvestmentStatus
from invoice_ledger.repositories.base import BaseRepository


class InvestmentRepository(BaseRepository[Investment]):
    """Concrete repository for :class:`Investment` entities."""

    def _default_order(self) -> list:
        return [self.model.created_at, self.model.id]

    async def get_by_invoice(
        self, invoice_id: uuid.UUID, status: Optional[InvestmentStatus] = None
    ) -> List[Investment]:
        """Investments financing ``invoice_id``, oldest first."""
        stmt = select(self.model).where(self.model.invoice_id == invoice_id)
        if status is not None:
            stmt = stmt.where(self.model.status == status)
        return await self._scalars(stmt.order_by(*self._default_order()))

    async def get_by_investor(self, investor_address: str) -> List[Investment]:
        """All investments made by an (already normalised) address, newest first."""
        stmt = (
            select(self.model)
            .where(self.model.investor_address == investor_address)
            .order_by(self.model.created_at.desc(), self.model.id)
        )
        return await self._scalars(stmt)

    async def most_recent(self, limit: int) -> List[Investment]:
        stmt = (
            select(self.model)
            .order_by(self.model.created_at.desc(), self.model.id)
            .limit(limit)
        )
        return await self._scalars(stmt)
