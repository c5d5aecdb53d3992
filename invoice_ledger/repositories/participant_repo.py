"""
Participant repository — data-access layer for the ``participants`` table.

The primary key is the normalised address, so ``get(address)`` is the
look-up used by every directory operation.
"""

from sqlalchemy import func
from sqlalchemy.future import select

from invoice_ledger.models.participant import Participant, ParticipantRole
from invoice_ledger.repositories.base import BaseRepository


class ParticipantRepository(BaseRepository[Participant]):
    """Concrete repository for :class:`Participant` entities."""

    def _default_order(self) -> list:
        # First-seen order; address breaks ties between same-instant inserts.
        return [self.model.created_at, self.model.address]

    async def count_by_role(self, role: ParticipantRole) -> int:
        async def _count() -> int:
            stmt = select(func.count()).select_from(self.model).where(self.model.role == role)
            result = await self.db.execute(stmt)
            return result.scalar_one()

        return await self._execute_with_circuit_breaker(_count)
