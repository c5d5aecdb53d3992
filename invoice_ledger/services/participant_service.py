"""
Participant service — the directory of issuers and investors.

The directory is the only writer of participant running totals.  Its write
methods **stage** changes on the shared session and never commit: the
ledger operation that triggered them (create, invest, settle) commits once,
so totals always move together with the status change that caused them.
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import List

from invoice_ledger.core.exceptions import NotFoundException
from invoice_ledger.models.participant import (
    Participant,
    ParticipantRole,
    normalize_address,
)
from invoice_ledger.repositories.participant_repo import ParticipantRepository

logger = logging.getLogger(__name__)


class ParticipantService:
    """Upserts and running totals for :class:`Participant`."""

    def __init__(self, participant_repo: ParticipantRepository):
        self._repo = participant_repo

    # ── Queries ──

    async def get(self, address: str) -> Participant:
        """Raises :class:`NotFoundException` for an unknown address."""
        key = normalize_address(address)
        participant = await self._repo.get(key)
        if not participant:
            raise NotFoundException("Participant", key)
        return participant

    async def list(self) -> List[Participant]:
        """Every participant in first-seen order."""
        return await self._repo.get_all()

    # ── Staged writes ──

    async def upsert(self, address: str, role: ParticipantRole) -> Participant:
        """
        Create the participant with zero totals, or record its latest role.

        Never fails on an existing address; the caller commits.
        """
        key = normalize_address(address)
        participant = await self._repo.get(key)
        if participant is None:
            participant = await self._repo.add(Participant(address=key, role=role))
            logger.info("Registered participant %s as %s", key, role.value, extra={"address": key})
            return participant

        participant.role = role
        participant.updated_at = datetime.now(timezone.utc)
        return await self._repo.add(participant)

    async def record_investment(self, address: str, principal: Decimal) -> Participant:
        """Add ``principal`` to the investor's ``total_invested``."""
        participant = await self.upsert(address, ParticipantRole.INVESTOR)
        participant.total_invested = (participant.total_invested or Decimal("0")) + principal
        return await self._repo.add(participant)

    async def record_return(self, address: str, amount: Decimal) -> None:
        """
        Add realised interest to ``total_returns``.

        An unknown address is logged and ignored: returns are only ever
        recorded for investors that ``record_investment`` already created.
        """
        key = normalize_address(address)
        participant = await self._repo.get(key)
        if participant is None:
            logger.warning(
                "Return of %s for unknown participant %s ignored",
                amount,
                key,
                extra={"address": key},
            )
            return

        participant.total_returns = (participant.total_returns or Decimal("0")) + amount
        participant.updated_at = datetime.now(timezone.utc)
        await self._repo.add(participant)
