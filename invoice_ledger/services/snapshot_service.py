"""
Snapshot service — export and reload the whole ledger.

An export is three collections keyed by id.  ``load`` only accepts an empty
ledger and checks the snapshot's references before writing anything, so a
rejected snapshot leaves no trace.
"""

import logging

from sqlalchemy.exc import IntegrityError

from invoice_ledger.core.cache import cache
from invoice_ledger.core.exceptions import BusinessRuleViolation, ConflictException
from invoice_ledger.models.investment import Investment
from invoice_ledger.models.invoice import Invoice
from invoice_ledger.models.participant import Participant
from invoice_ledger.repositories.investment_repo import InvestmentRepository
from invoice_ledger.repositories.invoice_repo import InvoiceRepository
from invoice_ledger.repositories.participant_repo import ParticipantRepository
from invoice_ledger.schemas.snapshot import (
    InvestmentRecord,
    InvoiceRecord,
    LedgerSnapshot,
    ParticipantRecord,
    SnapshotLoaded,
)

logger = logging.getLogger(__name__)


class SnapshotService:
    def __init__(
        self,
        invoice_repo: InvoiceRepository,
        investment_repo: InvestmentRepository,
        participant_repo: ParticipantRepository,
    ):
        self._invoices = invoice_repo
        self._investments = investment_repo
        self._participants = participant_repo

    async def export(self) -> LedgerSnapshot:
        invoices = await self._invoices.get_all()
        investments = await self._investments.get_all()
        participants = await self._participants.get_all()
        return LedgerSnapshot(
            invoices={str(i.id): InvoiceRecord.model_validate(i) for i in invoices},
            investments={str(i.id): InvestmentRecord.model_validate(i) for i in investments},
            participants={p.address: ParticipantRecord.model_validate(p) for p in participants},
        )

    async def load(self, snapshot: LedgerSnapshot) -> SnapshotLoaded:
        """
        Restore ``snapshot`` into an empty ledger in one transaction.

        Raises :class:`ConflictException` if the ledger already holds data
        and :class:`BusinessRuleViolation` if the snapshot is inconsistent.
        """
        _validate_snapshot(snapshot)

        existing = (
            await self._invoices.count()
            + await self._investments.count()
            + await self._participants.count()
        )
        if existing:
            raise ConflictException(
                "Snapshots can only be loaded into an empty ledger",
                details={"existing_records": existing},
            )

        try:
            for record in snapshot.invoices.values():
                await self._invoices.add(Invoice(**record.model_dump()))
            for record in snapshot.participants.values():
                await self._participants.add(Participant(**record.model_dump()))
            for record in snapshot.investments.values():
                await self._investments.add(Investment(**record.model_dump()))
            await self._invoices.commit()
        except IntegrityError as exc:
            await self._invoices.rollback()
            logger.warning("IntegrityError loading snapshot: %s", exc)
            raise BusinessRuleViolation("Snapshot violates a database constraint")
        except Exception:
            await self._invoices.rollback()
            raise

        cache.invalidate_ledger_views()
        logger.info(
            "Loaded snapshot: %d invoice(s), %d investment(s), %d participant(s)",
            len(snapshot.invoices),
            len(snapshot.investments),
            len(snapshot.participants),
        )
        return SnapshotLoaded(
            invoices=len(snapshot.invoices),
            investments=len(snapshot.investments),
            participants=len(snapshot.participants),
        )


def _validate_snapshot(snapshot: LedgerSnapshot) -> None:
    """Keys must match record ids and every investment must reference a known invoice."""
    problems = []
    for key, invoice in snapshot.invoices.items():
        if key != str(invoice.id):
            problems.append(f"invoice key '{key}' does not match id '{invoice.id}'")
    for key, investment in snapshot.investments.items():
        if key != str(investment.id):
            problems.append(f"investment key '{key}' does not match id '{investment.id}'")
        if str(investment.invoice_id) not in snapshot.invoices:
            problems.append(
                f"investment '{key}' references unknown invoice '{investment.invoice_id}'"
            )
    for key, participant in snapshot.participants.items():
        if key != participant.address:
            problems.append(f"participant key '{key}' does not match address '{participant.address}'")
    if problems:
        raise BusinessRuleViolation("Snapshot is inconsistent", details=problems)
