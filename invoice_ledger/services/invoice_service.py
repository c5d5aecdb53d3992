"""
Invoice service — the invoice registry and its status lifecycle.

Lifecycle::

    pending ──invest──▶ funded ──settle──▶ settled (terminal)

``mark_funded`` / ``mark_settled`` are compare-and-set moves staged on the
caller's session: the UPDATE only matches while the invoice still holds the
expected status.  They do not take the per-invoice lock themselves; the
ledger already holds it around the whole operation.

Input handling is lenient.  ``normalize_invoice_input`` turns whatever the
client sent into a storable record and reports every substitution it made
as an :class:`AppliedDefault`.

Caching:
    ``list_invoices`` is cache-backed under ``invoices:`` keys.  Every write
    drops both the invoice listings and the platform statistics.
"""

import logging
import secrets
import time
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, List, Optional, Tuple
from uuid import UUID

from sqlalchemy.exc import IntegrityError

from invoice_ledger.core.cache import INVOICES_PREFIX, cache
from invoice_ledger.core.config import settings
from invoice_ledger.core.exceptions import (
    BusinessRuleViolation,
    InvalidTransitionException,
    NotFoundException,
)
from invoice_ledger.core.locks import invoice_locks
from invoice_ledger.models.invoice import Invoice, InvoiceStatus, RiskBand
from invoice_ledger.models.participant import ParticipantRole, normalize_address
from invoice_ledger.repositories.investment_repo import InvestmentRepository
from invoice_ledger.repositories.invoice_repo import InvoiceRepository
from invoice_ledger.schemas.common import MAX_AMOUNT, quantize_amount
from invoice_ledger.schemas.investment import InvestmentResponse
from invoice_ledger.schemas.invoice import (
    AppliedDefault,
    InvoiceCreate,
    InvoiceCreated,
    InvoiceDetail,
    InvoiceResponse,
    InvoiceStatusUpdated,
    NormalizedInvoice,
)
from invoice_ledger.services.participant_service import ParticipantService

logger = logging.getLogger(__name__)

MIN_RISK_SCORE = 0
MAX_RISK_SCORE = 1000


class InvoiceService:
    """Registry operations and lifecycle transitions for :class:`Invoice`."""

    CACHE_PREFIX = INVOICES_PREFIX

    def __init__(
        self,
        invoice_repo: InvoiceRepository,
        investment_repo: InvestmentRepository,
        participant_service: ParticipantService,
    ):
        self._repo = invoice_repo
        self._investment_repo = investment_repo
        self._participants = participant_service

    # ── Queries ──

    async def get(self, invoice_id: UUID) -> Invoice:
        """Raises :class:`NotFoundException` if the invoice does not exist."""
        invoice = await self._repo.get(invoice_id)
        if not invoice:
            raise NotFoundException("Invoice", invoice_id)
        return invoice

    async def get_detail(self, invoice_id: UUID) -> InvoiceDetail:
        """The invoice, the investments financing it, and their summed principal."""
        invoice = await self.get(invoice_id)
        investments = await self._investment_repo.get_by_invoice(invoice_id)
        return InvoiceDetail(
            invoice=InvoiceResponse.model_validate(invoice),
            investments=[InvestmentResponse.model_validate(i) for i in investments],
            total_financed=sum((i.principal for i in investments), Decimal("0")),
        )

    async def list_invoices(
        self,
        status: Optional[InvoiceStatus] = None,
        risk_band: Optional[RiskBand] = None,
    ) -> List[InvoiceResponse]:
        """
        Newest-first listing, filtered by exact status and/or risk band,
        capped at ``INVOICE_PAGE_SIZE`` (cache-backed).
        """
        status_key = status.value if status else "*"
        band_key = risk_band.value if risk_band else "*"
        cache_key = f"{self.CACHE_PREFIX}list:{status_key}:{band_key}"
        cached = cache.get(cache_key)
        if cached is not None:
            logger.debug("Cache hit for %s", cache_key)
            return cached

        generation = cache.generation
        invoices = await self._repo.list_filtered(
            status=status,
            risk_band=risk_band,
            limit=settings.INVOICE_PAGE_SIZE,
        )
        result = [InvoiceResponse.model_validate(i) for i in invoices]
        cache.set(cache_key, result, generation=generation)
        return result

    # ── Commands ──

    async def create(self, invoice_in: InvoiceCreate) -> InvoiceCreated:
        """
        Normalise the request, store the invoice as ``pending`` and register
        the issuer, in one transaction.
        """
        normalized = normalize_invoice_input(invoice_in, settings.DEFAULT_RISK_SCORE)
        invoice = Invoice(**normalized.model_dump(exclude={"applied_defaults"}))

        try:
            await self._repo.add(invoice)
            await self._participants.upsert(invoice.issuer_address, ParticipantRole.ISSUER)
            await self._repo.commit()
        except IntegrityError as exc:
            await self._repo.rollback()
            logger.warning("IntegrityError creating invoice: %s", exc)
            raise BusinessRuleViolation(
                "Invoice data violates a database constraint. Check all fields."
            )
        except Exception:
            await self._repo.rollback()
            raise

        cache.invalidate_ledger_views()
        logger.info(
            "Created invoice %s (%s) for %s, amount %s, %d default(s) applied",
            invoice.id,
            invoice.invoice_number,
            invoice.issuer_address,
            invoice.amount,
            len(normalized.applied_defaults),
            extra={"invoice_id": str(invoice.id)},
        )
        return InvoiceCreated(
            invoice=InvoiceResponse.model_validate(invoice),
            applied_defaults=normalized.applied_defaults,
        )

    async def mark_funded(self, invoice_id: UUID) -> Invoice:
        """pending → funded.  Staged; the caller commits."""
        return await self._transition(invoice_id, InvoiceStatus.PENDING, InvoiceStatus.FUNDED)

    async def mark_settled(self, invoice_id: UUID) -> Invoice:
        """funded → settled.  Staged; the caller commits."""
        return await self._transition(invoice_id, InvoiceStatus.FUNDED, InvoiceStatus.SETTLED)

    async def set_status(
        self, invoice_id: UUID, status: InvoiceStatus, reason: str = ""
    ) -> InvoiceStatusUpdated:
        """
        Operator override: force ``status`` regardless of the lifecycle.

        Investments and participant totals are left untouched, so the
        ledger can end up inconsistent; only the admin route calls this.
        """
        async with invoice_locks.hold(invoice_id):
            invoice = await self.get(invoice_id)
            previous = invoice.status
            invoice.status = status
            invoice.updated_at = datetime.now(timezone.utc)
            try:
                await self._repo.add(invoice)
                await self._repo.commit()
            except Exception:
                await self._repo.rollback()
                raise

        cache.invalidate_ledger_views()
        logger.warning(
            "Operator override: invoice %s status %s → %s (%s)",
            invoice_id,
            previous.value,
            status.value,
            reason or "no reason given",
            extra={"invoice_id": str(invoice_id)},
        )
        return InvoiceStatusUpdated(
            previous_status=previous,
            invoice=InvoiceResponse.model_validate(invoice),
        )

    # ── Internal helpers ──

    async def _transition(
        self, invoice_id: UUID, expected: InvoiceStatus, new: InvoiceStatus
    ) -> Invoice:
        invoice = await self._repo.transition_status(invoice_id, expected, new)
        if invoice is not None:
            logger.info(
                "Invoice %s %s → %s",
                invoice_id,
                expected.value,
                new.value,
                extra={"invoice_id": str(invoice_id)},
            )
            return invoice

        # Nothing matched: tell "missing" apart from "wrong status".
        current = await self._repo.get_current(invoice_id)
        if current is None:
            raise NotFoundException("Invoice", invoice_id)
        raise InvalidTransitionException(invoice_id, current.status, new)


# ── Input normalisation ──


def normalize_invoice_input(
    invoice_in: InvoiceCreate, default_risk_score: int = 500
) -> NormalizedInvoice:
    """
    Turn a lenient :class:`InvoiceCreate` into a storable record.

    - ``amount``: anything that is not a finite, non-negative number below
      10^20 → 0; extra decimal places are rounded (half-even) to 8.
    - ``risk_score``: missing, unparseable or outside 0–1000 → the default;
      fractional scores are truncated.
    - ``invoice_number`` → ``INV-<epoch ms>``, ``token_id`` → epoch ms and
      ``document_hash`` → ``Qm…`` when not supplied.
    - Addresses are stripped and lower-cased.
    """
    applied: List[AppliedDefault] = []
    now_ms = int(time.time() * 1000)

    amount, reason = _parse_amount(invoice_in.amount)
    if reason:
        applied.append(
            AppliedDefault(
                field="amount",
                received=invoice_in.amount,
                applied=amount if amount else 0,
                reason=reason,
            )
        )

    risk_score, reason = _parse_risk_score(invoice_in.risk_score)
    if reason:
        risk_score = default_risk_score
        applied.append(
            AppliedDefault(
                field="risk_score",
                received=invoice_in.risk_score,
                applied=default_risk_score,
                reason=reason,
            )
        )

    invoice_number = (invoice_in.invoice_number or "").strip()
    if not invoice_number:
        invoice_number = f"INV-{now_ms}"
        applied.append(
            AppliedDefault(
                field="invoice_number",
                received=invoice_in.invoice_number,
                applied=invoice_number,
                reason="missing",
            )
        )

    document_hash = (invoice_in.document_hash or "").strip()
    if not document_hash:
        document_hash = f"Qm{secrets.token_hex(16)}"
        applied.append(
            AppliedDefault(
                field="document_hash",
                received=invoice_in.document_hash,
                applied=document_hash,
                reason="missing",
            )
        )

    token_id = invoice_in.token_id
    if token_id is None:
        token_id = now_ms
        applied.append(
            AppliedDefault(field="token_id", received=None, applied=token_id, reason="missing")
        )

    return NormalizedInvoice(
        issuer_address=normalize_address(invoice_in.issuer_address),
        buyer_address=normalize_address(invoice_in.buyer_address),
        invoice_number=invoice_number,
        amount=amount,
        due_date=invoice_in.due_date,
        description=invoice_in.description or "",
        risk_score=risk_score,
        document_hash=document_hash,
        token_id=token_id,
        applied_defaults=applied,
    )


def _to_decimal(value: Any) -> Optional[Decimal]:
    # bool is an int subclass; true/false are not amounts.
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (dict, list)):
        return None
    try:
        return Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None


def _parse_amount(value: Any) -> Tuple[Decimal, str]:
    """``(amount, reason)``; an empty reason means the value was used as given."""
    if value is None:
        return Decimal("0"), "missing"
    parsed = _to_decimal(value)
    if parsed is None:
        return Decimal("0"), "not a number"
    if not parsed.is_finite():
        return Decimal("0"), "not finite"
    if parsed < 0:
        return Decimal("0"), "negative"
    if parsed >= MAX_AMOUNT:
        return Decimal("0"), "too large"
    rounded = quantize_amount(parsed)
    if rounded != parsed:
        return rounded, "rounded to 8 decimal places"
    return rounded, ""


def _parse_risk_score(value: Any) -> Tuple[int, str]:
    if value is None:
        return 0, "missing"
    parsed = _to_decimal(value)
    if parsed is None:
        return 0, "not a number"
    if not parsed.is_finite():
        return 0, "not finite"
    score = int(parsed)
    if not MIN_RISK_SCORE <= score <= MAX_RISK_SCORE:
        return 0, f"outside {MIN_RISK_SCORE}-{MAX_RISK_SCORE}"
    return score, ""