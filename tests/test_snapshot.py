"""
Snapshot export/load against real SQLite databases.

Tests cover:
- an exported ledger reloads into a fresh database unchanged
- loading into a non-empty ledger is refused
- inconsistent snapshots are rejected before anything is written
"""

import uuid
from decimal import Decimal

import pytest
from pydantic import ValidationError

from invoice_ledger.core.exceptions import BusinessRuleViolation, ConflictException
from invoice_ledger.db.session import build_engine, build_session_factory, create_tables
from invoice_ledger.models.invoice import InvoiceStatus
from invoice_ledger.schemas.invoice import InvoiceCreate
from invoice_ledger.schemas.snapshot import LedgerSnapshot

from .conftest import INVESTOR, ISSUER, build_ledger

DUE = "2026-12-01T00:00:00Z"


async def _populated_snapshot(ledger) -> LedgerSnapshot:
    _, invoices, svc, _, snapshots = ledger
    first = await invoices.create(InvoiceCreate(issuer_address=ISSUER, due_date=DUE, amount="5"))
    await invoices.create(InvoiceCreate(issuer_address=ISSUER, due_date=DUE, amount="2.5"))
    await svc.invest(first.invoice.id, INVESTOR, Decimal("5"), Decimal("10"))
    await svc.settle(first.invoice.id)
    return await snapshots.export()


class TestExport:
    @pytest.mark.asyncio
    async def test_empty_ledger(self, ledger):
        snapshot = await ledger[4].export()
        assert snapshot.invoices == {}
        assert snapshot.investments == {}
        assert snapshot.participants == {}

    @pytest.mark.asyncio
    async def test_collections_keyed_by_id(self, ledger):
        snapshot = await _populated_snapshot(ledger)

        assert len(snapshot.invoices) == 2
        assert len(snapshot.investments) == 1
        assert set(snapshot.participants) == {ISSUER, INVESTOR}
        for key, record in snapshot.invoices.items():
            assert key == str(record.id)

    @pytest.mark.asyncio
    async def test_amounts_exported_as_exact_strings(self, ledger):
        snapshot = await _populated_snapshot(ledger)
        data = snapshot.model_dump(mode="json")

        [investment] = data["investments"].values()
        assert Decimal(investment["return_amount"]) == Decimal("5.5")
        assert isinstance(investment["principal"], str)


class TestLoad:
    @pytest.mark.asyncio
    async def test_round_trip_into_fresh_database(self, ledger):
        snapshot = await _populated_snapshot(ledger)
        payload = snapshot.model_dump(mode="json")

        other_engine = build_engine("sqlite+aiosqlite://")
        await create_tables(other_engine)
        try:
            async with build_session_factory(other_engine)() as session:
                participants, invoices, svc, _, snapshots = build_ledger(session)

                loaded = await snapshots.load(LedgerSnapshot.model_validate(payload))
                assert (loaded.invoices, loaded.investments, loaded.participants) == (2, 1, 2)

                investor = await participants.get(INVESTOR)
                assert investor.total_invested == Decimal("5")
                assert investor.total_returns == Decimal("0.5")

                statuses = sorted(i.status.value for i in await invoices.list_invoices())
                assert statuses == ["pending", "settled"]

                reexported = await snapshots.export()
                assert reexported.model_dump(mode="json") == payload
        finally:
            await other_engine.dispose()

    @pytest.mark.asyncio
    async def test_loaded_ledger_keeps_lifecycle_rules(self, ledger):
        snapshot = await _populated_snapshot(ledger)
        payload = snapshot.model_dump(mode="json")
        pending_id = next(
            uuid.UUID(k) for k, v in payload["invoices"].items() if v["status"] == "pending"
        )

        other_engine = build_engine("sqlite+aiosqlite://")
        await create_tables(other_engine)
        try:
            async with build_session_factory(other_engine)() as session:
                _, invoices, svc, _, snapshots = build_ledger(session)
                await snapshots.load(LedgerSnapshot.model_validate(payload))

                result = await svc.invest(pending_id, INVESTOR, Decimal("2"), Decimal("5"))
                assert result.invoice.status == InvoiceStatus.FUNDED
        finally:
            await other_engine.dispose()

    @pytest.mark.asyncio
    async def test_refuses_non_empty_ledger(self, ledger):
        snapshot = await _populated_snapshot(ledger)

        with pytest.raises(ConflictException) as exc_info:
            await ledger[4].load(snapshot)
        assert exc_info.value.details["existing_records"] > 0

    @pytest.mark.asyncio
    async def test_rejects_dangling_investment(self, ledger):
        snapshot = await _populated_snapshot(ledger)
        payload = snapshot.model_dump(mode="json")
        payload["invoices"] = {}
        payload["participants"] = {}

        other_engine = build_engine("sqlite+aiosqlite://")
        await create_tables(other_engine)
        try:
            async with build_session_factory(other_engine)() as session:
                _, _, _, _, snapshots = build_ledger(session)
                with pytest.raises(BusinessRuleViolation) as exc_info:
                    await snapshots.load(LedgerSnapshot.model_validate(payload))
                assert any("unknown invoice" in p for p in exc_info.value.details)

                # Nothing was written.
                assert (await snapshots.export()).investments == {}
        finally:
            await other_engine.dispose()

    @pytest.mark.asyncio
    async def test_rejects_amounts_beyond_stored_precision(self, ledger):
        snapshot = await _populated_snapshot(ledger)
        payload = snapshot.model_dump(mode="json")
        [record] = payload["investments"].values()
        record["principal"] = "5.000000001"

        with pytest.raises(ValidationError):
            LedgerSnapshot.model_validate(payload)

    @pytest.mark.asyncio
    async def test_rejects_mismatched_keys(self, ledger):
        snapshot = await _populated_snapshot(ledger)
        payload = snapshot.model_dump(mode="json")
        key, record = payload["invoices"].popitem()
        payload["invoices"]["not-the-id"] = record

        with pytest.raises(BusinessRuleViolation):
            await ledger[4].load(LedgerSnapshot.model_validate(payload))
