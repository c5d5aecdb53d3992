"""
Unit tests for ParticipantService (the directory).

All repository calls are mocked.  Tests cover:
- upsert: new address, existing address (role update), address normalisation
- record_investment / record_return: running totals, unknown participant
- get / list
- writes are staged (``add``), never committed by the directory itself
"""

from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from invoice_ledger.core.exceptions import NotFoundException
from invoice_ledger.models.participant import ParticipantRole, VerificationStatus
from invoice_ledger.services.participant_service import ParticipantService

from .conftest import INVESTOR, ISSUER, make_participant


@pytest.fixture()
def participant_repo():
    repo = AsyncMock()
    repo.add.side_effect = lambda participant: participant
    return repo


@pytest.fixture()
def service(participant_repo):
    return ParticipantService(participant_repo)


class TestUpsert:
    @pytest.mark.asyncio
    async def test_creates_with_zero_totals(self, service, participant_repo):
        participant_repo.get.return_value = None

        participant = await service.upsert(ISSUER, ParticipantRole.ISSUER)

        assert participant.address == ISSUER
        assert participant.role == ParticipantRole.ISSUER
        assert participant.verification_status == VerificationStatus.PENDING
        assert participant.total_invested == Decimal("0")
        assert participant.total_returns == Decimal("0")
        participant_repo.add.assert_awaited_once()
        participant_repo.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_normalises_address(self, service, participant_repo):
        participant_repo.get.return_value = None

        participant = await service.upsert("  0xABCdef  ", ParticipantRole.INVESTOR)

        participant_repo.get.assert_awaited_once_with("0xabcdef")
        assert participant.address == "0xabcdef"

    @pytest.mark.asyncio
    async def test_existing_participant_takes_latest_role(self, service, participant_repo):
        existing = make_participant(address=ISSUER, role=ParticipantRole.INVESTOR)
        before = existing.updated_at
        participant_repo.get.return_value = existing

        participant = await service.upsert(ISSUER, ParticipantRole.ISSUER)

        assert participant is existing
        assert participant.role == ParticipantRole.ISSUER
        assert participant.updated_at >= before


class TestRunningTotals:
    @pytest.mark.asyncio
    async def test_record_investment_adds_principal(self, service, participant_repo):
        participant_repo.get.return_value = make_participant(total_invested=Decimal("2"))

        participant = await service.record_investment(INVESTOR, Decimal("5"))

        assert participant.total_invested == Decimal("7")
        assert participant.role == ParticipantRole.INVESTOR

    @pytest.mark.asyncio
    async def test_record_investment_registers_unknown_investor(self, service, participant_repo):
        participant_repo.get.return_value = None

        participant = await service.record_investment(INVESTOR, Decimal("5"))

        assert participant.address == INVESTOR
        assert participant.role == ParticipantRole.INVESTOR
        assert participant.total_invested == Decimal("5")

    @pytest.mark.asyncio
    async def test_record_return_adds_interest(self, service, participant_repo):
        participant = make_participant(total_returns=Decimal("0.5"))
        participant_repo.get.return_value = participant

        await service.record_return(INVESTOR, Decimal("1.25"))

        assert participant.total_returns == Decimal("1.75")
        participant_repo.add.assert_awaited_once_with(participant)

    @pytest.mark.asyncio
    async def test_record_return_unknown_participant_is_noop(
        self, service, participant_repo, caplog
    ):
        participant_repo.get.return_value = None

        with caplog.at_level("WARNING"):
            await service.record_return("0xNobody", Decimal("1"))

        participant_repo.add.assert_not_awaited()
        assert "unknown participant 0xnobody" in caplog.text


class TestQueries:
    @pytest.mark.asyncio
    async def test_get_existing(self, service, participant_repo):
        participant_repo.get.return_value = make_participant()
        participant = await service.get(INVESTOR.upper())
        participant_repo.get.assert_awaited_once_with(INVESTOR.lower())
        assert participant.address == INVESTOR

    @pytest.mark.asyncio
    async def test_get_unknown_raises_not_found(self, service, participant_repo):
        participant_repo.get.return_value = None
        with pytest.raises(NotFoundException) as exc_info:
            await service.get("0xnobody")
        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    async def test_list_delegates_to_repository(self, service, participant_repo):
        participant_repo.get_all.return_value = [make_participant()]
        assert len(await service.list()) == 1
