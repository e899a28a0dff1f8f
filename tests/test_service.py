"""Tests for PresaleService — proves the facade orchestrates correctly."""

import threading

import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from presale.auth.provider import InMemoryAuthProvider
from presale.config import PresaleConfig
from presale.identity.allocations import StaticAllocationTable
from presale.models.contribution import SubmissionStatus
from presale.models.results import ErrorCode
from presale.moderation.access import AccessState
from presale.persistence.event_log import EventKind, EventLog
from presale.persistence.record_store import InMemoryRecordStore, StoreError, StoreQuery
from presale.service import PresaleService


KING_WALLET = "7xKX99kR7xKX99kR7xKX99kR7xKX99kR7xKX99kR"
FARMER_WALLET = "Farm333333333333333333333333333333333333"
STRANGER_WALLET = "9WzDXwBbmkg8ZTbNMqUxvQRAyrZzDsGYdLVL9zYtAWWM"
PROOF = "5" * 88
ADMIN = "mod@example.com"


def _now() -> datetime:
    return datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def config() -> PresaleConfig:
    return PresaleConfig(
        deadline=_now() + timedelta(hours=2),
        admin_email=ADMIN,
    )


@pytest.fixture
def directory() -> StaticAllocationTable:
    return StaticAllocationTable.from_mapping({
        "monky_king": {"wallet": KING_WALLET, "cap": "10.0"},
        "banana_farmer": {"wallet": FARMER_WALLET, "cap": "0.8"},
    })


@pytest.fixture
def store() -> InMemoryRecordStore:
    return InMemoryRecordStore()


@pytest.fixture
def log() -> EventLog:
    return EventLog()


@pytest.fixture
def service(config, store, directory, log) -> PresaleService:
    return PresaleService(config, store, directory=directory, event_log=log, clock=_now)


class TestVerifyIdentity:
    def test_known_identity(self, service: PresaleService, log: EventLog) -> None:
        result = service.verify_identity("@monky_king", KING_WALLET)
        assert result.success
        assert result.data["handle"] == "@monky_king"
        assert result.data["cap"] == Decimal("10.0")
        assert service.active_identity.cap == Decimal("10.0")
        assert len(log.events(EventKind.IDENTITY_VERIFIED)) == 1

    def test_rejection_audited(self, service: PresaleService, log: EventLog) -> None:
        result = service.verify_identity("monky_king", STRANGER_WALLET)
        assert result.code == ErrorCode.WALLET_MISMATCH
        assert result.errors == ["SECURITY_WARNING: Wallet mismatch with records."]
        assert service.active_identity is None
        assert log.events(EventKind.IDENTITY_REJECTED)[0].payload == {
            "code": "WALLET_MISMATCH",
        }

    def test_reverify_loads_other_history(self, service: PresaleService) -> None:
        service.verify_identity("monky_king", KING_WALLET)
        service.submit_contribution(PROOF, "1")
        service.verify_identity("newcomer", STRANGER_WALLET)
        assert service.history() == []
        assert service.active_identity.cap == Decimal("0.15")
        service.verify_identity("monky_king", KING_WALLET)
        assert len(service.history()) == 1

    def test_store_read_failure(self, config, directory) -> None:
        class Offline(InMemoryRecordStore):
            def query(self, query: StoreQuery) -> list:
                raise StoreError("offline")

        service = PresaleService(config, Offline(), directory=directory, clock=_now)
        result = service.verify_identity("monky_king", KING_WALLET)
        assert result.code == ErrorCode.STORE_READ_FAILED
        assert service.active_identity is None

    def test_directory_from_config(self, config, store) -> None:
        service = PresaleService(config, store, clock=_now)
        result = service.verify_identity("monky_king", KING_WALLET)
        assert result.data["cap"] == Decimal("0.15")


class TestSubmitContribution:
    def test_requires_identity(self, service: PresaleService) -> None:
        result = service.submit_contribution(PROOF, "0.1")
        assert result.code == ErrorCode.NO_ACTIVE_IDENTITY

    def test_submit_within_cap(self, service: PresaleService, log: EventLog) -> None:
        service.verify_identity("banana_farmer", FARMER_WALLET)
        amount = service.finalize_amount("12")
        assert amount == Decimal("0.800")
        result = service.submit_contribution(PROOF, amount)
        assert result.success
        assert result.data["status"] == "PENDING"
        assert [s.id for s in service.history()] == [result.data["submission_id"]]
        assert log.events(EventKind.SUBMISSION_APPENDED)[0].payload["amount"] == "0.800"

    def test_known_contributor_scenario(self, service: PresaleService) -> None:
        assert service.verify_identity("monky_king", KING_WALLET).data["cap"] == Decimal("10.0")
        over = service.submit_contribution("x" * 40, Decimal("12.0"))
        assert over.code == ErrorCode.AMOUNT_OUT_OF_RANGE
        assert service.history() == []

        result = service.submit_contribution("x" * 40, Decimal("10.0"))
        assert result.success
        history = service.history()
        assert len(history) == 1
        assert history[0].status == SubmissionStatus.PENDING
        assert history[0].amount == Decimal("10.0")

    def test_amount_above_cap_refused(self, service: PresaleService, log: EventLog) -> None:
        service.verify_identity("banana_farmer", FARMER_WALLET)
        result = service.submit_contribution(PROOF, "0.9")
        assert result.code == ErrorCode.AMOUNT_OUT_OF_RANGE
        assert len(log.events(EventKind.SUBMISSION_REJECTED)) == 1

    def test_window_closed(self, service: PresaleService) -> None:
        service.verify_identity("monky_king", KING_WALLET)
        result = service.submit_contribution(PROOF, "1", now=_now() + timedelta(hours=3))
        assert result.code == ErrorCode.WINDOW_CLOSED
        # Once closed, the window stays closed.
        assert service.submit_contribution(PROOF, "1", now=_now()).code == ErrorCode.WINDOW_CLOSED

    def test_amount_input_clamps_to_cap(self, service: PresaleService) -> None:
        service.verify_identity("banana_farmer", FARMER_WALLET)
        assert service.amount_input("5") == Decimal("0.8")
        assert service.amount_input("garbage") == Decimal("0")

    def test_amount_helpers_need_identity(self, service: PresaleService) -> None:
        with pytest.raises(ValueError):
            service.finalize_amount("1")

    def test_sign_out_drops_history(self, service: PresaleService) -> None:
        service.verify_identity("monky_king", KING_WALLET)
        service.submit_contribution(PROOF, "1")
        service.sign_out()
        assert service.active_identity is None
        assert service.history() == []


class TestModeration:
    def test_end_to_end_approval(self, service: PresaleService, store, log: EventLog) -> None:
        service.verify_identity("monky_king", KING_WALLET)
        submitted = service.submit_contribution(PROOF, "2")

        provider = InMemoryAuthProvider(resolved=False)
        gate = service.moderation_gate(provider)
        gate.start()
        provider.sign_in(ADMIN)
        assert gate.state == AccessState.AUTHENTICATED_ALLOWED
        assert [s.id for s in gate.pending] == [submitted.data["submission_id"]]

        result = gate.resolve(submitted.data["submission_id"], SubmissionStatus.APPROVED)
        assert result.success
        assert gate.pending == []

        # The contributor sees the decision after reloading.
        service.sign_out()
        service.verify_identity("monky_king", KING_WALLET)
        assert service.history()[0].status == SubmissionStatus.APPROVED
        assert service.history()[0].reviewer == ADMIN
        assert len(log.events(EventKind.SUBMISSION_RESOLVED)) == 1
        gate.close()

    def test_unauthorized_moderator(self, service: PresaleService) -> None:
        provider = InMemoryAuthProvider()
        gate = service.moderation_gate(provider)
        gate.start()
        provider.sign_in("someone@example.com")
        assert gate.state == AccessState.AUTHENTICATED_DENIED


class TestStatus:
    def test_status_snapshot(self, service: PresaleService) -> None:
        service.verify_identity("monky_king", KING_WALLET)
        status = service.status()
        assert status["window"] == "02:00:00"
        assert not status["window_closed"]
        assert status["identity"] == "@monky_king"
        assert status["cap"] == "10.0"
        assert status["audit_events"] == 1

    def test_start_countdown_and_close(self, service: PresaleService) -> None:
        ticks: list = []
        ticked = threading.Event()

        def on_tick(state) -> None:
            ticks.append(state)
            ticked.set()

        timer = service.start_countdown(on_tick, period_seconds=0.01)
        assert ticked.wait(5)
        service.close()
        assert not timer.running
        assert ticks[0].display() == "02:00:00"
