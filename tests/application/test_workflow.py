"""Testes de encerramento, transferência e expiração de avaliação."""

from __future__ import annotations

from central_atendimento.domain.enums import CloseReason, EventKind, TransferResult
from central_atendimento.domain.session import Stage
from tests.helpers.fakes import (
    ATTENDANT_A,
    ATTENDANT_B,
    CONTACT,
    CONTACT_B,
    add_attendant,
    local_time,
    text_event,
)


def _start_service(engine, store, contact: str = CONTACT, sector: str = "1") -> None:
    add_attendant(store, ATTENDANT_A, sector)
    engine.handle_inbound(text_event(contact, sector, name="Carlos"))
    assert store.get_session(contact).attendant == ATTENDANT_A


def _closed_events(store, contact: str) -> list:
    return [
        e
        for e in store.list_events()
        if e.kind == EventKind.SERVICE_CLOSED and e.contact_id == contact
    ]


class TestClose:
    """Encerramento idempotente com efeitos colaterais únicos."""

    def test_manual_close_goes_to_rating(self, engine, store, transport) -> None:
        _start_service(engine, store)
        code = store.find_open_record(CONTACT).code

        assert engine.workflow.close(CONTACT, CloseReason.MANUAL) is False  # ainda InService

        engine.handle_inbound(text_event(ATTENDANT_A, "encerrar", attendant=True))
        assert engine.workflow.close(CONTACT, CloseReason.MANUAL) is True

        session = store.get_session(CONTACT)
        assert session.stage == Stage.AWAITING_RATING
        assert session.attendant is None
        assert session.sector is None
        assert session.last_service_code == code
        assert session.last_attendant == ATTENDANT_A
        assert session.last_sector == "1"
        assert "Atendimento Finalizado" in transport.last_text(CONTACT)

    def test_close_is_idempotent(self, engine, store, transport) -> None:
        _start_service(engine, store)

        first = engine.workflow.close(CONTACT, CloseReason.INACTIVITY)
        sent_after_first = len(transport.texts)
        second = engine.workflow.close(CONTACT, CloseReason.INACTIVITY)

        assert first is True
        assert second is False
        assert len(transport.texts) == sent_after_first
        assert len(_closed_events(store, CONTACT)) == 1
        assert store.get_attendant(ATTENDANT_A).busy is False

    def test_timeout_close_returns_to_idle_without_rating(
        self, engine, store, transport
    ) -> None:
        _start_service(engine, store)
        code = store.find_open_record(CONTACT).code

        assert engine.workflow.close(CONTACT, CloseReason.INACTIVITY) is True

        session = store.get_session(CONTACT)
        assert session.stage == Stage.IDLE
        assert session.invariant_violations() == []
        record = store.find_record_by_code(code)
        assert record.ended_at is not None
        assert "inatividade" in transport.last_text(CONTACT)
        assert "Atendimento encerrado" in transport.last_text(ATTENDANT_A)

    def test_close_on_idle_session_is_noop(self, engine, store) -> None:
        engine.handle_inbound(text_event(CONTACT, "oi"))
        assert engine.workflow.close(CONTACT, CloseReason.ADMIN) is False
        assert _closed_events(store, CONTACT) == []

    def test_close_queued_session_removes_queue_entry(self, engine, store) -> None:
        engine.handle_inbound(text_event(CONTACT, "1"))
        assert store.get_queue_entry(CONTACT) is not None

        assert engine.workflow.close(CONTACT, CloseReason.ADMIN) is True

        assert store.get_queue_entry(CONTACT) is None
        assert store.get_session(CONTACT).stage == Stage.IDLE

    def test_reentry_during_close_keeps_new_queue_entry(self, engine, store, monkeypatch) -> None:
        """Contato que volta à fila logo após a gravação não perde a nova entrada."""
        engine.handle_inbound(text_event(CONTACT, "1"))
        old_seq = store.get_queue_entry(CONTACT).seq
        original_save = store.save_session
        reentered: list[bool] = []

        def save_then_reenter(session, expected_version=None):
            saved = original_save(session, expected_version=expected_version)
            if saved is not None and saved.stage == Stage.IDLE and not reentered:
                reentered.append(True)
                engine.handle_inbound(text_event(CONTACT, "1"))
            return saved

        monkeypatch.setattr(store, "save_session", save_then_reenter)

        assert engine.workflow.close(CONTACT, CloseReason.ADMIN) is True

        entry = store.get_queue_entry(CONTACT)
        assert entry is not None
        assert entry.seq != old_seq
        assert store.get_session(CONTACT).stage == Stage.IN_SERVICE

    def test_freed_attendant_picks_next_in_queue(self, engine, store) -> None:
        _start_service(engine, store)
        engine.handle_inbound(text_event(CONTACT_B, "1"))
        assert store.get_session(CONTACT_B).attendant is None

        engine.workflow.close(CONTACT, CloseReason.ADMIN)

        assert store.get_session(CONTACT_B).attendant == ATTENDANT_A
        assert store.get_attendant(ATTENDANT_A).busy is True


class TestTransfer:
    def test_transfer_requeues_in_target_sector(self, engine, store, transport) -> None:
        _start_service(engine, store)
        old_code = store.find_open_record(CONTACT).code

        result = engine.workflow.transfer(CONTACT, "3", requested_by=ATTENDANT_A)

        assert result == TransferResult.TRANSFERRED
        session = store.get_session(CONTACT)
        assert session.stage == Stage.IN_SERVICE
        assert session.sector == "3"
        assert session.attendant is None
        assert store.get_queue_entry(CONTACT).sector == "3"
        assert store.find_record_by_code(old_code).ended_at is not None
        assert store.get_attendant(ATTENDANT_A).busy is False
        assert "transferido" in transport.texts_to(CONTACT)[-2]
        assert "posição *1*" in transport.last_text(CONTACT)

    def test_transfer_matches_free_attendant_in_target(self, engine, store) -> None:
        _start_service(engine, store)
        add_attendant(store, ATTENDANT_B, "4", name="Diego")

        engine.workflow.transfer(CONTACT, "4", requested_by=ATTENDANT_A)

        session = store.get_session(CONTACT)
        assert session.attendant == ATTENDANT_B
        record = store.find_open_record(CONTACT)
        assert record.sector == "4"
        assert record.attendant_id == ATTENDANT_B

    def test_rejections(self, engine, store) -> None:
        _start_service(engine, store)

        assert engine.workflow.transfer(CONTACT, "9") == TransferResult.INVALID_SECTOR
        assert engine.workflow.transfer(CONTACT, "1") == TransferResult.SAME_SECTOR
        assert engine.workflow.transfer(CONTACT_B, "3") == TransferResult.NOT_ACTIVE
        assert (
            engine.workflow.transfer(CONTACT, "3", requested_by=ATTENDANT_B)
            == TransferResult.NOT_ACTIVE
        )
        assert store.get_session(CONTACT).sector == "1"

    def test_outside_hours_only_blocks_attendant_requests(self, engine, store, clock) -> None:
        _start_service(engine, store)
        clock.now = local_time(2025, 6, 14, 10, 0)  # sábado

        assert (
            engine.workflow.transfer(CONTACT, "2", requested_by=ATTENDANT_A)
            == TransferResult.OUTSIDE_HOURS
        )
        assert engine.workflow.transfer(CONTACT, "2", enforce_hours=False) == (
            TransferResult.TRANSFERRED
        )
        assert store.get_session(CONTACT).sector == "2"


class TestRatingExpiry:
    def test_expire_rating_returns_to_idle(self, engine, store, transport) -> None:
        _start_service(engine, store)
        engine.handle_inbound(text_event(ATTENDANT_A, "encerrar", attendant=True))
        engine.handle_inbound(text_event(ATTENDANT_A, "sim", attendant=True))
        session = store.get_session(CONTACT)

        assert engine.workflow.expire_rating(session) is True
        assert engine.workflow.expire_rating(session) is False  # versão antiga

        assert store.get_session(CONTACT).stage == Stage.IDLE
        assert store.list_evaluations() == []
        assert "Tempo de avaliação esgotado" in transport.last_text(CONTACT)

    def test_expire_rating_ignores_other_stages(self, engine, store) -> None:
        _start_service(engine, store)
        assert engine.workflow.expire_rating(store.get_session(CONTACT)) is False

