"""Testes da varredura periódica (timeouts e pareamento por tick)."""

from __future__ import annotations

from central_atendimento.application.workflow import AttendanceWorkflow
from central_atendimento.domain.enums import EventKind
from central_atendimento.domain.models import Session
from central_atendimento.domain.protocols.store import StoreError
from central_atendimento.domain.session import Stage
from tests.helpers.fakes import (
    ATTENDANT_A,
    ATTENDANT_B,
    ATTENDANT_C,
    CONTACT,
    CONTACT_B,
    CONTACT_C,
    add_attendant,
    text_event,
)


def _in_service(engine, store) -> str:
    add_attendant(store, ATTENDANT_A, "1")
    engine.handle_inbound(text_event(CONTACT, "1"))
    return store.find_open_record(CONTACT).code


class TestChatTimeout:
    def test_idle_chat_is_closed_after_timeout(self, engine, store, transport, clock) -> None:
        code = _in_service(engine, store)

        clock.advance(minutes=21)
        report = engine.tick()

        assert report.closed_for_inactivity == [CONTACT]
        assert store.get_session(CONTACT).stage == Stage.IDLE
        assert store.find_record_by_code(code).ended_at is not None
        assert store.get_attendant(ATTENDANT_A).busy is False
        assert "inatividade" in transport.last_text(CONTACT)
        kinds = [e.kind for e in store.list_events()]
        assert EventKind.INACTIVITY_DETECTED in kinds

    def test_exactly_at_timeout_is_not_closed(self, engine, store, clock) -> None:
        _in_service(engine, store)

        clock.advance(minutes=20)
        report = engine.tick()

        assert report.closed_for_inactivity == []
        assert store.get_session(CONTACT).attendant == ATTENDANT_A

    def test_activity_resets_timer(self, engine, store, clock) -> None:
        _in_service(engine, store)

        clock.advance(minutes=15)
        engine.handle_inbound(text_event(CONTACT, "ainda aqui"))
        clock.advance(minutes=15)
        report = engine.tick()

        assert report.closed_for_inactivity == []

    def test_queued_session_also_times_out(self, engine, store, clock) -> None:
        engine.handle_inbound(text_event(CONTACT, "1"))

        clock.advance(minutes=25)
        engine.tick()

        assert store.get_session(CONTACT).stage == Stage.IDLE
        assert store.get_queue_entry(CONTACT) is None

    def test_awaiting_confirmation_times_out_without_rating(self, engine, store, clock) -> None:
        _in_service(engine, store)
        engine.handle_inbound(text_event(ATTENDANT_A, "encerrar", attendant=True))

        clock.advance(minutes=21)
        engine.tick()

        assert store.get_session(CONTACT).stage == Stage.IDLE
        assert store.list_evaluations() == []

    def test_missed_ticks_converge(self, engine, store, transport, clock) -> None:
        """Um tick atrasado produz o mesmo resultado; o seguinte é no-op."""
        _in_service(engine, store)

        clock.advance(hours=3)
        first = engine.tick()
        sent = len(transport.texts)
        second = engine.tick()

        assert first.closed_for_inactivity == [CONTACT]
        assert second.closed_for_inactivity == []
        assert len(transport.texts) == sent

    def test_lost_close_does_not_record_inactivity(
        self, engine, store, clock, monkeypatch
    ) -> None:
        _in_service(engine, store)
        monkeypatch.setattr(AttendanceWorkflow, "close", lambda self, contact_id, reason: False)

        clock.advance(minutes=21)
        report = engine.tick()

        assert report.closed_for_inactivity == []
        kinds = [e.kind for e in store.list_events()]
        assert EventKind.INACTIVITY_DETECTED not in kinds


class TestTickMatching:
    def test_at_most_two_matches_per_sector_per_tick(self, engine, store) -> None:
        for contact in (CONTACT, CONTACT_B, CONTACT_C):
            engine.handle_inbound(text_event(contact, "1"))
        for attendant in (ATTENDANT_A, ATTENDANT_B, ATTENDANT_C):
            add_attendant(store, attendant, "1")

        first = engine.tick()
        second = engine.tick()

        assert first.matches["1"] == 2
        assert second.matches["1"] == 1
        assert all(store.get_session(c).attendant for c in (CONTACT, CONTACT_B, CONTACT_C))

    def test_report_lists_every_sector(self, engine) -> None:
        report = engine.tick()
        assert set(report.matches) == {"1", "2", "3", "4"}
        assert report.total_matches == 0

    def test_tick_survives_store_failure(self, engine, store, monkeypatch, caplog) -> None:
        def broken(*args, **kwargs):
            raise StoreError("redis down")

        monkeypatch.setattr(store, "list_sessions", broken)

        with caplog.at_level("ERROR"):
            assert engine.tick() is None
        assert any(r.getMessage() == "tick_failed" for r in caplog.records)


class TestReconcile:
    """Reparo de estado deixado por falha parcial do store."""

    def test_partial_close_failure_frees_attendant_for_next_contact(
        self, engine, store, clock, monkeypatch
    ) -> None:
        code = _in_service(engine, store)
        original_close = store.close_open_record
        failures = [StoreError("redis down")]

        def flaky_close(contact_id, ended_at, *, sector=None):
            if failures:
                raise failures.pop()
            return original_close(contact_id, ended_at, sector=sector)

        monkeypatch.setattr(store, "close_open_record", flaky_close)

        clock.advance(minutes=21)
        assert engine.tick() is None
        assert store.get_session(CONTACT).stage == Stage.IDLE
        assert store.get_attendant(ATTENDANT_A).busy is True

        engine.handle_inbound(text_event(CONTACT_B, "1"))
        assert store.get_session(CONTACT_B).attendant is None

        second = engine.tick()
        third = engine.tick()

        assert second.records_closed == [code]
        assert store.find_record_by_code(code).ended_at is not None
        assert third.attendants_released == [ATTENDANT_A]
        assert store.get_session(CONTACT_B).attendant == ATTENDANT_A
        assert store.get_attendant(ATTENDANT_A).busy is True
        repairs = [e for e in store.list_events() if e.kind == EventKind.STATE_REPAIRED]
        assert len(repairs) == 2

    def test_busy_attendant_without_session_waits_one_tick(self, engine, store, caplog) -> None:
        add_attendant(store, ATTENDANT_A, "1", busy=True)

        first = engine.tick()
        assert first.attendants_released == []
        assert store.get_attendant(ATTENDANT_A).busy is True

        with caplog.at_level("WARNING"):
            second = engine.tick()

        assert second.attendants_released == [ATTENDANT_A]
        assert store.get_attendant(ATTENDANT_A).busy is False
        assert any(r.getMessage() == "orphan_attendant_released" for r in caplog.records)

    def test_attendant_linked_before_next_tick_is_kept(self, engine, store, clock) -> None:
        add_attendant(store, ATTENDANT_A, "1", busy=True)
        engine.tick()

        linked = Session(
            contact_id=CONTACT,
            stage=Stage.IN_SERVICE,
            sector="1",
            attendant=ATTENDANT_A,
            last_activity_at=clock(),
        )
        store.save_session(linked, expected_version=0)
        engine.tick()
        engine.tick()

        assert store.get_attendant(ATTENDANT_A).busy is True
        assert store.get_session(CONTACT).attendant == ATTENDANT_A

    def test_open_record_without_active_chat_is_closed(self, engine, store, clock) -> None:
        record = store.open_record(CONTACT, "1", ATTENDANT_A, clock())

        report = engine.tick()

        assert report.records_closed == [record.code]
        assert store.find_open_record(CONTACT) is None

    def test_active_service_record_stays_open(self, engine, store) -> None:
        code = _in_service(engine, store)

        report = engine.tick()

        assert report.records_closed == []
        assert store.find_record_by_code(code).ended_at is None
