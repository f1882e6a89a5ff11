"""Testes de ponta a ponta do roteamento de mensagens (contato e atendente)."""

from __future__ import annotations

from central_atendimento.domain.enums import (
    EventKind,
    MediaKind,
    MessageDirection,
    PendingConfirmation,
)
from central_atendimento.domain.session import Stage
from tests.helpers.fakes import (
    ATTENDANT_A,
    CONTACT,
    add_attendant,
    local_time,
    media_event,
    text_event,
)


def _contact(engine, text: str, **kwargs) -> None:
    engine.handle_inbound(text_event(CONTACT, text, **kwargs))


def _attendant(engine, text: str) -> None:
    engine.handle_inbound(text_event(ATTENDANT_A, text, attendant=True))


def _in_service(engine, store) -> str:
    add_attendant(store, ATTENDANT_A, "1", name="Bruna")
    _contact(engine, "1", name="Carlos")
    return store.find_open_record(CONTACT).code


def _kinds(store) -> list[EventKind]:
    return [e.kind for e in store.list_events()]


class TestSectorSelection:
    """Contato em Idle: menu, horário comercial e entrada na fila."""

    def test_first_message_creates_session_and_shows_menu(self, engine, store, transport) -> None:
        _contact(engine, "oi", name="Carlos")

        session = store.get_session(CONTACT)
        assert session.stage == Stage.IDLE
        assert session.display_name == "Carlos"
        menu = transport.last_text(CONTACT)
        assert "Seja bem-vindo" in menu
        assert "*2* - Vendas" in menu

    def test_outside_hours_keeps_contact_idle(self, engine, store, transport, clock) -> None:
        clock.now = local_time(2025, 6, 14, 10, 0)  # sábado

        _contact(engine, "oi")
        _contact(engine, "2")

        sent = transport.texts_to(CONTACT)
        assert "fora do horário de atendimento" in sent[-2]
        assert "Seja bem-vindo" in sent[-1]
        assert store.get_session(CONTACT).stage == Stage.IDLE
        assert store.list_queue("2") == []
        assert store.list_records() == []

    def test_sales_open_on_weekday(self, engine, store) -> None:
        _contact(engine, "2")
        session = store.get_session(CONTACT)
        assert session.stage == Stage.IN_SERVICE
        assert session.sector == "2"

    def test_unknown_option_repeats_menu(self, engine, store, transport) -> None:
        _contact(engine, "7")
        assert store.get_session(CONTACT).stage == Stage.IDLE
        assert "Seja bem-vindo" in transport.last_text(CONTACT)

    def test_command_text_is_normalized(self, engine, store) -> None:
        _contact(engine, "  1  ")
        assert store.get_session(CONTACT).sector == "1"

    def test_immediate_match_uses_sequential_code(self, engine, store, transport, clock) -> None:
        for i in range(6):
            store.open_record(f"antigo-{i}", "3", None, clock())
            store.close_open_record(f"antigo-{i}", clock())
        add_attendant(store, ATTENDANT_A, "1", name="Bruna")

        _contact(engine, "1", name="Carlos")

        session = store.get_session(CONTACT)
        assert session.attendant == ATTENDANT_A
        assert store.get_attendant(ATTENDANT_A).busy is True
        assert store.find_open_record(CONTACT).code == "ATD-000007-2025"
        contact_text = transport.last_text(CONTACT)
        assert "ATD-000007-2025" in contact_text
        assert "Bruna" in contact_text
        assert "ATD-000007-2025" in transport.last_text(ATTENDANT_A)

    def test_queued_then_matched_by_tick(self, engine, store, transport) -> None:
        _contact(engine, "1")

        queued = transport.last_text(CONTACT)
        assert "posição *1*" in queued
        assert "aproximadamente 5 minutos" in queued
        assert store.get_session(CONTACT).is_queued

        add_attendant(store, ATTENDANT_A, "1")
        report = engine.tick()

        assert report.matches["1"] == 1
        assert store.get_session(CONTACT).attendant == ATTENDANT_A
        assert store.get_queue_entry(CONTACT) is None


class TestQueuedContact:
    def test_messages_while_queued(self, engine, transport) -> None:
        _contact(engine, "1")

        _contact(engine, "ainda esperando")
        assert "Você já está na fila" in transport.last_text(CONTACT)

        _contact(engine, "menu")
        assert "aguardando na fila" in transport.last_text(CONTACT)

        _contact(engine, "encerrar")
        assert "solicite ao atendente" in transport.last_text(CONTACT)

    def test_missing_queue_entry_is_restored(self, engine, store, transport) -> None:
        _contact(engine, "1")
        store.remove_queue_entry(CONTACT)

        _contact(engine, "oi")

        assert store.get_queue_entry(CONTACT).sector == "1"
        assert "posição *1*" in transport.last_text(CONTACT)

    def test_missing_entry_restored_and_matched(self, engine, store) -> None:
        _contact(engine, "1")
        store.remove_queue_entry(CONTACT)
        add_attendant(store, ATTENDANT_A, "1")

        _contact(engine, "oi")

        assert store.get_session(CONTACT).attendant == ATTENDANT_A


class TestConversationRelay:
    def test_contact_text_is_forwarded_verbatim(self, engine, store, transport) -> None:
        _in_service(engine, store)
        _contact(engine, "Preciso de AJUDA com o boleto")
        assert transport.last_text(ATTENDANT_A) == "Preciso de AJUDA com o boleto"

    def test_attendant_text_is_forwarded_to_contact(self, engine, store, transport) -> None:
        _in_service(engine, store)
        _attendant(engine, "Olá Carlos, como posso ajudar?")
        assert transport.last_text(CONTACT) == "Olá Carlos, como posso ajudar?"

    def test_media_is_forwarded(self, engine, store, transport) -> None:
        _in_service(engine, store)
        engine.handle_inbound(media_event(CONTACT, MediaKind.IMAGE, b"\x89PNG", caption="foto"))

        sent = transport.media[-1]
        assert sent["target"] == ATTENDANT_A
        assert sent["kind"] == MediaKind.IMAGE
        assert sent["data"] == b"\x89PNG"
        assert sent["caption"] == "foto"

    def test_attendant_detected_by_registry(self, engine, store, transport) -> None:
        _in_service(engine, store)
        engine.handle_inbound(text_event(ATTENDANT_A, "mensagem sem flag"))
        assert transport.last_text(CONTACT) == "mensagem sem flag"
        assert store.get_session(ATTENDANT_A) is None

    def test_relayed_messages_are_logged_both_ways(self, engine, store) -> None:
        _in_service(engine, store)
        _contact(engine, "Preciso de ajuda")
        _attendant(engine, "Claro, pode falar")
        engine.handle_inbound(media_event(CONTACT, MediaKind.IMAGE, b"\x89PNG", caption="print"))

        logged = list(reversed(store.list_messages(contact_id=CONTACT)))

        assert [m.direction for m in logged] == [
            MessageDirection.CONTACT_TO_ATTENDANT,
            MessageDirection.ATTENDANT_TO_CONTACT,
            MessageDirection.CONTACT_TO_ATTENDANT,
        ]
        assert [m.text for m in logged] == ["Preciso de ajuda", "Claro, pode falar", "print"]
        assert logged[2].content_type == "image"
        assert all(m.attendant_id == ATTENDANT_A for m in logged)
        assert logged[0].display_name == "Carlos"

    def test_commands_are_not_logged(self, engine, store) -> None:
        _in_service(engine, store)
        _contact(engine, "encerrar")
        _attendant(engine, "encerrar")

        assert store.list_messages(contact_id=CONTACT) == []

    def test_contact_close_command_is_refused(self, engine, store, transport) -> None:
        _in_service(engine, store)
        _contact(engine, "ENCERRAR")

        assert store.get_session(CONTACT).stage == Stage.IN_SERVICE
        assert "solicite ao atendente" in transport.last_text(CONTACT)
        assert EventKind.CONTACT_TRIED_CLOSE in _kinds(store)

    def test_contact_menu_command_during_service(self, engine, store, transport) -> None:
        _in_service(engine, store)
        _contact(engine, "menu")
        assert "atendimento ativo" in transport.last_text(CONTACT)
        assert store.get_session(CONTACT).attendant == ATTENDANT_A

    def test_attendant_without_service(self, engine, store, transport) -> None:
        add_attendant(store, ATTENDANT_A, "1")
        _attendant(engine, "olá")
        assert "Nenhum atendimento ativo" in transport.last_text(ATTENDANT_A)


class TestCloseHandshake:
    def test_close_request_then_decline(self, engine, store, transport) -> None:
        code = _in_service(engine, store)

        _attendant(engine, "encerrar")
        session = store.get_session(CONTACT)
        assert session.stage == Stage.AWAITING_CLOSE_CONFIRMATION
        assert session.pending_confirmation == PendingConfirmation.CLOSE_REQUESTED_BY_ATTENDANT
        assert "Tem certeza?" in transport.last_text(ATTENDANT_A)
        assert "iniciou o processo de encerramento" in transport.last_text(CONTACT)

        _attendant(engine, "nao")
        session = store.get_session(CONTACT)
        assert session.stage == Stage.IN_SERVICE
        assert session.pending_confirmation is None
        assert session.attendant == ATTENDANT_A
        assert code in transport.last_text(ATTENDANT_A)
        assert "cancelou o pedido" in transport.last_text(CONTACT)
        assert EventKind.CLOSE_DECLINED in _kinds(store)

    def test_decline_alias_with_accent(self, engine, store) -> None:
        _in_service(engine, store)
        _attendant(engine, "encerrar")
        _attendant(engine, "Não")
        assert store.get_session(CONTACT).stage == Stage.IN_SERVICE

    def test_unexpected_reply_reprompts(self, engine, store, transport) -> None:
        _in_service(engine, store)
        _attendant(engine, "encerrar")
        _attendant(engine, "talvez")

        assert store.get_session(CONTACT).stage == Stage.AWAITING_CLOSE_CONFIRMATION
        assert "*sim*" in transport.last_text(ATTENDANT_A)

    def test_contact_waiting_for_confirmation(self, engine, store, transport) -> None:
        code = _in_service(engine, store)
        _attendant(engine, "encerrar")
        _contact(engine, "e aí?")

        assert "aguardando uma confirmação" in transport.last_text(CONTACT)
        assert code in transport.last_text(CONTACT)


class TestRating:
    def _finish(self, engine, store) -> str:
        code = _in_service(engine, store)
        _attendant(engine, "encerrar")
        _attendant(engine, "sim")
        return code

    def test_manual_close_and_rating(self, engine, store, transport) -> None:
        code = self._finish(engine, store)

        assert store.get_session(CONTACT).stage == Stage.AWAITING_RATING
        assert store.get_attendant(ATTENDANT_A).busy is False
        assert store.find_record_by_code(code).ended_at is not None
        assert "Atendimento Finalizado" in transport.last_text(CONTACT)
        assert "Finalizando atendimento" in transport.texts_to(ATTENDANT_A)[-2]

        _contact(engine, "5")

        evaluation = store.list_evaluations()[0]
        assert evaluation.rating == 5
        assert evaluation.attendant_id == ATTENDANT_A
        assert evaluation.service_code == code
        assert evaluation.sector == "1"
        assert store.get_session(CONTACT).stage == Stage.IDLE
        sent = transport.texts_to(CONTACT)
        assert "avaliação de 5 estrelas" in sent[-2]
        assert "Seja bem-vindo" in sent[-1]

    def test_invalid_rating_reprompts(self, engine, store, transport) -> None:
        self._finish(engine, store)
        _contact(engine, "10")

        assert store.get_session(CONTACT).stage == Stage.AWAITING_RATING
        assert "nota válida" in transport.last_text(CONTACT)
        assert store.list_evaluations() == []

    def test_menu_cancels_rating(self, engine, store, transport) -> None:
        self._finish(engine, store)
        _contact(engine, "Menu")

        assert store.get_session(CONTACT).stage == Stage.IDLE
        assert "cancelada" in transport.texts_to(CONTACT)[-2]
        assert EventKind.RATING_CANCELLED in _kinds(store)

    def test_rating_expires_on_tick(self, engine, store, transport, clock) -> None:
        code = self._finish(engine, store)

        clock.advance(minutes=6)
        report = engine.tick()

        assert report.ratings_expired == [CONTACT]
        assert store.get_session(CONTACT).stage == Stage.IDLE
        assert store.list_evaluations() == []
        assert code in transport.last_text(CONTACT)
        assert "Tempo de avaliação esgotado" in transport.last_text(CONTACT)

    def test_new_service_after_rating(self, engine, store) -> None:
        self._finish(engine, store)
        _contact(engine, "4")
        _contact(engine, "1")

        session = store.get_session(CONTACT)
        assert session.stage == Stage.IN_SERVICE
        assert session.attendant == ATTENDANT_A
        assert len(store.list_records(contact_id=CONTACT)) == 2


class TestAttendantTransfer:
    def test_transfer_command(self, engine, store, transport) -> None:
        _in_service(engine, store)
        _attendant(engine, "/transferir 3")

        session = store.get_session(CONTACT)
        assert session.sector == "3"
        assert session.attendant is None
        assert "transferido" in transport.last_text(ATTENDANT_A)

    def test_transfer_alias(self, engine, store) -> None:
        _in_service(engine, store)
        _attendant(engine, "/transfer 4")
        assert store.get_session(CONTACT).sector == "4"

    def test_invalid_and_same_sector(self, engine, store, transport) -> None:
        _in_service(engine, store)

        _attendant(engine, "/transferir 9")
        assert "Setor inválido" in transport.last_text(ATTENDANT_A)

        _attendant(engine, "/transferir")
        assert "Setor inválido" in transport.last_text(ATTENDANT_A)

        _attendant(engine, "/transferir 1")
        assert "já está no setor" in transport.last_text(ATTENDANT_A)
        assert store.get_session(CONTACT).sector == "1"

    def test_transfer_to_closed_sector(self, engine, store, transport, clock) -> None:
        _in_service(engine, store)
        clock.now = local_time(2025, 6, 14, 10, 0)

        _attendant(engine, "/transferir 2")

        assert "fora do horário" in transport.last_text(ATTENDANT_A)
        assert store.get_session(CONTACT).sector == "1"
