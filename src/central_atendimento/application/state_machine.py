"""Máquina de estados por contato: roteia cada evento inbound.

Contato e atendente seguem caminhos distintos. Transições passam pela
tabela fechada de `domain.session.transitions`; conflitos de versão fazem a
mensagem ser abandonada (o estado gravado continua consistente).
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, tzinfo

from central_atendimento.application.audit import AuditTrail
from central_atendimento.application.matching import MatchingEngine, queue_position
from central_atendimento.application.messages import MessageCatalog, contact_label
from central_atendimento.application.notifier import Notifier
from central_atendimento.application.workflow import AttendanceWorkflow
from central_atendimento.config.settings import Settings
from central_atendimento.domain.business_hours import is_open
from central_atendimento.domain.enums import (
    CloseReason,
    EventKind,
    MatchResult,
    MessageDirection,
    PendingConfirmation,
    TransferResult,
)
from central_atendimento.domain.models import Evaluation, InboundEvent, Session
from central_atendimento.domain.protocols.store import AttendanceStoreProtocol
from central_atendimento.domain.sectors import SECTOR_CODES, get_sector
from central_atendimento.domain.session import SessionEvent, Stage, next_stage
from central_atendimento.observability.logging import get_logger
from central_atendimento.utils.ids import mask_id

logger = get_logger(__name__)

RATING_TOKENS = frozenset({"1", "2", "3", "4", "5"})

_TOUCH_RETRIES = 3


@dataclass(slots=True)
class SessionStateMachine:
    store: AttendanceStoreProtocol
    notifier: Notifier
    messages: MessageCatalog
    audit: AuditTrail
    matcher: MatchingEngine
    workflow: AttendanceWorkflow
    settings: Settings
    clock: Callable[[], datetime]
    tz: tzinfo | None = None

    def handle(self, event: InboundEvent) -> None:
        # Sem indicação do transporte, vale o cadastro de atendentes
        is_attendant = event.is_from_known_attendant
        if is_attendant is None:
            is_attendant = self.store.get_attendant(event.sender_id) is not None
        if is_attendant:
            self.handle_attendant(event)
        else:
            self.handle_contact(event)

    # === Contato ===

    def handle_contact(self, event: InboundEvent) -> None:
        session = self._load_or_create(event)
        if session is None:
            return

        if session.stage == Stage.IDLE:
            self._contact_idle(session, event)
        elif session.stage == Stage.IN_SERVICE:
            self._contact_in_service(session, event)
        elif session.stage == Stage.AWAITING_CLOSE_CONFIRMATION:
            self._touch(session)
            code = self._open_code(session)
            self.notifier.send(
                session.contact_id, self.messages.awaiting_confirmation_contact(code)
            )
        elif session.stage == Stage.AWAITING_RATING:
            self._contact_rating(session, event)

    def _load_or_create(self, event: InboundEvent) -> Session | None:
        session = self.store.get_session(event.sender_id)
        if session is not None:
            return session

        created = Session(
            contact_id=event.sender_id,
            display_name=event.display_name,
            last_activity_at=self.clock(),
        )
        saved = self.store.save_session(created, expected_version=0)
        if saved is None:
            # Outro gatilho criou a sessão entre a leitura e a escrita
            return self.store.get_session(event.sender_id)
        logger.info("session_created", extra={"contact": mask_id(event.sender_id)})
        return saved

    def _contact_idle(self, session: Session, event: InboundEvent) -> None:
        text = event.text
        sector = get_sector(text) if text in SECTOR_CODES else None
        if sector is None:
            self.notifier.send(session.contact_id, self.messages.menu())
            return

        now = self.clock()
        if not is_open(sector, now, self.tz):
            logger.info(
                "sector_closed_for_entry",
                extra={"contact": mask_id(session.contact_id), "sector": sector.code},
            )
            self.notifier.send(session.contact_id, self.messages.outside_hours(sector))
            self.notifier.send(session.contact_id, self.messages.menu())
            return

        updated = session.idle(now).model_copy(
            update={
                "stage": next_stage(session.stage, SessionEvent.SECTOR_SELECTED),
                "sector": sector.code,
                "display_name": event.display_name or session.display_name,
            }
        )
        if self.store.save_session(updated, expected_version=session.version) is None:
            logger.info("sector_selection_conflict", extra={"contact": mask_id(session.contact_id)})
            return

        # Entrada deixada por um episódio anterior não guarda posição
        self.store.remove_queue_entry(session.contact_id)
        self.store.enqueue(session.contact_id, sector.code, now)
        self.audit.record(
            EventKind.QUEUE_JOINED,
            session.contact_id,
            sector.code,
            f"Cliente escolheu setor {sector.name}",
        )

        if self.matcher.try_match(sector.code) == MatchResult.NO_MATCH:
            position = queue_position(self.store, session.contact_id, sector.code)
            if position is not None:
                self.notifier.send(session.contact_id, self.messages.queued(sector.code, position))

    def _contact_in_service(self, session: Session, event: InboundEvent) -> None:
        text = event.text
        sector = session.sector or ""
        self._touch(session)

        if session.attendant is None:
            position = queue_position(self.store, session.contact_id, sector)
            if position is None:
                # Sessão em fila sem entrada: recoloca para não ficar órfã
                self.store.enqueue(session.contact_id, sector, self.clock())
                if self.matcher.try_match(sector) == MatchResult.MATCHED:
                    return
                position = queue_position(self.store, session.contact_id, sector) or 1
            if text == self.settings.close_command:
                self.notifier.send(session.contact_id, self.messages.contact_cannot_close())
            elif text == self.settings.menu_command:
                self.notifier.send(
                    session.contact_id, self.messages.queued_menu_notice(sector, position)
                )
            else:
                self.notifier.send(
                    session.contact_id, self.messages.still_queued(sector, position)
                )
            return

        if text == self.settings.close_command:
            self.audit.record(
                EventKind.CONTACT_TRIED_CLOSE,
                session.contact_id,
                session.sector,
                "Cliente tentou usar comando encerrar em atendimento ativo",
            )
            self.notifier.send(session.contact_id, self.messages.contact_cannot_close())
            return
        if text == self.settings.menu_command:
            self.notifier.send(session.contact_id, self.messages.in_service_menu_notice(sector))
            return

        self.audit.record_message(
            session.contact_id,
            session.attendant,
            MessageDirection.CONTACT_TO_ATTENDANT,
            event.content,
            event.display_name or session.display_name,
        )
        self.notifier.forward(session.attendant, event.content)

    def _contact_rating(self, session: Session, event: InboundEvent) -> None:
        text = event.text
        if text in RATING_TOKENS:
            saved = self.store.save_session(
                session.idle(self.clock()), expected_version=session.version
            )
            if saved is None:
                return
            rating = int(text)
            self.store.add_evaluation(
                Evaluation(
                    contact_id=session.contact_id,
                    attendant_id=session.last_attendant,
                    sector=session.last_sector,
                    rating=rating,
                    service_code=session.last_service_code,
                    created_at=self.clock(),
                )
            )
            self.audit.record(
                EventKind.RATING_RECEIVED,
                session.contact_id,
                session.last_sector,
                f"Nota: {rating}, Código: {session.last_service_code}",
            )
            self.notifier.send(session.contact_id, self.messages.rating_thanks(rating))
            self.notifier.send(session.contact_id, self.messages.menu())
            return

        if text == self.settings.menu_command:
            saved = self.store.save_session(
                session.idle(self.clock()), expected_version=session.version
            )
            if saved is None:
                return
            self.audit.record(EventKind.RATING_CANCELLED, session.contact_id, session.last_sector)
            self.notifier.send(session.contact_id, self.messages.rating_cancelled())
            self.notifier.send(session.contact_id, self.messages.menu())
            return

        self.notifier.send(session.contact_id, self.messages.rating_invalid())

    # === Atendente ===

    def handle_attendant(self, event: InboundEvent) -> None:
        attendant_id = event.sender_id
        session = self.store.find_session_by_attendant(attendant_id)
        if session is None or not session.is_active_chat:
            self.notifier.send(attendant_id, self.messages.no_active_service())
            return

        text = event.text
        if session.stage == Stage.AWAITING_CLOSE_CONFIRMATION:
            self._attendant_confirmation(session, attendant_id, text)
            return

        if text == self.settings.close_command:
            self._request_close(session, attendant_id)
            return

        parts = text.split(maxsplit=1)
        if parts and parts[0] in self.settings.transfer_tokens:
            target = parts[1].strip() if len(parts) > 1 else ""
            self._attendant_transfer(session, attendant_id, target)
            return

        self._touch(session)
        self.audit.record_message(
            session.contact_id,
            attendant_id,
            MessageDirection.ATTENDANT_TO_CONTACT,
            event.content,
            session.display_name,
        )
        self.notifier.forward(session.contact_id, event.content)

    def _request_close(self, session: Session, attendant_id: str) -> None:
        updated = session.model_copy(
            update={
                "stage": next_stage(session.stage, SessionEvent.CLOSE_REQUESTED),
                "pending_confirmation": PendingConfirmation.CLOSE_REQUESTED_BY_ATTENDANT,
                "last_activity_at": self.clock(),
            }
        )
        if self.store.save_session(updated, expected_version=session.version) is None:
            logger.info("close_request_conflict", extra={"contact": mask_id(session.contact_id)})
            return

        code = self._open_code(session)
        self.audit.record(
            EventKind.CLOSE_REQUESTED,
            session.contact_id,
            session.sector,
            f"Atendente {attendant_id} iniciou pedido de encerramento. Código: {code}",
        )
        name = contact_label(session.display_name, session.contact_id)
        self.notifier.send(attendant_id, self.messages.close_requested_attendant(name, code))
        self.notifier.send(session.contact_id, self.messages.close_requested_contact(code))

    def _attendant_confirmation(self, session: Session, attendant_id: str, text: str) -> None:
        code = self._open_code(session)
        name = contact_label(session.display_name, session.contact_id)

        if text == self.settings.confirm_command:
            self.notifier.send(attendant_id, self.messages.close_confirmed_attendant(name, code))
            self.workflow.close(session.contact_id, CloseReason.MANUAL)
            return

        if text in self.settings.decline_tokens:
            updated = session.model_copy(
                update={
                    "stage": next_stage(session.stage, SessionEvent.CLOSE_DECLINED),
                    "pending_confirmation": None,
                    "last_activity_at": self.clock(),
                }
            )
            if self.store.save_session(updated, expected_version=session.version) is None:
                return
            self.audit.record(EventKind.CLOSE_DECLINED, session.contact_id, session.sector)
            self.notifier.send(attendant_id, self.messages.close_declined_attendant(code))
            self.notifier.send(session.contact_id, self.messages.close_declined_contact(code))
            return

        self.notifier.send(attendant_id, self.messages.close_confirm_reprompt())

    def _attendant_transfer(self, session: Session, attendant_id: str, target: str) -> None:
        result = self.workflow.transfer(
            session.contact_id, target, requested_by=attendant_id, enforce_hours=True
        )
        if result == TransferResult.TRANSFERRED:
            return

        sector = get_sector(target)
        if result == TransferResult.INVALID_SECTOR or sector is None:
            reply = self.messages.transfer_invalid_sector()
        elif result == TransferResult.SAME_SECTOR:
            reply = self.messages.transfer_same_sector(sector.code)
        elif result == TransferResult.OUTSIDE_HOURS:
            reply = self.messages.transfer_outside_hours(sector)
        elif result == TransferResult.NOT_ACTIVE:
            reply = self.messages.no_active_service()
        else:
            reply = self.messages.transfer_failed()
        self.notifier.send(attendant_id, reply)

    # === Apoio ===

    def _open_code(self, session: Session) -> str | None:
        record = self.store.find_open_record(session.contact_id)
        return record.code if record else None

    def _touch(self, session: Session) -> None:
        """Atualiza last_activity_at sem alterar o estágio (melhor esforço)."""
        current: Session | None = session
        for _ in range(_TOUCH_RETRIES):
            if current is None or current.stage != session.stage:
                return
            updated = current.model_copy(update={"last_activity_at": self.clock()})
            if self.store.save_session(updated, expected_version=current.version) is not None:
                return
            current = self.store.get_session(session.contact_id)
