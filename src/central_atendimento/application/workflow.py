"""Encerramento, transferência de setor e expiração de avaliação.

Toda escrita de sessão passa por compare-and-set de versão: quando dois
gatilhos disputam o mesmo encerramento, apenas um grava e o outro vira no-op.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, tzinfo

from central_atendimento.application.audit import AuditTrail
from central_atendimento.application.matching import MatchingEngine, queue_position
from central_atendimento.application.messages import MessageCatalog, contact_label
from central_atendimento.application.notifier import Notifier
from central_atendimento.domain.business_hours import is_open
from central_atendimento.domain.enums import (
    CloseReason,
    EventKind,
    MatchResult,
    TransferResult,
)
from central_atendimento.domain.models import Session
from central_atendimento.domain.protocols.store import AttendanceStoreProtocol
from central_atendimento.domain.sectors import get_sector, sector_name
from central_atendimento.domain.session import SessionEvent, Stage, validate_transition
from central_atendimento.observability.logging import get_logger
from central_atendimento.utils.ids import mask_id

logger = get_logger(__name__)

_WRITE_RETRIES = 3

_CLOSE_EVENTS: dict[CloseReason, SessionEvent] = {
    CloseReason.MANUAL: SessionEvent.CLOSE_CONFIRMED,
    CloseReason.INACTIVITY: SessionEvent.CHAT_TIMEOUT,
    CloseReason.ADMIN: SessionEvent.FORCE_CLOSED,
}


@dataclass(slots=True)
class AttendanceWorkflow:
    """Fluxos que encerram ou movem um atendimento em andamento."""

    store: AttendanceStoreProtocol
    notifier: Notifier
    messages: MessageCatalog
    audit: AuditTrail
    matcher: MatchingEngine
    clock: Callable[[], datetime]
    tz: tzinfo | None = None

    # === Encerramento ===

    def close(self, contact_id: str, reason: CloseReason) -> bool:
        """Encerra o atendimento; retorna False quando não há o que encerrar.

        - MANUAL: vai para AwaitingRating e pede a nota ao contato
        - INACTIVITY / ADMIN: volta direto para Idle, sem avaliação
        """
        event = _CLOSE_EVENTS[reason]
        for _ in range(_WRITE_RETRIES):
            session = self.store.get_session(contact_id)
            if session is None or not session.is_active_chat:
                return False

            ok, target, why = validate_transition(session.stage, event)
            if not ok:
                logger.info(
                    "close_not_applicable",
                    extra={"contact": mask_id(contact_id), "reason": why},
                )
                return False

            now = self.clock()
            open_record = self.store.find_open_record(contact_id)
            code = open_record.code if open_record else None
            # Entrada lida antes da gravação: uma reentrada posterior na fila tem outro seq
            entry = self.store.get_queue_entry(contact_id)

            if target == Stage.AWAITING_RATING:
                updated = session.model_copy(
                    update={
                        "stage": Stage.AWAITING_RATING,
                        "sector": None,
                        "attendant": None,
                        "pending_confirmation": None,
                        "last_activity_at": now,
                        "last_service_code": code,
                        "last_attendant": session.attendant,
                        "last_sector": session.sector,
                    }
                )
            else:
                updated = session.idle(now)

            if self.store.save_session(updated, expected_version=session.version) is None:
                continue

            self._after_close(session, reason, code, now, entry.seq if entry else None)
            return True

        logger.warning("close_conflict_retries_exhausted", extra={"contact": mask_id(contact_id)})
        return False

    def _after_close(
        self,
        session: Session,
        reason: CloseReason,
        code: str | None,
        now: datetime,
        queue_seq: int | None = None,
    ) -> None:
        closed = self.store.close_open_record(session.contact_id, now)
        if closed is not None:
            code = closed.code
        if queue_seq is not None:
            self.store.remove_queue_entry(session.contact_id, seq=queue_seq)
        if session.attendant:
            self.store.set_attendant_busy(session.attendant, False)

        self.audit.record(
            EventKind.SERVICE_CLOSED,
            session.contact_id,
            session.sector,
            f"Motivo: {reason.value}, Código: {code}",
        )

        if reason == CloseReason.MANUAL:
            contact_text = self.messages.service_finished_rating_prompt(code)
        elif reason == CloseReason.INACTIVITY:
            contact_text = self.messages.inactivity_closed(code)
        else:
            contact_text = self.messages.admin_closed(code)
        self.notifier.send(session.contact_id, contact_text)

        if session.attendant:
            self.notifier.send(
                session.attendant,
                self.messages.service_closed_attendant(
                    contact_label(session.display_name, session.contact_id),
                    code,
                    session.sector,
                ),
            )
            if session.sector:
                self.matcher.try_match(session.sector)

    # === Avaliação ===

    def expire_rating(self, session: Session) -> bool:
        """AwaitingRating sem resposta → Idle, sem Evaluation."""
        ok, _, _ = validate_transition(session.stage, SessionEvent.RATING_TIMEOUT)
        if not ok:
            return False

        saved = self.store.save_session(
            session.idle(self.clock()), expected_version=session.version
        )
        if saved is None:
            return False

        self.audit.record(
            EventKind.RATING_EXPIRED,
            session.contact_id,
            session.last_sector,
            f"Avaliação encerrada por inatividade. Código: {session.last_service_code}",
        )
        self.notifier.send(
            session.contact_id, self.messages.rating_expired(session.last_service_code)
        )
        return True

    # === Transferência ===

    def transfer(
        self,
        contact_id: str,
        target_sector: str,
        *,
        requested_by: str | None = None,
        enforce_hours: bool = True,
    ) -> TransferResult:
        """Move a sessão para outro setor e a recoloca na fila.

        requested_by: atendente que pediu (None = operação administrativa).
        """
        sector = get_sector(target_sector)
        if sector is None:
            return TransferResult.INVALID_SECTOR

        session = self.store.get_session(contact_id)
        if session is None or not session.is_active_chat:
            return TransferResult.NOT_ACTIVE
        if requested_by is not None and session.attendant != requested_by:
            return TransferResult.NOT_ACTIVE
        if session.sector == sector.code:
            return TransferResult.SAME_SECTOR

        now = self.clock()
        if enforce_hours and not is_open(sector, now, self.tz):
            return TransferResult.OUTSIDE_HOURS

        ok, target, why = validate_transition(session.stage, SessionEvent.TRANSFERRED)
        if not ok or target is None:
            logger.info("transfer_not_applicable", extra={"reason": why})
            return TransferResult.NOT_ACTIVE

        updated = session.model_copy(
            update={
                "stage": target,
                "sector": sector.code,
                "attendant": None,
                "pending_confirmation": None,
                "last_activity_at": now,
            }
        )
        if self.store.save_session(updated, expected_version=session.version) is None:
            logger.info("transfer_conflict", extra={"contact": mask_id(contact_id)})
            return TransferResult.CONFLICT

        closed = self.store.close_open_record(contact_id, now)
        code = closed.code if closed else None
        if session.attendant:
            self.store.set_attendant_busy(session.attendant, False)
        self.store.enqueue(contact_id, sector.code, now)

        self.audit.record(
            EventKind.TRANSFERRED,
            contact_id,
            sector.code,
            f"Transferido por {requested_by or 'painel'} do setor "
            f"{sector_name(session.sector)}, Código anterior: {code}",
        )
        if session.attendant:
            self.notifier.send(
                session.attendant,
                self.messages.transfer_done_attendant(
                    contact_label(session.display_name, contact_id),
                    session.sector,
                    sector.code,
                    code,
                ),
            )
        self.notifier.send(
            contact_id, self.messages.transfer_done_contact(session.sector, sector.code, code)
        )

        if self.matcher.try_match(sector.code) == MatchResult.NO_MATCH:
            position = queue_position(self.store, contact_id, sector.code)
            if position is not None:
                self.notifier.send(contact_id, self.messages.queued(sector.code, position))

        # Atendente liberado pode puxar o próximo do setor antigo
        if session.attendant and session.sector:
            self.matcher.try_match(session.sector)
        return TransferResult.TRANSFERRED
