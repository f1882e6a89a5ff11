"""Operações administrativas expostas ao painel.

Rejeições viram AdminOperationError com um `reason` estável, que a camada
HTTP traduz para 404/409/422.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from central_atendimento.application.audit import AuditTrail
from central_atendimento.application.matching import MatchingEngine
from central_atendimento.application.workflow import AttendanceWorkflow
from central_atendimento.domain.enums import CloseReason, EventKind, TransferResult
from central_atendimento.domain.models import Attendant, Session
from central_atendimento.domain.protocols.store import AttendanceStoreProtocol
from central_atendimento.domain.sectors import get_sector
from central_atendimento.domain.session import SessionEvent, validate_transition
from central_atendimento.observability.logging import get_logger
from central_atendimento.utils.ids import mask_id

logger = get_logger(__name__)


class AdminOperationError(Exception):
    """Operação administrativa rejeitada pelas regras do domínio."""

    NOT_FOUND_REASONS = frozenset(
        {"session_not_found", "attendant_not_found", "record_not_found"}
    )
    INVALID_INPUT_REASONS = frozenset({"invalid_sector"})

    def __init__(self, reason: str, message: str) -> None:
        super().__init__(message)
        self.reason = reason
        self.message = message


_TRANSFER_ERRORS: dict[TransferResult, tuple[str, str]] = {
    TransferResult.INVALID_SECTOR: ("invalid_sector", "Setor inválido"),
    TransferResult.SAME_SECTOR: ("same_sector", "Contato já está neste setor"),
    TransferResult.NOT_ACTIVE: ("not_active", "Atendimento não está ativo"),
    TransferResult.CONFLICT: ("conflict", "Sessão alterada concorrentemente"),
    TransferResult.OUTSIDE_HOURS: ("outside_hours", "Setor fora do horário"),
}


@dataclass(slots=True)
class AdminService:
    store: AttendanceStoreProtocol
    workflow: AttendanceWorkflow
    matcher: MatchingEngine
    audit: AuditTrail
    clock: Callable[[], datetime]

    # === Atendentes ===

    def upsert_attendant(self, attendant_id: str, name: str, sector: str) -> Attendant:
        """Cadastra ou atualiza atendente; preserva `busy` do registro atual."""
        if get_sector(sector) is None:
            raise AdminOperationError("invalid_sector", f"Setor inválido: {sector}")

        current = self.store.get_attendant(attendant_id)
        busy = current.busy if current else False
        if current and busy and current.sector != sector:
            raise AdminOperationError(
                "attendant_in_service",
                "Atendente em atendimento não pode mudar de setor",
            )

        saved = self.store.upsert_attendant(
            Attendant(attendant_id=attendant_id, name=name, sector=sector, busy=busy)
        )
        logger.info(
            "attendant_upserted",
            extra={"attendant": mask_id(attendant_id), "sector": sector, "created": not current},
        )
        if not saved.busy:
            self.matcher.try_match(sector)
        return saved

    def set_attendant_status(self, attendant_id: str, busy: bool) -> Attendant:
        """Corrige o flag `busy` respeitando a sessão realmente vinculada.

        Só aceita o valor que torna o flag coerente: livre sem sessão,
        ocupado com sessão.
        """
        attendant = self.store.get_attendant(attendant_id)
        if attendant is None:
            raise AdminOperationError("attendant_not_found", "Atendente não encontrado")

        linked = self.store.find_session_by_attendant(attendant_id)
        if not busy and linked is not None:
            raise AdminOperationError(
                "attendant_in_service", "Atendente possui atendimento ativo"
            )
        if busy and linked is None:
            raise AdminOperationError(
                "attendant_without_service", "Atendente sem atendimento não pode ficar ocupado"
            )

        self.store.set_attendant_busy(attendant_id, busy)
        attendant.busy = busy
        logger.info(
            "attendant_status_set",
            extra={"attendant": mask_id(attendant_id), "busy": busy},
        )
        if not busy:
            self.matcher.try_match(attendant.sector)
        return attendant

    def remove_attendant(self, attendant_id: str) -> None:
        attendant = self.store.get_attendant(attendant_id)
        if attendant is None:
            raise AdminOperationError("attendant_not_found", "Atendente não encontrado")
        if attendant.busy or self.store.find_session_by_attendant(attendant_id):
            raise AdminOperationError(
                "attendant_in_service", "Atendente possui atendimento ativo"
            )
        self.store.delete_attendant(attendant_id)
        logger.info("attendant_removed", extra={"attendant": mask_id(attendant_id)})

    # === Sessões ===

    def force_close_session(self, contact_id: str) -> None:
        """Encerra pelo painel: sem avaliação, sessão volta a Idle."""
        session = self._require_session(contact_id)
        if not session.is_active_chat:
            raise AdminOperationError("not_active", "Atendimento não está ativo")
        if not self.workflow.close(contact_id, CloseReason.ADMIN):
            raise AdminOperationError("conflict", "Atendimento já foi encerrado")

    def force_transfer_session(self, contact_id: str, target_sector: str) -> None:
        """Transferência pelo painel (sem trava de horário comercial)."""
        self._require_session(contact_id)
        result = self.workflow.transfer(contact_id, target_sector, enforce_hours=False)
        if result != TransferResult.TRANSFERRED:
            reason, message = _TRANSFER_ERRORS[result]
            raise AdminOperationError(reason, message)

    def reopen_session(self, contact_id: str, sector: str) -> Session:
        """Recoloca um contato Idle/AwaitingRating na fila de um setor."""
        if get_sector(sector) is None:
            raise AdminOperationError("invalid_sector", f"Setor inválido: {sector}")

        now = self.clock()
        session = self.store.get_session(contact_id) or Session(
            contact_id=contact_id, last_activity_at=now
        )
        if session.is_active_chat:
            raise AdminOperationError("already_active", "Atendimento já está ativo")

        ok, target, _ = validate_transition(session.stage, SessionEvent.REOPENED)
        if not ok or target is None:
            raise AdminOperationError("already_active", "Atendimento já está ativo")

        updated = session.idle(now).model_copy(update={"stage": target, "sector": sector})
        saved = self.store.save_session(updated, expected_version=session.version)
        if saved is None:
            raise AdminOperationError("conflict", "Sessão alterada concorrentemente")

        self.store.enqueue(contact_id, sector, now)
        self.audit.record(EventKind.SERVICE_REOPENED, contact_id, sector, "Reaberto pelo painel")
        self.matcher.try_match(sector)
        return self.store.get_session(contact_id) or saved

    def reset_session(self, contact_id: str) -> None:
        """Remoção administrativa da sessão (única forma de apagar uma)."""
        session = self._require_session(contact_id)
        now = self.clock()

        self.store.delete_session(contact_id)
        self.store.remove_queue_entry(contact_id)
        self.store.close_open_record(contact_id, now)
        if session.attendant:
            self.store.set_attendant_busy(session.attendant, False)

        self.audit.record(EventKind.SESSION_RESET, contact_id, session.sector, "Sessão removida")
        if session.attendant and session.sector:
            self.matcher.try_match(session.sector)

    def _require_session(self, contact_id: str) -> Session:
        session = self.store.get_session(contact_id)
        if session is None:
            raise AdminOperationError("session_not_found", "Atendimento não encontrado")
        return session
