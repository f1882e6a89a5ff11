"""Pareamento cabeça-da-fila → atendente livre, por setor.

Invariante central: nenhum atendente fica com dois contatos. O passo
"retirar da fila + marcar ocupado" é um único `store.claim`; quem perde a
corrida recebe False e desiste em silêncio.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from central_atendimento.application.audit import AuditTrail
from central_atendimento.application.messages import MessageCatalog
from central_atendimento.application.notifier import Notifier
from central_atendimento.domain.enums import EventKind, MatchResult
from central_atendimento.domain.models import Attendant, QueueEntry, Session
from central_atendimento.domain.protocols.store import AttendanceStoreProtocol
from central_atendimento.domain.session import CONNECTABLE_STAGES, SessionEvent, next_stage
from central_atendimento.observability.logging import get_logger
from central_atendimento.utils.ids import mask_id

logger = get_logger(__name__)

_ASSIGN_RETRIES = 3


def queue_position(store: AttendanceStoreProtocol, contact_id: str, sector: str) -> int | None:
    """Posição 1-based do contato na fila do setor (None se fora da fila)."""
    for index, entry in enumerate(store.list_queue(sector), start=1):
        if entry.contact_id == contact_id:
            return index
    return None


def _is_waiting(session: Session | None, sector: str) -> bool:
    return (
        session is not None
        and session.stage in CONNECTABLE_STAGES
        and session.attendant is None
        and session.sector == sector
    )


@dataclass(slots=True)
class MatchingEngine:
    """Tenta conectar o próximo da fila; seguro para chamadas repetidas."""

    store: AttendanceStoreProtocol
    notifier: Notifier
    messages: MessageCatalog
    audit: AuditTrail
    clock: Callable[[], datetime]

    def try_match(self, sector: str) -> MatchResult:
        # Cada volta remove uma entrada (purga ou claim), então o laço termina
        while True:
            entries = self.store.list_queue(sector)
            if not entries:
                return MatchResult.NO_MATCH

            attendant = self.store.find_free_attendant(sector)
            if attendant is None:
                return MatchResult.NO_MATCH

            head = entries[0]
            session = self.store.get_session(head.contact_id)
            if not _is_waiting(session, sector):
                self._purge(head, session)
                continue

            if not self.store.claim(head, attendant.attendant_id):
                logger.debug(
                    "match_claim_lost",
                    extra={"contact": mask_id(head.contact_id), "sector": sector},
                )
                return MatchResult.NO_MATCH

            assigned = self._assign(head, attendant)
            if assigned is None:
                self.store.set_attendant_busy(attendant.attendant_id, False, expected=True)
                continue

            self._start_service(assigned, attendant)
            return MatchResult.MATCHED

    def _purge(self, entry: QueueEntry, session: Session | None) -> None:
        removed = self.store.remove_queue_entry(entry.contact_id, seq=entry.seq)
        stage = session.stage.value if session else None
        logger.warning(
            "stale_queue_entry_purged",
            extra={
                "contact": mask_id(entry.contact_id),
                "sector": entry.sector,
                "stage": stage,
                "removed": removed,
            },
        )
        if removed:
            self.audit.record(
                EventKind.QUEUE_PURGED,
                entry.contact_id,
                entry.sector,
                f"Removido da fila. Etapa atual: {stage}",
            )

    def _assign(self, entry: QueueEntry, attendant: Attendant) -> Session | None:
        """Grava attendant na sessão via compare-and-set (relendo em conflito)."""
        for _ in range(_ASSIGN_RETRIES):
            session = self.store.get_session(entry.contact_id)
            if not _is_waiting(session, entry.sector):
                logger.info(
                    "match_session_changed",
                    extra={"contact": mask_id(entry.contact_id), "sector": entry.sector},
                )
                return None
            assert session is not None

            updated = session.model_copy(
                update={
                    "stage": next_stage(session.stage, SessionEvent.ATTENDANT_ASSIGNED),
                    "attendant": attendant.attendant_id,
                    "pending_confirmation": None,
                    "last_activity_at": self.clock(),
                }
            )
            saved = self.store.save_session(updated, expected_version=session.version)
            if saved is not None:
                return saved
        logger.warning(
            "match_session_conflict",
            extra={"contact": mask_id(entry.contact_id), "sector": entry.sector},
        )
        return None

    def _start_service(self, session: Session, attendant: Attendant) -> None:
        sector = session.sector or attendant.sector
        record = self.store.open_record(
            session.contact_id, sector, attendant.attendant_id, self.clock()
        )
        self.audit.record(
            EventKind.SERVICE_STARTED,
            session.contact_id,
            sector,
            f"Atendente: {attendant.attendant_id}, Código: {record.code}",
        )
        self.notifier.send(
            session.contact_id,
            self.messages.service_started_contact(record.code, sector, attendant.name),
        )
        self.notifier.send(
            attendant.attendant_id,
            self.messages.service_started_attendant(
                record.code, sector, session.display_name, session.contact_id
            ),
        )
