"""Implementação do store de atendimento em memória (apenas dev/testes).

Um único RLock serializa todas as operações, o que torna cada método uma
operação atômica frente a gatilhos concorrentes (requests e tick).
"""

from __future__ import annotations

import itertools
import logging
import threading
from collections.abc import Iterable
from datetime import datetime

from central_atendimento.domain.models import (
    Attendant,
    Evaluation,
    MessageLog,
    QueueEntry,
    ServiceEvent,
    ServiceRecord,
    Session,
)
from central_atendimento.domain.protocols.store import AttendanceStoreProtocol
from central_atendimento.domain.session.states import Stage
from central_atendimento.observability.logging import get_logger
from central_atendimento.utils.ids import mask_id, service_code

logger: logging.Logger = get_logger(__name__)


class InMemoryAttendanceStore(AttendanceStoreProtocol):
    """Armazenamento em memória (não usar em produção)."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._sessions: dict[str, Session] = {}
        self._queue: dict[str, QueueEntry] = {}  # contact_id -> entrada
        self._queue_seq = itertools.count(1)
        self._attendants: dict[str, Attendant] = {}
        self._records: dict[int, ServiceRecord] = {}
        self._record_seq = itertools.count(1)
        self._evaluations: list[Evaluation] = []
        self._events: list[ServiceEvent] = []
        self._messages: list[MessageLog] = []

    # === Sessions ===

    def get_session(self, contact_id: str) -> Session | None:
        with self._lock:
            session = self._sessions.get(contact_id)
            return session.model_copy() if session else None

    def list_sessions(self, stages: Iterable[Stage] | None = None) -> list[Session]:
        wanted = set(stages) if stages is not None else None
        with self._lock:
            return [
                s.model_copy()
                for s in self._sessions.values()
                if wanted is None or s.stage in wanted
            ]

    def save_session(
        self, session: Session, *, expected_version: int | None = None
    ) -> Session | None:
        with self._lock:
            current = self._sessions.get(session.contact_id)
            current_version = current.version if current else 0
            if expected_version is not None and current_version != expected_version:
                logger.debug(
                    "Session write conflict (in-memory)",
                    extra={
                        "contact": mask_id(session.contact_id),
                        "expected_version": expected_version,
                        "current_version": current_version,
                    },
                )
                return None

            stored = session.model_copy(update={"version": current_version + 1})
            self._sessions[session.contact_id] = stored
            return stored.model_copy()

    def delete_session(self, contact_id: str) -> bool:
        with self._lock:
            return self._sessions.pop(contact_id, None) is not None

    def find_session_by_attendant(self, attendant_id: str) -> Session | None:
        with self._lock:
            for session in self._sessions.values():
                if session.attendant == attendant_id:
                    return session.model_copy()
            return None

    # === Queue ===

    def enqueue(self, contact_id: str, sector: str, now: datetime) -> QueueEntry:
        with self._lock:
            existing = self._queue.get(contact_id)
            if existing is not None and existing.sector == sector:
                return existing

            entry = QueueEntry(
                seq=next(self._queue_seq),
                contact_id=contact_id,
                sector=sector,
                enqueued_at=now,
            )
            self._queue[contact_id] = entry
            logger.debug(
                "Queue entry added (in-memory)",
                extra={"contact": mask_id(contact_id), "sector": sector, "seq": entry.seq},
            )
            return entry

    def list_queue(self, sector: str) -> list[QueueEntry]:
        with self._lock:
            entries = [e for e in self._queue.values() if e.sector == sector]
        return sorted(entries, key=lambda e: e.seq)

    def get_queue_entry(self, contact_id: str) -> QueueEntry | None:
        with self._lock:
            return self._queue.get(contact_id)

    def remove_queue_entry(self, contact_id: str, *, seq: int | None = None) -> bool:
        with self._lock:
            entry = self._queue.get(contact_id)
            if entry is None or (seq is not None and entry.seq != seq):
                return False
            del self._queue[contact_id]
            return True

    # === Attendants ===

    def upsert_attendant(self, attendant: Attendant) -> Attendant:
        with self._lock:
            self._attendants[attendant.attendant_id] = attendant.model_copy()
            return attendant.model_copy()

    def get_attendant(self, attendant_id: str) -> Attendant | None:
        with self._lock:
            attendant = self._attendants.get(attendant_id)
            return attendant.model_copy() if attendant else None

    def list_attendants(self, sector: str | None = None) -> list[Attendant]:
        with self._lock:
            found = [
                a.model_copy()
                for a in self._attendants.values()
                if sector is None or a.sector == sector
            ]
        return sorted(found, key=lambda a: a.attendant_id)

    def delete_attendant(self, attendant_id: str) -> bool:
        with self._lock:
            return self._attendants.pop(attendant_id, None) is not None

    def find_free_attendant(self, sector: str) -> Attendant | None:
        for attendant in self.list_attendants(sector):
            if not attendant.busy:
                return attendant
        return None

    def set_attendant_busy(
        self, attendant_id: str, busy: bool, *, expected: bool | None = None
    ) -> bool:
        with self._lock:
            attendant = self._attendants.get(attendant_id)
            if attendant is None:
                return False
            if expected is not None and attendant.busy != expected:
                return False
            attendant.busy = busy
            return True

    def claim(self, entry: QueueEntry, attendant_id: str) -> bool:
        with self._lock:
            current = self._queue.get(entry.contact_id)
            attendant = self._attendants.get(attendant_id)
            if current is None or current.seq != entry.seq:
                return False
            if attendant is None or attendant.busy:
                return False
            del self._queue[entry.contact_id]
            attendant.busy = True
            return True

    # === Service records ===

    def open_record(
        self,
        contact_id: str,
        sector: str,
        attendant_id: str | None,
        started_at: datetime,
    ) -> ServiceRecord:
        with self._lock:
            dangling = self._find_open(contact_id, None)
            if dangling is not None:
                logger.warning(
                    "dangling_open_record_closed",
                    extra={"contact": mask_id(contact_id), "code": dangling.code},
                )
                self._close(dangling, started_at)

            record_id = next(self._record_seq)
            record = ServiceRecord(
                record_id=record_id,
                code=service_code(record_id, started_at.year),
                contact_id=contact_id,
                sector=sector,
                attendant_id=attendant_id,
                started_at=started_at,
            )
            self._records[record_id] = record
            return record.model_copy()

    def close_open_record(
        self, contact_id: str, ended_at: datetime, *, sector: str | None = None
    ) -> ServiceRecord | None:
        with self._lock:
            record = self._find_open(contact_id, sector)
            if record is None:
                return None
            return self._close(record, ended_at).model_copy()

    def find_open_record(
        self, contact_id: str, sector: str | None = None
    ) -> ServiceRecord | None:
        with self._lock:
            record = self._find_open(contact_id, sector)
            return record.model_copy() if record else None

    def list_open_records(self) -> list[ServiceRecord]:
        with self._lock:
            return [r.model_copy() for r in self._records.values() if r.is_open]

    def find_record_by_code(self, code: str) -> ServiceRecord | None:
        with self._lock:
            for record in self._records.values():
                if record.code == code:
                    return record.model_copy()
            return None

    def list_records(
        self,
        *,
        contact_id: str | None = None,
        attendant_id: str | None = None,
        limit: int = 200,
    ) -> list[ServiceRecord]:
        with self._lock:
            records = [
                r.model_copy()
                for r in self._records.values()
                if (contact_id is None or r.contact_id == contact_id)
                and (attendant_id is None or r.attendant_id == attendant_id)
            ]
        records.sort(key=lambda r: r.record_id, reverse=True)
        return records[:limit]

    def _find_open(self, contact_id: str, sector: str | None) -> ServiceRecord | None:
        for record in self._records.values():
            if (
                record.contact_id == contact_id
                and record.is_open
                and (sector is None or record.sector == sector)
            ):
                return record
        return None

    @staticmethod
    def _close(record: ServiceRecord, ended_at: datetime) -> ServiceRecord:
        record.ended_at = ended_at
        record.duration_seconds = (ended_at - record.started_at).total_seconds()
        return record

    # === Evaluations / events ===

    def add_evaluation(self, evaluation: Evaluation) -> None:
        with self._lock:
            self._evaluations.append(evaluation)

    def list_evaluations(self, limit: int | None = 200) -> list[Evaluation]:
        with self._lock:
            return list(reversed(self._evaluations))[:limit]

    def record_event(self, event: ServiceEvent) -> None:
        with self._lock:
            self._events.append(event)

    def list_events(self, limit: int = 200) -> list[ServiceEvent]:
        with self._lock:
            return list(reversed(self._events))[:limit]

    # === Message log ===

    def add_message(self, message: MessageLog) -> None:
        with self._lock:
            self._messages.append(message)

    def list_messages(
        self, *, contact_id: str | None = None, limit: int = 200
    ) -> list[MessageLog]:
        with self._lock:
            found = [
                m
                for m in reversed(self._messages)
                if contact_id is None or m.contact_id == contact_id
            ]
        return found[:limit]
