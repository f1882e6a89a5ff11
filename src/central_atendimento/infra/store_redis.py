"""Implementação do store de atendimento usando Redis (produção).

Layout de chaves (prefixo configurável, padrão "atd:"):
- session:{contact}      JSON da Session       | sessions (SET de contatos)
- queue:{sector}         ZSET contato → seq    | queue:index (HASH contato → JSON)
- queue:seq              contador da fila
- attendant:{id}         JSON do Attendant     | attendants (SET de ids)
- record:{id}            JSON do ServiceRecord | record:seq, records (ZSET)
- record:code            HASH código → id      | record:open (HASH contato → id)
- evaluations           LIST (mais recente primeiro, sem corte: base da média)
- events                LIST (mais recente primeiro, com LTRIM)
- messages              LIST global | messages:{contact} (ambas com LTRIM)

Compare-and-set via WATCH/MULTI: WatchError = outro gatilho venceu a corrida.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from datetime import datetime
from typing import Any, TypeVar

from redis.exceptions import WatchError

from central_atendimento.domain.models import (
    Attendant,
    Evaluation,
    MessageLog,
    QueueEntry,
    ServiceEvent,
    ServiceRecord,
    Session,
)
from central_atendimento.domain.protocols.store import AttendanceStoreProtocol, StoreError
from central_atendimento.domain.session.states import Stage
from central_atendimento.observability.logging import get_logger
from central_atendimento.utils.ids import mask_id, service_code

logger: logging.Logger = get_logger(__name__)

T = TypeVar("T")

_MAX_RETRIES = 5


def _text(payload: Any) -> str | None:
    if payload is None:
        return None
    if isinstance(payload, bytes):
        return payload.decode("utf-8")
    return str(payload)


class RedisAttendanceStore(AttendanceStoreProtocol):
    """Armazenamento em Redis para produção (instância única do motor)."""

    def __init__(
        self,
        redis_client: Any,
        prefix: str = "atd:",
        history_max_entries: int = 5000,
    ) -> None:
        self._redis = redis_client
        self._prefix = prefix
        self._history_max = history_max_entries

    def _key(self, *parts: str) -> str:
        return self._prefix + ":".join(parts)

    def _call(self, operation: str, fn: Callable[[], T]) -> T:
        """Executa operação convertendo falhas do backend em StoreError."""
        try:
            return fn()
        except StoreError:
            raise
        except Exception as e:  # pragma: no cover - log + wrap
            logger.error(
                "Redis operation failed",
                extra={"operation": operation, "error": type(e).__name__},
            )
            raise StoreError(f"Redis {operation} failed: {e}") from e

    # === Sessions ===

    def get_session(self, contact_id: str) -> Session | None:
        def _get() -> Session | None:
            payload = _text(self._redis.get(self._key("session", contact_id)))
            return Session.model_validate_json(payload) if payload else None

        return self._call("get_session", _get)

    def list_sessions(self, stages: Iterable[Stage] | None = None) -> list[Session]:
        wanted = set(stages) if stages is not None else None

        def _list() -> list[Session]:
            contacts = sorted(_text(c) for c in self._redis.smembers(self._key("sessions")))
            if not contacts:
                return []
            payloads = self._redis.mget([self._key("session", c) for c in contacts])
            sessions = [Session.model_validate_json(_text(p)) for p in payloads if p]
            return [s for s in sessions if wanted is None or s.stage in wanted]

        return self._call("list_sessions", _list)

    def save_session(
        self, session: Session, *, expected_version: int | None = None
    ) -> Session | None:
        key = self._key("session", session.contact_id)

        def _save() -> Session | None:
            for _ in range(_MAX_RETRIES):
                with self._redis.pipeline() as pipe:
                    try:
                        pipe.watch(key)
                        raw = _text(pipe.get(key))
                        current_version = (
                            Session.model_validate_json(raw).version if raw else 0
                        )
                        if expected_version is not None and current_version != expected_version:
                            pipe.unwatch()
                            return None
                        stored = session.model_copy(update={"version": current_version + 1})
                        pipe.multi()
                        pipe.set(key, stored.model_dump_json())
                        pipe.sadd(self._key("sessions"), session.contact_id)
                        pipe.execute()
                        return stored
                    except WatchError:
                        if expected_version is not None:
                            return None
            logger.warning(
                "session_save_retries_exhausted",
                extra={"contact": mask_id(session.contact_id)},
            )
            return None

        return self._call("save_session", _save)

    def delete_session(self, contact_id: str) -> bool:
        def _delete() -> bool:
            pipe = self._redis.pipeline()
            pipe.delete(self._key("session", contact_id))
            pipe.srem(self._key("sessions"), contact_id)
            deleted, _ = pipe.execute()
            return bool(deleted)

        return self._call("delete_session", _delete)

    def find_session_by_attendant(self, attendant_id: str) -> Session | None:
        for session in self.list_sessions():
            if session.attendant == attendant_id:
                return session
        return None

    # === Queue ===

    def enqueue(self, contact_id: str, sector: str, now: datetime) -> QueueEntry:
        index_key = self._key("queue", "index")

        def _enqueue() -> QueueEntry:
            while True:
                with self._redis.pipeline() as pipe:
                    try:
                        pipe.watch(index_key)
                        raw = _text(pipe.hget(index_key, contact_id))
                        existing = QueueEntry.model_validate_json(raw) if raw else None
                        if existing is not None and existing.sector == sector:
                            pipe.unwatch()
                            return existing
                        seq = int(self._redis.incr(self._key("queue", "seq")))
                        entry = QueueEntry(
                            seq=seq, contact_id=contact_id, sector=sector, enqueued_at=now
                        )
                        pipe.multi()
                        if existing is not None:
                            pipe.zrem(self._key("queue", existing.sector), contact_id)
                        pipe.zadd(self._key("queue", sector), {contact_id: seq})
                        pipe.hset(index_key, contact_id, entry.model_dump_json())
                        pipe.execute()
                        return entry
                    except WatchError:
                        continue

        return self._call("enqueue", _enqueue)

    def list_queue(self, sector: str) -> list[QueueEntry]:
        def _list() -> list[QueueEntry]:
            contacts = [_text(c) for c in self._redis.zrange(self._key("queue", sector), 0, -1)]
            if not contacts:
                return []
            payloads = self._redis.hmget(self._key("queue", "index"), contacts)
            entries = [QueueEntry.model_validate_json(_text(p)) for p in payloads if p]
            return sorted((e for e in entries if e.sector == sector), key=lambda e: e.seq)

        return self._call("list_queue", _list)

    def get_queue_entry(self, contact_id: str) -> QueueEntry | None:
        def _get() -> QueueEntry | None:
            raw = _text(self._redis.hget(self._key("queue", "index"), contact_id))
            return QueueEntry.model_validate_json(raw) if raw else None

        return self._call("get_queue_entry", _get)

    def remove_queue_entry(self, contact_id: str, *, seq: int | None = None) -> bool:
        index_key = self._key("queue", "index")

        def _remove() -> bool:
            with self._redis.pipeline() as pipe:
                try:
                    pipe.watch(index_key)
                    raw = _text(pipe.hget(index_key, contact_id))
                    if not raw:
                        pipe.unwatch()
                        return False
                    entry = QueueEntry.model_validate_json(raw)
                    if seq is not None and entry.seq != seq:
                        pipe.unwatch()
                        return False
                    pipe.multi()
                    pipe.hdel(index_key, contact_id)
                    pipe.zrem(self._key("queue", entry.sector), contact_id)
                    pipe.execute()
                    return True
                except WatchError:
                    return False

        return self._call("remove_queue_entry", _remove)

    # === Attendants ===

    def upsert_attendant(self, attendant: Attendant) -> Attendant:
        def _upsert() -> Attendant:
            pipe = self._redis.pipeline()
            pipe.set(self._key("attendant", attendant.attendant_id), attendant.model_dump_json())
            pipe.sadd(self._key("attendants"), attendant.attendant_id)
            pipe.execute()
            return attendant

        return self._call("upsert_attendant", _upsert)

    def get_attendant(self, attendant_id: str) -> Attendant | None:
        def _get() -> Attendant | None:
            raw = _text(self._redis.get(self._key("attendant", attendant_id)))
            return Attendant.model_validate_json(raw) if raw else None

        return self._call("get_attendant", _get)

    def list_attendants(self, sector: str | None = None) -> list[Attendant]:
        def _list() -> list[Attendant]:
            ids = sorted(_text(i) for i in self._redis.smembers(self._key("attendants")))
            if not ids:
                return []
            payloads = self._redis.mget([self._key("attendant", i) for i in ids])
            found = [Attendant.model_validate_json(_text(p)) for p in payloads if p]
            return [a for a in found if sector is None or a.sector == sector]

        return self._call("list_attendants", _list)

    def delete_attendant(self, attendant_id: str) -> bool:
        def _delete() -> bool:
            pipe = self._redis.pipeline()
            pipe.delete(self._key("attendant", attendant_id))
            pipe.srem(self._key("attendants"), attendant_id)
            deleted, _ = pipe.execute()
            return bool(deleted)

        return self._call("delete_attendant", _delete)

    def find_free_attendant(self, sector: str) -> Attendant | None:
        for attendant in self.list_attendants(sector):
            if not attendant.busy:
                return attendant
        return None

    def set_attendant_busy(
        self, attendant_id: str, busy: bool, *, expected: bool | None = None
    ) -> bool:
        key = self._key("attendant", attendant_id)

        def _set() -> bool:
            with self._redis.pipeline() as pipe:
                try:
                    pipe.watch(key)
                    raw = _text(pipe.get(key))
                    if not raw:
                        pipe.unwatch()
                        return False
                    attendant = Attendant.model_validate_json(raw)
                    if expected is not None and attendant.busy != expected:
                        pipe.unwatch()
                        return False
                    attendant.busy = busy
                    pipe.multi()
                    pipe.set(key, attendant.model_dump_json())
                    pipe.execute()
                    return True
                except WatchError:
                    return False

        return self._call("set_attendant_busy", _set)

    def claim(self, entry: QueueEntry, attendant_id: str) -> bool:
        index_key = self._key("queue", "index")
        attendant_key = self._key("attendant", attendant_id)

        def _claim() -> bool:
            with self._redis.pipeline() as pipe:
                try:
                    pipe.watch(index_key, attendant_key)
                    raw_entry = _text(pipe.hget(index_key, entry.contact_id))
                    raw_attendant = _text(pipe.get(attendant_key))
                    if not raw_entry or not raw_attendant:
                        pipe.unwatch()
                        return False
                    current = QueueEntry.model_validate_json(raw_entry)
                    attendant = Attendant.model_validate_json(raw_attendant)
                    if current.seq != entry.seq or attendant.busy:
                        pipe.unwatch()
                        return False
                    attendant.busy = True
                    pipe.multi()
                    pipe.hdel(index_key, entry.contact_id)
                    pipe.zrem(self._key("queue", current.sector), entry.contact_id)
                    pipe.set(attendant_key, attendant.model_dump_json())
                    pipe.execute()
                    return True
                except WatchError:
                    return False

        return self._call("claim", _claim)

    # === Service records ===

    def open_record(
        self,
        contact_id: str,
        sector: str,
        attendant_id: str | None,
        started_at: datetime,
    ) -> ServiceRecord:
        dangling = self.close_open_record(contact_id, started_at)
        if dangling is not None:
            logger.warning(
                "dangling_open_record_closed",
                extra={"contact": mask_id(contact_id), "code": dangling.code},
            )

        def _open() -> ServiceRecord:
            record_id = int(self._redis.incr(self._key("record", "seq")))
            record = ServiceRecord(
                record_id=record_id,
                code=service_code(record_id, started_at.year),
                contact_id=contact_id,
                sector=sector,
                attendant_id=attendant_id,
                started_at=started_at,
            )
            pipe = self._redis.pipeline()
            pipe.set(self._key("record", str(record_id)), record.model_dump_json())
            pipe.hset(self._key("record", "code"), record.code, record_id)
            pipe.hset(self._key("record", "open"), contact_id, record_id)
            pipe.zadd(self._key("records"), {str(record_id): record_id})
            pipe.execute()
            return record

        return self._call("open_record", _open)

    def close_open_record(
        self, contact_id: str, ended_at: datetime, *, sector: str | None = None
    ) -> ServiceRecord | None:
        open_key = self._key("record", "open")

        def _close() -> ServiceRecord | None:
            for _ in range(_MAX_RETRIES):
                with self._redis.pipeline() as pipe:
                    try:
                        pipe.watch(open_key)
                        record_id = _text(pipe.hget(open_key, contact_id))
                        if not record_id:
                            pipe.unwatch()
                            return None
                        raw = _text(pipe.get(self._key("record", record_id)))
                        if not raw:
                            pipe.unwatch()
                            return None
                        record = ServiceRecord.model_validate_json(raw)
                        if sector is not None and record.sector != sector:
                            pipe.unwatch()
                            return None
                        record.ended_at = ended_at
                        record.duration_seconds = (ended_at - record.started_at).total_seconds()
                        pipe.multi()
                        pipe.set(self._key("record", record_id), record.model_dump_json())
                        pipe.hdel(open_key, contact_id)
                        pipe.execute()
                        return record
                    except WatchError:
                        continue
            return None

        return self._call("close_open_record", _close)

    def find_open_record(
        self, contact_id: str, sector: str | None = None
    ) -> ServiceRecord | None:
        def _find() -> ServiceRecord | None:
            record_id = _text(self._redis.hget(self._key("record", "open"), contact_id))
            if not record_id:
                return None
            raw = _text(self._redis.get(self._key("record", record_id)))
            record = ServiceRecord.model_validate_json(raw) if raw else None
            if record is None or (sector is not None and record.sector != sector):
                return None
            return record

        return self._call("find_open_record", _find)

    def list_open_records(self) -> list[ServiceRecord]:
        def _list() -> list[ServiceRecord]:
            ids = [_text(i) for i in self._redis.hvals(self._key("record", "open"))]
            if not ids:
                return []
            payloads = self._redis.mget([self._key("record", i) for i in ids])
            records = [ServiceRecord.model_validate_json(_text(p)) for p in payloads if p]
            return [r for r in records if r.is_open]

        return self._call("list_open_records", _list)

    def find_record_by_code(self, code: str) -> ServiceRecord | None:
        def _find() -> ServiceRecord | None:
            record_id = _text(self._redis.hget(self._key("record", "code"), code))
            if not record_id:
                return None
            raw = _text(self._redis.get(self._key("record", record_id)))
            return ServiceRecord.model_validate_json(raw) if raw else None

        return self._call("find_record_by_code", _find)

    def list_records(
        self,
        *,
        contact_id: str | None = None,
        attendant_id: str | None = None,
        limit: int = 200,
    ) -> list[ServiceRecord]:
        def _list() -> list[ServiceRecord]:
            ids = [
                _text(i)
                for i in self._redis.zrevrange(self._key("records"), 0, self._history_max - 1)
            ]
            if not ids:
                return []
            payloads = self._redis.mget([self._key("record", i) for i in ids])
            records = [ServiceRecord.model_validate_json(_text(p)) for p in payloads if p]
            filtered = [
                r
                for r in records
                if (contact_id is None or r.contact_id == contact_id)
                and (attendant_id is None or r.attendant_id == attendant_id)
            ]
            return filtered[:limit]

        return self._call("list_records", _list)

    # === Evaluations / events ===

    def _push(self, payload: str, *list_keys: str, trim: bool = True) -> None:
        pipe = self._redis.pipeline()
        for key in list_keys:
            pipe.lpush(key, payload)
            if trim:
                pipe.ltrim(key, 0, self._history_max - 1)
        pipe.execute()

    def add_evaluation(self, evaluation: Evaluation) -> None:
        self._call(
            "add_evaluation",
            lambda: self._push(evaluation.model_dump_json(), self._key("evaluations"), trim=False),
        )

    def list_evaluations(self, limit: int | None = 200) -> list[Evaluation]:
        def _list() -> list[Evaluation]:
            stop = -1 if limit is None else limit - 1
            raw = self._redis.lrange(self._key("evaluations"), 0, stop)
            return [Evaluation.model_validate_json(_text(p)) for p in raw]

        return self._call("list_evaluations", _list)

    def record_event(self, event: ServiceEvent) -> None:
        self._call(
            "record_event", lambda: self._push(event.model_dump_json(), self._key("events"))
        )

    def list_events(self, limit: int = 200) -> list[ServiceEvent]:
        def _list() -> list[ServiceEvent]:
            raw = self._redis.lrange(self._key("events"), 0, limit - 1)
            return [ServiceEvent.model_validate_json(_text(p)) for p in raw]

        return self._call("list_events", _list)

    # === Message log ===

    def add_message(self, message: MessageLog) -> None:
        self._call(
            "add_message",
            lambda: self._push(
                message.model_dump_json(),
                self._key("messages"),
                self._key("messages", message.contact_id),
            ),
        )

    def list_messages(
        self, *, contact_id: str | None = None, limit: int = 200
    ) -> list[MessageLog]:
        key = self._key("messages", contact_id) if contact_id else self._key("messages")

        def _list() -> list[MessageLog]:
            raw = self._redis.lrange(key, 0, limit - 1)
            return [MessageLog.model_validate_json(_text(p)) for p in raw]

        return self._call("list_messages", _list)
