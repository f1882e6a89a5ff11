"""Fachada do motor de atendimento.

Monta os componentes sobre um store e um transporte injetados e expõe os
pontos de entrada: evento inbound, tick, operações administrativas e
consultas para o painel.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

from central_atendimento.application.admin import AdminOperationError, AdminService
from central_atendimento.application.audit import AuditTrail
from central_atendimento.application.matching import MatchingEngine, queue_position
from central_atendimento.application.messages import MessageCatalog
from central_atendimento.application.notifier import Notifier
from central_atendimento.application.state_machine import SessionStateMachine
from central_atendimento.application.sweep import TickReport, TimeoutSweep
from central_atendimento.application.workflow import AttendanceWorkflow
from central_atendimento.config.settings import Settings, get_settings
from central_atendimento.domain.enums import MatchResult
from central_atendimento.domain.models import InboundEvent, MessageLog, ServiceEvent, ServiceRecord
from central_atendimento.domain.protocols.store import AttendanceStoreProtocol, StoreError
from central_atendimento.domain.protocols.transport import TransportProtocol
from central_atendimento.domain.sectors import SECTORS
from central_atendimento.observability.logging import get_logger
from central_atendimento.observability.timing import timed
from central_atendimento.utils.ids import mask_id, parse_service_code

logger = get_logger(__name__)

Clock = Callable[[], datetime]

STATUS_CLOSED = "Encerrado"
STATUS_ACTIVE = "Ativo"
STATUS_QUEUED = "Na Fila"

# Janela de leitura ao montar a transcrição de um atendimento
_EPISODE_SCAN = 1000


def utc_now() -> datetime:
    return datetime.now(tz=UTC)


class AttendanceEngine:
    """Ponto único de entrada do domínio de atendimento."""

    def __init__(
        self,
        store: AttendanceStoreProtocol,
        transport: TransportProtocol,
        settings: Settings | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.store = store
        self.clock: Clock = clock or utc_now
        tz = self.settings.tzinfo

        self.notifier = Notifier(transport)
        self.messages = MessageCatalog.from_settings(self.settings)
        self.audit = AuditTrail(store, self.clock)
        self.matcher = MatchingEngine(store, self.notifier, self.messages, self.audit, self.clock)
        self.workflow = AttendanceWorkflow(
            store, self.notifier, self.messages, self.audit, self.matcher, self.clock, tz
        )
        self.state_machine = SessionStateMachine(
            store,
            self.notifier,
            self.messages,
            self.audit,
            self.matcher,
            self.workflow,
            self.settings,
            self.clock,
            tz,
        )
        self.sweep = TimeoutSweep(
            store,
            self.workflow,
            self.matcher,
            self.audit,
            self.clock,
            chat_idle_timeout=timedelta(minutes=self.settings.chat_idle_timeout_minutes),
            rating_idle_timeout=timedelta(minutes=self.settings.rating_idle_timeout_minutes),
        )
        self.admin = AdminService(store, self.workflow, self.matcher, self.audit, self.clock)

    # === Gatilhos ===

    def handle_inbound(self, event: InboundEvent) -> None:
        """Processa um evento inbound; StoreError é logado e repassado."""
        try:
            self.state_machine.handle(event)
        except StoreError as e:
            logger.error(
                "inbound_event_failed",
                extra={"sender": mask_id(event.sender_id), "error": str(e)},
            )
            raise

    def tick(self) -> TickReport | None:
        """Varredura de timeouts + pareamento; nunca propaga falha do store."""
        with timed("tick"):
            try:
                return self.sweep.run()
            except StoreError as e:
                logger.error("tick_failed", extra={"error": str(e)})
                return None

    def try_match(self, sector: str) -> MatchResult:
        return self.matcher.try_match(sector)

    # === Consultas do painel ===

    def queue_snapshot(self) -> dict[str, list[dict[str, Any]]]:
        snapshot: dict[str, list[dict[str, Any]]] = {}
        for code in SECTORS:
            entries = self.store.list_queue(code)
            snapshot[code] = [
                {
                    "position": index,
                    "contact_id": entry.contact_id,
                    "enqueued_at": entry.enqueued_at.isoformat(),
                    "estimated_wait_minutes": self.messages.estimate_minutes(index),
                }
                for index, entry in enumerate(entries, start=1)
            ]
        return snapshot

    def record_status(self, code: str) -> dict[str, Any]:
        """Consulta por código: status Encerrado / Ativo / Na Fila."""
        normalized = code.strip().upper()
        record = (
            self.store.find_record_by_code(normalized)
            if parse_service_code(normalized)
            else None
        )
        if record is None:
            raise AdminOperationError("record_not_found", "Atendimento não encontrado")

        if not record.is_open:
            status = STATUS_CLOSED
        else:
            session = self.store.get_session(record.contact_id)
            status = STATUS_ACTIVE if session and session.attendant else STATUS_QUEUED
        return {
            "record": record.model_dump(mode="json"),
            "status": status,
            "messages": [m.model_dump(mode="json") for m in self._episode_messages(record)],
            "events": [e.model_dump(mode="json") for e in self._episode_events(record)],
        }

    def _episode_window(self, record: ServiceRecord) -> tuple[datetime, datetime]:
        return record.started_at, record.ended_at or self.clock()

    def _episode_messages(self, record: ServiceRecord) -> list[MessageLog]:
        start, end = self._episode_window(record)
        found = self.store.list_messages(contact_id=record.contact_id, limit=_EPISODE_SCAN)
        return sorted(
            (m for m in found if start <= m.created_at <= end), key=lambda m: m.created_at
        )

    def _episode_events(self, record: ServiceRecord) -> list[ServiceEvent]:
        start, end = self._episode_window(record)
        found = self.store.list_events(limit=_EPISODE_SCAN)
        return sorted(
            (
                e
                for e in found
                if e.contact_id == record.contact_id and start <= e.created_at <= end
            ),
            key=lambda e: e.created_at,
        )

    def messages(self, contact_id: str | None = None, limit: int = 200) -> list[MessageLog]:
        return self.store.list_messages(contact_id=contact_id, limit=limit)

    def stats(self) -> dict[str, Any]:
        now_local = self.clock().astimezone(self.settings.tzinfo)
        today = now_local.date()
        records = self.store.list_records(limit=10_000)
        services_today = sum(
            1 for r in records if r.started_at.astimezone(self.settings.tzinfo).date() == today
        )
        ratings = [e.rating for e in self.store.list_evaluations(limit=None)]
        average = round(sum(ratings) / len(ratings), 2) if ratings else None
        attendants = self.store.list_attendants()
        return {
            "services_today": services_today,
            "average_rating": average,
            "evaluations": len(ratings),
            "busy_attendants": sum(1 for a in attendants if a.busy),
            "attendants": len(attendants),
            "queued": {code: len(self.store.list_queue(code)) for code in SECTORS},
        }

    def contact_queue_position(self, contact_id: str, sector: str) -> int | None:
        return queue_position(self.store, contact_id, sector)
