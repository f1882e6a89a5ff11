"""Trilha de auditoria e transcrição dos atendimentos (append-only, nunca decide nada)."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from central_atendimento.domain.enums import EventKind, MessageDirection
from central_atendimento.domain.models import (
    Content,
    MediaContent,
    MessageLog,
    ServiceEvent,
    TextContent,
)
from central_atendimento.domain.protocols.store import AttendanceStoreProtocol, StoreError
from central_atendimento.observability.logging import get_logger
from central_atendimento.utils.ids import mask_id

logger = get_logger(__name__)


@dataclass(slots=True)
class AuditTrail:
    """Registra ServiceEvent no store e espelha no log estruturado."""

    store: AttendanceStoreProtocol
    clock: Callable[[], datetime]

    def record(
        self,
        kind: EventKind,
        contact_id: str,
        sector: str | None = None,
        details: str | None = None,
    ) -> None:
        event = ServiceEvent(
            kind=kind,
            contact_id=contact_id,
            sector=sector,
            details=details,
            created_at=self.clock(),
        )
        logger.info(
            kind.value,
            extra={"contact": mask_id(contact_id), "sector": sector},
        )
        try:
            self.store.record_event(event)
        except StoreError as e:
            # Auditoria perdida não pode desfazer a transição já gravada
            logger.warning(
                "audit_event_dropped",
                extra={"kind": kind.value, "error": str(e)},
            )

    def record_message(
        self,
        contact_id: str,
        attendant_id: str | None,
        direction: MessageDirection,
        content: Content,
        display_name: str | None = None,
    ) -> None:
        """Guarda a mensagem repassada na transcrição (texto ou legenda da mídia)."""
        if isinstance(content, TextContent):
            content_type, text = "text", content.text
        else:
            assert isinstance(content, MediaContent)
            content_type, text = content.kind.value, content.caption
        message = MessageLog(
            contact_id=contact_id,
            attendant_id=attendant_id,
            direction=direction,
            content_type=content_type,
            text=text,
            display_name=display_name,
            created_at=self.clock(),
        )
        try:
            self.store.add_message(message)
        except StoreError as e:
            logger.warning(
                "message_log_dropped",
                extra={"contact": mask_id(contact_id), "error": str(e)},
            )
