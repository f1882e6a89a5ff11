"""Modelos de domínio (contratos principais do atendimento)."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field

from central_atendimento.domain.enums import (
    EventKind,
    MediaKind,
    MessageDirection,
    PendingConfirmation,
)
from central_atendimento.domain.session.states import ACTIVE_CHAT_STAGES, Stage


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


class TextContent(BaseModel):
    """Mensagem de texto."""

    model_config = ConfigDict(frozen=True)

    type: Literal["text"] = "text"
    text: str


class MediaContent(BaseModel):
    """Mensagem de mídia (bytes já baixados pela camada de transporte)."""

    model_config = ConfigDict(frozen=True, ser_json_bytes="base64", val_json_bytes="base64")

    type: Literal["media"] = "media"
    kind: MediaKind
    data: bytes
    caption: str | None = None
    mime_type: str | None = None
    filename: str | None = None


Content = Annotated[TextContent | MediaContent, Field(discriminator="type")]


class InboundEvent(BaseModel):
    """Evento recebido do transporte (cliente ou atendente)."""

    sender_id: str
    content: Content
    display_name: str | None = None
    is_from_known_attendant: bool | None = None
    message_id: str | None = None

    @property
    def text(self) -> str:
        """Texto normalizado (minúsculo, sem bordas) usado para comandos."""
        if isinstance(self.content, TextContent):
            return self.content.text.strip().lower()
        return ""


class Session(BaseModel):
    """Estado do contato no ciclo de atendimento (chave = contact_id).

    Invariantes:
    - attendant != None ⇒ stage ∈ {InService, AwaitingCloseConfirmation}
    - stage == Idle ⇒ sector, attendant e pending_confirmation são None
    - version é incrementada pelo store a cada escrita (compare-and-set)
    """

    contact_id: str
    stage: Stage = Stage.IDLE
    sector: str | None = None
    attendant: str | None = None
    pending_confirmation: PendingConfirmation | None = None
    last_activity_at: datetime = Field(default_factory=_utcnow)
    display_name: str | None = None
    version: int = 0

    # Último episódio (usado na avaliação e nas mensagens de expiração)
    last_service_code: str | None = None
    last_attendant: str | None = None
    last_sector: str | None = None

    @property
    def is_active_chat(self) -> bool:
        return self.stage in ACTIVE_CHAT_STAGES

    @property
    def is_queued(self) -> bool:
        return self.stage == Stage.IN_SERVICE and self.attendant is None

    def idle(self, now: datetime) -> Session:
        """Cópia em IDLE com todos os campos de atendimento limpos."""
        return self.model_copy(
            update={
                "stage": Stage.IDLE,
                "sector": None,
                "attendant": None,
                "pending_confirmation": None,
                "last_activity_at": now,
                "last_service_code": None,
                "last_attendant": None,
                "last_sector": None,
            }
        )

    def invariant_violations(self) -> list[str]:
        """Lista violações de invariantes (vazia = OK)."""
        errors: list[str] = []
        if self.attendant is not None and self.stage not in ACTIVE_CHAT_STAGES:
            errors.append(f"attendant set while stage={self.stage}")
        if self.stage == Stage.IDLE and (
            self.sector is not None
            or self.attendant is not None
            or self.pending_confirmation is not None
        ):
            errors.append("idle session carries service fields")
        if (
            self.pending_confirmation is not None
            and self.stage != Stage.AWAITING_CLOSE_CONFIRMATION
        ):
            errors.append(f"pending_confirmation set while stage={self.stage}")
        return errors


class QueueEntry(BaseModel):
    """Posição FIFO de um contato na fila de um setor."""

    model_config = ConfigDict(frozen=True)

    seq: int
    contact_id: str
    sector: str
    enqueued_at: datetime = Field(default_factory=_utcnow)


class Attendant(BaseModel):
    """Atendente humano vinculado a um setor."""

    attendant_id: str
    name: str
    sector: str
    busy: bool = False


class ServiceRecord(BaseModel):
    """Histórico de um episódio de atendimento (append-only)."""

    record_id: int
    code: str
    contact_id: str
    sector: str
    attendant_id: str | None = None
    started_at: datetime
    ended_at: datetime | None = None
    duration_seconds: float | None = None

    @property
    def is_open(self) -> bool:
        return self.ended_at is None


class Evaluation(BaseModel):
    """Nota de 1 a 5 dada pelo contato após o encerramento manual."""

    model_config = ConfigDict(frozen=True)

    contact_id: str
    attendant_id: str | None = None
    sector: str | None = None
    rating: int = Field(ge=1, le=5)
    service_code: str | None = None
    comment: str = ""
    created_at: datetime = Field(default_factory=_utcnow)


class ServiceEvent(BaseModel):
    """Entrada da trilha de auditoria (nunca usada para decisão)."""

    model_config = ConfigDict(frozen=True)

    kind: EventKind
    contact_id: str
    sector: str | None = None
    details: str | None = None
    created_at: datetime = Field(default_factory=_utcnow)


class MessageLog(BaseModel):
    """Mensagem repassada entre contato e atendente (transcrição do atendimento).

    Mídia não é armazenada: fica registrado o tipo e a legenda.
    """

    model_config = ConfigDict(frozen=True)

    contact_id: str
    attendant_id: str | None = None
    direction: MessageDirection
    content_type: str  # "text" ou o MediaKind
    text: str | None = None
    display_name: str | None = None
    created_at: datetime = Field(default_factory=_utcnow)
