"""Enums de domínio para atendimento humano por setor."""

from __future__ import annotations

from enum import StrEnum


class PendingConfirmation(StrEnum):
    """Confirmações pendentes sobre uma sessão."""

    CLOSE_REQUESTED_BY_ATTENDANT = "CloseRequestedByAttendant"


class MatchResult(StrEnum):
    """Resultado de uma tentativa de pareamento fila → atendente."""

    MATCHED = "matched"
    NO_MATCH = "no_match"


class MediaKind(StrEnum):
    """Tipos de mídia encaminháveis entre cliente e atendente."""

    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    DOCUMENT = "document"
    STICKER = "sticker"


class CloseReason(StrEnum):
    """Motivo do encerramento de um atendimento."""

    MANUAL = "manual"
    INACTIVITY = "inactivity"
    TRANSFER = "transfer"
    ADMIN = "admin"


class EventKind(StrEnum):
    """Tipos de evento da trilha de auditoria."""

    QUEUE_JOINED = "queue_joined"
    QUEUE_PURGED = "queue_purged"
    SERVICE_STARTED = "service_started"
    SERVICE_CLOSED = "service_closed"
    CLOSE_REQUESTED = "close_requested"
    CLOSE_DECLINED = "close_declined"
    TRANSFERRED = "transferred"
    RATING_RECEIVED = "rating_received"
    RATING_EXPIRED = "rating_expired"
    RATING_CANCELLED = "rating_cancelled"
    INACTIVITY_DETECTED = "inactivity_detected"
    SERVICE_REOPENED = "service_reopened"
    SESSION_RESET = "session_reset"
    CONTACT_TRIED_CLOSE = "contact_tried_close"
    STATE_REPAIRED = "state_repaired"


class TransferResult(StrEnum):
    """Resultado de uma solicitação de transferência de setor."""

    TRANSFERRED = "transferred"
    INVALID_SECTOR = "invalid_sector"
    SAME_SECTOR = "same_sector"
    OUTSIDE_HOURS = "outside_hours"
    NOT_ACTIVE = "not_active"
    CONFLICT = "conflict"


class MessageDirection(StrEnum):
    """Sentido de uma mensagem repassada pelo motor."""

    CONTACT_TO_ATTENDANT = "contact_to_attendant"
    ATTENDANT_TO_CONTACT = "attendant_to_contact"
