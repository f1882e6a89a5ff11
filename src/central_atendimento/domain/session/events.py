"""Eventos que disparam transições de estágio da sessão."""

from __future__ import annotations

from enum import StrEnum


class SessionEvent(StrEnum):
    """Eventos canônicos do ciclo de atendimento."""

    # === Cliente ===
    SECTOR_SELECTED = "SECTOR_SELECTED"
    """Cliente escolheu um setor válido e aberto."""

    RATING_SUBMITTED = "RATING_SUBMITTED"
    """Cliente enviou nota válida (1 a 5)."""

    RATING_CANCELLED = "RATING_CANCELLED"
    """Cliente cancelou a avaliação com o comando de menu."""

    # === Atendente ===
    CLOSE_REQUESTED = "CLOSE_REQUESTED"
    """Atendente enviou o comando de encerrar."""

    CLOSE_CONFIRMED = "CLOSE_CONFIRMED"
    """Atendente confirmou o encerramento."""

    CLOSE_DECLINED = "CLOSE_DECLINED"
    """Atendente cancelou o pedido de encerramento."""

    TRANSFERRED = "TRANSFERRED"
    """Contato movido para outro setor (volta para a fila)."""

    # === Motor ===
    ATTENDANT_ASSIGNED = "ATTENDANT_ASSIGNED"
    """Pareamento fila → atendente concluído."""

    # === Timeouts / administrativo ===
    CHAT_TIMEOUT = "CHAT_TIMEOUT"
    """Inatividade na conversa ativa."""

    RATING_TIMEOUT = "RATING_TIMEOUT"
    """Avaliação não respondida dentro do prazo."""

    FORCE_CLOSED = "FORCE_CLOSED"
    """Encerramento pelo painel administrativo."""

    REOPENED = "REOPENED"
    """Atendimento reaberto pelo painel administrativo."""
