"""Estágios canônicos de uma sessão de atendimento.

Toda sessão está em exatamente um dos 4 estágios. O encerramento devolve a
sessão para IDLE (nunca apaga), preservando continuidade para novos contatos.
"""

from __future__ import annotations

from enum import StrEnum


class Stage(StrEnum):
    """4 estágios do ciclo de vida de um contato."""

    IDLE = "Idle"
    """Sem atendimento; menu de setores é exibido."""

    IN_SERVICE = "InService"
    """Na fila do setor (sem atendente) ou em conversa com atendente."""

    AWAITING_RATING = "AwaitingRating"
    """Atendimento encerrado manualmente; aguardando nota de 1 a 5."""

    AWAITING_CLOSE_CONFIRMATION = "AwaitingCloseConfirmation"
    """Atendente pediu encerramento; aguardando confirmar/cancelar."""


ACTIVE_CHAT_STAGES = frozenset({
    Stage.IN_SERVICE,
    Stage.AWAITING_CLOSE_CONFIRMATION,
})
"""Estágios tratados como conversa ativa (timeout de chat e pareamento)."""

CONNECTABLE_STAGES = ACTIVE_CHAT_STAGES
"""Estágios em que um contato da fila pode receber atendente."""
