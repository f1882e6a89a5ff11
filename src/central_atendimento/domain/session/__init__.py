"""Ciclo de atendimento — estágios, eventos e transições.

Exporta:
- Stage: 4 estágios canônicos
- SessionEvent: eventos que disparam transições
- validate_transition / next_stage: validadores puros
"""

from central_atendimento.domain.session.events import SessionEvent
from central_atendimento.domain.session.states import (
    ACTIVE_CHAT_STAGES,
    CONNECTABLE_STAGES,
    Stage,
)
from central_atendimento.domain.session.transitions import (
    TRANSITIONS,
    InvalidTransitionError,
    next_stage,
    validate_transition,
)

__all__ = [
    "Stage",
    "SessionEvent",
    "TRANSITIONS",
    "ACTIVE_CHAT_STAGES",
    "CONNECTABLE_STAGES",
    "InvalidTransitionError",
    "next_stage",
    "validate_transition",
]
