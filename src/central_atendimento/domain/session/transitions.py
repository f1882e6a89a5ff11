"""Tabela de transições do ciclo de atendimento.

- TRANSITIONS[(stage_atual, evento)] = próximo_stage
- Par ausente da tabela = transição proibida (sem fallback "estágio desconhecido")
- Validação pura: sem side effects
"""

from __future__ import annotations

from central_atendimento.domain.session.events import SessionEvent
from central_atendimento.domain.session.states import Stage

TRANSITIONS: dict[tuple[Stage, SessionEvent], Stage] = {
    # === IDLE → ... ===
    (Stage.IDLE, SessionEvent.SECTOR_SELECTED): Stage.IN_SERVICE,
    (Stage.IDLE, SessionEvent.REOPENED): Stage.IN_SERVICE,
    # === IN_SERVICE → ... ===
    (Stage.IN_SERVICE, SessionEvent.ATTENDANT_ASSIGNED): Stage.IN_SERVICE,
    (Stage.IN_SERVICE, SessionEvent.CLOSE_REQUESTED): Stage.AWAITING_CLOSE_CONFIRMATION,
    (Stage.IN_SERVICE, SessionEvent.TRANSFERRED): Stage.IN_SERVICE,
    (Stage.IN_SERVICE, SessionEvent.CHAT_TIMEOUT): Stage.IDLE,
    (Stage.IN_SERVICE, SessionEvent.FORCE_CLOSED): Stage.IDLE,
    # === AWAITING_CLOSE_CONFIRMATION → ... ===
    (
        Stage.AWAITING_CLOSE_CONFIRMATION,
        SessionEvent.CLOSE_CONFIRMED,
    ): Stage.AWAITING_RATING,
    (
        Stage.AWAITING_CLOSE_CONFIRMATION,
        SessionEvent.CLOSE_DECLINED,
    ): Stage.IN_SERVICE,
    (
        Stage.AWAITING_CLOSE_CONFIRMATION,
        SessionEvent.ATTENDANT_ASSIGNED,
    ): Stage.IN_SERVICE,
    (
        Stage.AWAITING_CLOSE_CONFIRMATION,
        SessionEvent.TRANSFERRED,
    ): Stage.IN_SERVICE,
    (Stage.AWAITING_CLOSE_CONFIRMATION, SessionEvent.CHAT_TIMEOUT): Stage.IDLE,
    (Stage.AWAITING_CLOSE_CONFIRMATION, SessionEvent.FORCE_CLOSED): Stage.IDLE,
    # === AWAITING_RATING → ... ===
    (Stage.AWAITING_RATING, SessionEvent.RATING_SUBMITTED): Stage.IDLE,
    (Stage.AWAITING_RATING, SessionEvent.RATING_CANCELLED): Stage.IDLE,
    (Stage.AWAITING_RATING, SessionEvent.RATING_TIMEOUT): Stage.IDLE,
    (Stage.AWAITING_RATING, SessionEvent.REOPENED): Stage.IN_SERVICE,
}


class InvalidTransitionError(Exception):
    """Transição ausente da tabela."""

    def __init__(self, stage: Stage, event: SessionEvent) -> None:
        super().__init__(f"No transition from {stage} on event {event}")
        self.stage = stage
        self.event = event


def validate_transition(
    current: Stage, event: SessionEvent
) -> tuple[bool, Stage | None, str]:
    """Valida se uma transição é permitida.

    Retorna:
    - (True, next_stage, ""): transição válida
    - (False, None, motivo): transição inválida

    Nunca lança exceção; apenas valida.
    """
    next_stage = TRANSITIONS.get((current, event))
    if next_stage is None:
        return False, None, f"No transition from {current} on event {event}"
    return True, next_stage, ""


def next_stage(current: Stage, event: SessionEvent) -> Stage:
    """Retorna o próximo estágio ou lança InvalidTransitionError."""
    ok, target, _ = validate_transition(current, event)
    if not ok or target is None:
        raise InvalidTransitionError(current, event)
    return target
