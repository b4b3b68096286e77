"""
Máquina de estados de la reserva.

Única fuente de verdad de las transiciones permitidas. El servicio de reservas
valida aquí antes de tocar nada.
"""
from typing import Dict, FrozenSet, List, Optional

from app.core.exceptions import IllegalTransitionError
from app.models.booking import BookingStatus

PENDING = BookingStatus.PENDING.value
CONFIRMED = BookingStatus.CONFIRMED.value
IN_PROGRESS = BookingStatus.IN_PROGRESS.value
COMPLETED = BookingStatus.COMPLETED.value
CANCELLED = BookingStatus.CANCELLED.value

INITIAL_STATE = PENDING
TERMINAL_STATES: FrozenSet[str] = frozenset({COMPLETED, CANCELLED})

BOOKING_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    PENDING: frozenset({CONFIRMED, CANCELLED}),
    CONFIRMED: frozenset({IN_PROGRESS, CANCELLED}),
    # Con el viaje empezado solo se puede completar
    IN_PROGRESS: frozenset({COMPLETED}),
    COMPLETED: frozenset(),
    CANCELLED: frozenset(),
}

TRANSITION_ACTIONS: Dict[tuple, str] = {
    (PENDING, CONFIRMED): "Confirm",
    (PENDING, CANCELLED): "Cancel",
    (CONFIRMED, IN_PROGRESS): "Start Transit",
    (CONFIRMED, CANCELLED): "Cancel",
    (IN_PROGRESS, COMPLETED): "Complete",
}


def can_transition(current: str, target: str) -> bool:
    return target in BOOKING_TRANSITIONS.get(current, frozenset())


def get_allowed_transitions(current: str) -> List[str]:
    return sorted(BOOKING_TRANSITIONS.get(current, frozenset()))


def get_transition_action(current: str, target: str) -> str:
    return TRANSITION_ACTIONS.get((current, target), f"{current} -> {target}")


def is_terminal(status: str) -> bool:
    return status in TERMINAL_STATES


def validate_transition(current: str, target: str, reason: Optional[str] = None) -> None:
    """Lanza IllegalTransitionError si current -> target no está permitida."""
    if not can_transition(current, target):
        raise IllegalTransitionError(current, target, reason)
