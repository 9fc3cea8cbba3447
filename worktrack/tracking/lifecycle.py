"""Execution lifecycle phases."""

from enum import Enum


class LifecycleError(Exception):
    """Invalid phase transition."""

    pass


class ExecutionPhase(str, Enum):
    """Phases of one tracked execution."""

    ACTIVE = "ACTIVE"
    RESOLVING_COMMIT_MODE = "RESOLVING_COMMIT_MODE"
    COMMITTING = "COMMITTING"
    WAITING_FOR_STRUCTURED_COMMIT = "WAITING_FOR_STRUCTURED_COMMIT"
    CAPTURING_DIFF = "CAPTURING_DIFF"
    PERSISTING = "PERSISTING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    FAILED = "FAILED"


TERMINAL_PHASES = frozenset(
    {ExecutionPhase.COMPLETED, ExecutionPhase.CANCELLED, ExecutionPhase.FAILED}
)

_EXITS = [ExecutionPhase.CANCELLED, ExecutionPhase.FAILED]

# Valid phase transitions
TRANSITIONS = {
    ExecutionPhase.ACTIVE: [ExecutionPhase.RESOLVING_COMMIT_MODE, *_EXITS],
    ExecutionPhase.RESOLVING_COMMIT_MODE: [ExecutionPhase.COMMITTING, *_EXITS],
    ExecutionPhase.COMMITTING: [
        ExecutionPhase.WAITING_FOR_STRUCTURED_COMMIT,
        ExecutionPhase.CAPTURING_DIFF,
        *_EXITS,
    ],
    ExecutionPhase.WAITING_FOR_STRUCTURED_COMMIT: [ExecutionPhase.CAPTURING_DIFF, *_EXITS],
    ExecutionPhase.CAPTURING_DIFF: [ExecutionPhase.PERSISTING, *_EXITS],
    ExecutionPhase.PERSISTING: [ExecutionPhase.COMPLETED, *_EXITS],
    ExecutionPhase.COMPLETED: [],  # Terminal
    ExecutionPhase.CANCELLED: [],  # Terminal
    ExecutionPhase.FAILED: [],  # Terminal
}


def can_transition(current: ExecutionPhase, new_phase: ExecutionPhase) -> bool:
    """Check if a phase transition is valid."""
    return new_phase in TRANSITIONS.get(current, [])


def check_transition(current: ExecutionPhase, new_phase: ExecutionPhase) -> None:
    """Raise LifecycleError unless the transition is valid."""
    if not can_transition(current, new_phase):
        raise LifecycleError(f"Invalid transition from {current.value} to {new_phase.value}")
