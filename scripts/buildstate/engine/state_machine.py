#!/usr/bin/env python3
# Ticket: 0091_document_state_engine
# Design: DESIGN.md
"""
Pipeline Engine State Machines

Two small state machines validate progress through a state-update cycle.

Cycle phases run strictly in this order, each to completion:

    validate_inputs → update_progress → update_dependencies
        → analyze_integration → validate_files → prepare_next

Correction loop for compliance failures (per task):

    idle       → checking    (first check)
    checking   → passed      (no line-count violations)
    checking   → violation   (line-count violations found)
    violation  → correcting  (attempt within bound; corrective rewrite requested)
    violation  → exhausted   (attempt bound exceeded)
    correcting → checking    (re-check after a corrective rewrite)
    passed     → checking    (the task's files are checked again)
    exhausted  → idle        (operator reset only)

Invalid transitions raise InvalidTransitionError.
"""


class CyclePhase:
    VALIDATE_INPUTS = "validate_inputs"
    UPDATE_PROGRESS = "update_progress"
    UPDATE_DEPENDENCIES = "update_dependencies"
    ANALYZE_INTEGRATION = "analyze_integration"
    VALIDATE_FILES = "validate_files"
    PREPARE_NEXT = "prepare_next"

    ORDER = (
        VALIDATE_INPUTS,
        UPDATE_PROGRESS,
        UPDATE_DEPENDENCIES,
        ANALYZE_INTEGRATION,
        VALIDATE_FILES,
        PREPARE_NEXT,
    )


class CorrectionState:
    IDLE = "idle"
    CHECKING = "checking"
    PASSED = "passed"
    VIOLATION = "violation"
    CORRECTING = "correcting"
    EXHAUSTED = "exhausted"

    ALL = frozenset([IDLE, CHECKING, PASSED, VIOLATION, CORRECTING, EXHAUSTED])


# ---------------------------------------------------------------------------
# Valid transitions: {from_state: set(to_states)}
# ---------------------------------------------------------------------------

VALID_TRANSITIONS: dict[str, frozenset[str]] = {
    CorrectionState.IDLE: frozenset([CorrectionState.CHECKING]),
    CorrectionState.CHECKING: frozenset([
        CorrectionState.PASSED,
        CorrectionState.VIOLATION,
    ]),
    CorrectionState.VIOLATION: frozenset([
        CorrectionState.CORRECTING,
        CorrectionState.EXHAUSTED,
    ]),
    CorrectionState.CORRECTING: frozenset([CorrectionState.CHECKING]),
    CorrectionState.PASSED: frozenset([CorrectionState.CHECKING]),
    CorrectionState.EXHAUSTED: frozenset([CorrectionState.IDLE]),
}


# ---------------------------------------------------------------------------
# Error types
# ---------------------------------------------------------------------------


class InvalidTransitionError(ValueError):
    """Raised when a state transition is not allowed."""

    def __init__(self, from_state: str | None, to_state: str, allowed: list[str]):
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(
            f"Invalid transition: '{from_state}' → '{to_state}'. "
            f"Valid transitions from '{from_state}': {sorted(allowed)}"
        )


class UnknownStateError(ValueError):
    """Raised when an unknown correction state is encountered."""

    def __init__(self, state: str):
        self.state = state
        super().__init__(
            f"Unknown correction state: '{state}'. "
            f"Valid states: {sorted(CorrectionState.ALL)}"
        )


# ---------------------------------------------------------------------------
# Correction loop
# ---------------------------------------------------------------------------


def validate_transition(from_state: str, to_state: str) -> None:
    """
    Validate a correction-loop transition.

    Raises:
        UnknownStateError: if either state is not in CorrectionState.ALL
        InvalidTransitionError: if the transition is not in VALID_TRANSITIONS
    """
    if from_state not in CorrectionState.ALL:
        raise UnknownStateError(from_state)
    if to_state not in CorrectionState.ALL:
        raise UnknownStateError(to_state)

    allowed = VALID_TRANSITIONS.get(from_state, frozenset())
    if to_state not in allowed:
        raise InvalidTransitionError(from_state, to_state, list(allowed))


def can_transition(from_state: str, to_state: str) -> bool:
    return to_state in VALID_TRANSITIONS.get(from_state, frozenset())


# ---------------------------------------------------------------------------
# Cycle phases
# ---------------------------------------------------------------------------


class CycleTracker:
    """
    Enforces the fixed phase order of one state-update cycle.

    A resumed cycle starts at a later phase; the phases before it count as
    skipped (they ran in the interrupted cycle) and cannot be begun.
    """

    def __init__(self, start: str = CyclePhase.VALIDATE_INPUTS) -> None:
        if start not in CyclePhase.ORDER:
            raise InvalidTransitionError(None, start, list(CyclePhase.ORDER))
        self.skipped: list[str] = list(CyclePhase.ORDER[:CyclePhase.ORDER.index(start)])
        self.completed: list[str] = []
        self.current: str | None = None

    @property
    def expected(self) -> str | None:
        """The phase that must run next, or None once the cycle is finished."""
        done = len(self.skipped) + len(self.completed) + (1 if self.current else 0)
        if done >= len(CyclePhase.ORDER):
            return None
        return CyclePhase.ORDER[done]

    def begin(self, phase: str) -> None:
        if self.current is not None or phase != self.expected:
            allowed = [self.expected] if self.expected and self.current is None else []
            raise InvalidTransitionError(self.current or self.last, phase, allowed)
        self.current = phase

    def finish(self, phase: str) -> None:
        if self.current != phase:
            raise InvalidTransitionError(self.current, f"finish:{phase}", [])
        self.completed.append(phase)
        self.current = None

    @property
    def last(self) -> str | None:
        return self.completed[-1] if self.completed else None

    @property
    def is_finished(self) -> bool:
        return len(self.skipped) + len(self.completed) == len(CyclePhase.ORDER)
