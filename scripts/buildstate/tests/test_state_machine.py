"""
Tests for engine/state_machine.py

Validates:
- All valid correction-loop transitions are accepted
- Invalid transitions raise InvalidTransitionError
- Unknown states raise UnknownStateError
- CycleTracker enforces the fixed phase order
"""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from buildstate.engine.state_machine import (
    CorrectionState,
    CyclePhase,
    CycleTracker,
    InvalidTransitionError,
    UnknownStateError,
    can_transition,
    validate_transition,
)


# ---------------------------------------------------------------------------
# Correction loop
# ---------------------------------------------------------------------------

VALID_TRANSITION_PAIRS = [
    (CorrectionState.IDLE, CorrectionState.CHECKING),
    (CorrectionState.CHECKING, CorrectionState.PASSED),
    (CorrectionState.CHECKING, CorrectionState.VIOLATION),
    (CorrectionState.VIOLATION, CorrectionState.CORRECTING),
    (CorrectionState.VIOLATION, CorrectionState.EXHAUSTED),
    (CorrectionState.CORRECTING, CorrectionState.CHECKING),
    (CorrectionState.PASSED, CorrectionState.CHECKING),
    (CorrectionState.EXHAUSTED, CorrectionState.IDLE),
]


@pytest.mark.parametrize("from_state,to_state", VALID_TRANSITION_PAIRS)
def test_valid_transitions_do_not_raise(from_state, to_state):
    validate_transition(from_state, to_state)


@pytest.mark.parametrize("from_state,to_state", VALID_TRANSITION_PAIRS)
def test_can_transition_returns_true_for_valid(from_state, to_state):
    assert can_transition(from_state, to_state) is True


INVALID_TRANSITION_PAIRS = [
    (CorrectionState.IDLE, CorrectionState.PASSED),
    (CorrectionState.CHECKING, CorrectionState.CORRECTING),
    (CorrectionState.VIOLATION, CorrectionState.PASSED),
    (CorrectionState.CORRECTING, CorrectionState.PASSED),
    (CorrectionState.EXHAUSTED, CorrectionState.CHECKING),
    (CorrectionState.EXHAUSTED, CorrectionState.PASSED),
]


@pytest.mark.parametrize("from_state,to_state", INVALID_TRANSITION_PAIRS)
def test_invalid_transitions_raise(from_state, to_state):
    with pytest.raises(InvalidTransitionError) as exc_info:
        validate_transition(from_state, to_state)
    assert exc_info.value.from_state == from_state
    assert exc_info.value.to_state == to_state


def test_unknown_state_raises():
    with pytest.raises(UnknownStateError):
        validate_transition("sleeping", CorrectionState.CHECKING)
    with pytest.raises(UnknownStateError):
        validate_transition(CorrectionState.IDLE, "sleeping")


# ---------------------------------------------------------------------------
# Cycle phases
# ---------------------------------------------------------------------------


def test_cycle_runs_in_order():
    tracker = CycleTracker()
    for phase in CyclePhase.ORDER:
        assert tracker.expected == phase
        tracker.begin(phase)
        tracker.finish(phase)
    assert tracker.is_finished
    assert tracker.expected is None
    assert tracker.last == CyclePhase.PREPARE_NEXT


def test_skipping_a_phase_raises():
    tracker = CycleTracker()
    tracker.begin(CyclePhase.VALIDATE_INPUTS)
    tracker.finish(CyclePhase.VALIDATE_INPUTS)
    with pytest.raises(InvalidTransitionError):
        tracker.begin(CyclePhase.UPDATE_DEPENDENCIES)


def test_overlapping_phases_raise():
    tracker = CycleTracker()
    tracker.begin(CyclePhase.VALIDATE_INPUTS)
    with pytest.raises(InvalidTransitionError):
        tracker.begin(CyclePhase.UPDATE_PROGRESS)


def test_finish_without_begin_raises():
    tracker = CycleTracker()
    with pytest.raises(InvalidTransitionError):
        tracker.finish(CyclePhase.VALIDATE_INPUTS)


def test_phase_cannot_repeat():
    tracker = CycleTracker()
    tracker.begin(CyclePhase.VALIDATE_INPUTS)
    tracker.finish(CyclePhase.VALIDATE_INPUTS)
    with pytest.raises(InvalidTransitionError):
        tracker.begin(CyclePhase.VALIDATE_INPUTS)


def test_resumed_cycle_starts_at_later_phase():
    tracker = CycleTracker(start=CyclePhase.VALIDATE_FILES)
    assert tracker.skipped == list(CyclePhase.ORDER[:4])
    assert tracker.expected == CyclePhase.VALIDATE_FILES
    with pytest.raises(InvalidTransitionError):
        tracker.begin(CyclePhase.UPDATE_PROGRESS)

    for phase in (CyclePhase.VALIDATE_FILES, CyclePhase.PREPARE_NEXT):
        tracker.begin(phase)
        tracker.finish(phase)
    assert tracker.is_finished


def test_unknown_start_phase_raises():
    with pytest.raises(InvalidTransitionError):
        CycleTracker(start="deploy")
