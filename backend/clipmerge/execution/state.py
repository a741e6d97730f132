"""
Execution state machine for a single merge process.

Lifecycle:
    STARTING → RUNNING → SUCCEEDED | FAILED | TIMED_OUT | CANCELLED
    STARTING → FAILED (validation / spawn failure)
    STARTING → CANCELLED (token cancelled before spawn)

INVARIANT: Terminal states are immutable. Once the machine reaches a
terminal state, every further transition is rejected.

Only the thread that calls MergeExecutor.run() writes state. Other
threads (stderr reader, cancellation callers) may only READ it.
"""

import threading
from enum import Enum
from typing import FrozenSet, Set, Tuple

from ..jobs.errors import InvalidStateTransitionError


class ExecutionState(str, Enum):
    """Process lifecycle states."""

    STARTING = "starting"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"


TERMINAL_STATES: FrozenSet[ExecutionState] = frozenset({
    ExecutionState.SUCCEEDED,
    ExecutionState.FAILED,
    ExecutionState.TIMED_OUT,
    ExecutionState.CANCELLED,
})


_TRANSITIONS: Set[Tuple[ExecutionState, ExecutionState]] = {
    (ExecutionState.STARTING, ExecutionState.RUNNING),
    (ExecutionState.STARTING, ExecutionState.FAILED),
    (ExecutionState.STARTING, ExecutionState.CANCELLED),
    (ExecutionState.RUNNING, ExecutionState.SUCCEEDED),
    (ExecutionState.RUNNING, ExecutionState.FAILED),
    (ExecutionState.RUNNING, ExecutionState.TIMED_OUT),
    (ExecutionState.RUNNING, ExecutionState.CANCELLED),
}


def is_terminal(state: ExecutionState) -> bool:
    """Check if a state is terminal (immutable)."""
    return state in TERMINAL_STATES


def can_transition(from_state: ExecutionState, to_state: ExecutionState) -> bool:
    """
    Check if a transition is legal.

    Terminal states cannot transition to any other state.
    """
    if is_terminal(from_state):
        return False
    return (from_state, to_state) in _TRANSITIONS


class ExecutionStateMachine:
    """
    Holds the current state of one executor run.

    Reads are lock-protected so the stderr reader thread sees a
    consistent value while the run() thread transitions.
    """

    def __init__(self):
        self._state = ExecutionState.STARTING
        self._lock = threading.Lock()

    @property
    def state(self) -> ExecutionState:
        with self._lock:
            return self._state

    @property
    def is_terminal(self) -> bool:
        return is_terminal(self.state)

    def transition(self, to_state: ExecutionState) -> None:
        """
        Move to a new state.

        Raises:
            InvalidStateTransitionError: If the transition is not allowed
        """
        with self._lock:
            if not can_transition(self._state, to_state):
                raise InvalidStateTransitionError(
                    "execution", self._state.value, to_state.value
                )
            self._state = to_state
