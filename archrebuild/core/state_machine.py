"""Deterministic state machine for a rebuild run and its targets.

Enforces:
- Valid state transitions only (transition table per subject kind)
- Every transition recorded in the machine's history

One machine tracks the run; one machine per target tracks that target.
Target machines are owned by the worker building that target, so no state is
shared across threads.
"""

from __future__ import annotations

import logging

from archrebuild.models.states import (
    RUN_TRANSITIONS,
    TARGET_TRANSITIONS,
    PipelineState,
    StateTransition,
)

logger = logging.getLogger(__name__)


class InvalidTransitionError(RuntimeError):
    """Raised when a requested state transition is not valid."""


class StateMachine:
    """Tracks one subject's state through a transition table.

    Parameters
    ----------
    subject:
        ``"run"`` or an architecture name; recorded in every transition.
    transitions:
        The table of allowed ``from -> {to}`` transitions.
    """

    def __init__(
        self,
        subject: str,
        transitions: dict[PipelineState, set[PipelineState]],
        initial: PipelineState = PipelineState.IDLE,
    ) -> None:
        self.subject = subject
        self._transitions = transitions
        self._state = initial
        self._history: list[StateTransition] = []

    @classmethod
    def for_run(cls) -> StateMachine:
        return cls("run", RUN_TRANSITIONS)

    @classmethod
    def for_target(cls, subject: str) -> StateMachine:
        return cls(subject, TARGET_TRANSITIONS)

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def history(self) -> list[StateTransition]:
        return list(self._history)

    @property
    def is_terminal(self) -> bool:
        return not self._transitions.get(self._state)

    def can_transition(self, target_state: PipelineState) -> bool:
        return target_state in self._transitions.get(self._state, set())

    def transition(
        self, target_state: PipelineState, *, reason: str | None = None
    ) -> StateTransition:
        """Move to *target_state*, recording the transition.

        Raises ``InvalidTransitionError`` if the table does not allow it.
        """
        allowed = self._transitions.get(self._state, set())
        if target_state not in allowed:
            raise InvalidTransitionError(
                f"Cannot transition {self.subject} from {self._state.value} to "
                f"{target_state.value}. Allowed: {sorted(s.value for s in allowed)}"
            )
        record = StateTransition(
            subject=self.subject,
            from_state=self._state,
            to_state=target_state,
            reason=reason,
        )
        self._history.append(record)
        logger.debug(
            "%s: %s -> %s", self.subject, self._state.value, target_state.value
        )
        self._state = target_state
        return record
