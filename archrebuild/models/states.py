"""Pipeline state machine models — deterministic transitions."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class PipelineState(str, Enum):
    """States of a rebuild run and of each of its build targets."""

    IDLE = "idle"
    REVISION_PINNED = "revision_pinned"
    SUBMODULES_READY = "submodules_ready"
    BUILDING = "building"
    CLASSIFYING = "classifying"
    IMAGE_ASSEMBLED = "image_assembled"
    STATE_RESTORED = "state_restored"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


# Run-level transitions. STATE_RESTORED is reachable from every non-terminal
# state because restoration runs on every exit path.
RUN_TRANSITIONS: dict[PipelineState, set[PipelineState]] = {
    PipelineState.IDLE: {PipelineState.REVISION_PINNED, PipelineState.STATE_RESTORED},
    PipelineState.REVISION_PINNED: {
        PipelineState.SUBMODULES_READY,
        PipelineState.STATE_RESTORED,
    },
    PipelineState.SUBMODULES_READY: {PipelineState.STATE_RESTORED},
    PipelineState.STATE_RESTORED: {PipelineState.SUCCEEDED, PipelineState.FAILED},
    PipelineState.SUCCEEDED: set(),  # terminal
    PipelineState.FAILED: set(),  # terminal
}

# Per-target transitions. IMAGE_ASSEMBLED and FAILED are terminal.
TARGET_TRANSITIONS: dict[PipelineState, set[PipelineState]] = {
    PipelineState.IDLE: {PipelineState.BUILDING, PipelineState.FAILED},
    PipelineState.BUILDING: {PipelineState.CLASSIFYING, PipelineState.FAILED},
    PipelineState.CLASSIFYING: {PipelineState.IMAGE_ASSEMBLED, PipelineState.FAILED},
    PipelineState.IMAGE_ASSEMBLED: set(),
    PipelineState.FAILED: set(),
}


class StateTransition(BaseModel):
    """Records a single state transition for the run history."""

    model_config = ConfigDict(frozen=True)

    subject: str  # "run" or an architecture name
    from_state: PipelineState
    to_state: PipelineState
    reason: str | None = None  # populated when entering FAILED
    timestamp_utc: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
