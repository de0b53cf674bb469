"""
Pipeline run state machine.

    PENDING ──start(k)──▶ RUNNING(k) ──advance──▶ RUNNING(k+1) ... RUNNING(last)
                              │                                         │
                            fail                                    complete
                              ▼                                         ▼
                       FAILED(k, reason)                            COMPLETED

States are immutable values; every transition returns a new state or raises
InvalidTransition.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class PipelineStatus(Enum):
    """Lifecycle status of a pipeline run."""

    PENDING = "PENDING"
    RUNNING = "RUNNING"
    FAILED = "FAILED"
    COMPLETED = "COMPLETED"


class InvalidTransition(RuntimeError):
    """A state transition the pipeline does not allow."""


@dataclass(frozen=True)
class PipelineState:
    """
    Current state of a run.

    Attributes:
        status: Lifecycle status
        stage_index: Running or failing stage; None when pending or completed
        reason: Reason code of a failure
        last_stage: Index of the final stage
    """

    status: PipelineStatus = PipelineStatus.PENDING
    stage_index: Optional[int] = None
    reason: Optional[str] = None
    last_stage: int = 5

    @property
    def is_terminal(self) -> bool:
        return self.status in (PipelineStatus.FAILED, PipelineStatus.COMPLETED)

    def _require(self, status: PipelineStatus, action: str) -> None:
        if self.status is not status:
            raise InvalidTransition(f"Cannot {action} from {self}")

    def start(self, stage_index: int = 0) -> "PipelineState":
        """PENDING -> RUNNING(stage_index)."""
        self._require(PipelineStatus.PENDING, "start")
        if not 0 <= stage_index <= self.last_stage:
            raise InvalidTransition(f"No stage {stage_index} (last stage is {self.last_stage})")
        return PipelineState(PipelineStatus.RUNNING, stage_index, None, self.last_stage)

    def advance(self) -> "PipelineState":
        """RUNNING(k) -> RUNNING(k+1), once artifact k is written."""
        self._require(PipelineStatus.RUNNING, "advance")
        if self.stage_index >= self.last_stage:
            raise InvalidTransition(f"Stage {self.stage_index} is the last stage; complete instead")
        return PipelineState(PipelineStatus.RUNNING, self.stage_index + 1, None, self.last_stage)

    def complete(self) -> "PipelineState":
        """RUNNING(last) -> COMPLETED."""
        self._require(PipelineStatus.RUNNING, "complete")
        if self.stage_index != self.last_stage:
            raise InvalidTransition(
                f"Cannot complete at stage {self.stage_index}; stages up to {self.last_stage} remain"
            )
        return PipelineState(PipelineStatus.COMPLETED, None, None, self.last_stage)

    def fail(self, reason: str) -> "PipelineState":
        """RUNNING(k) -> FAILED(k, reason)."""
        self._require(PipelineStatus.RUNNING, "fail")
        return PipelineState(PipelineStatus.FAILED, self.stage_index, reason, self.last_stage)

    def __str__(self) -> str:
        if self.status is PipelineStatus.RUNNING:
            return f"RUNNING({self.stage_index})"
        if self.status is PipelineStatus.FAILED:
            return f"FAILED({self.stage_index}, {self.reason})"
        return self.status.value
