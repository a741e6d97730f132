"""
Merge result models.

Structured representation of single-job execution outcomes.
Exactly one terminal result is produced per MergeExecutor.run() call.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class JobOutcome(str, Enum):
    """
    Terminal outcome of one merge job.

    SUCCESS: FFmpeg exited 0, output written
    FAILURE: Validation failed or FFmpeg exited non-zero
    TIMED_OUT: Wall-clock deadline hit, process killed
    CANCELLED: Caller cancelled, process killed
    """

    SUCCESS = "success"
    FAILURE = "failure"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"


class FailureStage(str, Enum):
    """
    Where a FAILURE happened.

    VALIDATION failures never spawn a process and are not journaled.
    """

    VALIDATION = "validation"
    EXECUTION = "execution"


class JobResult(BaseModel):
    """
    Result of one merge job.

    Tagged by `status`:
    - SUCCESS carries output_path
    - FAILURE carries raw_text and stage
    - TIMED_OUT / CANCELLED carry neither
    """

    model_config = ConfigDict(extra="forbid")

    status: JobOutcome
    session_id: str
    output_path: Optional[str] = None
    raw_text: Optional[str] = None
    stage: Optional[FailureStage] = None
    exit_code: Optional[int] = None
    started_at: datetime = Field(default_factory=datetime.now)
    completed_at: Optional[datetime] = None

    @classmethod
    def success(cls, session_id: str, output_path: str, **kwargs) -> "JobResult":
        return cls(status=JobOutcome.SUCCESS, session_id=session_id,
                   output_path=output_path, **kwargs)

    @classmethod
    def failure(
        cls,
        session_id: str,
        raw_text: str,
        stage: FailureStage = FailureStage.EXECUTION,
        **kwargs,
    ) -> "JobResult":
        return cls(status=JobOutcome.FAILURE, session_id=session_id,
                   raw_text=raw_text, stage=stage, **kwargs)

    @classmethod
    def timed_out(cls, session_id: str, **kwargs) -> "JobResult":
        return cls(status=JobOutcome.TIMED_OUT, session_id=session_id, **kwargs)

    @classmethod
    def cancelled(cls, session_id: str, **kwargs) -> "JobResult":
        return cls(status=JobOutcome.CANCELLED, session_id=session_id, **kwargs)

    @property
    def succeeded(self) -> bool:
        return self.status == JobOutcome.SUCCESS

    def duration_seconds(self) -> Optional[float]:
        """Calculate execution duration in seconds."""
        if self.completed_at is None:
            return None
        delta = self.completed_at - self.started_at
        return delta.total_seconds()

    def summary(self) -> str:
        """Human-readable summary of execution result."""
        duration_str = ""
        duration = self.duration_seconds()
        if duration is not None:
            duration_str = f" ({duration:.1f}s)"

        if self.status == JobOutcome.SUCCESS:
            return f"SUCCESS{duration_str}: session {self.session_id} → {self.output_path}"

        if self.status == JobOutcome.FAILURE:
            lines = (self.raw_text or "").strip().splitlines()
            reason = lines[-1] if lines else "unknown error"
            return f"FAILED{duration_str}: session {self.session_id} - {reason}"

        if self.status == JobOutcome.TIMED_OUT:
            return f"TIMED OUT{duration_str}: session {self.session_id}"

        return f"CANCELLED{duration_str}: session {self.session_id}"
