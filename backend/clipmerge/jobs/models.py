"""
Merge job data models.

A MergeJob is the unit of work: one output file produced from an ordered
set of clips that share a directory and a recording session id.

All models use Pydantic for validation. MergeJob instances are created
by the session grouper and discarded after the batch run.
"""

from enum import Enum
from typing import List

from pydantic import BaseModel, ConfigDict, Field


class Quality(str, Enum):
    """
    Merge quality selection.

    PASSTHROUGH re-multiplexes without re-encoding (stream copy).
    The other levels re-encode video with a fixed CRF/preset pair.
    """

    PASSTHROUGH = "passthrough"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class MergeJob(BaseModel):
    """
    One merge job.

    Invariants (established by group_by_session):
    - Every input file lives in `directory` and carries `session_id`
    - input_files are sorted ascending, which is capture order because
      the sequence digits precede the session digits in the filename
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    session_id: str = Field(pattern=r"^\d{4}$")
    directory: str
    input_files: List[str] = Field(default_factory=list)
    output_filename: str

    @property
    def file_count(self) -> int:
        return len(self.input_files)

    def summary(self) -> str:
        """Human-readable one-line description for logs and CLI output."""
        return (
            f"Session {self.session_id} ({self.file_count} file"
            f"{'s' if self.file_count != 1 else ''}) in {self.directory} "
            f"-> {self.output_filename}"
        )
