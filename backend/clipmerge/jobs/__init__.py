"""
Job planning: from dropped paths to ordered merge jobs.

This package decides WHAT to merge. It does NOT execute FFmpeg.
The batch engine lives in clipmerge.jobs.engine and is imported
directly by entry points.
"""

from .errors import (
    JobError,
    InvalidStateTransitionError,
    BatchInProgressError,
    FailedOperationNotFoundError,
)
from .models import (
    Quality,
    MergeJob,
)
from .grouping import (
    extract_session_id,
    build_output_filename,
    group_by_session,
)
from .discovery import collect_video_files

__all__ = [
    # Errors
    "JobError",
    "InvalidStateTransitionError",
    "BatchInProgressError",
    "FailedOperationNotFoundError",
    # Models
    "Quality",
    "MergeJob",
    # Grouping
    "extract_session_id",
    "build_output_filename",
    "group_by_session",
    # Discovery
    "collect_video_files",
]
