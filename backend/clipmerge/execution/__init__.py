"""
Execution pipeline for merge jobs.

clipmerge uses FFmpeg's concat demuxer as its sole execution engine.
ffprobe is used only for advisory duration probing.
"""

from .errors import (
    ExecutionError,
    ToolNotFoundError,
    ManifestError,
)
from .results import (
    JobOutcome,
    FailureStage,
    JobResult,
)
from .failures import (
    ErrorCategory,
    ErrorCode,
    ErrorInfo,
    classify,
)
from .cancellation import CancellationToken
from .progress import ProgressEvent, ProgressParser
from .tools import ToolPaths, resolve_tool_paths, check_prerequisites
from .ffmpeg import MergeExecutor

__all__ = [
    # Errors
    "ExecutionError",
    "ToolNotFoundError",
    "ManifestError",
    # Results
    "JobOutcome",
    "FailureStage",
    "JobResult",
    # Classification
    "ErrorCategory",
    "ErrorCode",
    "ErrorInfo",
    "classify",
    # Progress and control
    "CancellationToken",
    "ProgressEvent",
    "ProgressParser",
    # Tools
    "ToolPaths",
    "resolve_tool_paths",
    "check_prerequisites",
    # Executor
    "MergeExecutor",
]
