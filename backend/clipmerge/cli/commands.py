"""
CLI command implementations.

Commands:
- analyze_paths: Group dropped files/folders into merge jobs
- merge_paths: Run a merge batch
- list_failed_operations / clear_failed_operations: Inspect the journal
- retry_failed_operation: Re-run one journaled failure
- classify_text: Explain a raw failure message

Dependencies (engine, store) are passed in explicitly. Nothing here
resolves tools or reads settings.
"""

from typing import Callable, List, Optional

from ..execution.cancellation import CancellationToken
from ..execution.failures import ErrorInfo, classify
from ..execution.progress import ProgressEvent, format_duration, format_eta
from ..jobs.discovery import collect_video_files
from ..jobs.engine import BatchEngine, BatchProgressCallback, BatchSummary, JobReport
from ..jobs.errors import JobError
from ..jobs.grouping import group_by_session
from ..jobs.models import MergeJob, Quality
from ..persistence import journal as journal_ops
from ..persistence.journal import FailedOperation
from ..persistence.preferences import PreferencesStore
from .errors import ValidationError


def analyze_paths(paths: List[str]) -> List[MergeJob]:
    """
    Plan merge jobs for the given files and folders.

    Raises:
        ValidationError: If no camera clips were found
    """
    if not paths:
        raise ValidationError("No input paths given")

    files = collect_video_files(paths)
    if not files:
        raise ValidationError("No video files found in the given paths")

    jobs = group_by_session(files)
    if not jobs:
        raise ValidationError(
            f"Found {len(files)} video file(s) but none follow a camera naming scheme "
            f"(GX/GP/GOPR)"
        )
    return jobs


def merge_paths(
    paths: List[str],
    engine: BatchEngine,
    quality: Quality = Quality.PASSTHROUGH,
    output_dir: Optional[str] = None,
    on_progress: Optional[BatchProgressCallback] = None,
    cancel_token: Optional[CancellationToken] = None,
) -> BatchSummary:
    """
    Group and merge in one step.

    Raises:
        ValidationError: If nothing can be merged
    """
    jobs = analyze_paths(paths)
    return engine.run_batch(
        jobs,
        quality=quality,
        output_dir=output_dir,
        on_progress=on_progress,
        cancel_token=cancel_token,
    )


def list_failed_operations(store: PreferencesStore) -> List[FailedOperation]:
    """Journal entries, newest first."""
    return journal_ops.most_recent_first(store.get_failed_operations())


def clear_failed_operations(store: PreferencesStore) -> int:
    """
    Clear the journal.

    Returns:
        Number of entries removed
    """
    count = len(store.get_failed_operations())
    store.clear_failures()
    return count


def retry_failed_operation(
    engine: BatchEngine,
    session_id: str,
    output_path: str,
    quality: Quality = Quality.PASSTHROUGH,
    on_progress: Optional[Callable[[ProgressEvent], None]] = None,
    cancel_token: Optional[CancellationToken] = None,
) -> JobReport:
    """
    Retry one journaled failure.

    Raises:
        ValidationError: If the journal has no such entry or it cannot be
            turned back into a job
    """
    try:
        return engine.retry_failed(
            session_id,
            output_path,
            quality=quality,
            on_progress=on_progress,
            cancel_token=cancel_token,
        )
    except JobError as e:
        raise ValidationError(str(e))


def classify_text(raw_text: str) -> ErrorInfo:
    """
    Classify a raw failure message.

    Raises:
        ValidationError: If the text is empty
    """
    if not raw_text.strip():
        raise ValidationError("Nothing to classify: text is empty")
    return classify(raw_text)


def describe_progress(event: ProgressEvent) -> str:
    """One-line progress text for terminal output."""
    if event.percent is None:
        return f"{format_duration(event.elapsed_seconds)} processed"
    return (
        f"{event.percent:5.1f}% "
        f"({format_duration(event.elapsed_seconds)} / "
        f"{format_duration(event.total_duration_seconds)}) "
        f"{format_eta(event.eta_seconds)}"
    )
