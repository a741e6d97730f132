"""
Batch engine: sequential orchestration of merge jobs.

The engine is the in-process caller of MergeExecutor:
1. Jobs run strictly one at a time, in grouping order
2. Success removes any journal entry for the job
3. Execution failures are classified and journaled
4. Timeouts are journaled (not classified) so they can be retried
5. Validation failures are reported but never journaled
6. Cancellation stops the batch; remaining jobs are skipped

Retry re-runs a journaled operation from its recorded file list,
without regrouping.
"""

import logging
import os
import re
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Union

from ..execution.cancellation import CancellationToken
from ..execution.failures import ErrorInfo, classify, format_error_for_log
from ..execution.ffmpeg import MergeExecutor
from ..execution.progress import ProgressEvent
from ..execution.results import FailureStage, JobOutcome, JobResult
from ..persistence.errors import PersistenceError
from ..persistence.preferences import PreferencesStore
from ..settings import DEFAULT_SETTINGS, EngineSettings
from .errors import BatchInProgressError, FailedOperationNotFoundError, JobError
from .models import MergeJob, Quality

logger = logging.getLogger(__name__)

SESSION_ID_PATTERN = re.compile(r"\d{4}")


# (job index, total jobs, job, event)
BatchProgressCallback = Callable[[int, int, MergeJob, ProgressEvent], None]


@dataclass
class JobReport:
    """Outcome of one job inside a batch."""

    job: MergeJob
    output_path: str
    result: Optional[JobResult] = None
    error: Optional[ErrorInfo] = None
    skipped: bool = False

    def to_dict(self) -> dict:
        return {
            "session_id": self.job.session_id,
            "directory": self.job.directory,
            "output_path": self.output_path,
            "status": self.result.status.value if self.result else "skipped",
            "error_code": self.error.code.value if self.error else None,
            "user_message": self.error.user_message if self.error else None,
            "remediation_steps": self.error.remediation_steps if self.error else [],
            "raw_text": self.result.raw_text if self.result else None,
        }


@dataclass
class BatchSummary:
    """Aggregate outcome of a batch."""

    reports: List[JobReport] = field(default_factory=list)

    def _count(self, status: JobOutcome) -> int:
        return sum(1 for r in self.reports if r.result and r.result.status == status)

    @property
    def succeeded(self) -> int:
        return self._count(JobOutcome.SUCCESS)

    @property
    def failed(self) -> int:
        return self._count(JobOutcome.FAILURE) + self._count(JobOutcome.TIMED_OUT)

    @property
    def cancelled(self) -> bool:
        return self._count(JobOutcome.CANCELLED) > 0

    @property
    def skipped(self) -> int:
        return sum(1 for r in self.reports if r.skipped)

    def summary(self) -> str:
        text = f"Batch complete: {self.succeeded} succeeded, {self.failed} failed"
        if self.cancelled:
            text += f" (cancelled, {self.skipped} skipped)"
        return text

    def to_dict(self) -> dict:
        return {
            "succeeded": self.succeeded,
            "failed": self.failed,
            "cancelled": self.cancelled,
            "skipped": self.skipped,
            "summary": self.summary(),
            "jobs": [r.to_dict() for r in self.reports],
        }


class BatchEngine:
    """
    Sequential batch runner.

    Only one batch may run per engine at a time.
    """

    def __init__(
        self,
        executor: MergeExecutor,
        store: PreferencesStore,
        settings: Optional[EngineSettings] = None,
    ):
        self.executor = executor
        self.store = store
        self.settings = settings or DEFAULT_SETTINGS
        self._running = threading.Lock()

    def output_path_for(self, job: MergeJob, output_dir: Optional[str] = None) -> str:
        """
        Resolve the output path for a job.

        Default destination is <job directory>/<output_subdir>.
        """
        directory = output_dir or os.path.join(job.directory, self.settings.output_subdir)
        return os.path.join(directory, job.output_filename)

    def run_batch(
        self,
        jobs: Sequence[MergeJob],
        quality: Union[Quality, str] = Quality.PASSTHROUGH,
        output_dir: Optional[str] = None,
        on_progress: Optional[BatchProgressCallback] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> BatchSummary:
        """
        Run jobs one after another.

        Raises:
            BatchInProgressError: If this engine is already running a batch
        """
        if not self._running.acquire(blocking=False):
            raise BatchInProgressError()

        try:
            token = cancel_token or CancellationToken()
            summary = BatchSummary()
            total = len(jobs)
            logger.info(f"[Batch] Starting {total} job(s) at quality {getattr(quality, 'value', quality)}")

            for index, job in enumerate(jobs):
                output_path = self.output_path_for(job, output_dir)

                if token.cancelled:
                    summary.reports.append(JobReport(job=job, output_path=output_path, skipped=True))
                    continue

                def _forward(event: ProgressEvent, _index: int = index, _job: MergeJob = job) -> None:
                    if on_progress is not None:
                        on_progress(_index, total, _job, event)

                logger.info(f"[Batch] Job {index + 1}/{total}: {job.summary()}")
                result = self.executor.run(job, quality, output_path, _forward, token)
                summary.reports.append(self._handle_result(job, output_path, result))

            logger.info(f"[Batch] {summary.summary()}")
            return summary
        finally:
            self._running.release()

    def retry_failed(
        self,
        session_id: str,
        output_path: str,
        quality: Union[Quality, str] = Quality.PASSTHROUGH,
        on_progress: Optional[Callable[[ProgressEvent], None]] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> JobReport:
        """
        Re-run a journaled failure from its recorded files.

        Raises:
            FailedOperationNotFoundError: If the journal has no such entry
        """
        op = self.store.find_failure(session_id, output_path)
        if op is None:
            raise FailedOperationNotFoundError(session_id, output_path)
        if not SESSION_ID_PATTERN.fullmatch(session_id):
            raise JobError(f"Journaled session id is not a 4-digit id: {session_id!r}")

        directory = os.path.dirname(op.files[0]) if op.files else os.path.dirname(output_path)
        job = MergeJob(
            session_id=session_id,
            directory=directory,
            input_files=list(op.files),
            output_filename=os.path.basename(output_path),
        )
        logger.info(f"[Batch] Retrying session {session_id} (attempt {op.retry_count + 2})")
        result = self.executor.run(job, quality, output_path, on_progress, cancel_token)
        return self._handle_result(job, output_path, result)

    # -------------------------------------------------------------------------
    # Outcome handling
    # -------------------------------------------------------------------------

    def _handle_result(
        self,
        job: MergeJob,
        output_path: str,
        result: JobResult,
    ) -> JobReport:
        report = JobReport(job=job, output_path=output_path, result=result)
        session_id = job.session_id

        if result.status == JobOutcome.SUCCESS:
            self._journal(lambda: self.store.remove_failure(session_id, output_path))

        elif result.status == JobOutcome.FAILURE:
            if result.stage == FailureStage.VALIDATION:
                logger.warning(f"[Batch] Validation failed for session {session_id}: {result.raw_text}")
            else:
                report.error = classify(result.raw_text or "")
                logger.error(f"[Batch] {format_error_for_log(report.error)}")
                self._journal(lambda: self.store.record_failure({
                    "sessionId": session_id,
                    "outputPath": output_path,
                    "files": list(job.input_files),
                    "error": result.raw_text or "",
                    "timestamp": time.time() * 1000,
                }))

        elif result.status == JobOutcome.TIMED_OUT:
            message = f"Merge timed out after {self.executor.settings.timeout_seconds:g} seconds"
            self._journal(lambda: self.store.record_failure({
                "sessionId": session_id,
                "outputPath": output_path,
                "files": list(job.input_files),
                "error": message,
                "timestamp": time.time() * 1000,
            }))

        return report

    def _journal(self, action: Callable[[], object]) -> None:
        """Journal writes never abort a batch; failures are logged."""
        try:
            action()
        except PersistenceError as e:
            logger.error(f"[Batch] Could not update failed-operation journal: {e}")
