"""
Control endpoints for explicit operator actions.

HTTP adapter over the batch engine, the classifier and the
failed-operation journal.

Only one merge batch runs at a time. POST /control/merge starts it on a
background thread and returns immediately; progress is polled through
GET /control/merge/status. A journaled failure can be re-run the same way
through POST /control/failed-operations/retry.
"""

import logging
import threading
from typing import Any, Callable, Dict, List, Optional

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, ConfigDict, Field

from ..execution.cancellation import CancellationToken
from ..execution.failures import classify
from ..execution.progress import ProgressEvent
from ..execution.tools import check_prerequisites
from ..jobs.discovery import collect_video_files
from ..jobs.engine import BatchEngine, BatchSummary
from ..jobs.errors import BatchInProgressError
from ..jobs.grouping import group_by_session
from ..jobs.models import MergeJob, Quality
from ..persistence import journal as journal_ops
from ..persistence.errors import PersistenceError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/control", tags=["control"])


# ============================================================================
# REQUEST / RESPONSE MODELS
# ============================================================================

class AnalyzeRequest(BaseModel):
    """Files and/or folders to group."""

    model_config = ConfigDict(extra="forbid")

    paths: List[str] = Field(min_length=1)


class ClassifyRequest(BaseModel):
    """Raw failure text to classify."""

    model_config = ConfigDict(extra="forbid")

    raw_text: str


class MergeRequest(BaseModel):
    """Request body for starting a merge batch."""

    model_config = ConfigDict(extra="forbid")

    paths: List[str] = Field(min_length=1)
    quality: Quality = Quality.PASSTHROUGH
    output_dir: Optional[str] = None


class RemoveFailedOperationRequest(BaseModel):
    """Identity of one journal entry."""

    model_config = ConfigDict(extra="forbid")

    session_id: str
    output_path: str


class RetryFailedOperationRequest(BaseModel):
    """Journal entry to re-run."""

    model_config = ConfigDict(extra="forbid")

    session_id: str
    output_path: str
    quality: Quality = Quality.PASSTHROUGH


class OperationResponse(BaseModel):
    """Generic operation response."""

    success: bool
    message: str


def _job_dict(job: MergeJob) -> Dict[str, Any]:
    return {
        "session_id": job.session_id,
        "directory": job.directory,
        "file_count": job.file_count,
        "input_files": list(job.input_files),
        "output_filename": job.output_filename,
    }


def _plan_jobs(paths: List[str]) -> List[MergeJob]:
    return group_by_session(collect_video_files(paths))


# ============================================================================
# BACKGROUND BATCH MONITOR
# ============================================================================

class MergeMonitor:
    """
    Owns the background batch thread and its observable status.

    Status is a plain dict snapshot so the route layer never touches
    engine internals.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._token: Optional[CancellationToken] = None
        self._status: Dict[str, Any] = self._idle_status()

    @staticmethod
    def _idle_status() -> Dict[str, Any]:
        return {
            "running": False,
            "total_jobs": 0,
            "current_index": None,
            "current_session": None,
            "progress": None,
            "result": None,
            "error": None,
        }

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._thread is not None and self._thread.is_alive()

    def _launch(self, total_jobs: int, work: Callable[[CancellationToken], BatchSummary]) -> None:
        """
        Run work(token) on a background thread.

        Raises:
            BatchInProgressError: If a batch is already running
        """
        with self._lock:
            if self._thread is not None and self._thread.is_alive():
                raise BatchInProgressError()

            self._token = CancellationToken()
            self._status = self._idle_status()
            self._status["running"] = True
            self._status["total_jobs"] = total_jobs

            self._thread = threading.Thread(
                target=self._run,
                args=(work, self._token),
                name="clipmerge-batch",
                daemon=True,
            )
            self._thread.start()

    def start(
        self,
        engine: BatchEngine,
        jobs: List[MergeJob],
        quality: Quality,
        output_dir: Optional[str],
    ) -> None:
        """
        Start a batch on a background thread.

        Raises:
            BatchInProgressError: If a batch is already running
        """
        self._launch(len(jobs), lambda token: engine.run_batch(
            jobs,
            quality=quality,
            output_dir=output_dir,
            on_progress=self._on_progress,
            cancel_token=token,
        ))

    def start_retry(
        self,
        engine: BatchEngine,
        session_id: str,
        output_path: str,
        quality: Quality,
    ) -> None:
        """
        Retry one journaled failure on the background thread.

        The result has the same shape as a one-job batch.

        Raises:
            BatchInProgressError: If a batch is already running
        """
        def _retry(token: CancellationToken) -> BatchSummary:
            def _forward(event: ProgressEvent) -> None:
                with self._lock:
                    self._status["current_index"] = 0
                    self._status["current_session"] = session_id
                    self._status["progress"] = event.model_dump()

            report = engine.retry_failed(
                session_id,
                output_path,
                quality=quality,
                on_progress=_forward,
                cancel_token=token,
            )
            return BatchSummary(reports=[report])

        self._launch(1, _retry)

    def _on_progress(self, index: int, total: int, job: MergeJob, event: ProgressEvent) -> None:
        with self._lock:
            self._status["current_index"] = index
            self._status["current_session"] = job.session_id
            self._status["progress"] = event.model_dump()

    def _run(
        self,
        work: Callable[[CancellationToken], BatchSummary],
        token: CancellationToken,
    ) -> None:
        result: Optional[Dict[str, Any]] = None
        error: Optional[str] = None
        try:
            result = work(token).to_dict()
        except Exception as e:
            logger.exception("[Control] Background batch crashed")
            error = str(e)
        finally:
            with self._lock:
                self._status["running"] = False
                self._status["result"] = result
                self._status["error"] = error

    def cancel(self) -> bool:
        """Request cancellation. Returns False if nothing is running."""
        with self._lock:
            if self._thread is None or not self._thread.is_alive() or self._token is None:
                return False
            self._token.cancel()
            return True

    def join(self, timeout: Optional[float] = None) -> None:
        thread = self._thread
        if thread is not None:
            thread.join(timeout)

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return dict(self._status)


# ============================================================================
# ANALYSIS
# ============================================================================

@router.post("/analyze")
async def analyze(body: AnalyzeRequest):
    """
    Group dropped files/folders into merge jobs without running them.

    Files that do not follow a camera naming scheme are dropped.
    """
    files = collect_video_files(body.paths)
    jobs = group_by_session(files)
    return {
        "video_files": len(files),
        "job_count": len(jobs),
        "jobs": [_job_dict(job) for job in jobs],
    }


@router.post("/classify")
async def classify_error(body: ClassifyRequest):
    """Map raw failure text to a user-facing error description."""
    return classify(body.raw_text).model_dump(mode="json")


@router.get("/prerequisites")
async def prerequisites():
    """Report ffmpeg/ffprobe availability."""
    report = check_prerequisites()
    return {
        "ready": all(entry["path"] is not None for entry in report.values()),
        "tools": report,
    }


# ============================================================================
# MERGE BATCH
# ============================================================================

@router.post("/merge")
async def start_merge(body: MergeRequest, request: Request):
    """
    Start a merge batch in the background.

    Errors:
        400: No mergeable files in the given paths
        409: A batch is already running
        503: ffmpeg/ffprobe were not found at startup
    """
    engine: Optional[BatchEngine] = request.app.state.engine
    monitor: MergeMonitor = request.app.state.merge_monitor

    if engine is None:
        raise HTTPException(
            status_code=503,
            detail=f"Merge tools unavailable: {request.app.state.tools_error}",
        )

    jobs = _plan_jobs(body.paths)
    if not jobs:
        raise HTTPException(status_code=400, detail="No mergeable camera files found")

    try:
        monitor.start(engine, jobs, body.quality, body.output_dir)
    except BatchInProgressError as e:
        raise HTTPException(status_code=409, detail=str(e))

    logger.info(f"[Control] Started merge of {len(jobs)} job(s)")
    return {
        "started": True,
        "job_count": len(jobs),
        "jobs": [_job_dict(job) for job in jobs],
    }


@router.get("/merge/status")
async def merge_status(request: Request):
    """Current batch status, including the last progress event."""
    monitor: MergeMonitor = request.app.state.merge_monitor
    return monitor.snapshot()


@router.post("/merge/cancel", response_model=OperationResponse)
async def cancel_merge(request: Request):
    """Cancel the running batch; remaining jobs are skipped."""
    monitor: MergeMonitor = request.app.state.merge_monitor
    if not monitor.cancel():
        return OperationResponse(success=False, message="No merge batch is running")
    logger.info("[Control] Cancellation requested")
    return OperationResponse(success=True, message="Cancellation requested")


# ============================================================================
# FAILED OPERATIONS
# ============================================================================

@router.get("/failed-operations")
async def list_failed_operations(request: Request):
    """Journal entries, newest failure first."""
    store = request.app.state.store
    try:
        operations = journal_ops.most_recent_first(store.get_failed_operations())
    except PersistenceError as e:
        raise HTTPException(status_code=500, detail=str(e))
    return {
        "count": len(operations),
        "operations": [op.to_document() for op in operations],
    }


@router.delete("/failed-operations", response_model=OperationResponse)
async def clear_failed_operations(request: Request):
    """Remove every journal entry."""
    store = request.app.state.store
    try:
        store.clear_failures()
    except PersistenceError as e:
        raise HTTPException(status_code=500, detail=str(e))
    return OperationResponse(success=True, message="Failed operations cleared")


@router.post("/failed-operations/remove", response_model=OperationResponse)
async def remove_failed_operation(body: RemoveFailedOperationRequest, request: Request):
    """Remove one journal entry by identity."""
    store = request.app.state.store
    try:
        if store.find_failure(body.session_id, body.output_path) is None:
            raise HTTPException(
                status_code=404,
                detail=f"No failed operation for session {body.session_id} -> {body.output_path}",
            )
        store.remove_failure(body.session_id, body.output_path)
    except PersistenceError as e:
        raise HTTPException(status_code=500, detail=str(e))
    return OperationResponse(
        success=True,
        message=f"Removed failed operation for session {body.session_id}",
    )


@router.post("/failed-operations/retry", response_model=OperationResponse)
async def retry_failed_operation(body: RetryFailedOperationRequest, request: Request):
    """
    Re-run one journal entry in the background from its recorded files.

    Progress and outcome are reported through GET /control/merge/status.

    Errors:
        404: No such journal entry
        409: A batch is already running
        503: ffmpeg/ffprobe were not found at startup
    """
    engine: Optional[BatchEngine] = request.app.state.engine
    monitor: MergeMonitor = request.app.state.merge_monitor

    if engine is None:
        raise HTTPException(
            status_code=503,
            detail=f"Merge tools unavailable: {request.app.state.tools_error}",
        )

    try:
        op = request.app.state.store.find_failure(body.session_id, body.output_path)
    except PersistenceError as e:
        raise HTTPException(status_code=500, detail=str(e))
    if op is None:
        raise HTTPException(
            status_code=404,
            detail=f"No failed operation for session {body.session_id} -> {body.output_path}",
        )

    try:
        monitor.start_retry(engine, body.session_id, body.output_path, body.quality)
    except BatchInProgressError as e:
        raise HTTPException(status_code=409, detail=str(e))

    logger.info(f"[Control] Retrying session {body.session_id} (retries so far: {op.retry_count})")
    return OperationResponse(
        success=True,
        message=f"Retry started for session {body.session_id}",
    )
