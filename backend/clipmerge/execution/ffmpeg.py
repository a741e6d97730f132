"""
FFmpeg merge executor.

Runs ONE MergeJob through FFmpeg's concat demuxer.

Design rules:
- One subprocess per job, never more than one at a time per executor
- Tool locations are injected (ToolPaths), never looked up here
- Stderr is parsed for time= markers on a reader thread
- Hard wall-clock deadline from process start → TIMED_OUT
- CancellationToken → CANCELLED (distinct from FAILURE and TIMED_OUT)
- SIGTERM → SIGKILL escalation when stopping a process
- The concat manifest is deleted on EVERY exit path
- Process-level failures are returned as JobResult, never raised
"""

import logging
import os
import re
import subprocess
import threading
import time
import uuid
from concurrent.futures import Future
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Union

from ..jobs.models import MergeJob, Quality
from ..settings import EngineSettings, DEFAULT_SETTINGS
from .cancellation import CancellationToken
from .errors import ManifestError
from .probe import DurationProbe
from .progress import ProgressEvent, ProgressParser
from .results import FailureStage, JobResult
from .state import ExecutionState, ExecutionStateMachine
from .tools import ToolPaths

logger = logging.getLogger(__name__)


ProgressCallback = Callable[[ProgressEvent], None]


# =============================================================================
# Input filtering
# =============================================================================

# Filesystem artifacts that can sit beside real clips on camera cards
ARTIFACT_PATTERNS: Sequence[re.Pattern] = (
    re.compile(r"^\._"),                      # macOS AppleDouble companions
    re.compile(r"^\.DS_Store$", re.IGNORECASE),
    re.compile(r"^Thumbs\.db$", re.IGNORECASE),
    re.compile(r"^desktop\.ini$", re.IGNORECASE),
)


def is_artifact(file_path: str) -> bool:
    """Check if a path names a filesystem metadata artifact."""
    name = os.path.basename(file_path)
    return any(pattern.search(name) for pattern in ARTIFACT_PATTERNS)


def filter_artifacts(files: Sequence[str]) -> List[str]:
    """Drop filesystem artifacts, preserving order."""
    return [f for f in files if not is_artifact(f)]


# =============================================================================
# Transcode plans
# =============================================================================

@dataclass(frozen=True)
class TranscodePlan:
    """
    Codec settings for one quality level.

    stream_copy plans never re-encode. Every other plan re-encodes video
    with libx264 at (crf, preset) and audio with AAC at a fixed bitrate.
    """

    stream_copy: bool
    crf: Optional[int] = None
    preset: Optional[str] = None
    video_codec: str = "libx264"
    audio_codec: str = "aac"

    def codec_args(self, audio_bitrate: str) -> List[str]:
        if self.stream_copy:
            return ["-c", "copy"]
        return [
            "-c:v", self.video_codec,
            "-crf", str(self.crf),
            "-preset", self.preset,
            "-c:a", self.audio_codec,
            "-b:a", audio_bitrate,
        ]


QUALITY_PLANS: Dict[Quality, TranscodePlan] = {
    Quality.PASSTHROUGH: TranscodePlan(stream_copy=True),
    Quality.HIGH: TranscodePlan(stream_copy=False, crf=18, preset="slow"),
    Quality.MEDIUM: TranscodePlan(stream_copy=False, crf=23, preset="medium"),
    Quality.LOW: TranscodePlan(stream_copy=False, crf=28, preset="fast"),
}


def plan_for_quality(quality: Union[Quality, str]) -> TranscodePlan:
    """
    Resolve the transcode plan for a quality level.

    Raises:
        ValueError: If quality is not a known level
    """
    return QUALITY_PLANS[Quality(quality)]


# =============================================================================
# Concat manifest
# =============================================================================

def quote_manifest_path(path: str) -> str:
    """
    Quote a path for the concat demuxer.

    The path is wrapped in single quotes; embedded quotes become '\\''.
    """
    return "'" + path.replace("'", "'\\''") + "'"


def render_manifest(files: Sequence[str]) -> str:
    """Render manifest text: one `file '<absolute path>'` line per input."""
    lines = [f"file {quote_manifest_path(os.path.abspath(f))}" for f in files]
    return "\n".join(lines) + "\n"


def write_manifest(files: Sequence[str], directory: Path) -> Path:
    """
    Write the concat manifest into directory.

    Returns:
        Path to the manifest file

    Raises:
        ManifestError: If the file cannot be written
    """
    name = f"filelist_{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}.txt"
    manifest_path = directory / name
    try:
        manifest_path.write_text(render_manifest(files), encoding="utf-8")
    except OSError as e:
        raise ManifestError(f"Cannot write concat manifest {manifest_path}: {e}") from e
    return manifest_path


# =============================================================================
# Executor
# =============================================================================

class MergeExecutor:
    """
    FFmpeg-based merge executor.

    Stateless between runs: every run() gets its own state machine,
    parser, probe pool and process. One executor may therefore be reused
    for every job of a batch, sequentially.
    """

    def __init__(self, tools: ToolPaths, settings: Optional[EngineSettings] = None):
        """
        Initialize executor.

        Args:
            tools: Resolved ffmpeg/ffprobe locations (see tools.resolve_tool_paths)
            settings: Engine settings (timeouts, audio bitrate)
        """
        self.tools = tools
        self.settings = settings or DEFAULT_SETTINGS

    def build_command(
        self,
        manifest_path: Path,
        plan: TranscodePlan,
        output_path: str,
    ) -> List[str]:
        """Build FFmpeg command line arguments."""
        cmd = [
            self.tools.ffmpeg,
            "-hide_banner",
            "-nostdin",
            "-n",  # never overwrite: an existing output is a FILE_EXISTS failure
            "-f", "concat",
            "-safe", "0",
            "-i", str(manifest_path),
        ]
        cmd.extend(plan.codec_args(self.settings.audio_bitrate))
        cmd.append(output_path)
        return cmd

    def run(
        self,
        job: MergeJob,
        quality: Union[Quality, str],
        output_path: str,
        on_progress: Optional[ProgressCallback] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> JobResult:
        """
        Merge one job.

        Returns:
            JobResult in exactly one terminal state
        """
        started_at = datetime.now()
        session_id = job.session_id
        machine = ExecutionStateMachine()
        token = cancel_token or CancellationToken()

        def _finish(state: ExecutionState, result: JobResult) -> JobResult:
            machine.transition(state)
            result.completed_at = datetime.now()
            logger.info(f"[FFmpeg] {result.summary()}")
            return result

        # Step 1: validation, before anything touches the filesystem
        files = filter_artifacts(job.input_files)
        if not files:
            return _finish(ExecutionState.FAILED, JobResult.failure(
                session_id,
                f"No valid input files for session {session_id} "
                f"({len(job.input_files)} given, all filtered as artifacts)",
                stage=FailureStage.VALIDATION,
                started_at=started_at,
            ))

        try:
            plan = plan_for_quality(quality)
        except ValueError:
            return _finish(ExecutionState.FAILED, JobResult.failure(
                session_id,
                f"Unknown quality level: {quality!r}",
                stage=FailureStage.VALIDATION,
                started_at=started_at,
            ))

        output = Path(output_path)
        try:
            output.parent.mkdir(parents=True, exist_ok=True)
            manifest_path = write_manifest(files, output.parent)
        except (OSError, ManifestError) as e:
            return _finish(ExecutionState.FAILED, JobResult.failure(
                session_id, str(e), started_at=started_at,
            ))

        probe: Optional[DurationProbe] = None
        try:
            if token.cancelled:
                return _finish(ExecutionState.CANCELLED, JobResult.cancelled(
                    session_id, started_at=started_at,
                ))

            probe = DurationProbe(
                self.tools.ffprobe,
                max_workers=self.settings.probe_workers,
                timeout=self.settings.probe_timeout_seconds,
            )
            total_future = probe.start(files)

            cmd = self.build_command(manifest_path, plan, str(output))
            logger.info(f"[FFmpeg] Executing: {' '.join(cmd)}")

            output_preexisted = output.exists()
            try:
                process = subprocess.Popen(
                    cmd,
                    stdin=subprocess.DEVNULL,
                    stdout=subprocess.DEVNULL,
                    stderr=subprocess.PIPE,
                    text=True,
                    errors="replace",
                )
            except FileNotFoundError as e:
                return _finish(ExecutionState.FAILED, JobResult.failure(
                    session_id,
                    f"ffmpeg executable not found: {self.tools.ffmpeg} ({e})",
                    started_at=started_at,
                ))
            except OSError as e:
                return _finish(ExecutionState.FAILED, JobResult.failure(
                    session_id, f"Failed to start ffmpeg: {e}", started_at=started_at,
                ))

            machine.transition(ExecutionState.RUNNING)
            logger.info(f"[FFmpeg] Started PID {process.pid} for session {session_id}")

            halted = threading.Event()
            diagnostics: List[str] = []
            reader = threading.Thread(
                target=self._read_diagnostics,
                args=(process, ProgressParser(), total_future, halted, token,
                      on_progress, diagnostics),
                name=f"clipmerge-stderr-{session_id}",
                daemon=True,
            )
            reader.start()

            stop_state = self._watch(process, token, halted)
            reader.join(timeout=self.settings.terminate_grace_seconds + 1.0)
            process.stderr.close()

            if stop_state is not None:
                if not output_preexisted:
                    self._remove_partial_output(output)
                if stop_state == ExecutionState.TIMED_OUT:
                    logger.warning(
                        f"[FFmpeg] PID {process.pid} exceeded {self.settings.timeout_seconds}s, killed"
                    )
                    return _finish(stop_state, JobResult.timed_out(
                        session_id, started_at=started_at,
                    ))
                return _finish(stop_state, JobResult.cancelled(
                    session_id, started_at=started_at,
                ))

            exit_code = process.returncode
            logger.info(f"[FFmpeg] PID {process.pid} exited with code {exit_code}")

            if exit_code == 0:
                return _finish(ExecutionState.SUCCEEDED, JobResult.success(
                    session_id, str(output), exit_code=0, started_at=started_at,
                ))

            raw_text = "".join(diagnostics).strip() or f"ffmpeg exited with code {exit_code}"
            logger.error(f"[FFmpeg] Failed: {raw_text.splitlines()[-1]}")
            # Partial output never outlives a failed run
            if not output_preexisted:
                self._remove_partial_output(output)
            return _finish(ExecutionState.FAILED, JobResult.failure(
                session_id, raw_text, exit_code=exit_code, started_at=started_at,
            ))
        finally:
            if probe is not None:
                probe.shutdown()
            self._remove_manifest(manifest_path)

    # -------------------------------------------------------------------------
    # Process supervision
    # -------------------------------------------------------------------------

    def _watch(
        self,
        process: subprocess.Popen,
        token: CancellationToken,
        halted: threading.Event,
    ) -> Optional[ExecutionState]:
        """
        Wait for the process, enforcing deadline and cancellation.

        Returns:
            None on natural exit, TIMED_OUT or CANCELLED if we stopped it
        """
        deadline = time.monotonic() + self.settings.timeout_seconds
        poll = self.settings.poll_interval_seconds

        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                halted.set()
                self._terminate(process)
                return ExecutionState.TIMED_OUT

            try:
                process.wait(timeout=min(poll, remaining))
                return None
            except subprocess.TimeoutExpired:
                pass

            if token.cancelled:
                halted.set()
                logger.info(f"[FFmpeg] Cancelling PID {process.pid}")
                self._terminate(process)
                return ExecutionState.CANCELLED

    def _terminate(self, process: subprocess.Popen) -> None:
        """Stop a process: SIGTERM first, SIGKILL after the grace period."""
        try:
            process.terminate()
            try:
                process.wait(timeout=self.settings.terminate_grace_seconds)
            except subprocess.TimeoutExpired:
                logger.warning(f"[FFmpeg] PID {process.pid} did not terminate, sending SIGKILL")
                process.kill()
                process.wait()
        except ProcessLookupError:
            pass  # Process already dead

    def _read_diagnostics(
        self,
        process: subprocess.Popen,
        parser: ProgressParser,
        total_future: "Future[float]",
        halted: threading.Event,
        token: CancellationToken,
        on_progress: Optional[ProgressCallback],
        diagnostics: List[str],
    ) -> None:
        """
        Reader thread: accumulate stderr and emit progress.

        Text mode splits on '\\r' as well as '\\n', so each FFmpeg status
        update arrives as its own line.
        """
        total_applied = False
        try:
            for line in process.stderr:
                diagnostics.append(line)

                if halted.is_set() or token.cancelled:
                    continue

                if not total_applied and total_future.done():
                    parser.set_total_duration(total_future.result())
                    total_applied = True

                event = parser.feed(line)
                if event is None or on_progress is None:
                    continue

                try:
                    on_progress(event)
                except Exception:
                    logger.exception("[FFmpeg] Progress callback raised; continuing")
        except (OSError, ValueError) as e:
            # Pipe closed underneath us after a kill
            logger.debug(f"[FFmpeg] Stderr reader stopped: {e}")

    # -------------------------------------------------------------------------
    # Cleanup
    # -------------------------------------------------------------------------

    def _remove_manifest(self, manifest_path: Path) -> None:
        try:
            manifest_path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"[FFmpeg] Could not delete manifest {manifest_path}: {e}")

    def _remove_partial_output(self, output: Path) -> None:
        try:
            if output.exists():
                output.unlink()
                logger.info(f"[FFmpeg] Removed partial output {output}")
        except OSError as e:
            logger.warning(f"[FFmpeg] Could not remove partial output {output}: {e}")
