"""
Duration probing via ffprobe.

Progress display is advisory, so probing NEVER fails a merge:
- ffprobe missing, crashing, timing out        -> 0.0
- output that is not a positive finite number  -> 0.0

The total duration of a job is the sum of its files. A total of 0 means
"unknown" and progress is reported as elapsed time only.

Probes run as a thread-pool fan-out in the background while FFmpeg
starts. They are not covered by the job timeout; each probe has its
own limit instead.
"""

import logging
import math
import subprocess
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import List, Sequence

logger = logging.getLogger(__name__)


def parse_duration_output(output: str) -> float:
    """
    Parse ffprobe's bare duration output.

    Returns:
        Seconds, or 0.0 for empty, non-numeric, non-finite or non-positive text
    """
    try:
        value = float(output.strip())
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(value) or value <= 0:
        return 0.0
    return value


def probe_duration(ffprobe_path: str, file_path: str, timeout: float = 30.0) -> float:
    """
    Probe one file's container duration.

    Runs:
        ffprobe -v error -show_entries format=duration
                -of default=noprint_wrappers=1:nokey=1 <file>

    Returns:
        Duration in seconds, 0.0 on any failure
    """
    cmd = [
        ffprobe_path,
        "-v", "error",
        "-show_entries", "format=duration",
        "-of", "default=noprint_wrappers=1:nokey=1",
        file_path,
    ]
    try:
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            timeout=timeout,
            stdin=subprocess.DEVNULL,
        )
    except subprocess.TimeoutExpired:
        logger.warning(f"[Probe] Timed out after {timeout}s: {file_path}")
        return 0.0
    except OSError as e:
        logger.warning(f"[Probe] Could not run ffprobe for {file_path}: {e}")
        return 0.0

    if result.returncode != 0:
        logger.warning(
            f"[Probe] ffprobe exited {result.returncode} for {file_path}: "
            f"{result.stderr.strip()}"
        )
        return 0.0

    duration = parse_duration_output(result.stdout)
    if duration == 0.0:
        logger.debug(f"[Probe] Unusable duration output for {file_path}: {result.stdout!r}")
    return duration


class DurationProbe:
    """
    Fan-out duration probing for the files of one job.

    Usage:
        probe = DurationProbe(ffprobe_path)
        future = probe.start(files)      # returns immediately
        ...
        if future.done():
            total = future.result()      # never raises
        probe.shutdown()
    """

    def __init__(self, ffprobe_path: str, max_workers: int = 4, timeout: float = 30.0):
        self.ffprobe_path = ffprobe_path
        self.max_workers = max_workers
        self.timeout = timeout
        self._pool = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="clipmerge-probe"
        )

    def _probe_safe(self, file_path: str) -> float:
        try:
            return probe_duration(self.ffprobe_path, file_path, self.timeout)
        except Exception as e:
            logger.warning(f"[Probe] Unexpected error for {file_path}: {e}")
            return 0.0

    def start(self, files: Sequence[str]) -> "Future[float]":
        """
        Start probing every file; resolve to the summed duration.

        The returned future never raises.
        """
        total_future: "Future[float]" = Future()
        futures: List[Future] = [self._pool.submit(self._probe_safe, f) for f in files]

        if not futures:
            total_future.set_result(0.0)
            return total_future

        lock = threading.Lock()
        remaining = [len(futures)]

        def _on_done(_: Future) -> None:
            with lock:
                remaining[0] -= 1
                if remaining[0] > 0:
                    return
            # Cancelled probes (pool shut down early) count as 0
            total = sum(0.0 if f.cancelled() else f.result() for f in futures)
            total_future.set_result(total)
            logger.debug(f"[Probe] Total duration {total:.2f}s over {len(futures)} files")

        for future in futures:
            future.add_done_callback(_on_done)

        return total_future

    def shutdown(self) -> None:
        """Release worker threads without waiting for stragglers."""
        self._pool.shutdown(wait=False, cancel_futures=True)
