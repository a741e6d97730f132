"""
FFmpeg progress parsing.

Real-time progress extraction from FFmpeg stderr.

FFmpeg outputs progress to stderr in this format:
    frame=  240 fps= 60 q=-1.0 size=   10240kB time=00:00:08.00 bitrate=10485.8kbits/s speed=2.01x

Grammar (the only structured output consumed):
    time=HH:MM:SS.fraction      hours may exceed two digits, fraction is optional

We derive:
- elapsed media seconds from the LAST marker in a chunk
- percent = min(elapsed / total * 100, 100) once the total is known
- ETA from the ratio of wall-clock time to media time, only while
  0 < percent < 100

Invariants:
- percent is None until the total duration is known and positive
- percent never decreases across one parser's event stream
- percent never exceeds 100
"""

import re
import time
from typing import Callable, Optional

from pydantic import BaseModel, ConfigDict


# Matches: time=00:00:01.00, time=01:02:03.456, time=123:00:00
TIME_PATTERN = re.compile(r"time=\s*(\d+):(\d{2}):(\d{2}(?:\.\d+)?)")


class ProgressEvent(BaseModel):
    """Progress snapshot emitted after every parsed time= marker."""

    model_config = ConfigDict(frozen=True)

    elapsed_seconds: float
    total_duration_seconds: Optional[float] = None
    percent: Optional[float] = None
    eta_seconds: Optional[float] = None


def parse_timestamp(text: str) -> Optional[float]:
    """
    Extract elapsed seconds from the last time= marker in text.

    Args:
        text: One or more stderr lines

    Returns:
        Seconds, or None when no well-formed marker is present
        (FFmpeg prints time=N/A before the first packet)
    """
    last = None
    for last in TIME_PATTERN.finditer(text):
        pass
    if last is None:
        return None

    hours = int(last.group(1))
    minutes = int(last.group(2))
    seconds = float(last.group(3))
    return hours * 3600 + minutes * 60 + seconds


class ProgressParser:
    """
    Turn FFmpeg stderr chunks into ProgressEvent objects.

    Usage:
        parser = ProgressParser()
        parser.set_total_duration(120.0)   # may arrive late
        for line in stderr:
            event = parser.feed(line)
            if event:
                on_progress(event)
    """

    def __init__(
        self,
        total_duration: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize progress parser.

        Args:
            total_duration: Total media seconds, if already known
            clock: Monotonic wall clock (injectable for tests)
        """
        self._clock = clock
        self._started_at = clock()
        self._total: Optional[float] = None
        self._last_percent: Optional[float] = None
        self.set_total_duration(total_duration)

    @property
    def total_duration(self) -> Optional[float]:
        return self._total

    def set_total_duration(self, total: Optional[float]) -> None:
        """Record the total duration. Zero or negative means unknown."""
        if total is not None and total > 0:
            self._total = float(total)
        else:
            self._total = None

    def feed(self, chunk: str) -> Optional[ProgressEvent]:
        """
        Parse a chunk of FFmpeg stderr.

        Returns:
            ProgressEvent if the chunk held a time= marker, None otherwise
        """
        elapsed = parse_timestamp(chunk)
        if elapsed is None:
            return None
        return self._build_event(elapsed)

    def _build_event(self, elapsed: float) -> ProgressEvent:
        if self._total is None:
            return ProgressEvent(elapsed_seconds=elapsed)

        percent = min(elapsed / self._total * 100.0, 100.0)
        if self._last_percent is not None and percent < self._last_percent:
            percent = self._last_percent
        self._last_percent = percent

        eta = None
        if 0 < percent < 100:
            eta = self._calculate_eta(elapsed)

        return ProgressEvent(
            elapsed_seconds=elapsed,
            total_duration_seconds=self._total,
            percent=percent,
            eta_seconds=eta,
        )

    def _calculate_eta(self, elapsed: float) -> Optional[float]:
        """
        Estimate remaining wall-clock seconds.

        ETA = remaining media time * (wall time spent / media time done)
        """
        wall_elapsed = self._clock() - self._started_at
        if elapsed <= 0 or wall_elapsed <= 0:
            return None

        remaining = max(self._total - elapsed, 0.0)
        return remaining * (wall_elapsed / elapsed)


def format_eta(eta_seconds: Optional[float]) -> str:
    """
    Format ETA for display.

    Args:
        eta_seconds: Estimated seconds remaining

    Returns:
        Human-readable ETA string
    """
    if eta_seconds is None:
        return "Estimating..."

    if eta_seconds < 0:
        return "Almost done..."

    if eta_seconds < 60:
        return f"{int(eta_seconds)}s remaining"

    if eta_seconds < 3600:
        minutes = int(eta_seconds / 60)
        seconds = int(eta_seconds % 60)
        return f"{minutes}m {seconds}s remaining"

    hours = int(eta_seconds / 3600)
    minutes = int((eta_seconds % 3600) / 60)
    return f"{hours}h {minutes}m remaining"


def format_duration(seconds: Optional[float]) -> str:
    """Format seconds as M:SS or H:MM:SS; None becomes 'Unknown'."""
    if seconds is None or seconds < 0:
        return "Unknown"
    total = int(seconds)
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours > 0:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"
