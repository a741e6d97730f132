"""
EngineSettings — runtime configuration for merge execution.

Settings are resolved ONCE at bootstrap and passed explicitly to the
executor, the batch engine and the preferences store. Nothing in the
engine reads configuration from module globals.

Environment overrides (optional):
- CLIPMERGE_TIMEOUT_SECONDS
- CLIPMERGE_PROBE_TIMEOUT_SECONDS
- CLIPMERGE_PROBE_WORKERS
- CLIPMERGE_AUDIO_BITRATE
- CLIPMERGE_OUTPUT_SUBDIR
- CLIPMERGE_PREFERENCES_PATH
"""

import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field


ENV_PREFIX = "CLIPMERGE_"

# Hard wall-clock limit for one merge, measured from process start
DEFAULT_TIMEOUT_SECONDS = 300.0

# Failed-operation journal capacity (FIFO eviction beyond this)
DEFAULT_JOURNAL_CAPACITY = 50

# Default output folder created beside the source clips
DEFAULT_OUTPUT_SUBDIR = "merged_videos"


def _default_preferences_path() -> str:
    return str(Path.home() / ".clipmerge" / "preferences.json")


class EngineSettings(BaseModel):
    """
    Complete, immutable engine configuration.

    Defaults match the production behaviour. Tests shrink the timeouts
    to keep fake-process runs fast.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    timeout_seconds: float = Field(default=DEFAULT_TIMEOUT_SECONDS, gt=0)
    """Wall-clock deadline for the transcoding process."""

    terminate_grace_seconds: float = Field(default=5.0, ge=0)
    """Time between SIGTERM and SIGKILL when stopping a process."""

    poll_interval_seconds: float = Field(default=0.1, gt=0)
    """Watchdog polling interval for deadline and cancellation checks."""

    probe_timeout_seconds: float = Field(default=30.0, gt=0)
    """Per-file ffprobe limit. Not part of the job timeout."""

    probe_workers: int = Field(default=4, ge=1)

    audio_bitrate: str = "192k"
    """Fixed AAC bitrate used whenever video is re-encoded."""

    journal_capacity: int = Field(default=DEFAULT_JOURNAL_CAPACITY, ge=1)

    output_subdir: str = DEFAULT_OUTPUT_SUBDIR

    preferences_path: str = Field(default_factory=_default_preferences_path)


# Field name -> environment variable suffix
_ENV_FIELDS: Dict[str, str] = {
    "timeout_seconds": "TIMEOUT_SECONDS",
    "terminate_grace_seconds": "TERMINATE_GRACE_SECONDS",
    "probe_timeout_seconds": "PROBE_TIMEOUT_SECONDS",
    "probe_workers": "PROBE_WORKERS",
    "audio_bitrate": "AUDIO_BITRATE",
    "journal_capacity": "JOURNAL_CAPACITY",
    "output_subdir": "OUTPUT_SUBDIR",
    "preferences_path": "PREFERENCES_PATH",
}


def load_settings(
    environ: Optional[Mapping[str, str]] = None,
    **overrides: Any,
) -> EngineSettings:
    """
    Build EngineSettings from defaults, environment, and explicit overrides.

    Priority (highest first):
    1. Keyword overrides
    2. CLIPMERGE_* environment variables
    3. Model defaults

    Args:
        environ: Environment mapping (defaults to os.environ)
        **overrides: Explicit field values

    Returns:
        Validated EngineSettings

    Raises:
        pydantic.ValidationError: If a value is out of range or malformed
    """
    if environ is None:
        environ = os.environ

    values: Dict[str, Any] = {}
    for field_name, suffix in _ENV_FIELDS.items():
        raw = environ.get(ENV_PREFIX + suffix)
        if raw is not None and raw.strip():
            values[field_name] = raw.strip()

    values.update({k: v for k, v in overrides.items() if v is not None})
    return EngineSettings(**values)


DEFAULT_SETTINGS = EngineSettings()
