"""Shared fixtures for the clipmerge test suite."""

import sys
from pathlib import Path

import pytest

# Allow running the suite without installing the package
_backend_dir = Path(__file__).parent.parent.resolve()
if str(_backend_dir) not in sys.path:
    sys.path.insert(0, str(_backend_dir))

from clipmerge.execution.tools import ToolPaths  # noqa: E402
from clipmerge.settings import EngineSettings  # noqa: E402
from fakes import make_fake_ffmpeg, make_fake_ffprobe  # noqa: E402


@pytest.fixture
def tools_dir(tmp_path: Path) -> Path:
    path = tmp_path / "bin"
    path.mkdir()
    return path


@pytest.fixture
def fake_tools(tools_dir: Path) -> ToolPaths:
    """Successful ffmpeg plus an ffprobe reporting 10s per file."""
    return ToolPaths(
        ffmpeg=str(make_fake_ffmpeg(tools_dir, lines=["time=00:00:05.00", "time=00:00:10.00"])),
        ffprobe=str(make_fake_ffprobe(tools_dir)),
    )


@pytest.fixture
def fast_settings(tmp_path: Path) -> EngineSettings:
    """Settings with short limits so fake-process tests stay fast."""
    return EngineSettings(
        timeout_seconds=5.0,
        terminate_grace_seconds=1.0,
        poll_interval_seconds=0.05,
        probe_timeout_seconds=5.0,
        preferences_path=str(tmp_path / "prefs" / "preferences.json"),
    )
