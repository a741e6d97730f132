"""
External tool discovery.

Resolves ffmpeg and ffprobe ONCE at bootstrap. The resulting ToolPaths
value is passed into MergeExecutor; nothing caches a tool location in
module state.

Discovery priority (per tool):
1. Environment variable override (CLIPMERGE_FFMPEG_PATH / CLIPMERGE_FFPROBE_PATH)
2. PATH lookup
3. Common install locations (Homebrew, /usr/local, /usr)
"""

import logging
import os
import shutil
from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Sequence

from .errors import ToolNotFoundError

logger = logging.getLogger(__name__)


ENV_FFMPEG_PATH = "CLIPMERGE_FFMPEG_PATH"
ENV_FFPROBE_PATH = "CLIPMERGE_FFPROBE_PATH"

COMMON_BIN_DIRS: Sequence[str] = (
    "/opt/homebrew/bin",
    "/usr/local/bin",
    "/usr/bin",
)


@dataclass(frozen=True)
class ToolPaths:
    """Absolute locations of the external tools."""

    ffmpeg: str
    ffprobe: str


def _is_executable(path: str) -> bool:
    return os.path.isfile(path) and os.access(path, os.X_OK)


def find_tool(
    name: str,
    env_var: str,
    environ: Optional[Mapping[str, str]] = None,
    search_dirs: Sequence[str] = COMMON_BIN_DIRS,
) -> str:
    """
    Locate one executable.

    Args:
        name: Binary name ("ffmpeg" or "ffprobe")
        env_var: Override variable checked first
        environ: Environment mapping (defaults to os.environ)
        search_dirs: Fallback directories

    Returns:
        Absolute path to the executable

    Raises:
        ToolNotFoundError: If the tool cannot be found
    """
    if environ is None:
        environ = os.environ

    override = environ.get(env_var)
    if override:
        if not _is_executable(override):
            raise ToolNotFoundError(
                name, f"override from {env_var} is not an executable file: {override}"
            )
        return override

    found = shutil.which(name)
    if found:
        return found

    for directory in search_dirs:
        candidate = os.path.join(directory, name)
        if _is_executable(candidate):
            return candidate

    raise ToolNotFoundError(
        name, f"not on PATH or in {', '.join(search_dirs)}. Set {env_var} if installed elsewhere."
    )


def resolve_tool_paths(environ: Optional[Mapping[str, str]] = None) -> ToolPaths:
    """
    Resolve both tools.

    Raises:
        ToolNotFoundError: If either tool is missing
    """
    paths = ToolPaths(
        ffmpeg=find_tool("ffmpeg", ENV_FFMPEG_PATH, environ),
        ffprobe=find_tool("ffprobe", ENV_FFPROBE_PATH, environ),
    )
    logger.info(f"[Tools] ffmpeg={paths.ffmpeg} ffprobe={paths.ffprobe}")
    return paths


def check_prerequisites(environ: Optional[Mapping[str, str]] = None) -> Dict[str, Dict[str, Optional[str]]]:
    """
    Report tool availability without raising.

    Returns:
        {"ffmpeg": {"path": ..., "error": ...}, "ffprobe": {...}}
        where exactly one of path/error is set per tool
    """
    report: Dict[str, Dict[str, Optional[str]]] = {}
    for name, env_var in (("ffmpeg", ENV_FFMPEG_PATH), ("ffprobe", ENV_FFPROBE_PATH)):
        try:
            report[name] = {"path": find_tool(name, env_var, environ), "error": None}
        except ToolNotFoundError as e:
            report[name] = {"path": None, "error": str(e)}
    return report
