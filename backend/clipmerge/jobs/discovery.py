"""
Media discovery for dropped files and folders.

Expands a mix of file and directory paths into a flat list of video
files. Directories are scanned recursively. Grouping is NOT done here;
the result is fed to group_by_session().
"""

import logging
from pathlib import Path
from typing import Iterable, List

logger = logging.getLogger(__name__)


VIDEO_EXTENSIONS = frozenset({".mp4", ".mov", ".avi", ".mkv", ".m4v"})


def is_video_file(path: Path) -> bool:
    """Check the extension only; content is not inspected."""
    return path.suffix.lower() in VIDEO_EXTENSIONS


def _scan_directory(directory: Path, found: List[str]) -> None:
    try:
        entries = sorted(directory.iterdir())
    except OSError as e:
        logger.warning(f"[Discovery] Cannot scan {directory}: {e}")
        return

    for entry in entries:
        if entry.is_dir():
            _scan_directory(entry, found)
        elif entry.is_file() and is_video_file(entry):
            found.append(str(entry))


def collect_video_files(paths: Iterable[str]) -> List[str]:
    """
    Collect video files from files and folders.

    Unreadable or missing entries are logged and skipped so one bad
    path never hides the rest of a drop.

    Args:
        paths: File or directory paths

    Returns:
        Video file paths in discovery order
    """
    found: List[str] = []
    for raw in paths:
        path = Path(raw)
        try:
            if path.is_dir():
                _scan_directory(path, found)
            elif path.is_file():
                if is_video_file(path):
                    found.append(str(path))
            else:
                logger.warning(f"[Discovery] Path does not exist: {path}")
        except OSError as e:
            logger.warning(f"[Discovery] Error processing {path}: {e}")
    return found
