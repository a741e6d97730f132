"""
Session grouping for action-camera recordings.

Cameras split one continuous recording into several chapter files.
The filename carries a 4-digit session id shared by every chapter:

    GX010001.MP4, GX020001.MP4   -> session 0001, chapters 01 and 02
    GP010042.MP4                 -> session 0042
    GOPR0007.MP4                 -> session 0007 (first chapter, legacy naming)

group_by_session() turns a flat, possibly mixed directory listing into
an ordered list of MergeJob objects.

Rules:
- Non-matching filenames are dropped silently (input is a raw listing)
- Grouping key is (normalized directory, session id); session counters
  reset per card/folder, so equal ids in different folders are different
  recordings
- Output ordering is deterministic regardless of input order
"""

import os
import re
from collections import Counter
from typing import Dict, Iterable, List, Optional, Tuple

from .models import MergeJob


# Ordered filename grammars. Each captures the 4-digit session id.
# Anchored at the end of the basename only.
SESSION_PATTERNS: Tuple[re.Pattern, ...] = (
    re.compile(r"GX\d{2}(\d{4})\.MP4$", re.IGNORECASE),
    re.compile(r"GP\d{2}(\d{4})\.MP4$", re.IGNORECASE),
    re.compile(r"GOPR(\d{4})\.MP4$", re.IGNORECASE),
)

OUTPUT_PREFIX = "PROCESSED"
OUTPUT_EXTENSION = "MP4"

_UNSAFE_NAME_CHARS = re.compile(r"[^A-Za-z0-9]")


def extract_session_id(filename: str) -> Optional[str]:
    """
    Extract the session id from a clip filename.

    Args:
        filename: Basename of the clip (a full path also works)

    Returns:
        4-digit session id, or None if the name matches no grammar
    """
    name = os.path.basename(filename)
    for pattern in SESSION_PATTERNS:
        match = pattern.search(name)
        if match:
            return match.group(1)
    return None


def sanitize_directory_name(directory: str) -> str:
    """
    Turn a directory basename into a filename-safe suffix.

    Non-alphanumeric characters become underscores. A path with no
    basename (filesystem root) yields "root".
    """
    name = os.path.basename(directory.rstrip("/\\")) or "root"
    return _UNSAFE_NAME_CHARS.sub("_", name)


def build_output_filename(session_id: str, directory: Optional[str] = None) -> str:
    """
    Build the merged output filename.

    Args:
        session_id: 4-digit session id
        directory: Source directory; pass it only when the session id
            collides across directories and needs disambiguation
    """
    if directory is None:
        return f"{OUTPUT_PREFIX}{session_id}.{OUTPUT_EXTENSION}"
    return f"{OUTPUT_PREFIX}{session_id}_{sanitize_directory_name(directory)}.{OUTPUT_EXTENSION}"


def group_by_session(file_paths: Iterable[str]) -> List[MergeJob]:
    """
    Partition clip paths into merge jobs.

    This is a PURE FUNCTION. The input is never mutated.

    Args:
        file_paths: Paths to candidate clip files (any order, any mix)

    Returns:
        MergeJob list sorted by (directory, session_id). Files inside
        each job are sorted ascending.
    """
    groups: Dict[Tuple[str, str], List[str]] = {}
    seen: set = set()

    for raw_path in file_paths:
        path = os.path.normpath(str(raw_path))
        session_id = extract_session_id(path)
        if session_id is None:
            continue

        # Identical paths collapse to one clip
        if path in seen:
            continue
        seen.add(path)

        directory = os.path.dirname(path)
        groups.setdefault((directory, session_id), []).append(path)

    # A session id present in more than one directory needs a suffix
    session_counts = Counter(session_id for _, session_id in groups)

    jobs: List[MergeJob] = []
    for (directory, session_id) in sorted(groups):
        collides = session_counts[session_id] > 1
        jobs.append(MergeJob(
            session_id=session_id,
            directory=directory,
            input_files=sorted(groups[(directory, session_id)]),
            output_filename=build_output_filename(
                session_id, directory if collides else None
            ),
        ))

    return jobs
