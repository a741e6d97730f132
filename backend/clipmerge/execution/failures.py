"""
Merge Failure Taxonomy

Maps raw FFmpeg/ffprobe diagnostic text to a stable error classification
with user-facing remediation steps.

Purpose:
--------
Explain WHAT failed and HOW the operator can fix it, while keeping the
original text available for advanced troubleshooting.

Rules:
------
- Classification is a pure function of the text
- Matching is case-insensitive and multi-line safe
- The table is evaluated top to bottom; the first match wins.
  Ambiguous text matches several entries, so ORDER IS CONTRACT.
- Timeout and cancellation outcomes are terminal states of the executor
  and are never routed through here.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import List, Tuple

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# Categories and Codes
# =============================================================================

class ErrorCategory(str, Enum):
    """
    Broad failure category.

    INFRASTRUCTURE: resolvable by user action outside the app
        (install a tool, free disk space, fix permissions)
    CONTENT: the input itself is the problem; different input is needed
    TIMEOUT: the operation exceeded its time budget
    UNKNOWN: no pattern matched
    """

    INFRASTRUCTURE = "infrastructure"
    CONTENT = "content"
    TIMEOUT = "timeout"
    UNKNOWN = "unknown"


class ErrorCode(str, Enum):
    """Stable machine-readable failure codes."""

    FFMPEG_NOT_FOUND = "FFMPEG_NOT_FOUND"
    FILE_NOT_FOUND = "FILE_NOT_FOUND"
    INVALID_DURATION = "INVALID_DURATION"
    UNSUPPORTED_CODEC = "UNSUPPORTED_CODEC"
    INVALID_FILE = "INVALID_FILE"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    NO_SPACE = "NO_SPACE"
    TIMEOUT = "TIMEOUT"
    FILE_EXISTS = "FILE_EXISTS"
    INTERRUPTED = "INTERRUPTED"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


# =============================================================================
# Classification Model
# =============================================================================

class ErrorInfo(BaseModel):
    """
    Classified failure.

    remediation_steps always holds at least one entry.
    raw_text is the unmodified diagnostic text.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    category: ErrorCategory
    code: ErrorCode
    user_message: str
    suggestion: str
    remediation_steps: List[str] = Field(min_length=1)
    raw_text: str


@dataclass(frozen=True)
class ErrorMapping:
    """One row of the classification table."""

    pattern: re.Pattern
    category: ErrorCategory
    code: ErrorCode
    user_message: str
    suggestion: str
    remediation_steps: Tuple[str, ...]


def _p(expression: str) -> re.Pattern:
    return re.compile(expression, re.IGNORECASE)


# =============================================================================
# Classification Table (ordered)
# =============================================================================
# Tool-missing patterns come first: "ffmpeg: not found" would otherwise be
# read as a missing input file. INVALID_DURATION and UNSUPPORTED_CODEC sit
# before INVALID_FILE because their texts usually also contain "invalid".

ERROR_MAPPINGS: Tuple[ErrorMapping, ...] = (
    ErrorMapping(
        pattern=_p(
            r"(ffmpeg|ffprobe)[^\n]*not found"
            r"|enoent[^\n]*ff(mpeg|probe)"
            r"|ff(mpeg|probe)[^\n]*enoent"
            r"|cannot find[^\n]*ff(mpeg|probe)"
        ),
        category=ErrorCategory.INFRASTRUCTURE,
        code=ErrorCode.FFMPEG_NOT_FOUND,
        user_message="FFmpeg Not Found",
        suggestion="The video processing tool (FFmpeg) is not installed or accessible.",
        remediation_steps=(
            "Install FFmpeg with your package manager (e.g. brew install ffmpeg)",
            "Make sure ffmpeg and ffprobe are on your PATH",
            "Set CLIPMERGE_FFMPEG_PATH / CLIPMERGE_FFPROBE_PATH to the binaries",
        ),
    ),
    ErrorMapping(
        pattern=_p(r"no such file or directory|cannot find|file not found"),
        category=ErrorCategory.CONTENT,
        code=ErrorCode.FILE_NOT_FOUND,
        user_message="File Not Found",
        suggestion="The video file could not be found. It may have been moved, renamed, or deleted.",
        remediation_steps=(
            "Check if the file still exists in its original location",
            "Try selecting the file again",
            "Make sure the file hasn't been moved to another folder",
        ),
    ),
    ErrorMapping(
        pattern=_p(r"duration[^\n]*invalid|invalid duration"),
        category=ErrorCategory.CONTENT,
        code=ErrorCode.INVALID_DURATION,
        user_message="Invalid Video Duration",
        suggestion="The video file has an invalid or corrupted duration.",
        remediation_steps=(
            "Try re-encoding the video with another tool first",
            "Check if the video plays correctly in a media player",
            "Use a different video file",
        ),
    ),
    ErrorMapping(
        pattern=_p(r"codec[^\n]*not found|unknown codec|unsupported codec"),
        category=ErrorCategory.CONTENT,
        code=ErrorCode.UNSUPPORTED_CODEC,
        user_message="Unsupported Video Codec",
        suggestion="The video uses a codec that isn't supported.",
        remediation_steps=(
            "Try converting the video to H.264 (MP4) format first",
            "Use a different video file",
            "Check if the video plays correctly in a media player",
        ),
    ),
    ErrorMapping(
        pattern=_p(r"invalid data found|invalid argument|invalid|malformed"),
        category=ErrorCategory.CONTENT,
        code=ErrorCode.INVALID_FILE,
        user_message="Invalid Video File",
        suggestion="The file appears to be corrupted or not a valid video format.",
        remediation_steps=(
            "Try opening the file in another video player to verify it works",
            "Re-copy the video file from the camera card",
            "Convert the file to a standard format (MP4, MOV) using another tool",
        ),
    ),
    ErrorMapping(
        pattern=_p(r"permission denied|access denied|eacces"),
        category=ErrorCategory.INFRASTRUCTURE,
        code=ErrorCode.PERMISSION_DENIED,
        user_message="Permission Denied",
        suggestion="The app doesn't have permission to access this file or folder.",
        remediation_steps=(
            "Check the file and folder permissions",
            "Make sure the file isn't open in another application",
            "Try copying the files to a folder in your home directory",
            "Grant the app full disk access in the system privacy settings",
        ),
    ),
    ErrorMapping(
        pattern=_p(r"no space left|disk full|enospc"),
        category=ErrorCategory.INFRASTRUCTURE,
        code=ErrorCode.NO_SPACE,
        user_message="Not Enough Disk Space",
        suggestion="There isn't enough free space on your disk to complete this operation.",
        remediation_steps=(
            "Free up disk space by deleting unnecessary files",
            "Choose a different destination folder with more space",
            "Empty your Trash to reclaim disk space",
        ),
    ),
    ErrorMapping(
        pattern=_p(r"timed out|timeout"),
        category=ErrorCategory.TIMEOUT,
        code=ErrorCode.TIMEOUT,
        user_message="Operation Timed Out",
        suggestion="The video processing took too long and was stopped.",
        remediation_steps=(
            "Try processing fewer or smaller video files at once",
            "Close other heavy applications",
            "Use passthrough quality, which does not re-encode",
        ),
    ),
    ErrorMapping(
        pattern=_p(r"already exists|file exists|eexist"),
        category=ErrorCategory.INFRASTRUCTURE,
        code=ErrorCode.FILE_EXISTS,
        user_message="File Already Exists",
        suggestion="A file with this name already exists at the destination.",
        remediation_steps=(
            "Delete or rename the existing file",
            "Select a different output folder",
        ),
    ),
    ErrorMapping(
        pattern=_p(r"broken pipe|connection reset|epipe"),
        category=ErrorCategory.INFRASTRUCTURE,
        code=ErrorCode.INTERRUPTED,
        user_message="Processing Interrupted",
        suggestion="The video processing was unexpectedly interrupted.",
        remediation_steps=(
            "Try the operation again",
            "Restart the app if the problem persists",
            "Check that the system has enough available memory",
        ),
    ),
)

UNKNOWN_MAPPING = ErrorMapping(
    pattern=_p(r"(?!)"),
    category=ErrorCategory.UNKNOWN,
    code=ErrorCode.UNKNOWN_ERROR,
    user_message="An Unexpected Error Occurred",
    suggestion="Something went wrong while processing your video.",
    remediation_steps=(
        "Try the operation again",
        "Restart the app if the problem continues",
        "Check the technical details below for more information",
    ),
)


# =============================================================================
# Classification Logic
# =============================================================================

def _to_info(mapping: ErrorMapping, raw_text: str) -> ErrorInfo:
    return ErrorInfo(
        category=mapping.category,
        code=mapping.code,
        user_message=mapping.user_message,
        suggestion=mapping.suggestion,
        remediation_steps=list(mapping.remediation_steps),
        raw_text=raw_text,
    )


def classify(raw_text: str) -> ErrorInfo:
    """
    Classify raw failure text.

    This is a PURE FUNCTION with NO SIDE EFFECTS.

    Args:
        raw_text: Diagnostic output or exception message

    Returns:
        ErrorInfo from the first matching table entry, or the
        UNKNOWN_ERROR fallback
    """
    text = raw_text if isinstance(raw_text, str) else str(raw_text or "")

    for mapping in ERROR_MAPPINGS:
        if mapping.pattern.search(text):
            return _to_info(mapping, text)

    return _to_info(UNKNOWN_MAPPING, text)


def format_error_for_log(info: ErrorInfo) -> str:
    """Format a classified error as a single log line."""
    return f"[{info.code.value}] {info.user_message}: {info.suggestion}"
