"""
Tests for the error taxonomy.

Verifies deterministic, ordered classification of raw failure text
without invoking FFmpeg.
"""

import pytest

from clipmerge.execution.failures import (
    ERROR_MAPPINGS,
    ErrorCategory,
    ErrorCode,
    classify,
    format_error_for_log,
)


# =============================================================================
# Pattern coverage
# =============================================================================

class TestClassification:
    """Each error code is reachable from realistic text."""

    @pytest.mark.parametrize("text,code", [
        ("ffmpeg executable not found: /usr/bin/ffmpeg", ErrorCode.FFMPEG_NOT_FOUND),
        ("sh: ffprobe: command not found", ErrorCode.FFMPEG_NOT_FOUND),
        ("Error: ENOENT while spawning ffmpeg", ErrorCode.FFMPEG_NOT_FOUND),
        ("ffmpeg not found", ErrorCode.FFMPEG_NOT_FOUND),
        ("FFprobe not found on this system", ErrorCode.FFMPEG_NOT_FOUND),
        ("spawn ffmpeg ENOENT", ErrorCode.FFMPEG_NOT_FOUND),
        ("Cannot find ffprobe in PATH", ErrorCode.FFMPEG_NOT_FOUND),
        ("/a/GX010001.MP4: No such file or directory", ErrorCode.FILE_NOT_FOUND),
        ("File not found", ErrorCode.FILE_NOT_FOUND),
        ("Invalid duration specification", ErrorCode.INVALID_DURATION),
        ("duration is invalid", ErrorCode.INVALID_DURATION),
        ("Unknown codec 'hevc_x'", ErrorCode.UNSUPPORTED_CODEC),
        ("Decoder (codec none) not found for input stream", ErrorCode.UNSUPPORTED_CODEC),
        ("/a/GX010001.MP4: Invalid data found when processing input", ErrorCode.INVALID_FILE),
        ("moov atom malformed", ErrorCode.INVALID_FILE),
        ("permission denied: /x", ErrorCode.PERMISSION_DENIED),
        ("PERMISSION DENIED", ErrorCode.PERMISSION_DENIED),
        ("EACCES: open '/out/PROCESSED0001.MP4'", ErrorCode.PERMISSION_DENIED),
        ("av_interleaved_write_frame(): No space left on device", ErrorCode.NO_SPACE),
        ("ENOSPC", ErrorCode.NO_SPACE),
        ("Connection timed out", ErrorCode.TIMEOUT),
        ("File '/out/PROCESSED0001.MP4' already exists. Exiting.", ErrorCode.FILE_EXISTS),
        ("EEXIST: file already there", ErrorCode.FILE_EXISTS),
        ("av_interleaved_write_frame(): Broken pipe", ErrorCode.INTERRUPTED),
    ])
    def test_known_patterns(self, text, code):
        """Realistic diagnostics map to the expected code."""
        assert classify(text).code == code

    def test_every_code_is_reachable(self):
        """The table covers every code except the fallback."""
        table_codes = {mapping.code for mapping in ERROR_MAPPINGS}

        assert table_codes == set(ErrorCode) - {ErrorCode.UNKNOWN_ERROR}

    def test_matching_is_case_insensitive(self):
        """Upper, lower and mixed case classify alike."""
        for text in ("no such file or directory", "NO SUCH FILE OR DIRECTORY", "No Such File Or Directory"):
            assert classify(text).code == ErrorCode.FILE_NOT_FOUND


# =============================================================================
# Ordering
# =============================================================================

class TestOrdering:
    """First match wins; the table order is part of the contract."""

    def test_tool_missing_beats_file_missing(self):
        """A missing ffmpeg mentions 'no such file' too."""
        text = "ffmpeg executable not found: /opt/ffmpeg ([Errno 2] No such file or directory)"

        assert classify(text).code == ErrorCode.FFMPEG_NOT_FOUND

    def test_file_missing_beats_invalid(self):
        """Text matching two entries resolves to the earlier one."""
        text = "Invalid argument: /a/GX010001.MP4: No such file or directory"

        assert classify(text).code == ErrorCode.FILE_NOT_FOUND

    def test_duration_beats_generic_invalid(self):
        """'Invalid duration' is not reported as a corrupt file."""
        assert classify("invalid duration in concat file").code == ErrorCode.INVALID_DURATION

    def test_codec_beats_generic_invalid(self):
        """Unsupported codec wins over a trailing 'invalid argument'."""
        text = "Unsupported codec id 0 for stream; Invalid argument"

        assert classify(text).code == ErrorCode.UNSUPPORTED_CODEC


# =============================================================================
# Fallback and output shape
# =============================================================================

class TestFallback:
    """Unmatched text and result contents."""

    @pytest.mark.parametrize("text", ["", "something odd happened", "exit status 1"])
    def test_unknown_fallback(self, text):
        """Anything unmatched is UNKNOWN_ERROR in the unknown category."""
        info = classify(text)

        assert info.code == ErrorCode.UNKNOWN_ERROR
        assert info.category == ErrorCategory.UNKNOWN

    def test_never_raises_on_non_string(self):
        """Non-string input is stringified rather than rejected."""
        assert classify(None).code == ErrorCode.UNKNOWN_ERROR

    def test_raw_text_preserved(self):
        """The original text travels with the classification."""
        text = "Line one\nPermission denied\n"

        assert classify(text).raw_text == text

    def test_every_result_has_remediation_steps(self):
        """User-facing output always offers at least one step."""
        samples = ["", "No such file", "Permission denied", "timeout", "broken pipe"]

        for sample in samples:
            info = classify(sample)
            assert info.user_message
            assert info.suggestion
            assert len(info.remediation_steps) >= 1

    def test_categories(self):
        """Categories follow the code."""
        assert classify("ffmpeg: not found").category == ErrorCategory.INFRASTRUCTURE
        assert classify("Invalid data found").category == ErrorCategory.CONTENT
        assert classify("timed out").category == ErrorCategory.TIMEOUT

    def test_format_for_log(self):
        """Single log line carrying the code."""
        line = format_error_for_log(classify("No space left on device"))

        assert line.startswith("[NO_SPACE] ")
        assert "\n" not in line
