"""
Tests for the FFmpeg merge executor.

Process-level tests drive fake ffmpeg/ffprobe scripts (see fakes.py);
command and manifest construction is tested without a process.
"""

import gc
import threading
import time
import warnings
from pathlib import Path

import pytest

from clipmerge.execution.cancellation import CancellationToken
from clipmerge.execution.failures import ErrorCode, classify
from clipmerge.execution.ffmpeg import (
    MergeExecutor,
    filter_artifacts,
    is_artifact,
    plan_for_quality,
    quote_manifest_path,
    render_manifest,
    write_manifest,
)
from clipmerge.execution.errors import ManifestError
from clipmerge.execution.results import FailureStage, JobOutcome
from clipmerge.execution.tools import ToolPaths
from clipmerge.jobs.models import MergeJob, Quality
from fakes import make_fake_ffmpeg, make_fake_ffprobe, read_record, touch_clips


def _job(directory: Path, *names: str) -> MergeJob:
    clips = touch_clips(directory, *names)
    return MergeJob(
        session_id="0001",
        directory=str(directory),
        input_files=clips,
        output_filename="PROCESSED0001.MP4",
    )


def _manifests(directory: Path) -> list:
    if not directory.exists():
        return []
    return sorted(directory.glob("filelist_*.txt"))


def _tools(tools_dir: Path, **ffmpeg_options) -> ToolPaths:
    return ToolPaths(
        ffmpeg=str(make_fake_ffmpeg(tools_dir, **ffmpeg_options)),
        ffprobe=str(make_fake_ffprobe(tools_dir, output="10.0")),
    )


# =============================================================================
# Artifacts and plans
# =============================================================================

class TestInputFiltering:
    """Filesystem artifacts never reach the manifest."""

    @pytest.mark.parametrize("name", ["._GX010001.MP4", ".DS_Store", "Thumbs.db", "desktop.ini"])
    def test_artifacts(self, name):
        assert is_artifact(f"/card/{name}")

    def test_real_clips_kept_in_order(self):
        files = ["/c/GX010001.MP4", "/c/._GX010001.MP4", "/c/GX020001.MP4"]

        assert filter_artifacts(files) == ["/c/GX010001.MP4", "/c/GX020001.MP4"]


class TestTranscodePlans:
    """Quality to codec arguments."""

    def test_passthrough_is_stream_copy(self):
        assert plan_for_quality(Quality.PASSTHROUGH).codec_args("192k") == ["-c", "copy"]

    @pytest.mark.parametrize("quality,crf,preset", [
        ("high", "18", "slow"),
        ("medium", "23", "medium"),
        ("low", "28", "fast"),
    ])
    def test_reencode_levels(self, quality, crf, preset):
        args = plan_for_quality(quality).codec_args("192k")

        assert args == [
            "-c:v", "libx264", "-crf", crf, "-preset", preset,
            "-c:a", "aac", "-b:a", "192k",
        ]

    def test_unknown_quality(self):
        with pytest.raises(ValueError):
            plan_for_quality("ultra")


# =============================================================================
# Manifest
# =============================================================================

class TestManifest:
    """Concat demuxer listing."""

    def test_quote_plain_path(self):
        assert quote_manifest_path("/a/GX010001.MP4") == "'/a/GX010001.MP4'"

    def test_quote_embedded_single_quote(self):
        """Quotes are closed, escaped and reopened."""
        assert quote_manifest_path("/a/it's/GX010001.MP4") == "'/a/it'\\''s/GX010001.MP4'"

    def test_render_one_line_per_file(self):
        text = render_manifest(["/a/GX010001.MP4", "/a/GX020001.MP4"])

        assert text == "file '/a/GX010001.MP4'\nfile '/a/GX020001.MP4'\n"

    def test_render_makes_paths_absolute(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)

        text = render_manifest(["GX010001.MP4"])

        assert text == f"file '{tmp_path / 'GX010001.MP4'}'\n"

    def test_write_unique_names(self, tmp_path):
        first = write_manifest(["/a/1.MP4"], tmp_path)
        second = write_manifest(["/a/1.MP4"], tmp_path)

        assert first != second
        assert first.name.startswith("filelist_")

    def test_write_into_missing_directory(self, tmp_path):
        with pytest.raises(ManifestError):
            write_manifest(["/a/1.MP4"], tmp_path / "missing")


class TestBuildCommand:
    """FFmpeg argument vector."""

    def test_concat_arguments(self, tmp_path):
        executor = MergeExecutor(ToolPaths(ffmpeg="/bin/ffmpeg", ffprobe="/bin/ffprobe"))

        cmd = executor.build_command(tmp_path / "list.txt", plan_for_quality("passthrough"), "/out/x.MP4")

        assert cmd[0] == "/bin/ffmpeg"
        assert cmd[cmd.index("-f") + 1] == "concat"
        assert cmd[cmd.index("-safe") + 1] == "0"
        assert cmd[cmd.index("-i") + 1] == str(tmp_path / "list.txt")
        assert "-n" in cmd
        assert cmd[-3:] == ["-c", "copy", "/out/x.MP4"]


# =============================================================================
# Running
# =============================================================================

class TestSuccessfulRun:
    """Exit code 0."""

    def test_success(self, tmp_path, tools_dir, fast_settings):
        job = _job(tmp_path / "card", "GX010001.MP4", "GX020001.MP4")
        output = tmp_path / "out" / "PROCESSED0001.MP4"
        executor = MergeExecutor(_tools(tools_dir, lines=["time=00:00:10.00"]), fast_settings)

        result = executor.run(job, Quality.PASSTHROUGH, str(output))

        assert result.status == JobOutcome.SUCCESS
        assert result.output_path == str(output)
        assert result.exit_code == 0
        assert result.completed_at is not None
        assert output.exists()

    def test_manifest_lists_filtered_files_and_is_removed(self, tmp_path, tools_dir, fast_settings):
        job = _job(tmp_path / "card", "GX010001.MP4", "._GX010001.MP4", "GX020001.MP4")
        output = tmp_path / "out" / "PROCESSED0001.MP4"
        executor = MergeExecutor(_tools(tools_dir), fast_settings)

        executor.run(job, Quality.PASSTHROUGH, str(output))

        argv, manifest = read_record(tools_dir)
        assert manifest.splitlines() == [
            f"file '{tmp_path / 'card' / 'GX010001.MP4'}'",
            f"file '{tmp_path / 'card' / 'GX020001.MP4'}'",
        ]
        assert argv[-1] == str(output)
        assert _manifests(output.parent) == []

    def test_reencode_arguments_reach_ffmpeg(self, tmp_path, tools_dir, fast_settings):
        job = _job(tmp_path / "card", "GX010001.MP4")
        executor = MergeExecutor(_tools(tools_dir), fast_settings)

        executor.run(job, "medium", str(tmp_path / "out" / "PROCESSED0001.MP4"))

        argv, _ = read_record(tools_dir)
        assert argv[argv.index("-crf") + 1] == "23"
        assert argv[argv.index("-b:a") + 1] == "192k"

    def test_progress_reaches_100_percent(self, tmp_path, tools_dir, fast_settings):
        """Probed total (2 x 10s) turns time= markers into percent."""
        job = _job(tmp_path / "card", "GX010001.MP4", "GX020001.MP4")
        executor = MergeExecutor(_tools(
            tools_dir,
            lines=["time=N/A", "time=00:00:05.00", "time=00:00:10.00", "time=00:00:20.00"],
            startup_delay=0.5,
            line_delay=0.1,
        ), fast_settings)
        events = []

        executor.run(job, Quality.PASSTHROUGH, str(tmp_path / "out" / "x.MP4"), on_progress=events.append)

        assert [event.elapsed_seconds for event in events] == [5.0, 10.0, 20.0]
        assert events[-1].total_duration_seconds == pytest.approx(20.0)
        assert events[-1].percent == pytest.approx(100.0)
        percents = [event.percent for event in events if event.percent is not None]
        assert percents == sorted(percents)

    def test_progress_callback_errors_are_contained(self, tmp_path, tools_dir, fast_settings):
        """A raising callback does not fail the merge."""
        job = _job(tmp_path / "card", "GX010001.MP4")
        executor = MergeExecutor(_tools(tools_dir, lines=["time=00:00:01.00"]), fast_settings)

        def _explode(event):
            raise RuntimeError("ui gone")

        result = executor.run(job, Quality.PASSTHROUGH, str(tmp_path / "out" / "x.MP4"), on_progress=_explode)

        assert result.status == JobOutcome.SUCCESS

    def test_stderr_pipe_closed_after_run(self, tmp_path, tools_dir, fast_settings):
        """No unclosed-pipe ResourceWarning once the run returns."""
        job = _job(tmp_path / "card", "GX010001.MP4")
        executor = MergeExecutor(_tools(tools_dir, lines=["time=00:00:01.00"]), fast_settings)

        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always", ResourceWarning)
            executor.run(job, Quality.PASSTHROUGH, str(tmp_path / "out" / "x.MP4"))
            gc.collect()

        unclosed = [w for w in caught
                    if issubclass(w.category, ResourceWarning) and "unclosed file" in str(w.message)]
        assert unclosed == []

    def test_executor_reusable_across_jobs(self, tmp_path, tools_dir, fast_settings):
        executor = MergeExecutor(_tools(tools_dir), fast_settings)

        first = executor.run(_job(tmp_path / "a", "GX010001.MP4"), "passthrough", str(tmp_path / "o" / "1.MP4"))
        second = executor.run(_job(tmp_path / "b", "GX010001.MP4"), "passthrough", str(tmp_path / "o" / "2.MP4"))

        assert first.succeeded and second.succeeded


class TestFailedRun:
    """Non-zero exit and spawn problems."""

    def test_non_zero_exit(self, tmp_path, tools_dir, fast_settings):
        job = _job(tmp_path / "card", "GX010001.MP4")
        executor = MergeExecutor(_tools(
            tools_dir,
            lines=["Input #0, concat", "GX010001.MP4: Invalid data found when processing input"],
            exit_code=1,
            write_output=False,
        ), fast_settings)
        output = tmp_path / "out" / "x.MP4"

        result = executor.run(job, Quality.PASSTHROUGH, str(output))

        assert result.status == JobOutcome.FAILURE
        assert result.stage == FailureStage.EXECUTION
        assert result.exit_code == 1
        assert "Invalid data found" in result.raw_text
        assert classify(result.raw_text).code == ErrorCode.INVALID_FILE
        assert _manifests(output.parent) == []

    def test_partial_output_removed_on_failure(self, tmp_path, tools_dir, fast_settings):
        """ffmpeg that wrote some output before failing leaves nothing behind."""
        job = _job(tmp_path / "card", "GX010001.MP4")
        executor = MergeExecutor(_tools(
            tools_dir, lines=["Invalid data found when processing input"],
            exit_code=1, write_output=True,
        ), fast_settings)
        output = tmp_path / "out" / "PROCESSED0001.MP4"

        result = executor.run(job, Quality.PASSTHROUGH, str(output))

        assert result.status == JobOutcome.FAILURE
        assert not output.exists()

    def test_rerun_after_partial_failure_succeeds(self, tmp_path, tools_dir, fast_settings):
        """A second attempt is not blocked by the first attempt's leftovers."""
        job = _job(tmp_path / "card", "GX010001.MP4")
        executor = MergeExecutor(_tools(
            tools_dir, exit_code=1, write_output=True, fail_first_run=True,
        ), fast_settings)
        output = tmp_path / "out" / "PROCESSED0001.MP4"

        first = executor.run(job, Quality.PASSTHROUGH, str(output))
        second = executor.run(job, Quality.PASSTHROUGH, str(output))

        assert first.status == JobOutcome.FAILURE
        assert second.status == JobOutcome.SUCCESS
        assert output.exists()

    def test_existing_output_is_kept(self, tmp_path, tools_dir, fast_settings):
        """A file that was already there is reported, never deleted."""
        job = _job(tmp_path / "card", "GX010001.MP4")
        output = tmp_path / "out" / "PROCESSED0001.MP4"
        output.parent.mkdir(parents=True)
        output.write_bytes(b"earlier merge")
        executor = MergeExecutor(_tools(tools_dir), fast_settings)

        result = executor.run(job, Quality.PASSTHROUGH, str(output))

        assert result.status == JobOutcome.FAILURE
        assert classify(result.raw_text).code == ErrorCode.FILE_EXISTS
        assert output.read_bytes() == b"earlier merge"

    def test_silent_failure_still_has_text(self, tmp_path, tools_dir, fast_settings):
        job = _job(tmp_path / "card", "GX010001.MP4")
        executor = MergeExecutor(_tools(tools_dir, exit_code=3, write_output=False), fast_settings)

        result = executor.run(job, Quality.PASSTHROUGH, str(tmp_path / "out" / "x.MP4"))

        assert result.raw_text == "ffmpeg exited with code 3"

    def test_missing_ffmpeg_binary(self, tmp_path, tools_dir, fast_settings):
        """A vanished binary is a classified failure, not an exception."""
        job = _job(tmp_path / "card", "GX010001.MP4")
        tools = ToolPaths(
            ffmpeg=str(tmp_path / "no-ffmpeg"),
            ffprobe=str(make_fake_ffprobe(tools_dir)),
        )
        output = tmp_path / "out" / "x.MP4"

        result = MergeExecutor(tools, fast_settings).run(job, Quality.PASSTHROUGH, str(output))

        assert result.status == JobOutcome.FAILURE
        assert classify(result.raw_text).code == ErrorCode.FFMPEG_NOT_FOUND
        assert _manifests(output.parent) == []


class TestValidation:
    """Problems caught before any process starts."""

    def test_only_artifacts(self, tmp_path, tools_dir, fast_settings):
        job = _job(tmp_path / "card", "._GX010001.MP4")
        output = tmp_path / "out" / "x.MP4"

        result = MergeExecutor(_tools(tools_dir), fast_settings).run(job, Quality.PASSTHROUGH, str(output))

        assert result.status == JobOutcome.FAILURE
        assert result.stage == FailureStage.VALIDATION
        assert not (tools_dir / "ffmpeg.record").exists()
        assert not output.parent.exists()

    def test_unknown_quality(self, tmp_path, tools_dir, fast_settings):
        job = _job(tmp_path / "card", "GX010001.MP4")

        result = MergeExecutor(_tools(tools_dir), fast_settings).run(job, "ultra", str(tmp_path / "x.MP4"))

        assert result.stage == FailureStage.VALIDATION
        assert not (tools_dir / "ffmpeg.record").exists()


class TestTimeout:
    """Hard wall-clock deadline."""

    def test_hung_process_times_out(self, tmp_path, tools_dir, fast_settings):
        settings = fast_settings.model_copy(update={"timeout_seconds": 0.5})
        job = _job(tmp_path / "card", "GX010001.MP4")
        output = tmp_path / "out" / "x.MP4"
        executor = MergeExecutor(_tools(tools_dir, lines=["time=00:00:01.00"], hang=30.0), settings)

        started = time.monotonic()
        result = executor.run(job, Quality.PASSTHROUGH, str(output))

        assert result.status == JobOutcome.TIMED_OUT
        assert time.monotonic() - started < 10.0
        assert _manifests(output.parent) == []
        assert not output.exists()

    def test_timeout_is_not_a_failure(self, tmp_path, tools_dir, fast_settings):
        """Timed-out results carry no diagnostic text to classify."""
        settings = fast_settings.model_copy(update={"timeout_seconds": 0.3})
        job = _job(tmp_path / "card", "GX010001.MP4")
        executor = MergeExecutor(_tools(tools_dir, hang=30.0), settings)

        result = executor.run(job, Quality.PASSTHROUGH, str(tmp_path / "out" / "x.MP4"))

        assert result.status != JobOutcome.FAILURE
        assert result.raw_text is None


class TestCancellation:
    """Caller-driven stop."""

    def test_cancel_running_process(self, tmp_path, tools_dir, fast_settings):
        job = _job(tmp_path / "card", "GX010001.MP4")
        output = tmp_path / "out" / "x.MP4"
        executor = MergeExecutor(_tools(tools_dir, hang=30.0), fast_settings)
        token = CancellationToken()
        timer = threading.Timer(0.5, token.cancel)
        timer.start()

        started = time.monotonic()
        result = executor.run(job, Quality.PASSTHROUGH, str(output), cancel_token=token)
        timer.join()

        assert result.status == JobOutcome.CANCELLED
        assert time.monotonic() - started < 10.0
        assert _manifests(output.parent) == []
        assert not output.exists()

    def test_already_cancelled_never_spawns(self, tmp_path, tools_dir, fast_settings):
        job = _job(tmp_path / "card", "GX010001.MP4")
        output = tmp_path / "out" / "x.MP4"
        token = CancellationToken()
        token.cancel()

        result = MergeExecutor(_tools(tools_dir), fast_settings).run(
            job, Quality.PASSTHROUGH, str(output), cancel_token=token
        )

        assert result.status == JobOutcome.CANCELLED
        assert not (tools_dir / "ffmpeg.record").exists()
        assert _manifests(output.parent) == []
