"""
Tests for media discovery over dropped files and folders.
"""

from pathlib import Path

from clipmerge.jobs.discovery import collect_video_files, is_video_file
from fakes import touch_clips


class TestIsVideoFile:

    def test_extensions_any_case(self):
        for name in ("a.mp4", "b.MP4", "c.mov", "d.AVI", "e.mkv", "f.m4v"):
            assert is_video_file(Path(name))

    def test_other_files(self):
        for name in ("a.txt", "b.jpg", "c", "d.mp4.part"):
            assert not is_video_file(Path(name))


class TestCollectVideoFiles:

    def test_directories_scanned_recursively(self, tmp_path):
        top = touch_clips(tmp_path / "card", "GX010001.MP4", "notes.txt")
        nested = touch_clips(tmp_path / "card" / "DCIM" / "100GOPRO", "GX020001.MP4")

        found = collect_video_files([str(tmp_path / "card")])

        assert sorted(found) == sorted([top[0], nested[0]])

    def test_files_passed_directly(self, tmp_path):
        clips = touch_clips(tmp_path, "GX010001.MP4", "readme.md")

        assert collect_video_files(clips) == [clips[0]]

    def test_missing_paths_skipped(self, tmp_path):
        """One bad path does not hide the rest."""
        clips = touch_clips(tmp_path, "GX010001.MP4")

        found = collect_video_files([str(tmp_path / "gone"), clips[0]])

        assert found == clips
