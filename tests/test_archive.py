"""Tests for themestore.core.archive."""

from __future__ import annotations

import zipfile
from pathlib import Path

import pytest

from themestore.core.archive import (
    ExtractionLimits,
    extract_archive,
    scratch_directory,
    scratch_name,
)
from themestore.errors import ErrorCode, ExtractionError


class TestScratchDirectory:
    def test_scratch_name_uses_stem_and_token(self):
        first = scratch_name(Path("/uploads/alpha.zip"))
        second = scratch_name(Path("/uploads/alpha.zip"))
        assert first.startswith("alpha-")
        assert first != second

    def test_directory_removed_after_success(self, tmp_path):
        cache = tmp_path / "cache"
        with scratch_directory(cache, Path("alpha.zip")) as scratch:
            (scratch / "nested").mkdir()
            (scratch / "nested" / "file.txt").write_text("x")
            seen = scratch
        assert not seen.exists()

    def test_directory_removed_after_error(self, tmp_path):
        cache = tmp_path / "cache"
        with pytest.raises(RuntimeError):
            with scratch_directory(cache, Path("alpha.zip")) as scratch:
                (scratch / "file.txt").write_text("x")
                seen = scratch
                raise RuntimeError("boom")
        assert not seen.exists()
        assert list(cache.iterdir()) == []

    def test_concurrent_uploads_of_same_name_do_not_collide(self, tmp_path):
        with scratch_directory(tmp_path, Path("a.zip")) as one:
            with scratch_directory(tmp_path, Path("a.zip")) as two:
                assert one != two
                assert one.exists() and two.exists()


class TestExtractArchive:
    def test_extracts_members(self, theme_zip, tmp_path):
        archive = theme_zip(extra={"assets/icon.png": b"\x89PNG"})
        dest = tmp_path / "out"
        result = extract_archive(archive, dest)
        assert result == dest
        assert (dest / "theme.json").is_file()
        assert (dest / "assets" / "icon.png").read_bytes() == b"\x89PNG"

    def test_missing_archive(self, tmp_path):
        with pytest.raises(ExtractionError) as excinfo:
            extract_archive(tmp_path / "nope.zip", tmp_path / "out")
        assert excinfo.value.code is ErrorCode.ARCHIVE_NOT_FOUND

    def test_corrupt_archive(self, tmp_path):
        bogus = tmp_path / "bogus.zip"
        bogus.write_bytes(b"this is not a zip file")
        with pytest.raises(ExtractionError) as excinfo:
            extract_archive(bogus, tmp_path / "out")
        assert excinfo.value.code is ErrorCode.ARCHIVE_CORRUPT

    def test_damaged_compressed_data(self, damaged_zip, tmp_path):
        with pytest.raises(ExtractionError) as excinfo:
            extract_archive(damaged_zip(), tmp_path / "out")
        assert excinfo.value.code is ErrorCode.ARCHIVE_CORRUPT
        assert "original" in excinfo.value.details

    @pytest.mark.parametrize("member", ["../evil.txt", "/abs/evil.txt", "a/../../evil.txt", "C:/evil.txt"])
    def test_rejects_paths_escaping_root(self, tmp_path, member):
        archive = tmp_path / "slip.zip"
        with zipfile.ZipFile(archive, "w") as zf:
            zf.writestr(member, b"pwned")
        dest = tmp_path / "out"
        with pytest.raises(ExtractionError) as excinfo:
            extract_archive(archive, dest)
        assert excinfo.value.code is ErrorCode.ARCHIVE_UNSAFE_PATH
        assert not (tmp_path / "evil.txt").exists()

    def test_member_count_limit(self, theme_zip, tmp_path):
        archive = theme_zip(extra={f"f{i}.txt": b"x" for i in range(5)})
        with pytest.raises(ExtractionError) as excinfo:
            extract_archive(archive, tmp_path / "out", limits=ExtractionLimits(max_members=3))
        assert excinfo.value.code is ErrorCode.ARCHIVE_TOO_LARGE

    def test_total_bytes_limit(self, theme_zip, tmp_path):
        archive = theme_zip(extra={"big.bin": b"\x00" * 10_000})
        with pytest.raises(ExtractionError) as excinfo:
            extract_archive(archive, tmp_path / "out", limits=ExtractionLimits(max_total_bytes=1_000))
        assert excinfo.value.code is ErrorCode.ARCHIVE_TOO_LARGE

    def test_time_limit(self, theme_zip, tmp_path):
        archive = theme_zip()
        with pytest.raises(ExtractionError) as excinfo:
            extract_archive(archive, tmp_path / "out", limits=ExtractionLimits(max_seconds=-1.0))
        assert excinfo.value.code is ErrorCode.ARCHIVE_TIMEOUT
