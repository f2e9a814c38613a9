"""Tests for the zip writer."""

import io
import zipfile

import pytest

from converter.archive import ZipArchive
from converter.conversion.errors import ArchiveError


class TestZipArchive:
    def test_entries_in_order(self) -> None:
        archive = ZipArchive()
        archive.add_entry("b.png", b"bbb")
        archive.add_entry("a.png", b"aaa")

        with zipfile.ZipFile(io.BytesIO(archive.finalize())) as zf:
            assert zf.namelist() == ["b.png", "a.png"]
            assert zf.read("a.png") == b"aaa"

    def test_duplicate_names(self) -> None:
        archive = ZipArchive()
        names = [archive.add_entry("x.webp", b"1") for _ in range(3)]
        assert names == ["x.webp", "x (1).webp", "x (2).webp"]

    def test_path_components_are_stripped(self) -> None:
        archive = ZipArchive()
        assert archive.add_entry("../../etc/passwd.png", b"1") == "passwd.png"
        assert archive.add_entry("", b"1") == "file"

    def test_finalize_is_idempotent(self) -> None:
        archive = ZipArchive()
        archive.add_entry("a.png", b"a")
        assert archive.finalize() == archive.finalize()

    def test_add_after_finalize(self) -> None:
        archive = ZipArchive()
        archive.finalize()
        with pytest.raises(ArchiveError) as exc:
            archive.add_entry("late.png", b"x")
        assert exc.value.stage == "archive"
