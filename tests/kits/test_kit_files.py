"""
Tests for reading and writing kits files.
"""

import json
import logging

import pytest

from cmakekits.core.exceptions import KitFileError
from cmakekits.kits import files
from cmakekits.kits.model import CompilerKit, ToolchainFileKit, UnspecifiedKit


class TestReadKitsFile:
    """Tests for read_kits_file."""

    def test_missing_file(self, temp_dir):
        """Test a missing file is an empty list."""
        assert files.read_kits_file(temp_dir / "cmake-kits.json") == []

    def test_empty_file(self, temp_dir):
        """Test an empty file is an empty list."""
        path = temp_dir / "cmake-kits.json"
        path.write_text("  \n")

        assert files.read_kits_file(path) == []

    def test_invalid_json(self, temp_dir):
        """Test invalid JSON raises KitFileError."""
        path = temp_dir / "cmake-kits.json"
        path.write_text("[{")

        with pytest.raises(KitFileError) as exc_info:
            files.read_kits_file(path)
        assert exc_info.value.path == path

    def test_not_a_list(self, temp_dir):
        """Test the document root must be a list."""
        path = temp_dir / "cmake-kits.json"
        path.write_text('{"name": "x"}')

        with pytest.raises(KitFileError, match="expected a list"):
            files.read_kits_file(path)

    def test_invalid_records_skipped(self, temp_dir, caplog):
        """Test invalid records are skipped and the valid ones kept."""
        path = temp_dir / "cmake-kits.json"
        path.write_text(
            json.dumps(
                [
                    {"compilers": {}},
                    {"name": "bad", "compilers": {"C": "cc"}, "keep": "yes"},
                    {"name": "good", "compilers": {"C": "cc"}},
                ]
            )
        )

        with caplog.at_level(logging.WARNING):
            kits = files.read_kits_file(path)

        assert [k.name for k in kits] == ["good"]
        assert caplog.text.count("Skipping invalid kit") == 2

    def test_reads_in_file_order(self, temp_dir):
        """Test records are returned in file order."""
        path = temp_dir / "cmake-kits.json"
        path.write_text(
            json.dumps(
                [
                    {"name": "z", "toolchainFile": "z.cmake"},
                    {"name": "a", "compilers": {"C": "cc"}},
                ]
            )
        )

        assert [k.name for k in files.read_kits_file(path)] == ["z", "a"]


class TestWriteKitsFile:
    """Tests for write_kits_file and serialize_kits."""

    def test_sentinel_stripped_and_sorted(self, temp_dir):
        """Test the persisted form is sorted and has no sentinel."""
        path = temp_dir / "cmake-kits.json"
        kits = [
            CompilerKit("b", {"C": "cc"}),
            UnspecifiedKit(),
            ToolchainFileKit("a", "a.cmake"),
        ]

        files.write_kits_file(kits, path)

        data = json.loads(path.read_text())
        assert [r["name"] for r in data] == ["a", "b"]

    def test_write_creates_directory(self, temp_dir):
        """Test the parent directory is created."""
        path = temp_dir / ".cmakekits" / "cmake-kits.json"

        files.write_kits_file([CompilerKit("k", {"C": "cc"})], path)

        assert path.exists()

    def test_unwritable_target(self, temp_dir):
        """Test a directory in place of the file raises KitFileError."""
        path = temp_dir / "cmake-kits.json"
        path.mkdir()

        with pytest.raises(KitFileError):
            files.write_kits_file([CompilerKit("k", {"C": "cc"})], path)

    @pytest.mark.asyncio
    async def test_persist_then_load(self, temp_dir):
        """Test kits survive a persist/load cycle with keep intact."""
        path = temp_dir / "cmake-kits.json"
        kits = [CompilerKit("GCC", {"C": "/usr/bin/gcc"}, keep=True)]

        await files.persist(kits + [UnspecifiedKit()], path)

        assert await files.load(path) == kits
