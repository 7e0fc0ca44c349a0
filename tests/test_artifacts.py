"""Tests for artifact validation and compression."""

import gzip
import json

import pytest

from n8nbackup.backup.artifacts import (
    check_gzip_integrity,
    compress_file,
    count_workflows,
    decompress_file,
    load_workflow_export,
    validate_database_dump,
)
from n8nbackup.utils.errors import ArtifactError, ValidationError
from n8nbackup.utils.files import human_size, sha256sum


class TestWorkflowExport:
    """Test workflow export parsing."""

    def test_count_workflows(self, tmp_path, sample_workflows):
        """Test the count is the number of array records."""
        path = tmp_path / "workflows.json"
        path.write_text(json.dumps(sample_workflows, indent=2))

        assert count_workflows(path) == 2

    def test_empty_export(self, tmp_path):
        """Test an empty array is valid with zero records."""
        path = tmp_path / "workflows.json"
        path.write_text("[]")

        assert count_workflows(path) == 0

    def test_invalid_json(self, tmp_path):
        """Test truncated JSON is rejected."""
        path = tmp_path / "workflows.json"
        path.write_text('[{"id": "1", "name": ')

        with pytest.raises(ValidationError) as exc_info:
            load_workflow_export(path)

        assert "Invalid JSON structure" in exc_info.value.message

    def test_object_instead_of_array(self, tmp_path):
        """Test a single workflow object is not an export."""
        path = tmp_path / "workflows.json"
        path.write_text(json.dumps({"id": "1", "name": "x"}))

        with pytest.raises(ValidationError):
            load_workflow_export(path)

    def test_record_without_id(self, tmp_path):
        """Test every record must carry an id."""
        path = tmp_path / "workflows.json"
        path.write_text(json.dumps([{"name": "no id"}]))

        with pytest.raises(ValidationError) as exc_info:
            load_workflow_export(path)

        assert "'id' is a required property" in exc_info.value.details

    def test_missing_file(self, tmp_path):
        """Test an unreadable export is a validation failure."""
        with pytest.raises(ValidationError):
            load_workflow_export(tmp_path / "missing.json")


class TestDatabaseDump:
    """Test heuristic dump validation."""

    def test_valid_dump(self, tmp_path, sample_dump):
        """Test a real-looking dump passes and reports its lines."""
        path = tmp_path / "database.sql"
        path.write_text(sample_dump)

        assert validate_database_dump(path, 10, "PostgreSQL database dump") == len(sample_dump.splitlines())

    def test_too_short(self, tmp_path):
        """Test a near-empty dump is rejected."""
        path = tmp_path / "database.sql"
        path.write_text("-- PostgreSQL database dump\n")

        with pytest.raises(ValidationError) as exc_info:
            validate_database_dump(path, 10, "PostgreSQL database dump")

        assert exc_info.value.message == "Database dump appears to be empty or invalid"

    def test_missing_marker(self, tmp_path):
        """Test output without the pg_dump header is rejected."""
        path = tmp_path / "database.sql"
        path.write_text("\n".join(f"line {i}" for i in range(20)))

        with pytest.raises(ValidationError) as exc_info:
            validate_database_dump(path, 10, "PostgreSQL database dump")

        assert "does not appear to be a valid PostgreSQL dump" in exc_info.value.message


class TestCompression:
    """Test gzip handling."""

    def test_compress_and_decompress(self, tmp_path, sample_dump):
        """Test compression removes the source and decompression restores it."""
        source = tmp_path / "database.sql"
        source.write_text(sample_dump)

        compressed = compress_file(source, tmp_path / "database.sql.gz")

        assert not source.exists()
        assert check_gzip_integrity(compressed)

        restored = decompress_file(compressed, tmp_path / "restored.sql")
        assert restored.read_text() == sample_dump
        assert compressed.exists()

    def test_compress_missing_source(self, tmp_path):
        """Test compression failures are artifact errors."""
        with pytest.raises(ArtifactError):
            compress_file(tmp_path / "missing.sql", tmp_path / "out.sql.gz")

    def test_integrity_detects_truncation(self, tmp_path, sample_dump):
        """Test a truncated gzip stream fails the integrity check."""
        path = tmp_path / "database.sql.gz"
        path.write_bytes(gzip.compress(sample_dump.encode())[:30])

        assert not check_gzip_integrity(path)

    def test_integrity_detects_non_gzip(self, tmp_path):
        """Test plain text is not a valid gzip stream."""
        path = tmp_path / "database.sql.gz"
        path.write_text("not gzip at all")

        assert not check_gzip_integrity(path)

    def test_decompress_corrupt(self, tmp_path):
        """Test decompressing garbage raises."""
        path = tmp_path / "database.sql.gz"
        path.write_text("not gzip at all")

        with pytest.raises(ArtifactError):
            decompress_file(path, tmp_path / "out.sql")


class TestFileHelpers:
    """Test shared file helpers."""

    def test_sha256sum(self, tmp_path):
        """Test the digest of a known input."""
        path = tmp_path / "file.txt"
        path.write_bytes(b"abc")

        assert sha256sum(path) == "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"

    def test_human_size(self):
        """Test du -h style sizes."""
        assert human_size(512) == "512B"
        assert human_size(1536) == "1.5K"
        assert human_size(5 * 1024 * 1024) == "5.0M"
