"""Validation and compression of backup artifacts."""

import gzip
import json
import shutil
import zlib
from pathlib import Path
from typing import Any, Dict, List, Union

import jsonschema

from n8nbackup.config.schemas import WORKFLOW_EXPORT_SCHEMA
from n8nbackup.utils.errors import ArtifactError, ValidationError

PathLike = Union[str, Path]

CHUNK_SIZE = 1024 * 1024


def load_workflow_export(path: PathLike) -> List[Dict[str, Any]]:
    """
    Parse and structurally validate a workflow export.

    Args:
        path: Export file

    Returns:
        List[Dict[str, Any]]: The workflow records

    Raises:
        ValidationError: If the file is not JSON or does not match the export schema
    """
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ValidationError(f"Invalid JSON structure in workflows backup: {path}", details=str(e)) from e
    except (OSError, UnicodeDecodeError) as e:
        raise ValidationError(f"Cannot read workflows backup: {path}", details=str(e)) from e

    try:
        jsonschema.validate(data, WORKFLOW_EXPORT_SCHEMA)
    except jsonschema.ValidationError as e:
        raise ValidationError(
            f"Workflows backup does not look like an n8n export: {path}",
            details=e.message,
        ) from e

    return data


def count_workflows(path: PathLike) -> int:
    """Number of workflow records in an export."""
    return len(load_workflow_export(path))


def validate_database_dump(path: PathLike, min_lines: int, marker: str) -> int:
    """
    Heuristic check of a plain-text pg_dump file.

    The dump must have at least ``min_lines`` lines and contain ``marker``
    (pg_dump writes it in its header comment).

    Returns:
        int: Line count
    """
    line_count = 0
    marker_found = not marker

    with open(path, "rb") as f:
        encoded_marker = marker.encode("utf-8")
        for line in f:
            line_count += 1
            if not marker_found and encoded_marker in line:
                marker_found = True

    if line_count < min_lines:
        raise ValidationError(
            "Database dump appears to be empty or invalid",
            details=f"{line_count} lines, at least {min_lines} expected",
        )

    if not marker_found:
        raise ValidationError(
            "Database dump does not appear to be a valid PostgreSQL dump",
            details=f"Marker '{marker}' not found",
        )

    return line_count


def compress_file(source: PathLike, destination: PathLike) -> Path:
    """Gzip ``source`` into ``destination`` and remove the source."""
    try:
        with open(source, "rb") as f_in, gzip.open(destination, "wb") as f_out:
            shutil.copyfileobj(f_in, f_out, CHUNK_SIZE)
    except OSError as e:
        raise ArtifactError(f"Failed to compress {source}", details=str(e)) from e

    Path(source).unlink()
    return Path(destination)


def decompress_file(source: PathLike, destination: PathLike) -> Path:
    """Gunzip ``source`` into ``destination``, keeping the source."""
    try:
        with gzip.open(source, "rb") as f_in, open(destination, "wb") as f_out:
            shutil.copyfileobj(f_in, f_out, CHUNK_SIZE)
    except (OSError, EOFError, zlib.error) as e:
        raise ArtifactError(f"Failed to decompress {source}", details=str(e)) from e

    return Path(destination)


def check_gzip_integrity(path: PathLike) -> bool:
    """Equivalent of ``gunzip -t``: the whole stream must decompress cleanly."""
    try:
        with gzip.open(path, "rb") as f:
            while f.read(CHUNK_SIZE):
                pass
    except (OSError, EOFError, zlib.error):
        return False
    return True
