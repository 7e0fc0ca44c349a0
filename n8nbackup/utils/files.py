"""File helpers shared by the backup commands."""

import hashlib
import os
import shutil
from pathlib import Path
from typing import Union

PathLike = Union[str, Path]

CHUNK_SIZE = 1024 * 1024


def sha256sum(path: PathLike) -> str:
    """Return the hex SHA-256 digest of a file."""
    digest = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


def human_size(num_bytes: float) -> str:
    """Format a byte count the way ``du -h`` does (1K, 2.4M, ...)."""
    for unit in ["B", "K", "M", "G", "T"]:
        if abs(num_bytes) < 1024 or unit == "T":
            if unit == "B":
                return f"{int(num_bytes)}B"
            return f"{num_bytes:.1f}{unit}"
        num_bytes /= 1024.0
    return f"{num_bytes:.1f}T"


def directory_size(path: PathLike) -> int:
    """Total size of all regular files below a directory."""
    total = 0
    for root, _dirs, files in os.walk(path):
        for name in files:
            file_path = os.path.join(root, name)
            if not os.path.islink(file_path):
                total += os.path.getsize(file_path)
    return total


def free_space_mb(path: PathLike) -> int:
    """Free space available on the filesystem holding ``path``, in MB."""
    return shutil.disk_usage(path).free // (1024 * 1024)


def partition_usage(path: PathLike) -> str:
    """One-line summary of the filesystem holding ``path``."""
    usage = shutil.disk_usage(path)
    return f"{human_size(usage.total)} total, {human_size(usage.used)} used, {human_size(usage.free)} available"
