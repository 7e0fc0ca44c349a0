"""Backup directory layout, discovery, publication and rotation."""

import logging
import os
import re
import shutil
import tempfile
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Union

from n8nbackup.utils.errors import ArtifactError, PreflightError, create_error_suggestions
from n8nbackup.utils.files import directory_size, free_space_mb

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"
TIMESTAMP_PATTERN = re.compile(r"^\d{8}_\d{6}$")

WORKFLOWS = "workflows"
DATABASE = "database"
MANIFEST = "manifest"

# kind -> (prefix, suffix)
ARTIFACT_KINDS = {
    WORKFLOWS: ("workflows_", ".json"),
    DATABASE: ("database_", ".sql.gz"),
    MANIFEST: ("manifest_", ".txt"),
}

# Publication order: the workflow export makes a set discoverable, so it goes last
PUBLISH_ORDER = [DATABASE, MANIFEST, WORKFLOWS]

STAGING_PREFIX = ".staging_"


def new_timestamp(now: Optional[datetime] = None) -> str:
    """Create a timestamp key for a new backup set."""
    return (now or datetime.now()).strftime(TIMESTAMP_FORMAT)


def is_valid_timestamp(value: str) -> bool:
    """Whether ``value`` looks like a timestamp key."""
    return bool(value) and TIMESTAMP_PATTERN.match(value) is not None


def artifact_name(kind: str, timestamp: str) -> str:
    """File name of one artifact of a set."""
    prefix, suffix = ARTIFACT_KINDS[kind]
    return f"{prefix}{timestamp}{suffix}"


def parse_artifact_name(name: str) -> Optional[tuple]:
    """Return ``(kind, timestamp)`` for an artifact file name, or None."""
    for kind, (prefix, suffix) in ARTIFACT_KINDS.items():
        if name.startswith(prefix) and name.endswith(suffix):
            timestamp = name[len(prefix) : len(name) - len(suffix)]
            if is_valid_timestamp(timestamp):
                return kind, timestamp
    return None


@dataclass
class BackupSet:
    """The artifact files sharing one timestamp key."""

    timestamp: str
    workflows: Path
    database: Path
    manifest: Path

    @property
    def has_workflows(self) -> bool:
        return self.workflows.is_file()

    @property
    def has_database(self) -> bool:
        return self.database.is_file()

    @property
    def has_manifest(self) -> bool:
        return self.manifest.is_file()

    @property
    def is_complete(self) -> bool:
        """Workflow export and database dump both present; manifest is optional."""
        return self.has_workflows and self.has_database

    def existing_files(self) -> List[Path]:
        return [path for path in (self.workflows, self.database, self.manifest) if path.is_file()]

    def latest_mtime(self) -> float:
        """Modification time of the newest member file."""
        return max((path.stat().st_mtime for path in self.existing_files()), default=0.0)


class BackupStorage:
    """Manages the flat backup directory."""

    def __init__(self, backup_dir: Union[str, Path]):
        """
        Initialize backup storage.

        Args:
            backup_dir: Directory holding all backup sets
        """
        self.backup_dir = Path(backup_dir)

    def ensure_directory(self) -> Path:
        """Create the backup directory if needed."""
        try:
            self.backup_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise PreflightError(f"Failed to create backup directory: {self.backup_dir}", details=str(e)) from e
        return self.backup_dir

    def path_for(self, kind: str, timestamp: str) -> Path:
        return self.backup_dir / artifact_name(kind, timestamp)

    def get_set(self, timestamp: str) -> BackupSet:
        """Backup set for a key (files may or may not exist)."""
        return BackupSet(
            timestamp=timestamp,
            workflows=self.path_for(WORKFLOWS, timestamp),
            database=self.path_for(DATABASE, timestamp),
            manifest=self.path_for(MANIFEST, timestamp),
        )

    def _scan(self) -> Dict[str, Dict[str, Path]]:
        """Map timestamp -> {kind: path} for every artifact file present."""
        found: Dict[str, Dict[str, Path]] = {}
        if not self.backup_dir.is_dir():
            return found

        for entry in os.scandir(self.backup_dir):
            if not entry.is_file():
                continue
            parsed = parse_artifact_name(entry.name)
            if parsed is None:
                continue
            kind, timestamp = parsed
            found.setdefault(timestamp, {})[kind] = Path(entry.path)

        return found

    def list_timestamps(self) -> List[str]:
        """
        Keys of discoverable sets, oldest first.

        A set is discoverable only through its workflow export.
        """
        return sorted(timestamp for timestamp, kinds in self._scan().items() if WORKFLOWS in kinds)

    def list_sets(self) -> List[BackupSet]:
        """Every set that has at least one artifact, newest first by modification time."""
        sets = [self.get_set(timestamp) for timestamp in self._scan()]
        return sorted(sets, key=lambda s: (s.latest_mtime(), s.timestamp), reverse=True)

    def check_free_space(self, required_mb: int) -> int:
        """
        Ensure the backup filesystem has at least ``required_mb`` free.

        Returns:
            int: Available space in MB
        """
        available = free_space_mb(self.backup_dir)
        if available < required_mb:
            raise PreflightError(
                f"Insufficient disk space. Available: {available}MB, Required: {required_mb}MB",
                suggestions=create_error_suggestions("insufficient_space", path=str(self.backup_dir)),
            )
        return available

    def create_staging_dir(self) -> Path:
        """Private scratch directory on the same filesystem as the published sets."""
        return Path(tempfile.mkdtemp(prefix=STAGING_PREFIX, dir=self.backup_dir))

    def remove_staging_dir(self, staging_dir: Optional[Path]) -> None:
        if staging_dir is not None and staging_dir.exists():
            logger.info("Cleaning up temporary directory: %s", staging_dir)
            shutil.rmtree(staging_dir, ignore_errors=True)

    def publish(self, timestamp: str, staged: Dict[str, Path]) -> BackupSet:
        """
        Move staged artifacts into the backup directory.

        The workflow export is moved last so the set only becomes
        discoverable once every other artifact is in place.

        Args:
            timestamp: Key of the new set
            staged: Mapping of artifact kind to staged file

        Returns:
            BackupSet: The published set
        """
        if WORKFLOWS not in staged or DATABASE not in staged:
            raise ArtifactError("Cannot publish an incomplete backup set", details=f"Staged: {sorted(staged)}")

        backup_set = self.get_set(timestamp)
        collisions = [path.name for path in backup_set.existing_files()]
        if collisions:
            raise ArtifactError(
                f"A backup set with timestamp {timestamp} already exists",
                details=", ".join(collisions),
                suggestions=["Another backup may be running; wait a second and retry"],
            )

        for kind in PUBLISH_ORDER:
            if kind not in staged:
                continue
            target = self.path_for(kind, timestamp)
            try:
                os.replace(staged[kind], target)
            except OSError as e:
                raise ArtifactError(f"Failed to publish {target.name}", details=str(e)) from e
            logger.debug("Published %s", target)

        return backup_set

    def rotate(self, keep: int) -> List[str]:
        """
        Delete every set beyond the ``keep`` most recent ones.

        Sets are ranked by the modification time of their newest file and
        removed as a whole, so retained sets never lose individual artifacts.

        Args:
            keep: Number of sets to retain

        Returns:
            List[str]: Timestamps of removed sets
        """
        sets = self.list_sets()
        logger.info("Current backup count: %d sets (keeping last %d)", len(sets), keep)

        removed = []
        for backup_set in sets[keep:]:
            for path in backup_set.existing_files():
                logger.info("Removing old backup file: %s", path.name)
                path.unlink()
            removed.append(backup_set.timestamp)

        return removed

    def total_size(self) -> int:
        """Aggregate size of the backup directory in bytes."""
        if not self.backup_dir.is_dir():
            return 0
        return directory_size(self.backup_dir)
