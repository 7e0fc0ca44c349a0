"""Read-only integrity checks of published backup sets."""

from dataclasses import dataclass
from typing import List, Tuple

from n8nbackup.utils.errors import BackupNotFoundError, ValidationError
from n8nbackup.utils.files import human_size

from .artifacts import check_gzip_integrity, count_workflows
from .storage import BackupSet, BackupStorage

OK = "ok"
FAILED = "failed"
MISSING = "missing"
WARNING = "warning"


@dataclass
class ArtifactCheck:
    """Outcome of checking one artifact."""

    status: str
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.status == OK


@dataclass
class SetReport:
    """Verification outcome for one backup set."""

    timestamp: str
    workflows: ArtifactCheck
    database: ArtifactCheck
    manifest: ArtifactCheck
    workflow_count: int = 0

    @property
    def ok(self) -> bool:
        """Both required artifacts passed; a missing manifest does not fail a set."""
        return self.workflows.ok and self.database.ok


class BackupVerifier:
    """Checks workflow exports, database dumps and manifests of every set."""

    def __init__(self, storage: BackupStorage):
        self.storage = storage

    def check_workflows(self, backup_set: BackupSet) -> Tuple[ArtifactCheck, int]:
        """Parse and validate the export; returns the check and the workflow count."""
        if not backup_set.has_workflows:
            return ArtifactCheck(MISSING, "Workflows file not found"), 0
        try:
            count = count_workflows(backup_set.workflows)
        except ValidationError as e:
            return ArtifactCheck(FAILED, e.message), 0
        size = human_size(backup_set.workflows.stat().st_size)
        return ArtifactCheck(OK, f"Workflows JSON valid ({size}, {count} workflows)"), count

    def check_database(self, backup_set: BackupSet) -> ArtifactCheck:
        if not backup_set.has_database:
            return ArtifactCheck(MISSING, "Database backup not found")
        size = human_size(backup_set.database.stat().st_size)
        if not check_gzip_integrity(backup_set.database):
            return ArtifactCheck(FAILED, f"Database backup corrupted ({size})")
        return ArtifactCheck(OK, f"Database backup valid ({size})")

    def check_manifest(self, backup_set: BackupSet) -> ArtifactCheck:
        if not backup_set.has_manifest:
            return ArtifactCheck(WARNING, "Manifest not found")
        return ArtifactCheck(OK, "Manifest present")

    def verify_set(self, timestamp: str) -> SetReport:
        """Check every artifact of the set with this key."""
        backup_set = self.storage.get_set(timestamp)
        workflows, count = self.check_workflows(backup_set)

        return SetReport(
            timestamp=timestamp,
            workflows=workflows,
            database=self.check_database(backup_set),
            manifest=self.check_manifest(backup_set),
            workflow_count=count,
        )

    def verify_all(self) -> List[SetReport]:
        """
        Verify every discoverable set, oldest first.

        Raises:
            BackupNotFoundError: If the backup directory holds no sets
        """
        timestamps = self.storage.list_timestamps()
        if not timestamps:
            raise BackupNotFoundError(
                f"No backups found in {self.storage.backup_dir}",
                suggestions=["Create one with: n8n-backup backup"],
            )
        return [self.verify_set(timestamp) for timestamp in timestamps]
