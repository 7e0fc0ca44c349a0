"""Restore of workflows and database from a backup set."""

import logging
import tempfile
from pathlib import Path
from typing import Optional

from n8nbackup.config.settings import BackupConfig
from n8nbackup.containers.manager import ContainerManager
from n8nbackup.utils.errors import BackupNotFoundError, DockerError, N8nBackupError, RestoreError
from n8nbackup.utils.logging import SUCCESS

from .artifacts import check_gzip_integrity, decompress_file
from .storage import BackupSet, BackupStorage, is_valid_timestamp

logger = logging.getLogger(__name__)

CONFIRMATION_WORD = "yes"


class RestoreManager:
    """Replays a backup set into the running n8n deployment.

    Workflows are restored before the database. There is no rollback: a
    failed database restore after a successful workflow import leaves the
    deployment in a mixed state.
    """

    def __init__(
        self,
        config: BackupConfig,
        containers: Optional[ContainerManager] = None,
        storage: Optional[BackupStorage] = None,
    ):
        self.config = config
        self.containers = containers or ContainerManager(timeout=config.command_timeout)
        self.storage = storage or BackupStorage(config.backup_dir)

    def resolve_set(self, timestamp: Optional[str]) -> BackupSet:
        """
        Find the set to restore.

        Args:
            timestamp: Key given by the operator

        Returns:
            BackupSet: A set with both workflow export and database dump

        Raises:
            BackupNotFoundError: If the key is missing, malformed or incomplete
        """
        available = self.storage.list_timestamps()

        if not timestamp:
            raise BackupNotFoundError("No backup timestamp given", available=available)

        if not is_valid_timestamp(timestamp):
            raise BackupNotFoundError(
                f"Invalid timestamp format: {timestamp}",
                available=available,
                suggestions=["Use the format YYYYMMDD_HHMMSS"],
            )

        backup_set = self.storage.get_set(timestamp)
        if not backup_set.has_workflows:
            raise BackupNotFoundError(f"Workflows backup not found: {backup_set.workflows}", available=available)
        if not backup_set.has_database:
            raise BackupNotFoundError(f"Database backup not found: {backup_set.database}", available=available)

        return backup_set

    @staticmethod
    def is_confirmed(reply: Optional[str]) -> bool:
        """Only the exact word ``yes`` confirms a restore."""
        return reply is not None and reply.strip() == CONFIRMATION_WORD

    def restore(self, backup_set: BackupSet) -> None:
        """Restore workflows, then the database."""
        logger.info("Starting restore of backup %s", backup_set.timestamp)
        self.restore_workflows(backup_set)
        self.restore_database(backup_set)
        logger.log(SUCCESS, "Restore of backup %s completed", backup_set.timestamp)

    def restore_workflows(self, backup_set: BackupSet) -> None:
        logger.info("Restoring workflows...")
        n8n = self.config.n8n

        try:
            self.containers.copy_to_container(n8n.container, str(backup_set.workflows), n8n.import_path)
        except DockerError as e:
            raise RestoreError("Failed to copy workflows to container", details=e.message) from e

        result = self.containers.exec(n8n.container, n8n.import_command())
        if not result.ok:
            raise RestoreError(
                "Failed to import workflows",
                details=(result.error or result.output).strip() or f"exit code {result.exit_code}",
            )
        if result.output.strip():
            logger.debug(result.output.strip())

        self._remove_in_container(n8n.container, n8n.import_path)
        logger.log(SUCCESS, "Workflows restored")

    def restore_database(self, backup_set: BackupSet) -> None:
        """
        Replay the SQL dump with psql.

        The dump is checked and decompressed on the host, then copied into
        the PostgreSQL container and fed to ``psql -f``.
        """
        logger.info("Restoring database...")
        postgres = self.config.postgres

        if not check_gzip_integrity(backup_set.database):
            raise RestoreError(
                f"Database backup is corrupted: {backup_set.database.name}",
                suggestions=["Run 'n8n-backup verify' and pick another backup"],
            )

        with tempfile.TemporaryDirectory(prefix="n8n_restore_") as tmp:
            sql_file = decompress_file(backup_set.database, Path(tmp) / "database.sql")

            try:
                self.containers.copy_to_container(postgres.container, str(sql_file), postgres.restore_path)
            except DockerError as e:
                raise RestoreError("Failed to copy database dump to container", details=e.message) from e

            try:
                result = self.containers.exec(postgres.container, postgres.restore_command())
            finally:
                self._remove_in_container(postgres.container, postgres.restore_path)

        if result.error.strip():
            logger.debug("psql stderr:\n%s", result.error.strip())
        if not result.ok:
            raise RestoreError(
                "Failed to restore database",
                details=result.error.strip() or f"exit code {result.exit_code}",
                suggestions=["Workflows were already imported; the deployment may be in a mixed state"],
            )

        logger.log(SUCCESS, "Database restored")

    def _remove_in_container(self, container: str, path: str) -> None:
        try:
            self.containers.exec(container, ["rm", "-f", path])
        except N8nBackupError as e:
            logger.debug("Could not remove %s in %s: %s", path, container, e)

    def restart_hint(self) -> str:
        return f"docker restart {self.config.n8n.container}"
