"""Backup orchestration: pre-flight checks, export, dump, manifest, publication."""

import logging
import signal
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple

from n8nbackup.config.settings import BackupConfig
from n8nbackup.containers.manager import ContainerManager
from n8nbackup.utils.errors import (
    ArtifactError,
    BackupInterrupted,
    DockerError,
    N8nBackupError,
    PreflightError,
    create_error_suggestions,
)
from n8nbackup.utils.files import human_size
from n8nbackup.utils.logging import SUCCESS

from .artifacts import check_gzip_integrity, compress_file, count_workflows, validate_database_dump
from .manifest import ManifestBuilder
from .storage import DATABASE, MANIFEST, WORKFLOWS, BackupStorage, artifact_name, new_timestamp

logger = logging.getLogger(__name__)


@contextmanager
def _terminate_as_error() -> Iterator[None]:
    """Turn SIGTERM into an exception so ``finally`` blocks run."""

    def _handler(signum, frame):
        raise BackupInterrupted()

    if threading.current_thread() is not threading.main_thread():
        yield
        return

    previous = signal.signal(signal.SIGTERM, _handler)
    try:
        yield
    finally:
        signal.signal(signal.SIGTERM, previous)


class BackupManager:
    """Produces one backup set of the n8n deployment."""

    def __init__(
        self,
        config: BackupConfig,
        containers: Optional[ContainerManager] = None,
        storage: Optional[BackupStorage] = None,
    ):
        """
        Initialize backup manager.

        Args:
            config: Resolved configuration
            containers: Container access (built from config if omitted)
            storage: Backup directory access (built from config if omitted)
        """
        self.config = config
        self.containers = containers or ContainerManager(timeout=config.command_timeout)
        self.storage = storage or BackupStorage(config.backup_dir)
        self.manifest_builder = ManifestBuilder(config, self.containers)

    def session_log_path(self, timestamp: str) -> Path:
        return self.config.log_dir / f"backup_{timestamp}.log"

    def setup_directories(self) -> None:
        """Create the backup and log directories."""
        self.storage.ensure_directory()
        try:
            self.config.log_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise PreflightError(f"Failed to create log directory: {self.config.log_dir}", details=str(e)) from e

    def run(self, timestamp: Optional[str] = None, dry_run: bool = False) -> Dict[str, Any]:
        """
        Run a complete backup.

        Args:
            timestamp: Key for the new set (generated if omitted)
            dry_run: Only run setup and pre-flight checks

        Returns:
            Dict[str, Any]: Backup results
        """
        timestamp = timestamp or new_timestamp()
        result = {
            "success": False,
            "dry_run": dry_run,
            "timestamp": timestamp,
            "backup_dir": str(self.config.backup_dir),
            "log_file": str(self.session_log_path(timestamp)),
            "files": [],
            "workflow_count": None,
            "dump_lines": None,
            "removed": [],
        }

        logger.info("Starting n8n backup (%s)", timestamp)
        self.setup_directories()

        staging_dir = None
        with _terminate_as_error():
            try:
                self.preflight()

                if dry_run:
                    logger.warning("TEST MODE - no backup will be created")
                    result["planned"] = [
                        artifact_name(WORKFLOWS, timestamp),
                        artifact_name(DATABASE, timestamp),
                        artifact_name(MANIFEST, timestamp),
                    ]
                    result["success"] = True
                    return result

                staging_dir = self.storage.create_staging_dir()
                logger.debug("Staging directory: %s", staging_dir)

                workflows_path, workflow_count = self.export_workflows(staging_dir)
                database_path, dump_lines = self.dump_database(staging_dir)

                staged = {WORKFLOWS: workflows_path, DATABASE: database_path}
                manifest_path = self.create_manifest(staging_dir, timestamp, workflows_path, database_path, workflow_count)
                if manifest_path is not None:
                    staged[MANIFEST] = manifest_path

                backup_set = self.storage.publish(timestamp, staged)
                logger.log(SUCCESS, "Backup set %s published", timestamp)

                result["files"] = [str(path) for path in backup_set.existing_files()]
                result["workflow_count"] = workflow_count
                result["dump_lines"] = dump_lines
                result["removed"] = self.rotate()
                result["success"] = True
                return result
            finally:
                self.storage.remove_staging_dir(staging_dir)

    def preflight(self) -> None:
        """Abort before touching live data if the environment is not ready."""
        logger.info("Running pre-flight checks...")
        self.check_docker()
        self.check_containers()
        self.check_disk_space()
        logger.log(SUCCESS, "All pre-flight checks passed")

    def check_docker(self) -> None:
        logger.info("Checking Docker status...")
        try:
            self.containers.ping()
        except DockerError as e:
            raise PreflightError(
                "Docker is not running or not accessible",
                details=e.details or e.message,
                suggestions=create_error_suggestions("docker_not_running"),
            ) from e
        logger.log(SUCCESS, "Docker is running")

    def check_containers(self) -> None:
        """Both service containers must be running, matched by exact name."""
        running = self.containers.running_container_names()

        for label, name in (("n8n", self.config.n8n.container), ("PostgreSQL", self.config.postgres.container)):
            if name not in running:
                raise PreflightError(
                    f"{label} container '{name}' is not running",
                    details=f"Running containers: {', '.join(running) or 'none'}",
                    suggestions=create_error_suggestions("container_not_running", container=name),
                )
            logger.log(SUCCESS, "%s container is running", label)

            try:
                logger.info("%s uptime: %s", label, self.containers.get_uptime(name))
            except N8nBackupError as e:
                logger.debug("Could not read %s uptime: %s", label, e)

    def check_disk_space(self) -> None:
        logger.info("Checking disk space...")
        available = self.storage.check_free_space(self.config.min_free_mb)
        logger.log(SUCCESS, "Sufficient disk space available: %dMB", available)

        try:
            usage = self.containers.exec(self.config.n8n.container, ["df", "-h", self.config.n8n.data_dir])
        except N8nBackupError as e:
            logger.debug("Could not read n8n disk usage: %s", e)
            return
        if usage.ok:
            logger.info("n8n container disk usage:\n%s", usage.output.strip())

    def export_workflows(self, staging_dir: Path) -> Tuple[Path, int]:
        """
        Export all workflows from n8n into the staging directory.

        Returns:
            Tuple[Path, int]: Staged export file and workflow count
        """
        logger.info("Exporting n8n workflows...")
        n8n = self.config.n8n

        result = self.containers.exec(n8n.container, n8n.export_command())
        if not result.ok:
            raise ArtifactError(
                "Failed to export workflows",
                details=(result.error or result.output).strip() or f"exit code {result.exit_code}",
                suggestions=create_error_suggestions("export_failed", container=n8n.container),
            )
        if result.output.strip():
            logger.debug(result.output.strip())

        staged = staging_dir / f"{WORKFLOWS}.json"
        try:
            self.containers.copy_from_container(n8n.container, n8n.export_path, str(staged))
        except DockerError as e:
            raise ArtifactError("Failed to copy workflows from container", details=e.message) from e

        count = count_workflows(staged)
        if count == 0:
            raise ArtifactError(
                "No workflows found in backup",
                suggestions=create_error_suggestions("export_failed", container=n8n.container),
            )

        logger.log(SUCCESS, "Workflows export completed (%s, %d workflows)", human_size(staged.stat().st_size), count)
        return staged, count

    def dump_database(self, staging_dir: Path) -> Tuple[Path, int]:
        """
        Dump and compress the PostgreSQL database into the staging directory.

        Returns:
            Tuple[Path, int]: Staged compressed dump and its uncompressed line count
        """
        logger.info("Creating PostgreSQL database dump...")
        postgres = self.config.postgres
        raw = staging_dir / f"{DATABASE}.sql"

        result = self.containers.exec_to_file(postgres.container, postgres.dump_command(), str(raw))
        if result.error.strip():
            logger.debug("pg_dump stderr:\n%s", result.error.strip())
        if not result.ok:
            raise ArtifactError(
                "Failed to create database dump",
                details=result.error.strip() or f"exit code {result.exit_code}",
                suggestions=create_error_suggestions("dump_failed", container=postgres.container),
            )

        lines = validate_database_dump(raw, postgres.min_dump_lines, postgres.dump_marker)
        logger.info("Database dump contains %d lines", lines)

        logger.info("Compressing database dump...")
        compressed = compress_file(raw, staging_dir / f"{DATABASE}.sql.gz")
        if not check_gzip_integrity(compressed):
            raise ArtifactError("Compressed database dump failed integrity check", details=str(compressed))

        logger.log(SUCCESS, "Database backup completed (%s compressed)", human_size(compressed.stat().st_size))
        return compressed, lines

    def create_manifest(
        self,
        staging_dir: Path,
        timestamp: str,
        workflows_path: Path,
        database_path: Path,
        workflow_count: Optional[int],
    ) -> Optional[Path]:
        """Write the manifest into staging; failures only produce a warning."""
        logger.info("Creating backup manifest...")
        try:
            manifest = self.manifest_builder.write(
                staging_dir / f"{MANIFEST}.txt", timestamp, workflows_path, database_path, workflow_count
            )
        except Exception as e:
            logger.warning("Failed to create manifest: %s", e)
            return None

        logger.log(SUCCESS, "Manifest created")
        return manifest

    def rotate(self) -> List[str]:
        logger.info("Rotating old backups (keeping last %d)...", self.config.retention)
        removed = self.storage.rotate(self.config.retention)
        if removed:
            logger.log(SUCCESS, "Removed %d old backup set(s): %s", len(removed), ", ".join(removed))
        else:
            logger.info("No old backups to remove")
        return removed

    def format_summary(self, result: Dict[str, Any]) -> str:
        """Human summary of a finished run."""
        lines = [
            "=" * 50,
            "BACKUP SUMMARY" if not result.get("dry_run") else "BACKUP TEST SUMMARY",
            "=" * 50,
            f"Timestamp: {result['timestamp']}",
            f"Backup directory: {result['backup_dir']}",
            f"Log file: {result['log_file']}",
        ]

        if result.get("dry_run"):
            lines.append("Would create:")
            lines.extend(f"  {name}" for name in result.get("planned", []))
        else:
            lines.append("Files created:")
            for file_path in result["files"]:
                try:
                    size = human_size(Path(file_path).stat().st_size)
                except OSError:
                    size = "?"
                lines.append(f"  {Path(file_path).name} ({size})")
            if result.get("workflow_count") is not None:
                lines.append(f"Workflows: {result['workflow_count']}")

        try:
            total = human_size(self.storage.total_size())
            count = len(self.storage.list_sets())
        except OSError:
            total, count = "?", "?"

        lines.extend(
            [
                f"Total backup size: {total}",
                f"Retention: {self.config.retention} sets (current: {count})",
                "=" * 50,
            ]
        )
        return "\n".join(lines)
