"""Tests for backup orchestration."""

import gzip
import json
import os
import signal
import time
from unittest.mock import patch

import pytest

from n8nbackup.backup.manager import BackupManager
from n8nbackup.backup.storage import BackupStorage
from n8nbackup.containers.manager import ExecResult
from n8nbackup.utils.errors import ArtifactError, BackupInterrupted, DockerError, PreflightError, ValidationError


@pytest.fixture
def plenty_of_space():
    with patch("n8nbackup.backup.storage.free_space_mb", return_value=10_000):
        yield


@pytest.mark.usefixtures("plenty_of_space")
class TestBackupManager:
    """Test backup manager functionality."""

    def test_full_backup(self, backup_config, fake_containers, sample_workflows, sample_dump):
        """Test a successful run publishes a complete, valid set."""
        manager = BackupManager(backup_config, fake_containers)

        result = manager.run("20240101_120000")

        assert result["success"]
        assert result["workflow_count"] == len(sample_workflows)
        assert result["dump_lines"] == len(sample_dump.splitlines())

        backup_set = manager.storage.get_set("20240101_120000")
        assert json.loads(backup_set.workflows.read_text()) == sample_workflows
        assert gzip.decompress(backup_set.database.read_bytes()).decode() == sample_dump
        assert "Timestamp: 20240101_120000" in backup_set.manifest.read_text()
        assert sorted(result["files"]) == sorted(str(p) for p in backup_set.existing_files())

    def test_staging_removed_after_success(self, backup_config, fake_containers):
        """Test no staging directory is left behind."""
        BackupManager(backup_config, fake_containers).run("20240101_120000")

        leftovers = [p.name for p in backup_config.backup_dir.iterdir() if p.name.startswith(".staging_")]
        assert leftovers == []

    def test_commands_sent_to_containers(self, backup_config, fake_containers):
        """Test export and dump use the configured containers and commands."""
        BackupManager(backup_config, fake_containers).run("20240101_120000")

        fake_containers.exec.assert_any_call(
            "n8n-n8n-1", ["n8n", "export:workflow", "--all", "--output=/tmp/workflows_export.json"]
        )
        name, command, _destination = fake_containers.exec_to_file.call_args.args
        assert name == "n8n-postgres-1"
        assert command == ["pg_dump", "-U", "n8n", "n8n"]

    def test_docker_not_running(self, backup_config, fake_containers):
        """Test an unreachable daemon aborts before any export."""
        fake_containers.ping.side_effect = DockerError("Cannot connect to Docker daemon. Is Docker running?")

        with pytest.raises(PreflightError):
            BackupManager(backup_config, fake_containers).run("20240101_120000")

        fake_containers.exec_to_file.assert_not_called()
        fake_containers.copy_from_container.assert_not_called()

    def test_container_not_running(self, backup_config, fake_containers):
        """Test a stopped postgres container aborts the run."""
        fake_containers.running_container_names.return_value = ["n8n-n8n-1", "n8n-postgres-1-old"]

        with pytest.raises(PreflightError) as exc_info:
            BackupManager(backup_config, fake_containers).run("20240101_120000")

        assert exc_info.value.message == "PostgreSQL container 'n8n-postgres-1' is not running"
        assert any("docker start n8n-postgres-1" in s for s in exc_info.value.suggestions)

    def test_insufficient_space(self, backup_config, fake_containers):
        """Test low disk space aborts the run."""
        with patch("n8nbackup.backup.storage.free_space_mb", return_value=1):
            with pytest.raises(PreflightError) as exc_info:
                BackupManager(backup_config, fake_containers).run("20240101_120000")

        assert "Insufficient disk space" in exc_info.value.message
        fake_containers.copy_from_container.assert_not_called()

    def test_dry_run(self, backup_config, fake_containers):
        """Test test mode only runs pre-flight checks."""
        manager = BackupManager(backup_config, fake_containers)

        result = manager.run("20240101_120000", dry_run=True)

        assert result["success"]
        assert result["dry_run"]
        assert "workflows_20240101_120000.json" in result["planned"]
        fake_containers.copy_from_container.assert_not_called()
        fake_containers.exec_to_file.assert_not_called()
        assert manager.storage.list_sets() == []
        assert backup_config.log_dir.is_dir()

    def test_export_command_failure(self, backup_config, fake_containers):
        """Test a failing n8n export aborts without publishing."""
        fake_containers.exec.return_value = ExecResult(1, "", "Error: connection refused")

        with pytest.raises(ArtifactError) as exc_info:
            BackupManager(backup_config, fake_containers).run("20240101_120000")

        assert exc_info.value.message == "Failed to export workflows"
        assert "connection refused" in exc_info.value.details
        assert BackupStorage(backup_config.backup_dir).list_sets() == []

    def test_copy_failure(self, backup_config, fake_containers):
        """Test a failed copy out of the container is an artifact error."""
        fake_containers.copy_from_container.side_effect = DockerError("copy failed")

        with pytest.raises(ArtifactError) as exc_info:
            BackupManager(backup_config, fake_containers).run("20240101_120000")

        assert exc_info.value.message == "Failed to copy workflows from container"

    def test_invalid_export(self, backup_config, fake_containers):
        """Test malformed JSON aborts the run."""

        def write_garbage(name, source, destination):
            with open(destination, "w") as f:
                f.write("{not json")

        fake_containers.copy_from_container.side_effect = write_garbage

        with pytest.raises(ValidationError):
            BackupManager(backup_config, fake_containers).run("20240101_120000")

        assert BackupStorage(backup_config.backup_dir).list_sets() == []

    def test_zero_workflows(self, backup_config, fake_containers):
        """Test an empty export is an error."""

        def write_empty(name, source, destination):
            with open(destination, "w") as f:
                f.write("[]")

        fake_containers.copy_from_container.side_effect = write_empty

        with pytest.raises(ArtifactError) as exc_info:
            BackupManager(backup_config, fake_containers).run("20240101_120000")

        assert exc_info.value.message == "No workflows found in backup"

    def test_dump_failure_leaves_no_partial_set(self, backup_config, fake_containers):
        """Test a failing pg_dump publishes nothing, not even the export."""

        def failing_dump(name, command, destination):
            open(destination, "w").close()
            return ExecResult(1, "", 'pg_dump: error: role "n8n" does not exist')

        fake_containers.exec_to_file.side_effect = failing_dump

        with pytest.raises(ArtifactError) as exc_info:
            BackupManager(backup_config, fake_containers).run("20240101_120000")

        assert exc_info.value.message == "Failed to create database dump"
        assert list(backup_config.backup_dir.iterdir()) == []

    def test_dump_too_short(self, backup_config, fake_containers):
        """Test a truncated dump fails validation."""

        def short_dump(name, command, destination):
            with open(destination, "w") as f:
                f.write("-- PostgreSQL database dump\n")
            return ExecResult(0, "", "")

        fake_containers.exec_to_file.side_effect = short_dump

        with pytest.raises(ValidationError):
            BackupManager(backup_config, fake_containers).run("20240101_120000")

    def test_manifest_failure_is_not_fatal(self, backup_config, fake_containers):
        """Test the set is published without manifest if rendering fails."""
        manager = BackupManager(backup_config, fake_containers)

        with patch.object(manager.manifest_builder, "write", side_effect=RuntimeError("template broken")):
            result = manager.run("20240101_120000")

        backup_set = manager.storage.get_set("20240101_120000")
        assert result["success"]
        assert backup_set.is_complete
        assert not backup_set.has_manifest

    def test_rotation_after_backup(self, backup_config, fake_containers, create_backup_set):
        """Test old sets beyond retention are removed after publishing."""
        old = time.time() - 86400
        for day in range(1, 5):
            create_backup_set(f"2023120{day}_120000", mtime=old + day)

        result = BackupManager(backup_config, fake_containers).run("20240101_120000")

        assert sorted(result["removed"]) == ["20231201_120000", "20231202_120000"]
        assert BackupStorage(backup_config.backup_dir).list_timestamps() == [
            "20231203_120000",
            "20231204_120000",
            "20240101_120000",
        ]

    def test_summary(self, backup_config, fake_containers):
        """Test the summary lists files and retention."""
        manager = BackupManager(backup_config, fake_containers)
        result = manager.run("20240101_120000")

        summary = manager.format_summary(result)

        assert "BACKUP SUMMARY" in summary
        assert "workflows_20240101_120000.json" in summary
        assert "database_20240101_120000.sql.gz" in summary
        assert "Retention: 3 sets (current: 1)" in summary
        assert str(manager.session_log_path("20240101_120000")) in summary

    def test_interrupt_cleans_staging(self, backup_config, fake_containers):
        """Test Ctrl-C during the dump removes the staging directory."""
        fake_containers.exec_to_file.side_effect = KeyboardInterrupt

        with pytest.raises(KeyboardInterrupt):
            BackupManager(backup_config, fake_containers).run("20240101_120000")

        assert list(backup_config.backup_dir.iterdir()) == []

    def test_sigterm_cleans_staging(self, backup_config, fake_containers):
        """Test SIGTERM during the dump aborts the run and removes staging."""
        previous = signal.getsignal(signal.SIGTERM)

        def exec_to_file(name, command, destination):
            with open(destination, "w", encoding="utf-8") as f:
                f.write("-- partial dump\n")
            os.kill(os.getpid(), signal.SIGTERM)
            return ExecResult(0, "", "")

        fake_containers.exec_to_file.side_effect = exec_to_file

        with pytest.raises(BackupInterrupted):
            BackupManager(backup_config, fake_containers).run("20240101_120000")

        assert list(backup_config.backup_dir.iterdir()) == []
        assert signal.getsignal(signal.SIGTERM) == previous

    def test_sigterm_during_manifest_is_not_swallowed(self, backup_config, fake_containers):
        """Test best-effort manifest probes let SIGTERM through."""
        version_command = backup_config.n8n.version_command()

        def exec_side_effect(name, command):
            if command == version_command:
                os.kill(os.getpid(), signal.SIGTERM)
            return ExecResult(0, "", "")

        fake_containers.exec.side_effect = exec_side_effect
        manager = BackupManager(backup_config, fake_containers)

        with pytest.raises(BackupInterrupted):
            manager.run("20240101_120000")

        assert manager.storage.list_timestamps() == []
        assert list(backup_config.backup_dir.iterdir()) == []

    def test_uptime_failure_is_not_fatal(self, backup_config, fake_containers):
        """Test an unreadable container status does not fail pre-flight."""
        fake_containers.get_uptime.side_effect = DockerError("Reading container status failed")

        result = BackupManager(backup_config, fake_containers).run("20240101_120000")

        assert result["success"]
