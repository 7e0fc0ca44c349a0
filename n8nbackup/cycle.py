"""End-to-end backup/restore cycle test against a live deployment."""

import json
import logging
import tempfile
import time
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from n8nbackup.backup.manager import BackupManager
from n8nbackup.backup.recovery import RestoreManager
from n8nbackup.backup.storage import BackupStorage, new_timestamp
from n8nbackup.backup.verify import BackupVerifier
from n8nbackup.config.settings import BackupConfig
from n8nbackup.containers.manager import ContainerManager
from n8nbackup.utils.errors import N8nBackupError, ValidationError
from n8nbackup.utils.logging import SUCCESS, add_log_file, remove_log_file

logger = logging.getLogger(__name__)

TEST_WORKFLOW_NAME = "DELETE_ME_TEST"
TEST_WORKFLOW_PATH = "/tmp/cycle_test_workflow.json"


def build_test_workflow() -> Dict[str, Any]:
    """A minimal throwaway workflow with a single manual trigger."""
    return {
        "name": TEST_WORKFLOW_NAME,
        "nodes": [
            {
                "parameters": {},
                "name": "Start",
                "type": "n8n-nodes-base.manualTrigger",
                "typeVersion": 1,
                "position": [250, 300],
            }
        ],
        "connections": {},
        "active": False,
        "settings": {},
    }


class CycleTester:
    """Backup, mutate, restore, and check the workflow count came back.

    Passes iff the final live workflow count equals the count observed
    right after the backup.
    """

    def __init__(
        self,
        config: BackupConfig,
        containers: Optional[ContainerManager] = None,
        storage: Optional[BackupStorage] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config
        self.containers = containers or ContainerManager(timeout=config.command_timeout)
        self.storage = storage or BackupStorage(config.backup_dir)
        self.sleep = sleep

        self.backup_manager = BackupManager(config, self.containers, self.storage)
        self.restore_manager = RestoreManager(config, self.containers, self.storage)
        self.verifier = BackupVerifier(self.storage)

    def count_live_workflows(self) -> int:
        """Number of lines printed by ``n8n list:workflow``."""
        n8n = self.config.n8n
        result = self.containers.exec(n8n.container, n8n.list_command())
        if not result.ok:
            raise N8nBackupError(
                "Failed to list workflows",
                details=(result.error or result.output).strip() or f"exit code {result.exit_code}",
            )
        return len([line for line in result.output.splitlines() if line.strip()])

    def add_test_workflow(self) -> None:
        """Import the throwaway workflow into n8n."""
        n8n = self.config.n8n

        with tempfile.TemporaryDirectory(prefix="n8n_cycle_") as tmp:
            workflow_file = Path(tmp) / "test_workflow.json"
            workflow_file.write_text(json.dumps(build_test_workflow(), indent=2), encoding="utf-8")
            self.containers.copy_to_container(n8n.container, str(workflow_file), TEST_WORKFLOW_PATH)

        command = ["n8n", "import:workflow", f"--input={TEST_WORKFLOW_PATH}"]
        result = self.containers.exec(n8n.container, command)
        if not result.ok:
            raise N8nBackupError(
                f"Failed to import test workflow {TEST_WORKFLOW_NAME}",
                details=(result.error or result.output).strip() or f"exit code {result.exit_code}",
            )

    def create_backup(self) -> str:
        """Run a regular backup with its own session log and return its key."""
        timestamp = new_timestamp()
        self.backup_manager.setup_directories()

        log_handler = add_log_file(str(self.backup_manager.session_log_path(timestamp)))
        try:
            self.backup_manager.run(timestamp)
        finally:
            remove_log_file(log_handler)
        return timestamp

    def run(self) -> Dict[str, Any]:
        """
        Execute the full cycle.

        Returns:
            Dict[str, Any]: Timestamp of the set used and the three counts
        """
        logger.info("Step 1: creating backup")
        timestamp = self.create_backup()
        logger.log(SUCCESS, "Backup %s created", timestamp)

        logger.info("Step 2: verifying backup %s", timestamp)
        report = self.verifier.verify_set(timestamp)
        if not report.ok:
            raise ValidationError(
                f"Backup {timestamp} failed verification",
                details=f"workflows: {report.workflows.detail}; database: {report.database.detail}",
            )

        logger.info("Step 3: counting workflows")
        before = self.count_live_workflows()
        logger.info("Workflows before change: %d", before)

        logger.info("Step 4: adding test workflow %s", TEST_WORKFLOW_NAME)
        self.add_test_workflow()
        after_add = self.count_live_workflows()
        logger.info("Workflows after adding test: %d", after_add)
        if after_add <= before:
            logger.warning("Workflow count did not increase after import")

        logger.info("Step 5: restoring backup %s", timestamp)
        backup_set = self.restore_manager.resolve_set(timestamp)
        self.restore_manager.restore(backup_set)

        logger.info("Step 6: restarting %s", self.config.n8n.container)
        self.containers.restart_container(self.config.n8n.container)
        logger.info("Waiting %ss for n8n to start...", self.config.restart_wait)
        self.sleep(self.config.restart_wait)

        final = self.count_live_workflows()
        logger.info("Workflows after restore: %d", final)

        return {
            "timestamp": timestamp,
            "before": before,
            "after_add": after_add,
            "final": final,
            "passed": final == before,
        }
