"""Best-effort manifest generation for backup sets."""

import logging
import socket
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from jinja2 import Environment

from n8nbackup import __version__
from n8nbackup.config.settings import BackupConfig
from n8nbackup.containers.manager import ContainerManager
from n8nbackup.templates.manifest import get_manifest_template
from n8nbackup.utils.files import human_size, partition_usage, sha256sum

from .storage import DATABASE, WORKFLOWS, artifact_name

logger = logging.getLogger(__name__)

UNKNOWN = "Unknown"
NO_STATISTICS = "Unable to retrieve statistics"

TABLE_SIZES_SQL = (
    "SELECT schemaname, tablename, "
    "pg_size_pretty(pg_total_relation_size(schemaname||'.'||tablename)) AS size "
    "FROM pg_tables WHERE schemaname NOT IN ('pg_catalog', 'information_schema') "
    "ORDER BY pg_total_relation_size(schemaname||'.'||tablename) DESC LIMIT {limit};"
)


class ManifestBuilder:
    """Collects environment facts about a backup set and renders the manifest.

    Every probe is independent: a failing probe is logged and replaced by a
    placeholder, and building the manifest never raises for probe failures.
    """

    def __init__(self, config: BackupConfig, containers: ContainerManager):
        self.config = config
        self.containers = containers
        self.jinja_env = Environment(keep_trailing_newline=True)

    def _probe(self, label: str, func: Callable[[], Optional[str]], default: str = UNKNOWN) -> str:
        try:
            value = func()
        except Exception as e:
            logger.debug("Manifest probe '%s' failed: %s", label, e)
            return default
        return value if value else default

    def _exec_output(self, container: str, command: list) -> Optional[str]:
        result = self.containers.exec(container, command)
        if not result.ok:
            return None
        return result.output.strip()

    def _n8n_version(self) -> Optional[str]:
        return self._exec_output(self.config.n8n.container, self.config.n8n.version_command())

    def _postgres_version(self) -> Optional[str]:
        command = self.config.postgres.query_command("SELECT version();", tuples_only=True)
        output = self._exec_output(self.config.postgres.container, command)
        return output.splitlines()[0].strip() if output else None

    def _n8n_disk_usage(self) -> Optional[str]:
        output = self._exec_output(self.config.n8n.container, ["df", "-h", self.config.n8n.data_dir])
        if not output:
            return None
        lines = output.splitlines()
        if len(lines) < 2:
            return None
        fields = lines[1].split()
        if len(fields) < 4:
            return None
        return f"{fields[1]} total, {fields[2]} used, {fields[3]} available"

    def _database_statistics(self) -> Optional[str]:
        sql = TABLE_SIZES_SQL.format(limit=int(self.config.postgres.stats_limit))
        return self._exec_output(self.config.postgres.container, self.config.postgres.query_command(sql))

    def collect(
        self,
        timestamp: str,
        workflows_path: Path,
        database_path: Path,
        workflow_count: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Gather manifest values for a set.

        Args:
            timestamp: Set key
            workflows_path: Workflow export (staged or published)
            database_path: Compressed database dump (staged or published)
            workflow_count: Record count already computed during export

        Returns:
            Dict[str, Any]: Template variables
        """
        return {
            "timestamp": timestamp,
            "date": datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S %Z"),
            "hostname": self._probe("hostname", socket.gethostname),
            "tool_version": __version__,
            "n8n_container": self.config.n8n.container,
            "postgres_container": self.config.postgres.container,
            "n8n_version": self._probe("n8n version", self._n8n_version),
            "n8n_uptime": self._probe("n8n uptime", lambda: self.containers.get_uptime(self.config.n8n.container)),
            "postgres_version": self._probe("postgres version", self._postgres_version),
            "workflows_file": artifact_name(WORKFLOWS, timestamp),
            "database_file": artifact_name(DATABASE, timestamp),
            "workflows_size": self._probe("workflows size", lambda: human_size(workflows_path.stat().st_size)),
            "database_size": self._probe("database size", lambda: human_size(database_path.stat().st_size)),
            "workflows_checksum": self._probe("workflows checksum", lambda: sha256sum(workflows_path)),
            "database_checksum": self._probe("database checksum", lambda: sha256sum(database_path)),
            "backup_partition": self._probe("backup partition", lambda: partition_usage(self.config.backup_dir)),
            "n8n_disk_usage": self._probe("n8n disk usage", self._n8n_disk_usage),
            "workflow_count": workflow_count if workflow_count is not None else UNKNOWN,
            "database_statistics": self._probe("database statistics", self._database_statistics, NO_STATISTICS),
        }

    def render(self, values: Dict[str, Any]) -> str:
        template = self.jinja_env.from_string(get_manifest_template())
        return template.render(**values)

    def write(
        self,
        destination: Path,
        timestamp: str,
        workflows_path: Path,
        database_path: Path,
        workflow_count: Optional[int] = None,
    ) -> Path:
        """Collect, render and write the manifest."""
        values = self.collect(timestamp, workflows_path, database_path, workflow_count)
        destination.write_text(self.render(values), encoding="utf-8")
        return destination
