"""Resolved configuration objects passed into every operation."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict


@dataclass(frozen=True)
class N8nSettings:
    """Settings for the n8n service container."""

    container: str = "n8n-n8n-1"
    data_dir: str = "/home/node/.n8n"
    export_path: str = "/tmp/workflows_export.json"
    import_path: str = "/tmp/workflows_restore.json"

    def export_command(self) -> list:
        return ["n8n", "export:workflow", "--all", f"--output={self.export_path}"]

    def import_command(self) -> list:
        return ["n8n", "import:workflow", f"--input={self.import_path}", "--separate"]

    def list_command(self) -> list:
        return ["n8n", "list:workflow"]

    def version_command(self) -> list:
        return ["n8n", "--version"]


@dataclass(frozen=True)
class PostgresSettings:
    """Settings for the PostgreSQL container."""

    container: str = "n8n-postgres-1"
    user: str = "n8n"
    database: str = "n8n"
    min_dump_lines: int = 10
    dump_marker: str = "PostgreSQL database dump"
    stats_limit: int = 10
    restore_path: str = "/tmp/database_restore.sql"

    def dump_command(self) -> list:
        return ["pg_dump", "-U", self.user, self.database]

    def restore_command(self) -> list:
        return ["psql", "-U", self.user, "-d", self.database, "-f", self.restore_path]

    def query_command(self, sql: str, tuples_only: bool = False) -> list:
        command = ["psql", "-U", self.user, "-d", self.database]
        if tuples_only:
            command.extend(["-t", "-A"])
        command.extend(["-c", sql])
        return command


@dataclass(frozen=True)
class BackupConfig:
    """Fully resolved backup configuration.

    Built once at startup by :class:`~n8nbackup.config.manager.ConfigManager`
    and treated as read-only afterwards.
    """

    backup_dir: Path = Path("backups")
    log_dir: Path = Path("logs")
    retention: int = 7
    min_free_mb: int = 50
    command_timeout: float = 300
    restart_wait: float = 15
    n8n: N8nSettings = field(default_factory=N8nSettings)
    postgres: PostgresSettings = field(default_factory=PostgresSettings)

    @classmethod
    def from_dict(cls, data: Dict[str, Any], base_dir: Path) -> "BackupConfig":
        """Build a config from a validated mapping, resolving relative dirs against ``base_dir``."""
        defaults = cls()

        def resolve(value: Any, default: Path) -> Path:
            path = Path(value) if value is not None else default
            return path if path.is_absolute() else (base_dir / path)

        return cls(
            backup_dir=resolve(data.get("backup_dir"), defaults.backup_dir),
            log_dir=resolve(data.get("log_dir"), defaults.log_dir),
            retention=data.get("retention", defaults.retention),
            min_free_mb=data.get("min_free_mb", defaults.min_free_mb),
            command_timeout=data.get("command_timeout", defaults.command_timeout),
            restart_wait=data.get("restart_wait", defaults.restart_wait),
            n8n=N8nSettings(**data.get("n8n", {})),
            postgres=PostgresSettings(**data.get("postgres", {})),
        )
