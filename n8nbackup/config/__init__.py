"""Configuration management for the n8n backup CLI."""

from .manager import ConfigManager
from .schemas import CONFIG_SCHEMA, WORKFLOW_EXPORT_SCHEMA
from .settings import BackupConfig, N8nSettings, PostgresSettings

__all__ = [
    "BackupConfig",
    "ConfigManager",
    "CONFIG_SCHEMA",
    "N8nSettings",
    "PostgresSettings",
    "WORKFLOW_EXPORT_SCHEMA",
]
