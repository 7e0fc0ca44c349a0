"""Backup, verification and restore of n8n deployments."""

from .manager import BackupManager
from .recovery import RestoreManager
from .storage import BackupSet, BackupStorage
from .verify import BackupVerifier

__all__ = ["BackupManager", "BackupSet", "BackupStorage", "BackupVerifier", "RestoreManager"]
