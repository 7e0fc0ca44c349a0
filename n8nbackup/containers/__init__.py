"""Container access for the n8n backup CLI."""

from .manager import ContainerManager, ExecResult

__all__ = ["ContainerManager", "ExecResult"]
