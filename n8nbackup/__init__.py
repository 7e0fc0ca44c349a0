"""n8n backup and restore automation tool."""

__version__ = "1.0.0"
__author__ = "n8n-backup maintainers"
