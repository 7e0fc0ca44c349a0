"""Utilities for the n8n backup CLI."""

from .logging import SUCCESS, add_log_file, remove_log_file, setup_logging

__all__ = ["SUCCESS", "add_log_file", "remove_log_file", "setup_logging"]
