"""Error handling utilities for the n8n backup CLI."""

import sys
import traceback
from typing import List, Optional

import click


class N8nBackupError(Exception):
    """Base exception for n8n backup errors."""

    def __init__(
        self,
        message: str,
        details: Optional[str] = None,
        suggestions: Optional[list] = None,
    ):
        self.message = message
        self.details = details
        self.suggestions = suggestions or []
        super().__init__(message)


class ConfigurationError(N8nBackupError):
    """Raised when configuration is invalid or missing."""

    pass


class PreflightError(N8nBackupError):
    """Raised when an environment precondition is not met."""

    pass


class DockerError(N8nBackupError):
    """Raised when Docker operations fail."""

    pass


class ArtifactError(N8nBackupError):
    """Raised when producing a backup artifact fails."""

    pass


class ValidationError(N8nBackupError):
    """Raised when an artifact fails structural validation."""

    pass


class RestoreError(N8nBackupError):
    """Raised when a restore step fails."""

    pass


class BackupNotFoundError(N8nBackupError):
    """Raised when a requested backup set cannot be used."""

    def __init__(self, message: str, available: Optional[List[str]] = None, **kwargs):
        self.available = available or []
        super().__init__(message, **kwargs)


class OperationTimeoutError(N8nBackupError):
    """Raised when an external operation exceeds its deadline."""

    pass


class BackupInterrupted(BaseException):
    """Raised when the process receives SIGTERM during a backup.

    Like KeyboardInterrupt, it is not an Exception subclass and passes
    through best-effort handlers.
    """

    def __init__(self, message: str = "Backup interrupted by SIGTERM"):
        self.message = message
        super().__init__(message)


class ErrorHandler:
    """Handles and formats errors for user-friendly display."""

    def __init__(self, verbose: bool = False):
        self.verbose = verbose

    def handle_error(self, error: Exception, context: Optional[str] = None) -> None:
        """
        Handle and display error with appropriate formatting.

        Args:
            error: Exception to handle
            context: Optional context about when/where error occurred
        """
        if isinstance(error, N8nBackupError):
            self._handle_backup_error(error, context)
        else:
            self._handle_generic_error(error, context)

    def _handle_backup_error(self, error: N8nBackupError, context: Optional[str]) -> None:
        """Handle tool-specific errors."""
        click.echo(f"✗ {error.message}", err=True)

        if context:
            click.echo(f"Context: {context}", err=True)

        if error.details:
            click.echo(f"Details: {error.details}", err=True)

        if error.suggestions:
            click.echo("\nSuggestions:", err=True)
            for suggestion in error.suggestions:
                click.echo(f"  • {suggestion}", err=True)

        if self.verbose:
            click.echo("\nFull traceback:", err=True)
            traceback.print_exc()

    def _handle_generic_error(self, error: Exception, context: Optional[str]) -> None:
        """Handle generic Python exceptions."""
        error_type = type(error).__name__

        if isinstance(error, FileNotFoundError):
            message = f"File not found: {error}"
            suggestions = [
                "Check that the file path is correct",
                "Ensure the file exists and is readable",
            ]
        elif isinstance(error, PermissionError):
            message = f"Permission denied: {error}"
            suggestions = [
                "Check backup and log directory permissions",
                "Try running with appropriate privileges",
            ]
        elif isinstance(error, KeyboardInterrupt):
            message = "Operation interrupted"
            suggestions = []
        elif isinstance(error, BackupInterrupted):
            message = error.message
            suggestions = []
        else:
            message = f"{error_type}: {error}"
            suggestions = []

        click.echo(f"✗ {message}", err=True)

        if context:
            click.echo(f"Context: {context}", err=True)

        if suggestions:
            click.echo("\nSuggestions:", err=True)
            for suggestion in suggestions:
                click.echo(f"  • {suggestion}", err=True)

        if self.verbose:
            click.echo("\nFull traceback:", err=True)
            traceback.print_exc()

    def exit_with_error(self, error: Exception, context: Optional[str] = None, exit_code: int = 1) -> None:
        """Handle error and exit with specified code."""
        self.handle_error(error, context)
        sys.exit(exit_code)


def create_error_suggestions(error_type: str, **kwargs) -> list:
    """
    Create contextual error suggestions based on error type and context.

    Args:
        error_type: Type of error
        **kwargs: Additional context information (container, path, required_mb)

    Returns:
        list: List of suggestion strings
    """
    container = kwargs.get("container", "<container>")
    path = kwargs.get("path", "the backup directory")

    suggestions = {
        "docker_not_running": [
            "Start Docker Desktop or the Docker daemon",
            "Check that Docker is installed and accessible",
            "Verify Docker permissions for the current user",
        ],
        "container_not_running": [
            f"Start the container: docker start {container}",
            "Check the container name in your n8n-backup.yml",
            "List running containers with: docker ps",
        ],
        "insufficient_space": [
            f"Free up space on the filesystem holding {path}",
            "Lower the retention count with --keep",
            "Point backup_dir at a larger volume",
        ],
        "configuration_invalid": [
            "Check YAML syntax in configuration file",
            "Verify all values have the expected types",
            "Regenerate a default file with: n8n-backup config init",
        ],
        "export_failed": [
            f"Check the n8n logs: docker logs {container}",
            "Verify that the n8n instance has finished starting",
        ],
        "dump_failed": [
            "Verify the PostgreSQL user and database names",
            f"Check the PostgreSQL logs: docker logs {container}",
        ],
        "operation_timeout": [
            "Check that the container is responsive",
            "Raise command_timeout in the configuration",
        ],
    }

    return suggestions.get(error_type, [])


def format_validation_errors(errors: list) -> str:
    """
    Format validation errors for display.

    Args:
        errors: List of validation error messages

    Returns:
        str: Formatted error message
    """
    if not errors:
        return "No validation errors"

    if len(errors) == 1:
        return f"Validation error: {errors[0]}"

    formatted = "Validation errors:\n"
    for i, error in enumerate(errors, 1):
        formatted += f"  {i}. {error}\n"

    return formatted.strip()
