"""Logging configuration for the n8n backup CLI."""

import logging
from typing import Optional

import click

SUCCESS = 25
logging.addLevelName(SUCCESS, "SUCCESS")

LOGGER_NAME = "n8nbackup"

LEVEL_COLORS = {
    "DEBUG": "cyan",
    "INFO": "blue",
    "SUCCESS": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "red",
}


class ConsoleFormatter(logging.Formatter):
    """Formats records as a colored level tag followed by the message."""

    def format(self, record: logging.LogRecord) -> str:
        tag = click.style(f"[{record.levelname}]", fg=LEVEL_COLORS.get(record.levelname))
        return f"{tag} {record.getMessage()}"


class ClickEchoHandler(logging.Handler):
    """Writes records through click.echo, errors to stderr."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            click.echo(self.format(record), err=record.levelno >= logging.ERROR)
        except Exception:
            self.handleError(record)


def setup_logging(verbose: bool = False, log_file: Optional[str] = None) -> logging.Logger:
    """
    Setup logging configuration for the CLI.

    INFO and DEBUG records only reach the console in verbose mode; the
    session log file always receives everything.

    Args:
        verbose: Enable verbose/debug logging
        log_file: Optional log file path

    Returns:
        logging.Logger: The configured package logger
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG)

    # Re-running setup (one invocation per command) must not stack handlers
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    console_handler = ClickEchoHandler()
    console_handler.setLevel(logging.DEBUG if verbose else SUCCESS)
    console_handler.setFormatter(ConsoleFormatter())
    logger.addHandler(console_handler)

    if log_file:
        add_log_file(log_file)

    # Reduce noise from third-party libraries
    logging.getLogger("docker").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)

    return logger


def add_log_file(log_file: str) -> logging.Handler:
    """Attach a session log file to an already configured package logger."""
    logger = logging.getLogger(LOGGER_NAME)
    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(
        logging.Formatter("[%(asctime)s] [%(levelname)s] %(message)s", datefmt="%Y-%m-%d %H:%M:%S")
    )
    logger.addHandler(file_handler)
    return file_handler


def remove_log_file(handler: logging.Handler) -> None:
    """Detach and close a handler returned by add_log_file."""
    logging.getLogger(LOGGER_NAME).removeHandler(handler)
    handler.close()
