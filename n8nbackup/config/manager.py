"""Configuration management for the n8n backup CLI."""

import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from jinja2 import Environment

from n8nbackup.templates.config import get_config_template
from n8nbackup.utils.errors import ConfigurationError, create_error_suggestions

from .settings import BackupConfig
from .validator import ConfigValidationError, ConfigValidator

DEFAULT_CONFIG_FILENAME = "n8n-backup.yml"
CONFIG_ENV_VAR = "N8N_BACKUP_CONFIG"

# env var -> (section or None, key, type)
ENV_OVERRIDES = {
    "N8N_BACKUP_DIR": (None, "backup_dir", str),
    "N8N_BACKUP_LOG_DIR": (None, "log_dir", str),
    "N8N_BACKUP_RETENTION": (None, "retention", int),
    "N8N_CONTAINER": ("n8n", "container", str),
    "POSTGRES_CONTAINER": ("postgres", "container", str),
    "POSTGRES_USER": ("postgres", "user", str),
    "POSTGRES_DB": ("postgres", "database", str),
}


class ConfigManager:
    """Locates, loads and validates the backup configuration."""

    def __init__(self, path: Optional[str] = None, environ: Optional[Dict[str, str]] = None):
        """
        Initialize configuration manager.

        Args:
            path: Optional explicit configuration file path
            environ: Environment mapping (defaults to os.environ)
        """
        self.path = path
        self.environ = os.environ if environ is None else environ
        self.validator = ConfigValidator()
        self.jinja_env = Environment(trim_blocks=True, lstrip_blocks=True)

    def get_config_path(self) -> Optional[str]:
        """
        Get path to the configuration file.

        An explicit path (argument or environment variable) must exist; the
        default file in the working directory is optional.
        """
        explicit = self.path or self.environ.get(CONFIG_ENV_VAR)
        if explicit:
            if not os.path.exists(explicit):
                raise ConfigurationError(
                    f"Configuration file not found: {explicit}",
                    suggestions=create_error_suggestions("configuration_invalid"),
                )
            return explicit

        default_path = os.path.join(os.getcwd(), DEFAULT_CONFIG_FILENAME)
        if os.path.exists(default_path):
            return default_path

        return None

    def load_raw_config(self, config_path: Optional[str]) -> Dict[str, Any]:
        """
        Load the raw YAML mapping from a file.

        Args:
            config_path: Path to configuration file, or None for an empty config

        Returns:
            Dict[str, Any]: Parsed configuration

        Raises:
            ConfigurationError: If the file cannot be read or parsed
        """
        if config_path is None:
            return {}

        try:
            with open(config_path, encoding="utf-8") as f:
                config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(
                f"Error parsing YAML file {config_path}",
                details=str(e),
                suggestions=create_error_suggestions("configuration_invalid"),
            ) from e
        except OSError as e:
            raise ConfigurationError(f"Cannot read configuration file {config_path}: {e}") from e

        if config is None:
            return {}

        if not isinstance(config, dict):
            raise ConfigValidationError([f"Top level of {config_path} must be a mapping"])

        return config

    def apply_env_overrides(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """Return a copy of ``config`` with environment overrides applied."""
        merged = {key: (dict(value) if isinstance(value, dict) else value) for key, value in config.items()}

        for env_var, (section, key, cast) in ENV_OVERRIDES.items():
            raw_value = self.environ.get(env_var)
            if raw_value is None or raw_value == "":
                continue

            try:
                value = cast(raw_value)
            except ValueError as e:
                raise ConfigValidationError([f"{env_var} must be of type {cast.__name__}: {raw_value!r}"]) from e

            if section is None:
                merged[key] = value
            else:
                merged.setdefault(section, {})[key] = value

        return merged

    def load_config(self, overrides: Optional[Dict[str, Any]] = None) -> BackupConfig:
        """
        Resolve the configuration for this invocation.

        Precedence: defaults < file < environment < ``overrides``.

        Args:
            overrides: Top-level values set from the command line

        Returns:
            BackupConfig: Validated configuration object

        Raises:
            ConfigValidationError: If validation fails
        """
        config_path = self.get_config_path()
        raw_config = self.apply_env_overrides(self.load_raw_config(config_path))

        if overrides:
            raw_config.update({key: value for key, value in overrides.items() if value is not None})

        errors = self.validator.validate(raw_config)
        if errors:
            raise ConfigValidationError(errors)

        base_dir = Path(config_path).resolve().parent if config_path else Path(os.getcwd())
        return BackupConfig.from_dict(raw_config, base_dir)

    def render_default_config(self, template_vars: Optional[Dict[str, Any]] = None) -> str:
        """Render the default configuration file content."""
        defaults = BackupConfig()
        variables = {
            "backup_dir": "./backups",
            "log_dir": "./logs",
            "retention": defaults.retention,
            "min_free_mb": defaults.min_free_mb,
            "command_timeout": defaults.command_timeout,
            "restart_wait": defaults.restart_wait,
            "n8n": defaults.n8n,
            "postgres": defaults.postgres,
        }
        variables.update(template_vars or {})

        template = self.jinja_env.from_string(get_config_template())
        return template.render(**variables)

    def initialize_config(self, output_path: str = DEFAULT_CONFIG_FILENAME, force: bool = False) -> str:
        """
        Write a default configuration file.

        Args:
            output_path: Destination file
            force: Overwrite an existing file

        Returns:
            str: Path of the written file
        """
        if os.path.exists(output_path) and not force:
            raise ConfigurationError(
                f"Configuration file already exists: {output_path}",
                suggestions=["Use --force to overwrite it"],
            )

        content = self.render_default_config()

        # The rendered defaults must pass our own validation
        errors = self.validator.validate(yaml.safe_load(content) or {})
        if errors:
            raise ConfigValidationError(errors)

        parent = os.path.dirname(output_path)
        if parent:
            os.makedirs(parent, exist_ok=True)

        with open(output_path, "w", encoding="utf-8") as f:
            f.write(content)

        return output_path
