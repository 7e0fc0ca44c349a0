"""Configuration validation for the n8n backup CLI."""

from typing import Any, Dict, List

import jsonschema

from n8nbackup.utils.errors import ConfigurationError, create_error_suggestions, format_validation_errors

from .schemas import CONFIG_SCHEMA


class ConfigValidationError(ConfigurationError):
    """Raised when configuration validation fails."""

    def __init__(self, errors: List[str]):
        self.errors = errors
        super().__init__(
            "Configuration validation failed",
            details=format_validation_errors(errors),
            suggestions=create_error_suggestions("configuration_invalid"),
        )


class ConfigValidator:
    """Validates backup configuration mappings."""

    def validate(self, config: Dict[str, Any]) -> List[str]:
        """
        Validate a raw configuration mapping.

        Args:
            config: Configuration dictionary to validate

        Returns:
            List[str]: List of validation errors (empty if valid)
        """
        errors = []

        validator = jsonschema.Draft7Validator(CONFIG_SCHEMA)
        for error in sorted(validator.iter_errors(config), key=lambda e: list(e.path)):
            location = ".".join(str(part) for part in error.path)
            if location:
                errors.append(f"{location}: {error.message}")
            else:
                errors.append(error.message)

        if errors:
            return errors

        errors.extend(self._validate_containers(config))
        return errors

    def _validate_containers(self, config: Dict[str, Any]) -> List[str]:
        """The n8n and PostgreSQL services must live in different containers."""
        n8n_container = config.get("n8n", {}).get("container")
        postgres_container = config.get("postgres", {}).get("container")

        if n8n_container and n8n_container == postgres_container:
            return [f"n8n and postgres containers must differ (both are '{n8n_container}')"]
        return []
