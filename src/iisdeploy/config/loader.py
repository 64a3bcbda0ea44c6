"""Configuration loader for iisdeploy pipelines.

Input sources are merged with this precedence (lowest first):

1. Model defaults
2. ``iisdeploy.yaml`` (``provision:`` / ``deploy:`` sections, ``${VAR}``
   substitution)
3. Environment variables ``IISDEPLOY_<FIELD>``
4. CLI flags
5. Interactive prompts, only for required fields still missing and only
   when the operator asked for ``--interactive``
"""

import logging
import os
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any, TypeVar

import click
import yaml
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from iisdeploy.config.defaults import DEFAULT_CONFIG_FILE
from iisdeploy.config.env_loader import get_env_var, substitute_env_vars
from iisdeploy.config.validator import flatten_pydantic_errors, missing_required_fields
from iisdeploy.lib.errors import ConfigError
from iisdeploy.models.config import DeployConfig, ProvisionConfig

logger = logging.getLogger(__name__)

ENV_PREFIX = "IISDEPLOY_"

ModelT = TypeVar("ModelT", bound=BaseModel)
Prompt = Callable[[str], str]


def _click_prompt(text: str) -> str:
    value: str = click.prompt(text)
    return value


def _deep_merge(base: dict[str, Any], override: Mapping[str, Any]) -> None:
    """Deep merge override into base in place; ``None`` values are ignored."""
    for key, value in override.items():
        if value is None:
            continue
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value


def _read_yaml_with_env_substitution(path: Path) -> dict[str, Any] | None:
    """Read a YAML file, substituting ``${VAR}`` before parsing once.

    Raises:
        OSError: If the file cannot be read
        yaml.YAMLError: If parsing fails
        ConfigError: If a referenced variable is unset
    """
    raw_text = path.read_text(encoding="utf-8")
    content = yaml.safe_load(substitute_env_vars(raw_text))
    return content if content else None


class ConfigLoader:
    """Load and validate pipeline configuration from every input source.

    Example:
        >>> loader = ConfigLoader()
        >>> config = loader.load_deploy_config(
        ...     cli_values={"app_pool": "Shop"}, config_file="iisdeploy.yaml"
        ... )
    """

    def __init__(
        self,
        env: Mapping[str, str] | None = None,
        prompt: Prompt | None = None,
    ) -> None:
        self._env = env if env is not None else os.environ
        self._prompt = prompt or _click_prompt

    def parse_yaml(self, config_file: str | Path | None) -> dict[str, Any]:
        """Parse the configuration file; a missing default file is not an error.

        Raises:
            ConfigError: If an explicitly named file is missing or invalid YAML
        """
        explicit = config_file is not None
        path = Path(config_file) if explicit else Path(DEFAULT_CONFIG_FILE)

        if not path.exists():
            if explicit:
                raise ConfigError("config_file", f"Configuration file not found: {path}")
            return {}

        try:
            content = _read_yaml_with_env_substitution(path)
        except OSError as e:
            raise ConfigError("config_file", f"Cannot read {path}: {e}") from e
        except yaml.YAMLError as e:
            raise ConfigError("yaml_parse", f"Failed to parse YAML file {path}: {e}") from e

        if content is None:
            return {}
        if not isinstance(content, dict):
            raise ConfigError("config_file", f"{path} must contain a mapping")
        logger.debug(f"Loaded configuration file {path}")
        return content

    def env_overrides(self, model: type[BaseModel]) -> dict[str, str]:
        """Collect ``IISDEPLOY_<FIELD>`` values for the model's fields."""
        overrides: dict[str, str] = {}
        for field_name in model.model_fields:
            env_name = f"{ENV_PREFIX}{field_name.upper()}"
            value = self._env.get(env_name)
            if value is not None and value.strip():
                overrides[field_name] = value
        if overrides:
            logger.debug(f"Environment overrides: {', '.join(sorted(overrides))}")
        return overrides

    def load(
        self,
        model: type[ModelT],
        section: str,
        cli_values: Mapping[str, Any] | None = None,
        config_file: str | Path | None = None,
        interactive: bool = False,
    ) -> ModelT:
        """Merge every source and validate against the model.

        Args:
            model: Pydantic model to validate into
            section: Top-level YAML section holding this model's values
            cli_values: Flag values; ``None`` means the flag was not given
            config_file: Explicit YAML path; defaults to ``iisdeploy.yaml``
            interactive: Prompt for required fields still missing

        Raises:
            ConfigError: If the merged configuration is invalid
        """
        merged: dict[str, Any] = {}
        document = self.parse_yaml(config_file)
        file_values = document.get(section) or {}
        if not isinstance(file_values, dict):
            raise ConfigError(section, f"'{section}' section must be a mapping")

        _deep_merge(merged, file_values)
        _deep_merge(merged, self.env_overrides(model))
        _deep_merge(merged, cli_values or {})

        try:
            return model(**merged)
        except PydanticValidationError as e:
            missing = missing_required_fields(e)
            if not (interactive and missing):
                raise ConfigError(
                    section, "Invalid configuration:\n" + "\n".join(flatten_pydantic_errors(e))
                ) from e
            error = e

        for field_name in missing:
            info = model.model_fields[field_name]
            label = info.description or field_name.replace("_", " ")
            merged[field_name] = self._prompt(label)

        try:
            return model(**merged)
        except PydanticValidationError as e:
            raise ConfigError(
                section, "Invalid configuration:\n" + "\n".join(flatten_pydantic_errors(e))
            ) from error

    def load_provision_config(
        self,
        cli_values: Mapping[str, Any] | None = None,
        config_file: str | Path | None = None,
        interactive: bool = False,
    ) -> ProvisionConfig:
        """Load the provisioning configuration."""
        return self.load(ProvisionConfig, "provision", cli_values, config_file, interactive)

    def load_deploy_config(
        self,
        cli_values: Mapping[str, Any] | None = None,
        config_file: str | Path | None = None,
        interactive: bool = False,
    ) -> DeployConfig:
        """Load the deploy configuration."""
        return self.load(DeployConfig, "deploy", cli_values, config_file, interactive)


def resolve_token(token_env: str, interactive: bool = False) -> str:
    """Read the personal access token from the environment or a hidden prompt.

    The token is never written anywhere.

    Raises:
        ConfigError: If no token is available
    """
    token = get_env_var(token_env)
    if token:
        return token.strip()
    if interactive:
        value: str = click.prompt("GitHub personal access token", hide_input=True)
        if value.strip():
            return value.strip()
    raise ConfigError(
        "token",
        f"No GitHub token found. Set the {token_env} environment variable "
        "or run with --interactive.",
    )
