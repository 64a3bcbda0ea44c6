"""Environment variable helpers for configuration loading."""

import os
import re
from pathlib import Path

from dotenv import load_dotenv

from iisdeploy.lib.errors import ConfigError

# ${VAR_NAME}; names follow the usual shell rules
ENV_VAR_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")


def substitute_env_vars(text: str) -> str:
    """Replace every ``${VAR}`` in text with the variable's value.

    Args:
        text: Raw text (typically a YAML document)

    Returns:
        Text with all references substituted

    Raises:
        ConfigError: If a referenced variable is not set
    """

    def _replace(match: re.Match[str]) -> str:
        name = match.group(1)
        value = os.environ.get(name)
        if value is None:
            raise ConfigError(
                name,
                f"Environment variable '{name}' is referenced in the "
                "configuration but not set",
            )
        return value

    return ENV_VAR_PATTERN.sub(_replace, text)


def get_env_var(name: str, default: str | None = None) -> str | None:
    """Return an environment variable, treating empty values as unset."""
    value = os.environ.get(name)
    if value is None or not value.strip():
        return default
    return value


def load_dotenv_if_present(path: str | Path = ".env") -> bool:
    """Load ``.env`` into ``os.environ`` when it exists; never overrides."""
    env_path = Path(path)
    if not env_path.is_file():
        return False
    return load_dotenv(env_path, override=False)
