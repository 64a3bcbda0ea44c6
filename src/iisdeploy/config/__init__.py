"""Configuration loading for iisdeploy.

``ConfigLoader`` lives in ``iisdeploy.config.loader``; it is not imported
here because the models import ``iisdeploy.config.defaults``.
"""

from iisdeploy.config.env_loader import get_env_var, substitute_env_vars
from iisdeploy.config.validator import flatten_pydantic_errors

__all__ = [
    "flatten_pydantic_errors",
    "get_env_var",
    "substitute_env_vars",
]
