"""Validation utilities for iisdeploy configuration."""

from pydantic import ValidationError as PydanticValidationError


def flatten_pydantic_errors(exc: PydanticValidationError) -> list[str]:
    """Flatten a pydantic ValidationError into one readable line per field.

    Example:
        >>> try:
        ...     DeployConfig(app_pool="Shop")
        ... except PydanticValidationError as e:
        ...     flatten_pydantic_errors(e)[0]
        "Field 'project_path': Field required"
    """
    errors: list[str] = []

    for error in exc.errors():
        loc = error.get("loc", ())
        field_path = ".".join(str(item) for item in loc) if loc else "unknown"
        msg = error.get("msg", "Unknown error")

        if error.get("type") == "value_error":
            formatted = f"Field '{field_path}': {msg} (received: {error.get('input')!r})"
        else:
            formatted = f"Field '{field_path}': {msg}"
        errors.append(formatted)

    return errors if errors else ["Validation failed with unknown error"]


def missing_required_fields(exc: PydanticValidationError) -> list[str]:
    """Return the top-level field names reported as missing."""
    return [
        str(error["loc"][0])
        for error in exc.errors()
        if error.get("type") == "missing" and error.get("loc")
    ]
