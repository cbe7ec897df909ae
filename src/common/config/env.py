"""Typed environment variable parsing helpers."""

import os
from typing import Iterable, Optional


def get_env_str(name: str, default: Optional[str] = None, required: bool = False) -> Optional[str]:
    """Get an environment variable as a stripped string.

    Blank values are treated as unset.
    """
    value = os.getenv(name)
    if value is None or not value.strip():
        if required:
            raise KeyError(f"Environment variable '{name}' is required but not set.")
        return default
    return value.strip()


def get_env_int(
    name: str,
    default: Optional[int] = None,
    required: bool = False,
    minimum: Optional[int] = None,
) -> Optional[int]:
    """Get an environment variable as an integer, optionally bounded below."""
    value = get_env_str(name, None, required=required)
    if value is None:
        return default
    try:
        parsed = int(value)
    except ValueError:
        raise ValueError(f"Environment variable '{name}' must be an integer, got '{value}'.")
    if minimum is not None and parsed < minimum:
        raise ValueError(f"Environment variable '{name}' must be >= {minimum}, got {parsed}.")
    return parsed


def get_env_choice(name: str, choices: Iterable[str], default: str) -> str:
    """Get an environment variable constrained to a set of case-insensitive choices."""
    allowed = {choice.lower() for choice in choices}
    value = get_env_str(name, None)
    if value is None:
        return default
    normalized = value.lower()
    if normalized not in allowed:
        raise ValueError(
            f"Environment variable '{name}' must be one of {sorted(allowed)}, got '{value}'."
        )
    return normalized
