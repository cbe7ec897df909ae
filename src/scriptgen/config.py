"""Runtime settings for the command line entry point."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from common.config.env import get_env_choice, get_env_int, get_env_str
from common.sql.quoting import is_plain_identifier

DEFAULT_DATABASE_NAME = "CountriesDemo"
LOG_LEVELS = ("debug", "info", "warning", "error")


@dataclass(frozen=True)
class ScriptSettings:
    database_name: str = DEFAULT_DATABASE_NAME
    file_growth_mb: int = 1
    blueprint_path: Optional[str] = None
    log_level: str = "warning"


def validate_configuration() -> ScriptSettings:
    """Read SCRIPTGEN_* settings from the environment.

    Raises:
        RuntimeError: listing every invalid setting at once.
    """
    issues: list[str] = []
    defaults = ScriptSettings()

    database_name = get_env_str("SCRIPTGEN_DATABASE_NAME", defaults.database_name)
    if not is_plain_identifier(database_name):
        issues.append(f"SCRIPTGEN_DATABASE_NAME must be a plain identifier, got '{database_name}'.")
        database_name = defaults.database_name

    try:
        file_growth_mb = get_env_int("SCRIPTGEN_FILE_GROWTH_MB", defaults.file_growth_mb, minimum=1)
    except ValueError as exc:
        issues.append(str(exc))
        file_growth_mb = defaults.file_growth_mb

    try:
        log_level = get_env_choice("SCRIPTGEN_LOG_LEVEL", LOG_LEVELS, defaults.log_level)
    except ValueError as exc:
        issues.append(str(exc))
        log_level = defaults.log_level

    if issues:
        raise RuntimeError("Invalid configuration:\n- " + "\n- ".join(issues))

    return ScriptSettings(
        database_name=database_name,
        file_growth_mb=file_growth_mb,
        blueprint_path=get_env_str("SCRIPTGEN_BLUEPRINT_PATH"),
        log_level=log_level,
    )
