"""Environment variable validation and management."""

import os
import logging
from typing import Dict

logger = logging.getLogger(__name__)

_TRUTHY = {"1", "true", "yes", "on", "enabled"}
_FALSY = {"0", "false", "no", "off", "disabled", ""}


class EnvironmentError(Exception):
    """Raised when required environment variables are missing or invalid."""
    pass


def validate_environment() -> None:
    """Validate the generator endpoint, scoring switch and storage settings.

    Raises EnvironmentError if validation fails.
    """
    defaults = {
        "DB_PATH": "data.db",
        "LLM_URL": "http://localhost:4891/v1/chat/completions",
    }

    # Apply defaults before validation so dependent modules see consistent values.
    for var, value in defaults.items():
        if not os.getenv(var):
            os.environ[var] = value
            logger.info("Environment variable %s not set; using default '%s'", var, value)

    optional_vars: Dict[str, str] = {
        "MODEL_ID": "Model identifier sent to the generator",
        "USE_V3_SCORING": "Enable SOLO 1-5 scoring instead of the legacy 0-100 model",
    }

    url_vars = {"LLM_URL"}
    for var in url_vars:
        value = os.getenv(var)
        if value and not (value.startswith("http://") or value.startswith("https://")):
            raise EnvironmentError(f"Invalid URL format for {var}: {value}")

    flag = os.getenv("USE_V3_SCORING")
    if flag is not None and flag.strip().lower() not in _TRUTHY | _FALSY:
        raise EnvironmentError(f"Invalid boolean for USE_V3_SCORING: {flag}")

    numeric_vars = {"LLM_TIMEOUT": int, "LLM_TEMPERATURE": float, "LLM_TOP_P": float}
    for var, cast in numeric_vars.items():
        value = os.getenv(var)
        if not value:
            continue
        try:
            cast(value)
        except ValueError as exc:
            raise EnvironmentError(f"Invalid numeric value for {var}: {value}") from exc

    for var, description in optional_vars.items():
        if not os.getenv(var):
            logger.warning("Optional environment variable not set: %s (%s)", var, description)


def get_env_bool(name: str, default: bool = False) -> bool:
    """Get boolean value from environment variable."""
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUTHY
