"""
Settings for lyricdrop.

Every setting is looked up by name in three places, first hit wins:
an explicit value passed by the caller (usually a command line flag), then
the process environment (which includes `.env`), then `ConfigManager.DEFAULTS`.
Empty strings count as unset at every level, so `FAL_KEY=` in `.env` falls
through to the default.

The server reads provider credentials and `PORT`/`APP_ENV`; the client side
reads the API URL, the separation and language defaults, and the polling
and request timeouts.
"""

import os
from typing import Any, Optional

from dotenv import load_dotenv

# .env is read once at import so both the server and the CLI see it
load_dotenv()


class ConfigManager:
    """Looks up lyricdrop settings: explicit value, then environment, then DEFAULTS."""

    # Client side
    DEFAULTS = {
        "API_BASE_URL": "http://localhost:8080",
        "SEPARATION_SERVICE": "demucs",
        "LANGUAGE": "en",
        "POLL_INTERVAL_SECONDS": "3",
        "POLL_TIMEOUT_SECONDS": "360",
        "REQUEST_TIMEOUT_SECONDS": "300",
        # Server side
        "REPLICATE_API_TOKEN": "",
        "FAL_KEY": "",
        "FAL_API_TOKEN": "",
        "GEMINI_API_KEY": "",
        "GEMINI_MODEL": "gemini-1.5-flash",
        "PORT": "8080",
        "APP_ENV": "development",
        "LOG_LEVEL": "INFO",
    }

    @staticmethod
    def get(key: str, override: Optional[Any] = None) -> Any:
        """
        Look up a setting.

        Args:
            key: Setting name, e.g. "POLL_TIMEOUT_SECONDS"
            override: Value given by the caller; wins unless None or ""

        Returns:
            The setting as a string (or the override as given)
        """
        value, _ = ConfigManager.get_display_value(key, override)
        return value

    @staticmethod
    def get_display_value(key: str, override: Optional[Any] = None) -> tuple[Any, str]:
        """
        Look up a setting and report where it came from.

        Returns:
            (value, source) with source one of "override", "env", "default"
        """
        if override is not None and override != "":
            return override, "override"

        env_value = os.getenv(key)
        if env_value is not None and env_value != "":
            return env_value, "env"

        return ConfigManager.DEFAULTS.get(key, ""), "default"

    @staticmethod
    def get_int(key: str, override: Optional[Any] = None) -> int:
        """Get a configuration value as an integer, falling back to the default if it doesn't parse."""
        try:
            return int(ConfigManager.get(key, override))
        except (TypeError, ValueError):
            return int(ConfigManager.DEFAULTS[key])

    @staticmethod
    def get_float(key: str, override: Optional[Any] = None) -> float:
        """Get a configuration value as a float, falling back to the default if it doesn't parse."""
        try:
            return float(ConfigManager.get(key, override))
        except (TypeError, ValueError):
            return float(ConfigManager.DEFAULTS[key])

    @staticmethod
    def fal_credentials() -> str:
        """Fal AI key; FAL_KEY takes priority over FAL_API_TOKEN."""
        return ConfigManager.get("FAL_KEY") or ConfigManager.get("FAL_API_TOKEN")
