import json
import logging
import os
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

DEFAULT_SETTINGS_FILE = "timers.json"
ENV_PREFIX = "TIMERS_"


def _load_env_file(env_path: str) -> None:
    """
    Simple .env file parser that doesn't require external dependencies.
    Loads key=value pairs from .env file into os.environ.
    """
    if not os.path.isfile(env_path):
        return

    try:
        with open(env_path, "r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()

                # Skip empty lines and comments
                if not line or line.startswith("#") or "=" not in line:
                    continue

                key, value = line.split("=", 1)  # Split on first = only
                key = key.strip()
                value = value.strip()

                if (value.startswith('"') and value.endswith('"')) or (
                    value.startswith("'") and value.endswith("'")
                ):
                    value = value[1:-1]

                # Variables already exported in the process win over the file
                if key and key not in os.environ:
                    os.environ[key] = value

        logger.debug(".env file loaded from '%s'", env_path)

    except OSError as e:
        logger.warning("Failed to load .env file: %s", e)


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ("1", "true", "yes", "on"):
        return True
    if text in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"Invalid boolean value: {value!r}")


class Settings:
    """
    Runtime configuration for the default timer host.

    Values come from an optional JSON file (by default `timers.json`), then
    `TIMERS_*` environment variables override them. A `.env` file in the
    working directory is loaded into the environment first.
    """

    DEFAULTS: Dict[str, Any] = {
        "log_level": "INFO",
        "dispatcher_thread_name": "TimerDispatcher",
        "daemon": True,
        "max_wait_seconds": 1.0,
        "shutdown_timeout_seconds": 5.0,
    }

    def __init__(
        self, settings_file: Optional[str] = None, env_file: str = ".env"
    ) -> None:
        """
        :param settings_file: Path to a JSON settings file. When omitted,
            `timers.json` is used if it exists.
        :param env_file: Path to a .env file to load before reading overrides.
        """
        _load_env_file(env_file)

        path = settings_file or DEFAULT_SETTINGS_FILE
        raw: Dict[str, Any] = {}
        if os.path.isfile(path):
            loaded = self._load_json(path)
            if isinstance(loaded, dict):
                raw = loaded
                logger.info("Settings loaded from '%s'.", path)
            else:
                logger.error(
                    "Settings file '%s' is empty or invalid, using defaults", path
                )
        elif settings_file:
            logger.warning("Settings file '%s' not found, using defaults", path)

        self.raw = {**self.DEFAULTS, **raw, **self._env_overrides()}

        self.log_level: str = str(self.raw["log_level"]).upper()
        self.dispatcher_thread_name: str = str(self.raw["dispatcher_thread_name"])
        self.daemon: bool = _parse_bool(self.raw["daemon"])
        self.max_wait_seconds: float = float(self.raw["max_wait_seconds"])
        self.shutdown_timeout_seconds: float = float(
            self.raw["shutdown_timeout_seconds"]
        )

        if self.max_wait_seconds <= 0:
            raise ValueError("max_wait_seconds must be positive")
        if self.shutdown_timeout_seconds < 0:
            raise ValueError("shutdown_timeout_seconds cannot be negative")
        if not self.dispatcher_thread_name:
            raise ValueError("dispatcher_thread_name cannot be empty")

    def _env_overrides(self) -> Dict[str, Any]:
        overrides = {}
        for key in self.DEFAULTS:
            env_key = ENV_PREFIX + key.upper()
            if env_key in os.environ:
                overrides[key] = os.environ[env_key]
        return overrides

    def _load_json(self, path: str) -> Any:
        """
        Loads JSON from the given file path.

        :return: The parsed JSON if valid, otherwise None.
        """
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.error("Error loading JSON file '%s': %s", path, e)
            return None
