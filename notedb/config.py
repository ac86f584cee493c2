"""
Runtime settings for NoteDB.

Resolution order, later wins:
1. Settings defaults
2. ``settings.yaml`` in the config dir (or an explicit path)
3. ``NOTEDB_*`` environment variables

YAML keys use the field names below; the camelCase spellings of the
editor plugin settings (``dbFilePath``, ``apiBaseUrl``, ...) are accepted
too.
"""

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any

import yaml

from . import paths
from .errors import ConfigError
from .periods import Period

logger = logging.getLogger(__name__)

MODES = ("local", "remote")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
_TRUE = ("1", "true", "yes", "on")
_FALSE = ("0", "false", "no", "off", "")

_ALIASES = {
    "dbFilePath": "db_file_path",
    "apiBaseUrl": "api_base_url",
    "cfAccessClientId": "cf_access_client_id",
    "cfAccessClientSecret": "cf_access_client_secret",
    "requestTimeout": "request_timeout",
    "strictDates": "strict_dates",
    "logLevel": "log_level",
    "defaultPeriod": "default_period",
}

_ENV_VARS = {
    "NOTEDB_MODE": "mode",
    paths.APP_ENV_DB: "db_file_path",
    "NOTEDB_API_BASE_URL": "api_base_url",
    "NOTEDB_CF_ACCESS_CLIENT_ID": "cf_access_client_id",
    "NOTEDB_CF_ACCESS_CLIENT_SECRET": "cf_access_client_secret",
    "NOTEDB_REQUEST_TIMEOUT": "request_timeout",
    "NOTEDB_STRICT_DATES": "strict_dates",
    "NOTEDB_LOG_LEVEL": "log_level",
    "NOTEDB_DEFAULT_PERIOD": "default_period",
}


@dataclass(frozen=True)
class Settings:
    mode: str = "local"
    db_file_path: str = ""
    api_base_url: str = ""
    cf_access_client_id: str = ""
    cf_access_client_secret: str = ""
    request_timeout: float | None = None
    strict_dates: bool = False
    log_level: str = "WARNING"
    default_period: Period = Period.DAY

    def validate(self) -> "Settings":
        """Raise ConfigError on values no backend could work with."""
        if self.mode not in MODES:
            raise ConfigError(f"Unknown database mode: {self.mode!r} (expected one of {', '.join(MODES)})")
        if self.mode == "local" and not self.db_file_path:
            raise ConfigError("Local mode needs db_file_path.")
        if self.mode == "remote" and not self.api_base_url:
            raise ConfigError("Remote mode needs api_base_url.")
        if self.request_timeout is not None and self.request_timeout <= 0:
            raise ConfigError(f"request_timeout must be positive, got {self.request_timeout}")
        if self.log_level.upper() not in LOG_LEVELS:
            raise ConfigError(f"Unknown log_level: {self.log_level!r}")
        return self


def _coerce(name: str, value: Any) -> Any:
    if name == "request_timeout":
        if value is None or value == "":
            return None
        try:
            return float(value)
        except (TypeError, ValueError):
            raise ConfigError(f"request_timeout must be a number, got {value!r}") from None
    if name == "strict_dates":
        if isinstance(value, bool):
            return value
        text = str(value).strip().lower()
        if text in _TRUE:
            return True
        if text in _FALSE:
            return False
        raise ConfigError(f"strict_dates must be a boolean, got {value!r}")
    if name == "default_period":
        try:
            return Period(str(value).lower())
        except ValueError:
            raise ConfigError(f"Unknown default_period: {value!r}") from None
    if value is None:
        return ""
    return str(value)


def _normalize_keys(raw: Mapping[str, Any], source: str) -> dict[str, Any]:
    known = {f.name for f in fields(Settings)}
    values: dict[str, Any] = {}
    for key, value in raw.items():
        name = _ALIASES.get(key, key)
        if name not in known:
            logger.warning("Ignoring unknown setting %r in %s", key, source)
            continue
        values[name] = _coerce(name, value)
    return values


def _read_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        logger.debug("No settings file at %s", path)
        return {}
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Could not parse {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a mapping at the top level")
    return _normalize_keys(data, str(path))


def load_settings(path: str | Path | None = None, environ: Mapping[str, str] | None = None) -> Settings:
    """Build validated Settings from defaults, the YAML file and the environment."""
    environ = os.environ if environ is None else environ
    settings_path = Path(path).expanduser() if path else paths.settings_file()

    values = _read_yaml(settings_path)
    env_values = {name: environ[var] for var, name in _ENV_VARS.items() if var in environ}
    values.update(_normalize_keys(env_values, "environment"))

    settings = replace(Settings(), **values)
    if settings.mode == "local" and not settings.db_file_path:
        settings = replace(settings, db_file_path=str(paths.db_path()))
    return settings.validate()
