"""parish_calendar.config_loader

Config loader for parish_calendar.

- Reads YAML (PyYAML) into a typed dataclass `Config`.
- Environment variables (and a `.env` file) override file values.
- Exposes `load_config()` which accepts an optional path override.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml

from .core.datetime_utils import DEFAULT_PARISH_TIMEZONE
from .exceptions import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("parish_calendar.yaml")

# environment variable -> Config field
ENV_OVERRIDES: dict[str, str] = {
    "PARISH_SHEETS_URL": "sheets_url",
    "PARISH_STORE_PATH": "store_path",
    "PARISH_SERVER_BIND": "server_bind",
    "PARISH_SERVER_PORT": "server_port",
    "PARISH_LOG_LEVEL": "log_level",
    "PARISH_TIMEZONE": "timezone",
    "GEMINI_API_KEY": "gemini_api_key",
    "API_KEY": "gemini_api_key",
    "GEMINI_MODEL": "gemini_model",
}


@dataclass
class Config:
    """Typed configuration for parish_calendar.

    Fields:
        sheets_url: deployed spreadsheet web app URL (contains /exec)
        store_path: JSON record store location
        server_bind: host to bind the HTTP server to
        server_port: port for the HTTP server
        log_level: logging level name
        timezone: parish timezone for "today" and exports
        gemini_api_key: language model API key
        gemini_model: language model name
        chat_context_days: days of upcoming events given to the assistant
        max_series_iterations: cursor steps per recurring series
        default_duration_minutes: length of events without an end time
        sync_tail_limit: newest records pushed by a full-table sync
    """

    sheets_url: Optional[str] = None
    store_path: str = "parish_calendar.json"
    server_bind: str = "127.0.0.1"
    server_port: int = 8080
    log_level: str = "INFO"
    timezone: str = DEFAULT_PARISH_TIMEZONE
    gemini_api_key: Optional[str] = None
    gemini_model: str = "gemini-3-flash-preview"
    chat_context_days: int = 30
    max_series_iterations: int = 500
    default_duration_minutes: int = 60
    sync_tail_limit: int = 50

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> Config:
        """Create Config from a plain mapping, applying defaults and validation.

        Numeric-like values are coerced to int. Values that cannot be coerced
        or are below 1 fall back to the default with a warning. Unknown keys
        are ignored.
        """
        if data is None:
            data = {}
        defaults = cls()

        def _coerce_int(key: str) -> int:
            default = getattr(defaults, key)
            raw = data.get(key, default)
            try:
                value = int(raw)
            except (TypeError, ValueError):
                logger.warning("Config %s=%r is not an int; using default %d", key, raw, default)
                return default
            if value < 1:
                logger.warning("Config %s=%d below minimum; using default %d", key, value, default)
                return default
            return value

        def _optional_str(key: str) -> Optional[str]:
            raw = data.get(key)
            if raw is None or str(raw).strip() == "":
                return None
            return str(raw).strip()

        unknown = set(data) - {f.name for f in fields(cls)}
        if unknown:
            logger.debug("Ignoring unknown config keys: %s", ", ".join(sorted(unknown)))

        return cls(
            sheets_url=_optional_str("sheets_url"),
            store_path=str(data.get("store_path") or defaults.store_path),
            server_bind=str(data.get("server_bind") or defaults.server_bind),
            server_port=_coerce_int("server_port"),
            log_level=str(data.get("log_level") or defaults.log_level).upper(),
            timezone=str(data.get("timezone") or defaults.timezone),
            gemini_api_key=_optional_str("gemini_api_key"),
            gemini_model=str(data.get("gemini_model") or defaults.gemini_model),
            chat_context_days=_coerce_int("chat_context_days"),
            max_series_iterations=_coerce_int("max_series_iterations"),
            default_duration_minutes=_coerce_int("default_duration_minutes"),
            sync_tail_limit=_coerce_int("sync_tail_limit"),
        )

    def redacted(self) -> dict[str, Any]:
        """Field values safe to log."""
        values = {f.name: getattr(self, f.name) for f in fields(self)}
        if values["gemini_api_key"]:
            values["gemini_api_key"] = "<redacted>"
        return values


def parse_env_file(path: Path) -> dict[str, str]:
    """Parse a .env file and return key-value pairs.

    Skips blank lines and ``#`` comments, splits on the first ``=`` and strips
    surrounding quotes from values. A missing or unreadable file yields ``{}``.
    """
    if not path.exists():
        return {}

    result: dict[str, str] = {}
    try:
        content = path.read_text(encoding="utf-8")
    except OSError:
        logger.debug("Failed to read .env file (continuing): %s", path, exc_info=True)
        return {}

    for raw_line in content.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, val = line.split("=", 1)
        key = key.strip()
        if key.startswith("export "):
            key = key[len("export ") :].strip()
        if key:
            result[key] = val.strip().strip('"').strip("'")
    return result


def apply_env_overrides(config: Config, environ: Optional[Mapping[str, str]] = None) -> Config:
    """Return a copy of ``config`` with environment variables applied.

    Recognizes the variables in ``ENV_OVERRIDES``; ``GEMINI_API_KEY`` wins
    over the generic ``API_KEY``.
    """
    environ = os.environ if environ is None else environ
    merged: dict[str, Any] = {f.name: getattr(config, f.name) for f in fields(config)}

    # reversed so earlier entries (GEMINI_API_KEY) take precedence
    for env_name, field_name in reversed(list(ENV_OVERRIDES.items())):
        value = environ.get(env_name)
        if value:
            merged[field_name] = value

    return Config.from_dict(merged)


def _load_yaml(path: Path) -> Any:
    loaded = yaml.safe_load(path.read_text(encoding="utf-8"))
    # safe_load returns None for empty files
    return {} if loaded is None else loaded


def load_config(
    path: Optional[str] = None, env_file: Optional[Path] = None, use_env: bool = True
) -> Config:
    """Load configuration from a YAML file plus environment overrides.

    Args:
        path: Optional config file path; defaults to ./parish_calendar.yaml
        env_file: Optional .env path; defaults to ./.env. Its values only fill
            variables missing from the real environment.
        use_env: Apply environment overrides

    Returns:
        Config instance with values from file, .env and environment.

    Raises:
        ConfigError: If the file exists but is not valid YAML or its top level
            is not a mapping.
    """
    p = Path(path) if path else Path.cwd() / DEFAULT_CONFIG_PATH
    logger.debug("Attempting to load config from %s", p)

    if not p.exists():
        logger.info("Config file %s not found; using defaults", p)
        cfg = Config()
    else:
        try:
            raw = _load_yaml(p)
        except yaml.YAMLError as exc:
            raise ConfigError(f"Config file {p} is not valid YAML: {exc}") from exc
        if not isinstance(raw, dict):
            logger.warning("Config file %s parsed but top-level is not a mapping: %r", p, raw)
            raise ConfigError("Config file must contain a mapping at top level")
        cfg = Config.from_dict(raw)
        logger.info("Loaded configuration from %s", p)

    if use_env:
        env_defaults = parse_env_file(env_file or Path.cwd() / ".env")
        environ = {**env_defaults, **os.environ}
        cfg = apply_env_overrides(cfg, environ)

    logger.debug("Configuration values: %s", cfg.redacted())
    return cfg
