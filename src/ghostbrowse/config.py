"""
ghostbrowse configuration.

YAML file + environment overrides:
- ``$GHOSTBROWSE_CONFIG`` or ``$XDG_CONFIG_HOME/ghostbrowse/config.yaml``
- missing file -> defaults
- ``rate_limits`` entries are merged over the defaults, not replacing them

Example YAML:
    cache_ttl_ms: 300000
    default_engine: bing
    rate_limits:
      google.com: {requests: 2, per_ms: 60000}
      news.ycombinator.com: {max_requests: 30, window_ms: 60000}
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from ghostbrowse.core.errors import ConfigError
from ghostbrowse.research.limiter import RateLimit

logger = logging.getLogger(__name__)

ENGINES = ("ddg", "bing", "google")

DEFAULT_RATE_LIMITS: Dict[str, RateLimit] = {
    "google.com": RateLimit(3, 60_000),
    "x.com": RateLimit(10, 60_000),
    "twitter.com": RateLimit(10, 60_000),
    "reddit.com": RateLimit(10, 60_000),
    "default": RateLimit(20, 60_000),
}


def default_cache_dir() -> Path:
    cache_home = os.environ.get("XDG_CACHE_HOME") or Path.home() / ".cache"
    return Path(cache_home) / "ghostbrowse"


def default_config_path() -> Path:
    """``$GHOSTBROWSE_CONFIG`` or the XDG config location."""
    explicit = os.environ.get("GHOSTBROWSE_CONFIG", "").strip()
    if explicit:
        return Path(explicit).expanduser()
    config_home = os.environ.get("XDG_CONFIG_HOME") or Path.home() / ".config"
    return Path(config_home) / "ghostbrowse" / "config.yaml"


@dataclass
class GhostBrowseConfig:
    """Runtime configuration. All values can be overridden via environment variables."""

    cache_dir: Path = field(default_factory=default_cache_dir)
    cache_ttl_ms: int = 600_000
    rate_limits: Dict[str, RateLimit] = field(
        default_factory=lambda: dict(DEFAULT_RATE_LIMITS)
    )
    default_engine: str = "ddg"
    per_source_timeout_ms: int = 30_000
    retry_max_attempts: int = 2
    retry_base_delay_ms: int = 1000
    headless: bool = True
    browser_executable: Optional[str] = None
    log_file: Optional[Path] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "GhostBrowseConfig":
        """Build from a parsed YAML mapping; unknown keys are ignored with a warning."""
        config = cls()
        known = {f.name for f in fields(cls)}
        for key, value in data.items():
            if key not in known:
                logger.warning("Unknown config key ignored: %s", key)
                continue
            if key == "rate_limits":
                config.rate_limits = merge_rate_limits(config.rate_limits, value)
            else:
                setattr(config, key, _coerce(key, value))
        config.validate()
        return config

    def validate(self) -> None:
        if self.default_engine not in ENGINES:
            raise ConfigError(
                f"default_engine must be one of {', '.join(ENGINES)}, got {self.default_engine!r}"
            )
        for name in ("cache_ttl_ms", "per_source_timeout_ms", "retry_base_delay_ms"):
            if getattr(self, name) < 0:
                raise ConfigError(f"{name} must be >= 0")
        if self.retry_max_attempts < 1:
            raise ConfigError("retry_max_attempts must be >= 1")
        if "default" not in self.rate_limits:
            raise ConfigError("rate_limits must keep a 'default' entry")

    def apply_env(self) -> "GhostBrowseConfig":
        """Apply ``GHOSTBROWSE_*`` overrides in place; malformed numbers are ignored."""

        def env_raw(name: str) -> str:
            return os.getenv(name, "").strip()

        def env_int(name: str, default: int) -> int:
            raw = env_raw(name)
            if not raw:
                return default
            try:
                return int(raw)
            except ValueError:
                logger.warning("Ignoring malformed %s=%r", name, raw)
                return default

        def env_bool(name: str, default: bool) -> bool:
            raw = env_raw(name).lower()
            if not raw:
                return default
            return raw in {"1", "true", "yes", "on"}

        if env_raw("GHOSTBROWSE_CACHE_DIR"):
            self.cache_dir = Path(env_raw("GHOSTBROWSE_CACHE_DIR")).expanduser()
        self.cache_ttl_ms = env_int("GHOSTBROWSE_CACHE_TTL_MS", self.cache_ttl_ms)
        self.per_source_timeout_ms = env_int(
            "GHOSTBROWSE_SOURCE_TIMEOUT_MS", self.per_source_timeout_ms
        )
        engine = env_raw("GHOSTBROWSE_ENGINE").lower()
        if engine in ENGINES:
            self.default_engine = engine
        elif engine:
            logger.warning("Ignoring unknown GHOSTBROWSE_ENGINE=%r", engine)
        self.headless = env_bool("GHOSTBROWSE_HEADLESS", self.headless)
        if env_raw("GHOSTBROWSE_LOG_FILE"):
            self.log_file = Path(env_raw("GHOSTBROWSE_LOG_FILE")).expanduser()
        return self


def parse_rate_limit(resource: str, value: Any) -> RateLimit:
    """Accepts ``{requests, per_ms}`` or ``{max_requests, window_ms}``."""
    if isinstance(value, RateLimit):
        return value
    if not isinstance(value, Mapping):
        raise ConfigError(f"rate_limits[{resource!r}] must be a mapping")
    requests = value.get("max_requests", value.get("requests"))
    window = value.get("window_ms", value.get("per_ms"))
    try:
        return RateLimit(int(requests), int(window))
    except (TypeError, ValueError) as e:
        raise ConfigError(f"rate_limits[{resource!r}] is invalid: {e}") from e


def merge_rate_limits(
    base: Mapping[str, RateLimit], overrides: Any
) -> Dict[str, RateLimit]:
    if overrides is None:
        return dict(base)
    if not isinstance(overrides, Mapping):
        raise ConfigError("rate_limits must be a mapping")
    merged = dict(base)
    for resource, value in overrides.items():
        merged[str(resource).lower()] = parse_rate_limit(str(resource), value)
    return merged


def _coerce(key: str, value: Any) -> Any:
    try:
        if key in ("cache_dir", "log_file"):
            return Path(str(value)).expanduser() if value is not None else None
        if key in ("cache_ttl_ms", "per_source_timeout_ms",
                   "retry_max_attempts", "retry_base_delay_ms"):
            if isinstance(value, bool):
                raise ValueError("expected an integer")
            return int(value)
        if key == "headless":
            if not isinstance(value, bool):
                raise ValueError("expected true/false")
            return value
        if key == "default_engine":
            return str(value).lower()
        return value if value is None else str(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid value for {key}: {value!r} ({e})") from e


def load_config(path: Optional[Path] = None, apply_env: bool = True) -> GhostBrowseConfig:
    """
    Load configuration from YAML file.

    Args:
        path: Path to config file (default: ``default_config_path()``)
        apply_env: Apply ``GHOSTBROWSE_*`` environment overrides afterwards

    Returns:
        Loaded configuration (defaults when the file does not exist)

    Raises:
        ConfigError: The file is not valid YAML or holds invalid values.
    """
    path = Path(path) if path is not None else default_config_path()

    if not path.exists():
        logger.debug("Config file not found: %s", path)
        config = GhostBrowseConfig()
    else:
        try:
            with open(path, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Failed to load config {path}: {e}") from e
        if not isinstance(data, Mapping):
            raise ConfigError(f"Config {path} must contain a mapping at the top level")
        config = GhostBrowseConfig.from_dict(data)
        logger.debug("Loaded config from %s", path)

    if apply_env:
        config.apply_env()
        config.validate()
    return config
