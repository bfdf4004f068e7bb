"""Configuration module — frozen dataclass loaded from an optional YAML file and env vars."""

import logging
import os
from dataclasses import dataclass, field

import yaml

from envserver.errors import ConfigError

logger = logging.getLogger(__name__)

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _parse_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("true", "1", "yes")


@dataclass(frozen=True)
class Config:
    host: str = "127.0.0.1"
    port: int = 52000
    backlog: int = 100
    buffer_size: int = 1024
    stats_interval: int = 1024
    strict_numbers: bool = False
    log_level: str = "INFO"
    dashboard_enabled: bool = False
    dashboard_port: int = 8080
    provider: dict = field(default_factory=dict)


def load_yaml_config(path: str | None) -> dict:
    """Load the YAML config file at *path*. Returns empty dict if no path or no file."""
    if not path:
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError:
        logger.warning("Config file %s not found, using defaults", path)
        return {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")
    logger.info("Loaded YAML config from %s", path)
    return data


def load_config(config_path: str | None = None) -> Config:
    """Build Config from the YAML file (if any), then override with env vars."""
    yaml_data = load_yaml_config(config_path or os.environ.get("CONFIG_PATH"))
    server = yaml_data.get("server") or {}
    provider = yaml_data.get("provider") or {}

    def _setting(env_name: str, key: str, default):
        if env_name in os.environ:
            return os.environ[env_name]
        return server.get(key, default)

    try:
        return Config(
            host=str(_setting("SERVER_HOST", "host", Config.host)),
            port=int(_setting("SERVER_PORT", "port", Config.port)),
            backlog=int(_setting("LISTEN_BACKLOG", "backlog", Config.backlog)),
            buffer_size=int(_setting("BUFFER_SIZE", "buffer_size", Config.buffer_size)),
            stats_interval=int(_setting("STATS_INTERVAL", "stats_interval", Config.stats_interval)),
            strict_numbers=_parse_bool(_setting("STRICT_NUMBERS", "strict_numbers", "false")),
            log_level=str(_setting("LOG_LEVEL", "log_level", Config.log_level)).upper(),
            dashboard_enabled=_parse_bool(
                _setting("DASHBOARD_ENABLED", "dashboard_enabled", "false")
            ),
            dashboard_port=int(_setting("DASHBOARD_PORT", "dashboard_port", Config.dashboard_port)),
            provider=dict(provider),
        )
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid configuration value: {exc}") from exc


def validate_config(config: Config) -> None:
    """Raise ConfigError if *config* cannot be used to run the server."""
    # Negative ports are left to NetServer.initialize, which reports InvalidPortError.
    if config.port == 0 or config.port > 65535:
        raise ConfigError(f"port must be in 1..65535, got {config.port}")
    if config.buffer_size < 2:
        raise ConfigError(f"buffer_size must be at least 2, got {config.buffer_size}")
    if config.backlog < 1:
        raise ConfigError(f"backlog must be positive, got {config.backlog}")
    if config.stats_interval < 1:
        raise ConfigError(f"stats_interval must be positive, got {config.stats_interval}")
    if config.log_level not in LOG_LEVELS:
        raise ConfigError(f"unknown log level {config.log_level!r}")
    if config.dashboard_enabled and not 1 <= config.dashboard_port <= 65535:
        raise ConfigError(f"dashboard_port must be in 1..65535, got {config.dashboard_port}")
