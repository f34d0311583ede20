"""
Relay configuration management.

This module handles loading and accessing relay configuration from multiple
sources with a clear priority order:

    1. Environment variables (highest priority) - for containerized deployments
    2. Config file (config/relay.ini) - for static deployments
    3. Built-in defaults (lowest priority) - sensible fallbacks

Configuration is loaded once at module import time and cached. Required values
(bot token, guild, channel and webhook) have no defaults; call
:func:`require_complete` before connecting to the platform.

Usage:
    from anon_relay.config import config, require_complete

    require_complete(config)
    print(config.discord.channel_id)
    print(config.ledger.absolute_path)

Environment Variable Mapping:
    RELAY_BOT_TOKEN          -> discord.bot_token
    RELAY_GUILD_ID           -> discord.guild_id
    RELAY_CHANNEL_ID         -> discord.channel_id
    RELAY_WEBHOOK_URL        -> publish.webhook_url
    RELAY_PUBLISH_TIMEOUT    -> publish.timeout_seconds
    RELAY_ANONYMOUS_NAME     -> publish.anonymous_name
    RELAY_LEDGER_PATH        -> ledger.path
    RELAY_HEALTH_HOST        -> health.host
    RELAY_HEALTH_PORT / PORT -> health.port
    RELAY_HEALTH_ENABLED     -> health.enabled
    RELAY_LOG_LEVEL          -> logging.level
    RELAY_LOG_FORMAT         -> logging.format
    RELAY_HEARTBEAT_SECONDS  -> logging.heartbeat_seconds
"""

from __future__ import annotations

import configparser
import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

from anon_relay.errors import ConfigurationError

# =============================================================================
# PATH CONFIGURATION
# =============================================================================

# Project root directory (contains src/, config/, data/)
PROJECT_ROOT = Path(__file__).parent.parent.parent

CONFIG_DIR = PROJECT_ROOT / "config"
CONFIG_FILE = CONFIG_DIR / "relay.ini"
CONFIG_EXAMPLE = CONFIG_DIR / "relay.example.ini"


# =============================================================================
# CONFIGURATION DATACLASSES
# =============================================================================


@dataclass
class DiscordSettings:
    """Chat platform connection settings."""

    bot_token: str = ""
    guild_id: int | None = None
    channel_id: int | None = None


@dataclass
class PublishSettings:
    """Anonymous publish channel (webhook) settings."""

    webhook_url: str = ""
    timeout_seconds: float = 10.0
    anonymous_name: str = "Anonymous"


@dataclass
class LedgerSettings:
    """Disclosure ledger storage."""

    path: str = "data/ledger.json"

    @property
    def absolute_path(self) -> Path:
        """Get absolute path to the ledger file."""
        p = Path(self.path)
        if p.is_absolute():
            return p
        return PROJECT_ROOT / p


@dataclass
class HealthSettings:
    """Liveness probe HTTP server."""

    enabled: bool = True
    host: str = "0.0.0.0"  # nosec B104 - probe must be reachable by the supervisor
    port: int = 8080


@dataclass
class LoggingSettings:
    """Logging configuration."""

    level: str = "INFO"
    format: Literal["simple", "detailed", "json"] = "detailed"
    heartbeat_seconds: int = 60


@dataclass
class RelayConfig:
    """
    Complete relay configuration.

    Aggregates all settings sections. Access via the module-level `config`
    singleton.
    """

    discord: DiscordSettings = field(default_factory=DiscordSettings)
    publish: PublishSettings = field(default_factory=PublishSettings)
    ledger: LedgerSettings = field(default_factory=LedgerSettings)
    health: HealthSettings = field(default_factory=HealthSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)

    def missing_required(self) -> list[str]:
        """Return the names of required settings that are unset."""
        missing = []
        if not self.discord.bot_token:
            missing.append("RELAY_BOT_TOKEN")
        if self.discord.channel_id is None:
            missing.append("RELAY_CHANNEL_ID")
        if not self.publish.webhook_url:
            missing.append("RELAY_WEBHOOK_URL")
        if self.discord.guild_id is None:
            missing.append("RELAY_GUILD_ID")
        return missing

    @property
    def is_complete(self) -> bool:
        return not self.missing_required()


# =============================================================================
# CONFIGURATION LOADING
# =============================================================================


def _parse_bool(value: str) -> bool:
    """Parse a string value to boolean."""
    return value.lower() in ("true", "yes", "1", "on", "enabled")


def _parse_snowflake(name: str, value: str) -> int | None:
    """Parse a platform id (a positive integer) or raise ConfigurationError."""
    value = value.strip()
    if not value:
        return None
    if not value.isdigit():
        raise ConfigurationError(message=f"{name} must be a numeric id, got {value!r}")
    return int(value)


def _parse_number(name: str, value: str, kind: type = int) -> int | float:
    """Parse an int or float setting or raise ConfigurationError."""
    try:
        return kind(value.strip())
    except ValueError as e:
        raise ConfigurationError(message=f"{name} must be a number, got {value!r}") from e


def _load_from_ini(parser: configparser.ConfigParser, cfg: RelayConfig) -> None:
    """Load configuration from parsed INI file into RelayConfig."""
    # Discord section
    if parser.has_section("discord"):
        if parser.has_option("discord", "bot_token"):
            cfg.discord.bot_token = parser.get("discord", "bot_token").strip()
        if parser.has_option("discord", "guild_id"):
            cfg.discord.guild_id = _parse_snowflake(
                "discord.guild_id", parser.get("discord", "guild_id")
            )
        if parser.has_option("discord", "channel_id"):
            cfg.discord.channel_id = _parse_snowflake(
                "discord.channel_id", parser.get("discord", "channel_id")
            )

    # Publish section
    if parser.has_section("publish"):
        if parser.has_option("publish", "webhook_url"):
            cfg.publish.webhook_url = parser.get("publish", "webhook_url").strip()
        if parser.has_option("publish", "timeout_seconds"):
            cfg.publish.timeout_seconds = _parse_number(
                "publish.timeout_seconds", parser.get("publish", "timeout_seconds"), float
            )
        if parser.has_option("publish", "anonymous_name"):
            cfg.publish.anonymous_name = parser.get("publish", "anonymous_name")

    # Ledger section
    if parser.has_section("ledger"):
        if parser.has_option("ledger", "path"):
            cfg.ledger.path = parser.get("ledger", "path")

    # Health section
    if parser.has_section("health"):
        if parser.has_option("health", "enabled"):
            cfg.health.enabled = _parse_bool(parser.get("health", "enabled"))
        if parser.has_option("health", "host"):
            cfg.health.host = parser.get("health", "host")
        if parser.has_option("health", "port"):
            cfg.health.port = _parse_number("health.port", parser.get("health", "port"))

    # Logging section
    if parser.has_section("logging"):
        if parser.has_option("logging", "level"):
            cfg.logging.level = parser.get("logging", "level").upper()
        if parser.has_option("logging", "format"):
            val = parser.get("logging", "format").lower()
            if val in ("simple", "detailed", "json"):
                cfg.logging.format = val  # type: ignore[assignment]
        if parser.has_option("logging", "heartbeat_seconds"):
            cfg.logging.heartbeat_seconds = _parse_number(
                "logging.heartbeat_seconds", parser.get("logging", "heartbeat_seconds")
            )


def _apply_env_overrides(cfg: RelayConfig) -> None:
    """Apply environment variable overrides to configuration."""
    # Discord settings
    if env_token := os.getenv("RELAY_BOT_TOKEN"):
        cfg.discord.bot_token = env_token.strip()
    if env_guild := os.getenv("RELAY_GUILD_ID"):
        cfg.discord.guild_id = _parse_snowflake("RELAY_GUILD_ID", env_guild)
    if env_channel := os.getenv("RELAY_CHANNEL_ID"):
        cfg.discord.channel_id = _parse_snowflake("RELAY_CHANNEL_ID", env_channel)

    # Publish settings
    if env_webhook := os.getenv("RELAY_WEBHOOK_URL"):
        cfg.publish.webhook_url = env_webhook.strip()
    if env_timeout := os.getenv("RELAY_PUBLISH_TIMEOUT"):
        cfg.publish.timeout_seconds = _parse_number("RELAY_PUBLISH_TIMEOUT", env_timeout, float)
    if env_name := os.getenv("RELAY_ANONYMOUS_NAME"):
        cfg.publish.anonymous_name = env_name

    # Ledger settings
    if env_ledger := os.getenv("RELAY_LEDGER_PATH"):
        cfg.ledger.path = env_ledger

    # Health settings (PORT is the conventional variable set by PaaS hosts)
    if env_health_host := os.getenv("RELAY_HEALTH_HOST"):
        cfg.health.host = env_health_host
    if env_health_port := os.getenv("RELAY_HEALTH_PORT") or os.getenv("PORT"):
        cfg.health.port = _parse_number("RELAY_HEALTH_PORT", env_health_port)
    if env_health_enabled := os.getenv("RELAY_HEALTH_ENABLED"):
        cfg.health.enabled = _parse_bool(env_health_enabled)

    # Logging settings
    if env_log := os.getenv("RELAY_LOG_LEVEL"):
        cfg.logging.level = env_log.upper()
    if env_log_format := os.getenv("RELAY_LOG_FORMAT"):
        val = env_log_format.lower()
        if val in ("simple", "detailed", "json"):
            cfg.logging.format = val  # type: ignore[assignment]
    if env_heartbeat := os.getenv("RELAY_HEARTBEAT_SECONDS"):
        cfg.logging.heartbeat_seconds = _parse_number("RELAY_HEARTBEAT_SECONDS", env_heartbeat)


def load_config() -> RelayConfig:
    """
    Load configuration from all sources with proper priority.

    Priority (highest wins):
        1. Environment variables
        2. config/relay.ini
        3. config/relay.example.ini (fallback for development)
        4. Built-in defaults

    Missing required values are NOT an error here; see :func:`require_complete`.

    Returns:
        RelayConfig: Fully populated configuration object.
    """
    cfg = RelayConfig()

    config_file = None
    if CONFIG_FILE.exists():
        config_file = CONFIG_FILE
    elif CONFIG_EXAMPLE.exists():
        config_file = CONFIG_EXAMPLE

    if config_file:
        parser = configparser.ConfigParser()
        parser.read(config_file, encoding="utf-8")
        _load_from_ini(parser, cfg)

    _apply_env_overrides(cfg)

    return cfg


def require_complete(cfg: RelayConfig) -> None:
    """Raise ConfigurationError if any required value is missing.

    Raises:
        ConfigurationError: Lists every missing key, not just the first.
    """
    missing = cfg.missing_required()
    if missing:
        raise ConfigurationError(missing)


# =============================================================================
# MODULE-LEVEL SINGLETON
# =============================================================================

config = load_config()


# =============================================================================
# LOGGING
# =============================================================================

_SIMPLE_FORMAT = "[%(levelname)s] %(message)s"
_DETAILED_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


class _JsonFormatter(logging.Formatter):
    """One JSON object per log line."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "time": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def configure_logging(cfg: RelayConfig) -> None:
    """Install the root log handler according to ``cfg.logging``."""
    handler = logging.StreamHandler()
    if cfg.logging.format == "json":
        handler.setFormatter(_JsonFormatter())
    elif cfg.logging.format == "simple":
        handler.setFormatter(logging.Formatter(_SIMPLE_FORMAT))
    else:
        handler.setFormatter(logging.Formatter(_DETAILED_FORMAT))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(cfg.logging.level)


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def get_config_status(cfg: RelayConfig | None = None) -> dict:
    """
    Get configuration status for diagnostics.

    Secrets are reported only as loaded / missing.
    """
    cfg = cfg or config
    return {
        "config_file_exists": CONFIG_FILE.exists(),
        "config_file_path": str(CONFIG_FILE),
        "using_example": not CONFIG_FILE.exists() and CONFIG_EXAMPLE.exists(),
        "bot_token_loaded": bool(cfg.discord.bot_token),
        "webhook_url_loaded": bool(cfg.publish.webhook_url),
        "guild_id": cfg.discord.guild_id,
        "channel_id": cfg.discord.channel_id,
        "missing": cfg.missing_required(),
    }


def print_config_summary(cfg: RelayConfig | None = None) -> None:
    """Print a summary of current configuration to stdout."""
    cfg = cfg or config
    status = get_config_status(cfg)
    print("\n" + "=" * 60)
    print("RELAY CONFIGURATION")
    print("=" * 60)
    print(f"Config file: {status['config_file_path']}")
    print(f"File exists: {status['config_file_exists']}")
    if status["using_example"]:
        print("WARNING: Using example config (copy to relay.ini for production)")
    print("-" * 60)
    print(f"Bot token:   {'loaded' if status['bot_token_loaded'] else 'MISSING'}")
    print(f"Webhook URL: {'loaded' if status['webhook_url_loaded'] else 'MISSING'}")
    print(f"Guild:       {status['guild_id'] or 'MISSING'}")
    print(f"Channel:     {status['channel_id'] or 'MISSING'}")
    print(f"Ledger:      {cfg.ledger.absolute_path}")
    print(f"Health:      {cfg.health.host}:{cfg.health.port} (enabled={cfg.health.enabled})")
    print(f"Log level:   {cfg.logging.level}")
    print("=" * 60 + "\n")


# =============================================================================
# TEST HELPERS
# =============================================================================


class use_test_ledger:
    """
    Context manager for pointing the ledger at a temporary file.

    Usage:
        from anon_relay.config import use_test_ledger

        def test_something(tmp_path):
            with use_test_ledger(tmp_path / "ledger.json"):
                ...

    Args:
        ledger_path: Path to the test ledger file
    """

    def __init__(self, ledger_path: Path | str):
        self.ledger_path = Path(ledger_path)
        self.original_path: str | None = None

    def __enter__(self) -> Path:
        """Set up test ledger path."""
        self.original_path = config.ledger.path
        config.ledger.path = str(self.ledger_path)
        return self.ledger_path

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Restore original ledger path."""
        if self.original_path is not None:
            config.ledger.path = self.original_path
        return None
