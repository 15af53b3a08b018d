"""
Settings for the deployment manager.

Settings can be loaded from environment variables, a TOML file, or
constructed programmatically. Nothing here is global: the engine receives
its Settings explicitly.
"""

from __future__ import annotations

import dataclasses
import os
import tomllib
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Literal

import jsonschema
from dotenv import find_dotenv, load_dotenv

from .config_schema import CONFIG_SCHEMA
from .errors import ConfigurationError

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
LogFormat = Literal["text", "json"]


class EnvType(str, Enum):
    """Deployment environments."""
    DEV = "dev"
    QA = "qa"
    TNET = "tnet"
    PROD = "prod"

    @property
    def display_name(self) -> str:
        return _ENV_NAMES[self]


_ENV_NAMES = {
    EnvType.DEV: "dev",
    EnvType.QA: "qa",
    EnvType.TNET: "testnet-clay",
    EnvType.PROD: "mainnet",
}


@dataclass
class LoggingConfig:
    """Configuration for logging."""

    level: LogLevel = "INFO"
    format: LogFormat = "json"

    def __post_init__(self):
        valid_levels = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
        if self.level not in valid_levels:
            raise ValueError(f"Invalid log level: {self.level}. Must be one of {valid_levels}")
        valid_formats = ("text", "json")
        if self.format not in valid_formats:
            raise ValueError(f"Invalid log format: {self.format}. Must be one of {valid_formats}")


@dataclass
class DiscordConfig:
    """Discord webhook channels. Unset webhooks are skipped."""

    deployments_webhook: str | None = None
    community_webhook: str | None = None
    test_webhook: str | None = None

    pacing_seconds: float = 2.0
    timeout_seconds: float = 10.0
    max_retries: int = 3

    @property
    def enabled(self) -> bool:
        return any((self.deployments_webhook, self.community_webhook, self.test_webhook))

    def __post_init__(self):
        if self.pacing_seconds < 0:
            raise ValueError("pacing_seconds cannot be negative")
        if self.max_retries < 1:
            raise ValueError("max_retries must be at least 1")


@dataclass
class DatabaseConfig:
    """Configuration for the job database. No DSN means in-memory storage."""

    dsn: str | None = None
    table_prefix: str = "cd"


@dataclass
class AwsConfig:
    """Configuration for the ECS task backend."""

    region: str = "us-east-2"
    launch_type: str = "FARGATE"


@dataclass
class Settings:
    """
    Master configuration for the deployment manager.
    """

    env: EnvType = EnvType.DEV

    # Transition primitive: raise instead of proceeding when a database write fails
    fail_closed_persistence: bool = False

    # Seconds between advance calls made by the built-in driver
    poll_interval: float = 10.0

    logging: LoggingConfig = field(default_factory=LoggingConfig)
    discord: DiscordConfig = field(default_factory=DiscordConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    aws: AwsConfig = field(default_factory=AwsConfig)

    def __post_init__(self):
        if self.poll_interval <= 0:
            raise ValueError("poll_interval must be positive")

    @classmethod
    def from_env(cls) -> Settings:
        """
        Load settings from environment variables.

        Example:
            ENV=qa
            DB_DSN=postgresql://cd@localhost/cd
            DISCORD_TEST_WEBHOOK=https://discord.com/api/webhooks/123/abc
            CD_LOG_LEVEL=DEBUG
        """
        settings = cls()

        if env := os.getenv("ENV"):
            try:
                settings.env = EnvType(env.lower())
            except ValueError as e:
                raise ConfigurationError(f"Unknown ENV: {env!r}", cause=e) from e

        if fail_closed := os.getenv("CD_FAIL_CLOSED_PERSISTENCE"):
            settings.fail_closed_persistence = fail_closed.lower() == "true"

        # Validated fields go through their constructors
        try:
            if poll_interval := os.getenv("CD_POLL_INTERVAL"):
                settings = dataclasses.replace(settings, poll_interval=float(poll_interval))
            settings.logging = LoggingConfig(
                level=os.getenv("CD_LOG_LEVEL", settings.logging.level).upper(),  # type: ignore[arg-type]
                format=os.getenv("CD_LOG_FORMAT", settings.logging.format).lower(),  # type: ignore[arg-type]
            )
        except ValueError as e:
            raise ConfigurationError(f"Invalid environment configuration: {e}", cause=e) from e

        # Discord settings
        if url := os.getenv("DISCORD_DEPLOYMENTS_WEBHOOK"):
            settings.discord.deployments_webhook = url
        if url := os.getenv("DISCORD_COMMUNITY_NODES_WEBHOOK"):
            settings.discord.community_webhook = url
        if url := os.getenv("DISCORD_TEST_WEBHOOK"):
            settings.discord.test_webhook = url

        # Database settings
        if dsn := os.getenv("DB_DSN"):
            settings.database.dsn = dsn
        if prefix := os.getenv("DB_TABLE_PREFIX"):
            settings.database.table_prefix = prefix

        # AWS settings
        if region := os.getenv("AWS_REGION"):
            settings.aws.region = region

        return settings

    @classmethod
    def from_file(cls, path: str | Path) -> Settings:
        """
        Load settings from a TOML file.

        Args:
            path: Path to configuration file (.toml)

        Returns:
            Settings object with values from file
        """
        path = Path(path)

        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")
        if path.suffix.lower() != ".toml":
            raise ValueError(f"Unsupported config file format: {path.suffix}")

        with open(path, "rb") as f:
            data = tomllib.load(f)

        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Settings:
        """
        Create Settings from a dictionary.

        The dictionary is validated against the configuration schema first.
        """
        try:
            jsonschema.validate(instance=data, schema=CONFIG_SCHEMA)
        except jsonschema.ValidationError as e:
            raise ConfigurationError(f"Configuration validation failed: {e.message}", cause=e) from e

        settings = cls()

        if "env" in data:
            settings.env = EnvType(data["env"])
        if "fail_closed_persistence" in data:
            settings.fail_closed_persistence = data["fail_closed_persistence"]
        if "poll_interval" in data:
            settings.poll_interval = float(data["poll_interval"])

        if "logging" in data:
            settings.logging = LoggingConfig(**data["logging"])
        if "discord" in data:
            settings.discord = DiscordConfig(**data["discord"])
        if "database" in data:
            settings.database = DatabaseConfig(**data["database"])
        if "aws" in data:
            settings.aws = AwsConfig(**data["aws"])

        return settings

    def to_dict(self) -> dict[str, Any]:
        """Convert settings to dictionary."""

        def convert(obj):
            if dataclasses.is_dataclass(obj):
                return {k: convert(v) for k, v in dataclasses.asdict(obj).items()}
            elif isinstance(obj, Enum):
                return obj.value
            return obj

        return convert(self)


def load_env(path: str | None = None, *, override: bool = False) -> bool:
    """
    Load environment variables from a .env file.

    Args:
        path: Optional path to a .env file. If not provided, uses find_dotenv().
        override: Whether to override existing environment variables.

    Returns:
        True if a .env file was found and loaded, False otherwise.
    """
    env_path = path or find_dotenv(usecwd=True)
    if not env_path:
        return False
    return load_dotenv(env_path, override=override)


__all__ = [
    "EnvType",
    "LoggingConfig",
    "DiscordConfig",
    "DatabaseConfig",
    "AwsConfig",
    "Settings",
    "load_env",
]
