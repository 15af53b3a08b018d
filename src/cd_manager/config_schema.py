"""
JSON schemas for configuration validation.
"""

LOGGING_SCHEMA = {
    "type": "object",
    "properties": {
        "level": {"type": "string", "enum": ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]},
        "format": {"type": "string", "enum": ["text", "json"]},
    },
    "additionalProperties": False,
}

DISCORD_SCHEMA = {
    "type": "object",
    "properties": {
        "deployments_webhook": {"type": ["string", "null"], "pattern": "^https?://"},
        "community_webhook": {"type": ["string", "null"], "pattern": "^https?://"},
        "test_webhook": {"type": ["string", "null"], "pattern": "^https?://"},
        "pacing_seconds": {"type": "number", "minimum": 0.0},
        "timeout_seconds": {"type": "number", "minimum": 0.1},
        "max_retries": {"type": "integer", "minimum": 1},
    },
    "additionalProperties": False,
}

DATABASE_SCHEMA = {
    "type": "object",
    "properties": {
        "dsn": {"type": ["string", "null"]},
        "table_prefix": {"type": "string", "pattern": "^[a-zA-Z0-9_]+$"},
    },
    "additionalProperties": False,
}

AWS_SCHEMA = {
    "type": "object",
    "properties": {
        "region": {"type": "string"},
        "launch_type": {"type": "string", "enum": ["FARGATE", "EC2"]},
    },
    "additionalProperties": False,
}

CONFIG_SCHEMA = {
    "type": "object",
    "properties": {
        "env": {"type": "string", "enum": ["dev", "qa", "tnet", "prod"]},
        "fail_closed_persistence": {"type": "boolean"},
        "poll_interval": {"type": "number", "exclusiveMinimum": 0},
        "logging": LOGGING_SCHEMA,
        "discord": DISCORD_SCHEMA,
        "database": DATABASE_SCHEMA,
        "aws": AWS_SCHEMA,
    },
    "additionalProperties": False,
}

__all__ = ["CONFIG_SCHEMA"]
