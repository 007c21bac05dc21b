from __future__ import annotations

import os
from typing import Literal, Optional

import yaml
from pydantic import BaseModel

PRESIDENTIAL_ROUTE_NAME = "社長決裁ルート"


class RedisConfig(BaseModel):
    """Configuration for the Redis notifier."""

    host: str = "localhost"
    port: int = 6379
    db: int = 0
    password: Optional[str] = None


class NotificationConfig(BaseModel):
    """Where transition events are published."""

    backend: Literal["none", "inmemory", "redis"] = "none"
    redis: RedisConfig = RedisConfig()


class RingiConfig(BaseModel):
    """Top-level configuration model."""

    database_url: Optional[str] = None
    audit_database_url: Optional[str] = None
    default_route_name: str = PRESIDENTIAL_ROUTE_NAME
    validate_forms: bool = False
    log_level: str = "INFO"
    notifications: NotificationConfig = NotificationConfig()


def load_config(path: Optional[str] = None) -> RingiConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to RINGI_CONFIG env
            variable or 'ringi.yaml' in the current directory.
    """

    config_path = path or os.getenv("RINGI_CONFIG", "ringi.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = RingiConfig(**data)
    else:
        config = RingiConfig()

    env_db_url = os.getenv("RINGI_DATABASE_URL") or os.getenv("DATABASE_URL")
    if env_db_url:
        config.database_url = env_db_url
    env_audit_url = os.getenv("RINGI_AUDIT_DATABASE_URL")
    if env_audit_url:
        config.audit_database_url = env_audit_url
    return config
