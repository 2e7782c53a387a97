from __future__ import annotations

import os
from typing import Dict, List, Literal, Optional

import yaml
from pydantic import BaseModel, Field

from .constants import DEFAULT_CONFIG_PATH, DEFAULT_HTTP_TIMEOUT


class StepConfig(BaseModel):
    """One reviewer step of a configured chain."""

    step_name: str
    reviewer: str


class RedisConfig(BaseModel):
    """Configuration for the Redis notification hook."""

    host: str = "localhost"
    port: int = 6379
    db: int = 0
    password: Optional[str] = None
    topic: str = "transitions"


class HooksConfig(BaseModel):
    """Notification hooks run after every committed transition."""

    backends: List[Literal["logging", "redis"]] = Field(default_factory=lambda: ["logging"])
    redis: RedisConfig = RedisConfig()


class QueryConfig(BaseModel):
    """Read-side channel settings.

    When ``primary_url`` is set, timelines and pending queues are read from
    the console REST API first and the repository is used as the fallback.
    """

    primary_url: Optional[str] = None
    timeout: float = DEFAULT_HTTP_TIMEOUT
    use_fallback: bool = True


class SecurityConfig(BaseModel):
    """Static role memberships and administrators."""

    admins: List[str] = Field(default_factory=list)
    roles: Dict[str, List[str]] = Field(default_factory=dict)


class ApprovalChainConfig(BaseModel):
    """Top-level configuration model."""

    database_url: Optional[str] = None
    chains: Dict[str, List[StepConfig]] = Field(default_factory=dict)
    query: QueryConfig = QueryConfig()
    hooks: HooksConfig = HooksConfig()
    security: SecurityConfig = SecurityConfig()
    log_level: str = "INFO"


def load_config(path: Optional[str] = None) -> ApprovalChainConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to the
            APPROVALCHAIN_CONFIG env variable or 'approvalchain.yaml' in the
            current directory.
    """

    config_path = path or os.getenv("APPROVALCHAIN_CONFIG", DEFAULT_CONFIG_PATH)
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = ApprovalChainConfig(**data)
    else:
        config = ApprovalChainConfig()

    env_db_url = os.getenv("APPROVALCHAIN_DATABASE_URL") or os.getenv("DATABASE_URL")
    if env_db_url:
        config.database_url = env_db_url
    return config
