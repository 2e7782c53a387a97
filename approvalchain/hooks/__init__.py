"""Hook factory and initialization."""

from __future__ import annotations

from typing import List, Optional

from ..config import ApprovalChainConfig, load_config
from .base import TransitionHook
from .inmemory import InMemoryHook
from .logging_hook import LoggingHook


def get_hooks(config: Optional[ApprovalChainConfig] = None) -> List[TransitionHook]:
    """Build the hooks listed under ``hooks.backends`` in the configuration."""

    config = config or load_config()
    hooks: List[TransitionHook] = []
    for backend in config.hooks.backends:
        if backend == "logging":
            hooks.append(LoggingHook())
        elif backend == "redis":
            from .redis import RedisHook

            redis_conf = config.hooks.redis
            hooks.append(
                RedisHook(
                    host=redis_conf.host,
                    port=redis_conf.port,
                    db=redis_conf.db,
                    password=redis_conf.password,
                    topic=redis_conf.topic,
                )
            )
        else:
            raise ValueError(f"Unsupported hook backend: {backend}")
    return hooks


__all__ = ["TransitionHook", "InMemoryHook", "LoggingHook", "get_hooks"]
