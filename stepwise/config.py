from __future__ import annotations

import os
from typing import Optional

import yaml
from pydantic import BaseModel, Field

from .constants import DEFAULT_TIMEOUT_MS


class RetryConfig(BaseModel):
    """Delay applied between attempts of the same step.

    The wait before attempt ``n + 1`` is
    ``delay_ms * backoff ** (n - 1) + uniform(0, jitter_ms)``.
    """

    delay_ms: float = Field(default=0, ge=0)
    backoff: float = Field(default=1.0, ge=1.0)
    jitter_ms: float = Field(default=0, ge=0)


class ExecutorConfig(BaseModel):
    """Run executor settings."""

    retry: RetryConfig = RetryConfig()
    default_timeout_ms: int = Field(default=DEFAULT_TIMEOUT_MS, gt=0)


class StepwiseConfig(BaseModel):
    """Top-level configuration model."""

    executor: ExecutorConfig = ExecutorConfig()
    database_url: Optional[str] = None


def load_config(path: Optional[str] = None) -> StepwiseConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to STEPWISE_CONFIG env
            variable or 'stepwise.yaml' in the current directory.
    """

    config_path = path or os.getenv("STEPWISE_CONFIG", "stepwise.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = StepwiseConfig(**data)
    else:
        config = StepwiseConfig()

    env_db_url = os.getenv("STEPWISE_DATABASE_URL") or os.getenv("DATABASE_URL")
    if env_db_url:
        config.database_url = env_db_url
    return config
