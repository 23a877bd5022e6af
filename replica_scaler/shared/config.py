"""Configuration helpers — read from environment variables."""

from __future__ import annotations

import os

from replica_scaler.core.errors import InvalidConfiguration
from replica_scaler.core.models import RetryBudget, ScalingPolicy


def get_env(name: str, default: str | None = None) -> str:
    """Get an environment variable, raising if missing and no default."""
    value = os.environ.get(name, default)
    if value is None:
        raise InvalidConfiguration(f"Missing required environment variable: {name}")
    return value


def get_int(name: str, default: int | None = None, minimum: int | None = None) -> int:
    raw = get_env(name, None if default is None else str(default))
    try:
        value = int(raw)
    except ValueError:
        raise InvalidConfiguration(f"{name} must be an integer, got {raw!r}") from None
    if minimum is not None and value < minimum:
        raise InvalidConfiguration(f"{name} must be >= {minimum}, got {value}")
    return value


def get_float(name: str, default: float, minimum: float = 0.0) -> float:
    raw = get_env(name, str(default))
    try:
        value = float(raw)
    except ValueError:
        raise InvalidConfiguration(f"{name} must be a number, got {raw!r}") from None
    if value < minimum:
        raise InvalidConfiguration(f"{name} must be >= {minimum}, got {value}")
    return value


# Resource names and endpoints (set by the deployment template)
PRIMARY_DB_INSTANCE_IDENTIFIER = lambda: get_env("PRIMARY_DB_INSTANCE_IDENTIFIER", "")
ALERT_TOPIC_ARN = lambda: get_env("ALERT_TOPIC_ARN", "")
AWS_ENDPOINT_URL = lambda: get_env("AWS_ENDPOINT_URL", "") or None
LOG_LEVEL = lambda: get_env("LOG_LEVEL", "INFO")
DEADLINE_MARGIN_MS = lambda: get_int("DEADLINE_MARGIN_MS", 2000, minimum=0)


def load_policy() -> ScalingPolicy:
    """Build the scaling policy; raises InvalidConfiguration on bad values."""
    return ScalingPolicy.create(
        min_replicas=get_int("MIN_REPLICAS", 0, minimum=0),
        max_replicas=get_int("MAX_REPLICAS", minimum=0),
        instance_class=get_env("REPLICA_INSTANCE_CLASS"),
        placement_hint=get_env("REPLICA_AVAILABILITY_ZONE", ""),
    )


def load_retry_budget() -> RetryBudget:
    return RetryBudget(
        max_attempts=get_int("RETRY_MAX_ATTEMPTS", 4, minimum=1),
        base_delay=get_float("RETRY_BASE_DELAY", 0.5),
        max_delay=get_float("RETRY_MAX_DELAY", 8.0),
        call_timeout=get_float("CALL_TIMEOUT", 10.0, minimum=0.1),
    )
