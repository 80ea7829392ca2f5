"""Environment configuration for the giveaway fairness runtime."""

from __future__ import annotations

import os
from dataclasses import dataclass

from .models import FairnessConfig

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}

DEFAULT_AWS_REGION = "us-east-1"
DEFAULT_DRAW_INTERVAL_SECONDS = 600


def env_bool(name: str, *, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    lowered = raw.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    return default


def env_int(name: str, *, default: int | None = None) -> int | None:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def env_float(name: str, *, default: float | None = None) -> float | None:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class RuntimeSettings:
    table_name: str | None
    aws_region: str
    draw_interval_seconds: int
    log_level: str
    test_mode: bool


def read_runtime_settings() -> RuntimeSettings:
    test_mode = env_bool("GIVEAWAY_TEST")
    interval = env_int(
        "DRAW_INTERVAL_SECONDS",
        default=60 if test_mode else DEFAULT_DRAW_INTERVAL_SECONDS,
    )
    if interval is None or interval <= 0:
        interval = DEFAULT_DRAW_INTERVAL_SECONDS
    return RuntimeSettings(
        table_name=os.getenv("GIVEAWAY_TABLE_NAME") or None,
        aws_region=os.getenv("AWS_REGION", DEFAULT_AWS_REGION),
        draw_interval_seconds=interval,
        log_level=os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO",
        test_mode=test_mode,
    )


def read_fairness_defaults() -> FairnessConfig:
    """Fallback fairness parameters used until a settings record is saved.

    Raises InvalidConfigError if the environment overrides are out of range.
    """
    defaults = FairnessConfig()
    return FairnessConfig(
        base=env_float("FAIRNESS_BASE", default=defaults.base),
        points_divisor=env_int("FAIRNESS_P", default=defaults.points_divisor),
        alpha=env_float("FAIRNESS_ALPHA", default=defaults.alpha),
        beta=env_float("FAIRNESS_BETA", default=defaults.beta),
        referral_cap=env_int("FAIRNESS_RCAP", default=defaults.referral_cap),
        max_tickets=env_float("FAIRNESS_TMAX", default=defaults.max_tickets),
        ratio_cap=env_float("FAIRNESS_RATIO_CAP", default=defaults.ratio_cap),
        epsilon=env_float("FAIRNESS_EPSILON", default=defaults.epsilon),
    ).validate()
