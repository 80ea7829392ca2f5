from __future__ import annotations

import math
from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover - typing only
    from .models import Entrant, FairnessConfig


class FairnessError(Exception):
    """Base exception for the fairness engine."""


class InvalidConfigError(FairnessError, ValueError):
    """Raised when a fairness configuration field is outside its domain."""

    def __init__(self, field: str, message: str) -> None:
        super().__init__(f"{field}: {message}")
        self.field = field


class NoEntriesError(FairnessError):
    """Raised when a winner is requested from an empty entry list."""


class DegenerateWeightsError(FairnessError):
    """Raised when ticket weights cannot form a probability distribution."""


class GiveawayNotFoundError(FairnessError, LookupError):
    """Raised when a giveaway id does not resolve to a stored giveaway."""


class GiveawayClosedError(FairnessError):
    """Raised when joining a giveaway that is not accepting entries."""


class WinnerAlreadyRecordedError(GiveawayClosedError):
    """Raised when another process recorded the winner first."""

    def __init__(self, giveaway_id: str, winner_id: str | None) -> None:
        super().__init__(f"Giveaway {giveaway_id} already won by {winner_id}")
        self.giveaway_id = giveaway_id
        self.winner_id = winner_id


class TaskNotFoundError(FairnessError, LookupError):
    """Raised when a task id does not resolve to a stored task."""


class TaskAlreadyCompletedError(FairnessError):
    """Raised when a user completes the same task twice."""


def _require_number(field: str, value: object) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidConfigError(field, f"must be a number, got {value!r}")
    if math.isnan(value):
        raise InvalidConfigError(field, "must not be NaN")
    return float(value)


def _require_integer(field: str, value: object) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidConfigError(field, f"must be an integer, got {value!r}")
    return value


def _require_finite(field: str, value: float) -> float:
    if not math.isfinite(value):
        raise InvalidConfigError(field, "must be finite")
    return value


def validate_fairness_config(config: FairnessConfig) -> FairnessConfig:
    """Check every field of ``config`` and return it unchanged.

    ``max_tickets`` and ``ratio_cap`` may be ``math.inf`` to disable the
    corresponding ceiling; every other float must be finite.
    """

    base = _require_finite("base", _require_number("base", config.base))
    if base < 0:
        raise InvalidConfigError("base", "must be >= 0")

    points_divisor = _require_integer("P", config.points_divisor)
    if points_divisor <= 0:
        raise InvalidConfigError("P", "must be a positive integer")

    alpha = _require_finite("alpha", _require_number("alpha", config.alpha))
    if alpha < 0:
        raise InvalidConfigError("alpha", "must be >= 0")

    beta = _require_finite("beta", _require_number("beta", config.beta))
    if beta < 0:
        raise InvalidConfigError("beta", "must be >= 0")

    referral_cap = _require_integer("Rcap", config.referral_cap)
    if referral_cap < 0:
        raise InvalidConfigError("Rcap", "must be a non-negative integer")

    if _require_number("Tmax", config.max_tickets) < 0:
        raise InvalidConfigError("Tmax", "must be >= 0")

    if _require_number("ratioCap", config.ratio_cap) < 1:
        raise InvalidConfigError("ratioCap", "must be >= 1")

    epsilon = _require_finite("epsilon", _require_number("epsilon", config.epsilon))
    if epsilon <= 0:
        raise InvalidConfigError("epsilon", "must be > 0")

    return config


def validate_entrant(entrant: Entrant) -> Entrant:
    """Reject entrants whose points or referrals are not non-negative integers."""

    for field in ("points", "referrals"):
        value = getattr(entrant, field)
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise DegenerateWeightsError(
                f"Entrant {entrant.user_id} has invalid {field} {value!r}"
            )
    return entrant
