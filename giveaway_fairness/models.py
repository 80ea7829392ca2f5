from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import ClassVar

from .validation import InvalidConfigError, validate_fairness_config

ISO_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"

STATUS_ACTIVE = "active"
STATUS_ENDED = "ended"
STATUS_CANCELLED = "cancelled"


def utc_now_iso() -> str:
    """Return current UTC timestamp in ISO-8601 format (ms precision)."""
    return datetime.now(UTC).strftime(ISO_FORMAT)


def parse_iso(value: str) -> datetime:
    """Parse a stored timestamp, treating naive values as UTC."""
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def format_probability(probability: float) -> str:
    return f"{probability:.6f}"


def _coerce_int(value: object, default: int = 0) -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return default


@dataclass(frozen=True, slots=True)
class FairnessConfig:
    """Parameters that turn points and referrals into tickets."""

    base: float = 1.0
    points_divisor: int = 50
    alpha: float = 1.0
    beta: float = 2.0
    referral_cap: int = 20
    max_tickets: float = 500.0
    ratio_cap: float = 5.0
    epsilon: float = 0.0001

    PK_VALUE: ClassVar[str] = "SETTINGS"
    SK_VALUE: ClassVar[str] = "FAIRNESS"

    # Persisted names, matching the settings record used by the web layer.
    WIRE_FIELDS: ClassVar[dict[str, str]] = {
        "base": "base",
        "P": "points_divisor",
        "alpha": "alpha",
        "beta": "beta",
        "Rcap": "referral_cap",
        "Tmax": "max_tickets",
        "ratioCap": "ratio_cap",
        "epsilon": "epsilon",
    }
    INTEGER_FIELDS: ClassVar[frozenset[str]] = frozenset({"P", "Rcap"})

    def validate(self) -> FairnessConfig:
        return validate_fairness_config(self)

    @classmethod
    def key(cls) -> dict[str, str]:
        return {"pk": cls.PK_VALUE, "sk": cls.SK_VALUE}

    def to_dict(self) -> dict[str, float | int]:
        return {wire: getattr(self, attr) for wire, attr in self.WIRE_FIELDS.items()}

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> FairnessConfig:
        """Build and validate a config from its wire form.

        Missing keys fall back to the defaults; numeric strings are accepted
        because the settings record stores numbers as text.
        """

        values: dict[str, float | int] = {}
        for wire, attr in cls.WIRE_FIELDS.items():
            if wire not in data:
                continue
            raw = data[wire]
            if isinstance(raw, bool):
                raise InvalidConfigError(wire, f"must be a number, got {raw!r}")
            try:
                number = float(raw)  # type: ignore[arg-type]
            except (TypeError, ValueError) as exc:
                raise InvalidConfigError(wire, f"not a number: {raw!r}") from exc
            if wire in cls.INTEGER_FIELDS:
                if not math.isfinite(number) or not number.is_integer():
                    raise InvalidConfigError(wire, f"must be an integer, got {raw!r}")
                values[attr] = int(number)
            else:
                values[attr] = number
        return cls(**values).validate()

    def to_item(self) -> dict[str, object]:
        item: dict[str, object] = self.key()
        item.update({wire: str(value) for wire, value in self.to_dict().items()})
        return item

    @classmethod
    def from_item(cls, item: dict[str, object]) -> FairnessConfig:
        return cls.from_dict(
            {wire: item[wire] for wire in cls.WIRE_FIELDS if wire in item}
        )


@dataclass(frozen=True, slots=True)
class Entrant:
    user_id: str
    points: int
    referrals: int
    entry_id: str = ""


@dataclass(frozen=True, slots=True)
class TicketResult:
    user_id: str
    entry_id: str
    tickets: int
    probability: float
    weight: float


@dataclass(frozen=True, slots=True)
class WeightedEntry:
    user_id: str
    tickets: float


@dataclass(frozen=True, slots=True)
class WinnerSelection:
    """Outcome of one weighted draw, with the values needed to audit it."""

    winner_user_id: str
    winner_index: int
    total_tickets: float
    draw: float


@dataclass(frozen=True, slots=True)
class UserProfile:
    user_id: str
    points: int = 0
    referrals: int = 0

    PK_TEMPLATE: ClassVar[str] = "USER#%s"
    SK_VALUE: ClassVar[str] = "PROFILE"

    @classmethod
    def key(cls, user_id: str) -> dict[str, str]:
        return {"pk": cls.PK_TEMPLATE % user_id, "sk": cls.SK_VALUE}

    def to_item(self) -> dict[str, object]:
        item: dict[str, object] = self.key(self.user_id)
        item.update({"points": self.points, "referrals": self.referrals})
        return item

    @classmethod
    def from_item(cls, item: dict[str, object]) -> UserProfile:
        user_id = str(item["pk"]).split("#", 1)[1]
        return cls(
            user_id=user_id,
            points=_coerce_int(item.get("points")),
            referrals=_coerce_int(item.get("referrals")),
        )


@dataclass(frozen=True, slots=True)
class GiveawayRecord:
    giveaway_id: str
    title: str
    end_date: str
    status: str = STATUS_ACTIVE
    max_entries: int | None = None
    entry_count: int = 0
    winner_id: str | None = None
    ended_at: str | None = None

    PK_TEMPLATE: ClassVar[str] = "GIVEAWAY#%s"
    SK_VALUE: ClassVar[str] = "META"

    @classmethod
    def key(cls, giveaway_id: str) -> dict[str, str]:
        return {"pk": cls.PK_TEMPLATE % giveaway_id, "sk": cls.SK_VALUE}

    @property
    def is_active(self) -> bool:
        return self.status == STATUS_ACTIVE

    @property
    def is_full(self) -> bool:
        return self.max_entries is not None and self.entry_count >= self.max_entries

    def is_due(self, now: datetime) -> bool:
        if not self.is_active or self.winner_id is not None or not self.end_date:
            return False
        try:
            end_date = parse_iso(self.end_date)
        except ValueError:
            return False
        return now >= end_date

    def to_item(self) -> dict[str, object]:
        item: dict[str, object] = self.key(self.giveaway_id)
        item.update(
            {
                "title": self.title,
                "end_date": self.end_date,
                "status": self.status,
                "entry_count": self.entry_count,
            }
        )
        if self.max_entries is not None:
            item["max_entries"] = self.max_entries
        if self.winner_id is not None:
            item["winner_id"] = self.winner_id
        if self.ended_at is not None:
            item["ended_at"] = self.ended_at
        return item

    @classmethod
    def from_item(cls, item: dict[str, object]) -> GiveawayRecord:
        giveaway_id = str(item["pk"]).split("#", 1)[1]
        max_entries_raw = item.get("max_entries")
        winner_raw = item.get("winner_id")
        ended_raw = item.get("ended_at")
        return cls(
            giveaway_id=giveaway_id,
            title=str(item.get("title", "")),
            end_date=str(item.get("end_date", "")),
            status=str(item.get("status", STATUS_ACTIVE)),
            max_entries=(
                _coerce_int(max_entries_raw) if max_entries_raw is not None else None
            ),
            entry_count=_coerce_int(item.get("entry_count")),
            winner_id=str(winner_raw) if winner_raw else None,
            ended_at=str(ended_raw) if ended_raw else None,
        )


@dataclass(frozen=True, slots=True)
class EntryRecord:
    """A user's stored entry in one giveaway, with its latest ticket results."""

    giveaway_id: str
    user_id: str
    joined_at: str
    tickets: int = 1
    probability: float = 0.0

    PK_TEMPLATE: ClassVar[str] = "GIVEAWAY#%s"
    SK_PREFIX: ClassVar[str] = "ENTRY#"

    @property
    def entry_id(self) -> str:
        return f"{self.giveaway_id}:{self.user_id}"

    @classmethod
    def key(cls, giveaway_id: str, user_id: str) -> dict[str, str]:
        return {"pk": cls.PK_TEMPLATE % giveaway_id, "sk": f"{cls.SK_PREFIX}{user_id}"}

    def to_item(self) -> dict[str, object]:
        item: dict[str, object] = self.key(self.giveaway_id, self.user_id)
        item.update(
            {
                "joined_at": self.joined_at,
                "tickets": self.tickets,
                "probability": format_probability(self.probability),
            }
        )
        return item

    @classmethod
    def from_item(cls, item: dict[str, object]) -> EntryRecord:
        giveaway_id = str(item["pk"]).split("#", 1)[1]
        user_id = str(item["sk"])[len(cls.SK_PREFIX) :]
        try:
            raw = item.get("probability", 0) or 0
            probability = float(raw)  # type: ignore[arg-type]
        except (TypeError, ValueError):  # pragma: no cover - defensive
            probability = 0.0
        return cls(
            giveaway_id=giveaway_id,
            user_id=user_id,
            joined_at=str(item.get("joined_at", "")),
            tickets=_coerce_int(item.get("tickets"), default=1),
            probability=probability,
        )


@dataclass(frozen=True, slots=True)
class TaskRecord:
    """A task whose completion awards a fixed number of points."""

    task_id: str
    giveaway_id: str
    title: str
    points: int
    task_type: str = "custom"
    link: str | None = None

    PK_TEMPLATE: ClassVar[str] = "TASK#%s"
    SK_VALUE: ClassVar[str] = "META"

    @classmethod
    def key(cls, task_id: str) -> dict[str, str]:
        return {"pk": cls.PK_TEMPLATE % task_id, "sk": cls.SK_VALUE}

    def to_item(self) -> dict[str, object]:
        item: dict[str, object] = self.key(self.task_id)
        item.update(
            {
                "giveaway_id": self.giveaway_id,
                "title": self.title,
                "points": self.points,
                "task_type": self.task_type,
            }
        )
        if self.link is not None:
            item["link"] = self.link
        return item

    @classmethod
    def from_item(cls, item: dict[str, object]) -> TaskRecord:
        link_raw = item.get("link")
        return cls(
            task_id=str(item["pk"]).split("#", 1)[1],
            giveaway_id=str(item.get("giveaway_id", "")),
            title=str(item.get("title", "")),
            points=_coerce_int(item.get("points")),
            task_type=str(item.get("task_type", "custom")),
            link=str(link_raw) if link_raw else None,
        )


@dataclass(frozen=True, slots=True)
class TaskCompletion:
    user_id: str
    task_id: str
    giveaway_id: str
    completed_at: str
    points_awarded: int = 0

    PK_TEMPLATE: ClassVar[str] = "USER#%s"
    SK_PREFIX: ClassVar[str] = "TASK#"

    @classmethod
    def key(cls, user_id: str, task_id: str) -> dict[str, str]:
        return {"pk": cls.PK_TEMPLATE % user_id, "sk": f"{cls.SK_PREFIX}{task_id}"}

    def to_item(self) -> dict[str, object]:
        item: dict[str, object] = self.key(self.user_id, self.task_id)
        item.update(
            {
                "giveaway_id": self.giveaway_id,
                "completed_at": self.completed_at,
                "points_awarded": self.points_awarded,
            }
        )
        return item


@dataclass(frozen=True, slots=True)
class ReferralRecord:
    """Who referred a user; each user can be referred only once."""

    referred_user_id: str
    referrer_id: str
    created_at: str

    PK_TEMPLATE: ClassVar[str] = "REFERRAL#%s"
    SK_VALUE: ClassVar[str] = "META"

    @classmethod
    def key(cls, referred_user_id: str) -> dict[str, str]:
        return {"pk": cls.PK_TEMPLATE % referred_user_id, "sk": cls.SK_VALUE}

    def to_item(self) -> dict[str, object]:
        item: dict[str, object] = self.key(self.referred_user_id)
        item.update({"referrer_id": self.referrer_id, "created_at": self.created_at})
        return item

    @classmethod
    def from_item(cls, item: dict[str, object]) -> ReferralRecord:
        return cls(
            referred_user_id=str(item["pk"]).split("#", 1)[1],
            referrer_id=str(item.get("referrer_id", "")),
            created_at=str(item.get("created_at", "")),
        )
