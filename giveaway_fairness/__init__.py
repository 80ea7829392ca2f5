"""Giveaway fairness engine: weighted tickets and auditable winner draws."""

from .models import (
    Entrant,
    EntryRecord,
    FairnessConfig,
    GiveawayRecord,
    ReferralRecord,
    TaskCompletion,
    TaskRecord,
    TicketResult,
    UserProfile,
    WeightedEntry,
    WinnerSelection,
    utc_now_iso,
)
from .selection import draw_winner, select_winner
from .service import GiveawayService
from .storage import GiveawayStorage
from .tickets import compute_tickets, median_weight, raw_ticket_weight
from .validation import (
    DegenerateWeightsError,
    FairnessError,
    GiveawayClosedError,
    GiveawayNotFoundError,
    InvalidConfigError,
    NoEntriesError,
    TaskAlreadyCompletedError,
    TaskNotFoundError,
    WinnerAlreadyRecordedError,
    validate_entrant,
    validate_fairness_config,
)

__all__ = [
    "Entrant",
    "EntryRecord",
    "FairnessConfig",
    "GiveawayRecord",
    "ReferralRecord",
    "TaskCompletion",
    "TaskRecord",
    "TicketResult",
    "UserProfile",
    "WeightedEntry",
    "WinnerSelection",
    "utc_now_iso",
    "draw_winner",
    "select_winner",
    "GiveawayService",
    "GiveawayStorage",
    "compute_tickets",
    "median_weight",
    "raw_ticket_weight",
    "DegenerateWeightsError",
    "FairnessError",
    "GiveawayClosedError",
    "GiveawayNotFoundError",
    "InvalidConfigError",
    "NoEntriesError",
    "TaskAlreadyCompletedError",
    "TaskNotFoundError",
    "WinnerAlreadyRecordedError",
    "validate_entrant",
    "validate_fairness_config",
]
