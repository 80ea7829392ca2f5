"""Weighted winner selection over stored entry tickets."""

from __future__ import annotations

import logging
import math
import random
from collections.abc import Callable, Sequence
from typing import Protocol

from .models import WinnerSelection
from .validation import DegenerateWeightsError, NoEntriesError

log = logging.getLogger("giveaway-fairness")

RandomSource = Callable[[], float]


class Weighted(Protocol):
    user_id: str
    tickets: float


def draw_winner(
    entries: Sequence[Weighted], random_source: RandomSource = random.random
) -> WinnerSelection:
    """
    Perform one cumulative-weight draw.

    Entries are visited in the order given; entries holding zero tickets can
    never win. ``random_source`` must return a float in ``[0, 1)``.

    Raises:
        NoEntriesError: if ``entries`` is empty
        DegenerateWeightsError: if any ticket count is negative or non-finite,
            or the total is not positive
    """
    if not entries:
        raise NoEntriesError("Cannot select a winner without entries")

    for entry in entries:
        if not math.isfinite(entry.tickets) or entry.tickets < 0:
            raise DegenerateWeightsError(
                f"Entry {entry.user_id} has invalid ticket count {entry.tickets!r}"
            )

    total = sum(entry.tickets for entry in entries)
    if total <= 0:
        raise DegenerateWeightsError(
            f"Total ticket weight is {total!r} across {len(entries)} entries"
        )

    draw = random_source() * total
    remaining = draw
    last_weighted = -1
    for index, entry in enumerate(entries):
        if entry.tickets <= 0:
            continue
        last_weighted = index
        remaining -= entry.tickets
        if remaining <= 0:
            break
    else:
        # Floating-point drift at the upper boundary
        log.warning("Draw %.6f of %.6f fell past the last entry", draw, total)

    winner = entries[last_weighted]
    log.debug(
        "Selected %s (%s of %s tickets, draw=%.6f)",
        winner.user_id,
        winner.tickets,
        total,
        draw,
    )
    return WinnerSelection(
        winner_user_id=winner.user_id,
        winner_index=last_weighted,
        total_tickets=total,
        draw=draw,
    )


def select_winner(
    entries: Sequence[Weighted], random_source: RandomSource = random.random
) -> str:
    """Return the ``user_id`` of the entry chosen by a weighted draw."""
    return draw_winner(entries, random_source).winner_user_id
