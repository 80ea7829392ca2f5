"""
Ticket Calculator

Converts each entrant's points and referral count into weighted tickets and
normalised win probabilities for a whole giveaway.

Weighting rules:
- every entrant starts from ``base`` tickets
- every ``P`` points adds ``alpha`` tickets (floor division)
- referrals add ``beta`` each up to ``Rcap``, then grow only logarithmically
- the result is clipped to ``Tmax`` and floored by ``epsilon``
- nobody may hold more than ``ratioCap`` times the median entrant's weight

The median and the total depend on every entrant, so results are always
recomputed over the full entrant set.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Sequence

from .models import Entrant, FairnessConfig, TicketResult
from .validation import DegenerateWeightsError, validate_entrant

log = logging.getLogger("giveaway-fairness")


def raw_ticket_weight(points: int, referrals: int, config: FairnessConfig) -> float:
    """Return the uncapped, epsilon-adjusted weight for one entrant."""

    weight = config.base
    weight += (points // config.points_divisor) * config.alpha
    weight += min(referrals, config.referral_cap) * config.beta
    # log2(1) == 0, so entrants at or below the cap get nothing here
    weight += config.beta * math.log2(1 + max(0, referrals - config.referral_cap))
    weight = min(weight, config.max_tickets)
    return weight + config.epsilon


def median_weight(weights: Iterable[float]) -> float:
    """Return ``sorted(weights)[n // 2]``, or ``1.0`` when that is zero or NaN.

    Even-length lists take the element at ``n // 2`` with no interpolation.
    """

    ordered = sorted(weights)
    median = ordered[len(ordered) // 2] if ordered else 0.0
    if not median or math.isnan(median):
        return 1.0
    return median


def compute_tickets(
    entrants: Sequence[Entrant], config: FairnessConfig
) -> list[TicketResult]:
    """
    Compute tickets and win probabilities for every entrant of a giveaway.

    Args:
        entrants: Complete current entrant set of one giveaway
        config: Fairness parameters, validated before use

    Returns:
        One TicketResult per entrant, in input order

    Raises:
        InvalidConfigError: if ``config`` is outside its valid domain
        DegenerateWeightsError: if an entrant has negative or non-integer
            points or referrals, or the weights do not sum to a positive
            finite total
    """
    config.validate()
    if not entrants:
        return []
    for entrant in entrants:
        validate_entrant(entrant)

    weights = [raw_ticket_weight(e.points, e.referrals, config) for e in entrants]
    median = median_weight(weights)
    ceiling = config.ratio_cap * median
    capped = [min(weight, ceiling) for weight in weights]

    total = sum(capped)
    if not math.isfinite(total) or total <= 0:
        raise DegenerateWeightsError(
            f"Total ticket weight {total!r} for {len(entrants)} entrants"
        )
    if any(weight < 0 for weight in capped):
        raise DegenerateWeightsError("Negative ticket weight computed")

    results: list[TicketResult] = []
    for entrant, raw, weight in zip(entrants, weights, capped, strict=True):
        log.debug(
            "Tickets for %s: points=%s, referrals=%s, raw=%.4f, capped=%.4f",
            entrant.user_id,
            entrant.points,
            entrant.referrals,
            raw,
            weight,
        )
        results.append(
            TicketResult(
                user_id=entrant.user_id,
                entry_id=entrant.entry_id,
                tickets=math.floor(weight),
                probability=round(weight / total, 6),
                weight=weight,
            )
        )

    log.info(
        "Computed tickets for %d entrants (median=%.4f, ceiling=%.4f, total=%.4f)",
        len(results),
        median,
        ceiling,
        total,
    )
    return results
