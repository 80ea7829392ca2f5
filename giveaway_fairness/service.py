"""
Giveaway orchestration.

Glue between storage and the pure fairness engine: recomputes tickets for a
whole giveaway whenever an entrant's points or referrals change, and closes
giveaways with a single recorded weighted draw.

Recomputation and winner selection for one giveaway are serialised with a
per-giveaway ``asyncio.Lock``; the winner write is additionally conditional in
DynamoDB so concurrent processes cannot record two winners. Locks are dropped
once a giveaway is finished.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections import defaultdict

from .models import (
    STATUS_CANCELLED,
    Entrant,
    EntryRecord,
    FairnessConfig,
    GiveawayRecord,
    ReferralRecord,
    TaskCompletion,
    TicketResult,
    UserProfile,
    WinnerSelection,
    utc_now_iso,
)
from .selection import RandomSource, draw_winner
from .storage import GiveawayStorage
from .tickets import compute_tickets
from .validation import (
    GiveawayClosedError,
    GiveawayNotFoundError,
    NoEntriesError,
    TaskAlreadyCompletedError,
    TaskNotFoundError,
    WinnerAlreadyRecordedError,
)

log = logging.getLogger("giveaway-fairness")


class GiveawayService:
    """Coordinates ticket recomputation and winner selection per giveaway."""

    def __init__(
        self,
        storage: GiveawayStorage,
        default_config: FairnessConfig | None = None,
        random_source: RandomSource = random.random,
    ) -> None:
        """
        Args:
            storage: Storage adapter for giveaways, entries and users
            default_config: Used until a fairness settings record is saved
            random_source: Uniform ``[0, 1)`` generator used for draws
        """
        self.storage = storage
        self.default_config = (default_config or FairnessConfig()).validate()
        self.random_source = random_source
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    def _require_giveaway(self, giveaway_id: str) -> GiveawayRecord:
        giveaway = self.storage.get_giveaway(giveaway_id)
        if giveaway is None:
            raise GiveawayNotFoundError(f"Giveaway {giveaway_id} not found")
        return giveaway

    async def fairness_config(self) -> FairnessConfig:
        return self.storage.get_fairness_config() or self.default_config

    async def join_giveaway(self, giveaway_id: str, user_id: str) -> bool:
        """
        Enter ``user_id`` into an active giveaway.

        Returns:
            False if the user had already joined, True otherwise

        Raises:
            GiveawayNotFoundError: unknown giveaway
            GiveawayClosedError: giveaway is not active or has reached max entries
        """
        async with self._locks[giveaway_id]:
            giveaway = self._require_giveaway(giveaway_id)
            if not giveaway.is_active:
                raise GiveawayClosedError(
                    f"Giveaway {giveaway_id} is {giveaway.status}"
                )
            if giveaway.is_full:
                raise GiveawayClosedError(f"Giveaway {giveaway_id} is full")

            created = self.storage.create_entry(
                EntryRecord(
                    giveaway_id=giveaway_id,
                    user_id=user_id,
                    joined_at=utc_now_iso(),
                )
            )
            if not created:
                log.info("User %s already entered giveaway %s", user_id, giveaway_id)
                return False

            log.info("User %s joined giveaway %s", user_id, giveaway_id)
            await self._recalculate_locked(giveaway_id)
        return True

    async def recalculate(self, giveaway_id: str) -> list[TicketResult]:
        async with self._locks[giveaway_id]:
            return await self._recalculate_locked(giveaway_id)

    async def _recalculate_locked(self, giveaway_id: str) -> list[TicketResult]:
        config = await self.fairness_config()
        entrants: list[Entrant] = []
        for entry in self.storage.list_entries(giveaway_id):
            profile = self.storage.get_user(entry.user_id) or UserProfile(
                user_id=entry.user_id
            )
            entrants.append(
                Entrant(
                    user_id=entry.user_id,
                    points=profile.points,
                    referrals=profile.referrals,
                    entry_id=entry.entry_id,
                )
            )

        results = compute_tickets(entrants, config)
        updated = self.storage.save_entry_results(giveaway_id, results)
        log.info(
            "Recalculated %d/%d entries for giveaway %s",
            updated,
            len(results),
            giveaway_id,
        )
        return results

    async def _recalculate_user_giveaways(
        self, user_id: str
    ) -> dict[str, list[TicketResult]]:
        recalculated: dict[str, list[TicketResult]] = {}
        for giveaway_id in self.storage.list_user_giveaway_ids(user_id):
            giveaway = self.storage.get_giveaway(giveaway_id)
            if giveaway is None or not giveaway.is_active:
                continue
            recalculated[giveaway_id] = await self.recalculate(giveaway_id)
        return recalculated

    async def complete_task(self, user_id: str, task_id: str) -> UserProfile:
        """
        Award a task's points once and refresh every active giveaway the user
        entered.

        Raises:
            TaskNotFoundError: unknown task
            TaskAlreadyCompletedError: the user already completed this task
        """
        task = self.storage.get_task(task_id)
        if task is None:
            raise TaskNotFoundError(f"Task {task_id} not found")

        completion = TaskCompletion(
            user_id=user_id,
            task_id=task_id,
            giveaway_id=task.giveaway_id,
            completed_at=utc_now_iso(),
            points_awarded=task.points,
        )
        if not self.storage.record_task_completion(completion):
            raise TaskAlreadyCompletedError(
                f"User {user_id} already completed task {task_id}"
            )

        profile = self.storage.add_points(user_id, task.points)
        log.info(
            "Awarded %d points to %s for task %s (total %d)",
            task.points,
            user_id,
            task_id,
            profile.points,
        )
        await self._recalculate_user_giveaways(user_id)
        return profile

    async def record_referral(self, referrer_id: str, referred_user_id: str) -> bool:
        """
        Credit ``referrer_id`` for bringing in ``referred_user_id``.

        Each user can only be referred once; repeats return False and change
        nothing. Otherwise the referral count grows by one and the referrer's
        active giveaways are recomputed.
        """
        if referrer_id == referred_user_id:
            raise ValueError("Users cannot refer themselves")

        referral = ReferralRecord(
            referred_user_id=referred_user_id,
            referrer_id=referrer_id,
            created_at=utc_now_iso(),
        )
        if not self.storage.record_referral(referral):
            log.info("User %s was already referred", referred_user_id)
            return False

        profile = self.storage.add_referral(referrer_id)
        log.info("Referral recorded for %s (total %d)", referrer_id, profile.referrals)
        await self._recalculate_user_giveaways(referrer_id)
        return True

    async def close_giveaway(self, giveaway_id: str) -> WinnerSelection | None:
        """
        Draw and record the winner of a giveaway exactly once.

        Returns:
            The selection, or None if a winner had already been recorded

        Raises:
            GiveawayNotFoundError: unknown giveaway
            GiveawayClosedError: giveaway was cancelled
            WinnerAlreadyRecordedError: another process recorded a winner
                between the read and the conditional write
            NoEntriesError: nobody entered the giveaway
            DegenerateWeightsError: stored tickets cannot be drawn from
        """
        async with self._locks[giveaway_id]:
            giveaway = self._require_giveaway(giveaway_id)
            if giveaway.winner_id is not None:
                log.info(
                    "Giveaway %s already has winner %s",
                    giveaway_id,
                    giveaway.winner_id,
                )
                self._locks.pop(giveaway_id, None)
                return None
            if giveaway.status == STATUS_CANCELLED:
                raise GiveawayClosedError(f"Giveaway {giveaway_id} was cancelled")

            entries = self.storage.list_entries(giveaway_id)
            if not entries:
                raise NoEntriesError(f"No entries for giveaway {giveaway_id}")

            selection = draw_winner(entries, self.random_source)
            if not self.storage.record_winner(
                giveaway_id, selection.winner_user_id, utc_now_iso()
            ):
                recorded = self.storage.get_giveaway(giveaway_id)
                self._locks.pop(giveaway_id, None)
                raise WinnerAlreadyRecordedError(
                    giveaway_id, recorded.winner_id if recorded else None
                )

            log.info(
                "Giveaway %s won by %s (draw %.6f of %.6f tickets)",
                giveaway_id,
                selection.winner_user_id,
                selection.draw,
                selection.total_tickets,
            )
            self._locks.pop(giveaway_id, None)
            return selection

    async def end_without_winner(self, giveaway_id: str) -> bool:
        """End an active giveaway that nobody entered."""
        async with self._locks[giveaway_id]:
            ended = self.storage.mark_ended(giveaway_id, utc_now_iso())
            self._locks.pop(giveaway_id, None)
        if ended:
            log.info("Giveaway %s ended without a winner", giveaway_id)
        return ended

    async def leaderboard(self, giveaway_id: str) -> list[EntryRecord]:
        entries = self.storage.list_entries(giveaway_id)
        return sorted(entries, key=lambda entry: (-entry.tickets, entry.user_id))

    async def winners(self) -> list[GiveawayRecord]:
        return self.storage.list_winners()
