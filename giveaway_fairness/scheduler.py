from __future__ import annotations

import asyncio
import datetime
import logging
from typing import Final

import boto3

from .config import read_fairness_defaults, read_runtime_settings
from .service import GiveawayService
from .storage import GiveawayStorage
from .validation import NoEntriesError, WinnerAlreadyRecordedError

log: Final = logging.getLogger("giveaway-scheduler")


class DrawScheduler:
    """Closes active giveaways once their end date has passed."""

    def __init__(
        self,
        service: GiveawayService,
        storage: GiveawayStorage,
        interval_seconds: int = 600,
    ) -> None:
        self.service = service
        self.storage = storage
        self.interval_seconds = interval_seconds

    async def run_once(self, now: datetime.datetime | None = None) -> list[str]:
        """Close every due giveaway and return the ids that were closed."""
        now = now or datetime.datetime.now(tz=datetime.UTC)
        try:
            giveaways = self.storage.list_giveaways()
        except Exception as exc:  # pylint: disable=broad-except
            log.exception("Failed to list giveaways: %s", exc)
            return []

        closed: list[str] = []
        for giveaway in giveaways:
            if not giveaway.is_due(now):
                continue
            gid = giveaway.giveaway_id
            try:
                selection = await self.service.close_giveaway(gid)
            except NoEntriesError:
                log.warning("Giveaway %s ended with no entries", gid)
                if await self.service.end_without_winner(gid):
                    closed.append(gid)
                continue
            except WinnerAlreadyRecordedError as exc:
                log.info(
                    "Giveaway %s was closed elsewhere (winner %s)", gid, exc.winner_id
                )
                continue
            except Exception as exc:  # pylint: disable=broad-except
                log.exception("Failed to finish giveaway %s: %s", gid, exc)
                continue
            if selection is not None:
                closed.append(gid)
        return closed

    async def run_forever(self) -> None:
        while True:
            closed = await self.run_once()
            if closed:
                log.info("Closed giveaways: %s", ", ".join(closed))
            await asyncio.sleep(self.interval_seconds)


def build_scheduler() -> DrawScheduler:
    settings = read_runtime_settings()
    if not settings.table_name:
        raise RuntimeError("Missing env vars: GIVEAWAY_TABLE_NAME")

    dynamodb = boto3.resource("dynamodb", region_name=settings.aws_region)
    storage = GiveawayStorage(dynamodb.Table(settings.table_name))
    service = GiveawayService(storage, default_config=read_fairness_defaults())
    return DrawScheduler(service, storage, settings.draw_interval_seconds)


async def main() -> None:
    settings = read_runtime_settings()
    logging.basicConfig(level=settings.log_level)
    scheduler = build_scheduler()
    log.info(
        "Draw scheduler started (interval=%ss, table=%s)",
        scheduler.interval_seconds,
        settings.table_name,
    )
    await scheduler.run_forever()


def run() -> None:
    asyncio.run(main())
