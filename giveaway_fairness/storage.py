from __future__ import annotations

import logging
from collections.abc import Iterable

from boto3.dynamodb.conditions import Attr, Key
from botocore.exceptions import ClientError

from .models import (
    STATUS_ACTIVE,
    STATUS_ENDED,
    EntryRecord,
    FairnessConfig,
    GiveawayRecord,
    ReferralRecord,
    TaskCompletion,
    TaskRecord,
    TicketResult,
    UserProfile,
    format_probability,
)

log = logging.getLogger("giveaway-storage")

USER_GIVEAWAY_PREFIX = "GIVEAWAY#"


def _is_conditional_failure(exc: ClientError) -> bool:
    code = exc.response.get("Error", {}).get("Code")
    return code == "ConditionalCheckFailedException"


class GiveawayStorage:
    """DynamoDB single-table access for giveaways, entries, users and settings."""

    def __init__(self, table) -> None:
        self._table = table

    def ensure_table(self) -> None:
        if self._table is None:
            raise RuntimeError("Giveaway table is not configured")

    def _query_all(self, condition) -> list[dict[str, object]]:
        query_kwargs: dict[str, object] = {
            "KeyConditionExpression": condition,
            "Select": "ALL_ATTRIBUTES",
        }
        items: list[dict[str, object]] = []
        while True:
            resp = self._table.query(**query_kwargs)
            items.extend(resp.get("Items", []))
            last_key = resp.get("LastEvaluatedKey")
            if not last_key:
                return items
            query_kwargs["ExclusiveStartKey"] = last_key

    # ----- Settings -----
    def get_fairness_config(self) -> FairnessConfig | None:
        self.ensure_table()
        resp = self._table.get_item(Key=FairnessConfig.key())
        item = resp.get("Item")
        if not item:
            return None
        return FairnessConfig.from_item(item)

    def save_fairness_config(self, config: FairnessConfig) -> None:
        self.ensure_table()
        self._table.put_item(Item=config.validate().to_item())

    # ----- Users -----
    def get_user(self, user_id: str) -> UserProfile | None:
        self.ensure_table()
        resp = self._table.get_item(Key=UserProfile.key(user_id))
        item = resp.get("Item")
        if not item:
            return None
        return UserProfile.from_item(item)

    def save_user(self, profile: UserProfile) -> None:
        self.ensure_table()
        self._table.put_item(Item=profile.to_item())

    def _increment_user(self, user_id: str, field: str, amount: int) -> UserProfile:
        self.ensure_table()
        resp = self._table.update_item(
            Key=UserProfile.key(user_id),
            UpdateExpression=f"ADD {field} :amount",
            ExpressionAttributeValues={":amount": amount},
            ReturnValues="ALL_NEW",
        )
        return UserProfile.from_item(resp["Attributes"])

    def add_points(self, user_id: str, amount: int) -> UserProfile:
        if amount < 0:
            raise ValueError("Points can only be added, not removed")
        return self._increment_user(user_id, "points", amount)

    def add_referral(self, user_id: str) -> UserProfile:
        return self._increment_user(user_id, "referrals", 1)

    def _put_once(self, item: dict[str, object]) -> bool:
        try:
            self._table.put_item(
                Item=item, ConditionExpression="attribute_not_exists(pk)"
            )
        except ClientError as exc:
            if _is_conditional_failure(exc):
                return False
            raise
        return True

    # ----- Tasks -----
    def get_task(self, task_id: str) -> TaskRecord | None:
        self.ensure_table()
        resp = self._table.get_item(Key=TaskRecord.key(task_id))
        item = resp.get("Item")
        if not item:
            return None
        return TaskRecord.from_item(item)

    def save_task(self, task: TaskRecord) -> None:
        self.ensure_table()
        self._table.put_item(Item=task.to_item())

    def record_task_completion(self, completion: TaskCompletion) -> bool:
        """Store a completion; returns False if it was already recorded."""
        self.ensure_table()
        return self._put_once(completion.to_item())

    # ----- Referrals -----
    def get_referral(self, referred_user_id: str) -> ReferralRecord | None:
        self.ensure_table()
        resp = self._table.get_item(Key=ReferralRecord.key(referred_user_id))
        item = resp.get("Item")
        if not item:
            return None
        return ReferralRecord.from_item(item)

    def record_referral(self, referral: ReferralRecord) -> bool:
        """Store a referral; returns False if the user was already referred."""
        self.ensure_table()
        return self._put_once(referral.to_item())

    # ----- Giveaways -----
    def get_giveaway(self, giveaway_id: str) -> GiveawayRecord | None:
        self.ensure_table()
        resp = self._table.get_item(Key=GiveawayRecord.key(giveaway_id))
        item = resp.get("Item")
        if not item:
            return None
        return GiveawayRecord.from_item(item)

    def save_giveaway(self, giveaway: GiveawayRecord) -> None:
        self.ensure_table()
        self._table.put_item(Item=giveaway.to_item())

    def list_giveaways(self, status: str | None = None) -> list[GiveawayRecord]:
        self.ensure_table()
        scan_kwargs: dict[str, object] = {
            "FilterExpression": Attr("sk").eq(GiveawayRecord.SK_VALUE)
            & Attr("pk").begins_with("GIVEAWAY#")
        }
        giveaways: list[GiveawayRecord] = []
        while True:
            resp = self._table.scan(**scan_kwargs)
            for item in resp.get("Items", []):
                giveaway = GiveawayRecord.from_item(item)
                if status is None or giveaway.status == status:
                    giveaways.append(giveaway)
            last_key = resp.get("LastEvaluatedKey")
            if not last_key:
                break
            scan_kwargs["ExclusiveStartKey"] = last_key
        giveaways.sort(key=lambda giveaway: (giveaway.end_date, giveaway.giveaway_id))
        return giveaways

    def list_winners(self) -> list[GiveawayRecord]:
        """Giveaways with a recorded winner, most recently ended first."""
        winners = [g for g in self.list_giveaways() if g.winner_id is not None]
        winners.sort(key=lambda g: (g.ended_at or "", g.giveaway_id), reverse=True)
        return winners

    def record_winner(self, giveaway_id: str, user_id: str, ended_at: str) -> bool:
        """Store the winner and end the giveaway unless a winner already exists."""
        self.ensure_table()
        try:
            self._table.update_item(
                Key=GiveawayRecord.key(giveaway_id),
                UpdateExpression=(
                    "SET winner_id = :winner, #status = :ended, ended_at = :ended_at"
                ),
                ConditionExpression=(
                    "attribute_exists(pk) AND attribute_not_exists(winner_id)"
                ),
                ExpressionAttributeNames={"#status": "status"},
                ExpressionAttributeValues={
                    ":winner": user_id,
                    ":ended": STATUS_ENDED,
                    ":ended_at": ended_at,
                },
            )
        except ClientError as exc:
            if _is_conditional_failure(exc):
                log.warning("Winner already recorded for giveaway %s", giveaway_id)
                return False
            raise
        return True

    def mark_ended(self, giveaway_id: str, ended_at: str) -> bool:
        """End an active giveaway without recording a winner."""
        self.ensure_table()
        try:
            self._table.update_item(
                Key=GiveawayRecord.key(giveaway_id),
                UpdateExpression="SET #status = :ended, ended_at = :ended_at",
                ConditionExpression="attribute_exists(pk) AND #status = :active",
                ExpressionAttributeNames={"#status": "status"},
                ExpressionAttributeValues={
                    ":ended": STATUS_ENDED,
                    ":active": STATUS_ACTIVE,
                    ":ended_at": ended_at,
                },
            )
        except ClientError as exc:
            if _is_conditional_failure(exc):
                return False
            raise
        return True

    # ----- Entries -----
    def create_entry(self, entry: EntryRecord) -> bool:
        """Store a new entry; returns False if the user already joined."""
        self.ensure_table()
        if not self._put_once(entry.to_item()):
            return False
        self._table.put_item(
            Item={
                "pk": UserProfile.PK_TEMPLATE % entry.user_id,
                "sk": f"{USER_GIVEAWAY_PREFIX}{entry.giveaway_id}",
                "joined_at": entry.joined_at,
            }
        )
        try:
            self._table.update_item(
                Key=GiveawayRecord.key(entry.giveaway_id),
                UpdateExpression="ADD entry_count :one",
                ConditionExpression="attribute_exists(pk)",
                ExpressionAttributeValues={":one": 1},
            )
        except ClientError as exc:
            if not _is_conditional_failure(exc):
                raise
            log.warning(
                "Entry stored for unknown giveaway %s; count not updated",
                entry.giveaway_id,
            )
        return True

    def list_entries(self, giveaway_id: str) -> list[EntryRecord]:
        self.ensure_table()
        items = self._query_all(
            Key("pk").eq(EntryRecord.PK_TEMPLATE % giveaway_id)
            & Key("sk").begins_with(EntryRecord.SK_PREFIX)
        )
        entries = [EntryRecord.from_item(item) for item in items]
        entries.sort(key=lambda entry: (entry.joined_at, entry.user_id))
        return entries

    def list_user_giveaway_ids(self, user_id: str) -> list[str]:
        self.ensure_table()
        items = self._query_all(
            Key("pk").eq(UserProfile.PK_TEMPLATE % user_id)
            & Key("sk").begins_with(USER_GIVEAWAY_PREFIX)
        )
        return sorted(
            str(item["sk"])[len(USER_GIVEAWAY_PREFIX) :] for item in items
        )

    def save_entry_results(
        self, giveaway_id: str, results: Iterable[TicketResult]
    ) -> int:
        """Write tickets and probabilities back onto each entry.

        Entries removed since they were read are skipped. Returns the number
        of entries updated.
        """
        self.ensure_table()
        updated = 0
        for result in results:
            try:
                self._table.update_item(
                    Key=EntryRecord.key(giveaway_id, result.user_id),
                    UpdateExpression=(
                        "SET tickets = :tickets, probability = :probability"
                    ),
                    ConditionExpression="attribute_exists(pk)",
                    ExpressionAttributeValues={
                        ":tickets": result.tickets,
                        ":probability": format_probability(result.probability),
                    },
                )
            except ClientError as exc:
                if _is_conditional_failure(exc):
                    log.warning(
                        "Entry for %s in giveaway %s disappeared before update",
                        result.user_id,
                        giveaway_id,
                    )
                    continue
                raise
            updated += 1
        return updated
