import pytest
from botocore.exceptions import ClientError
from conftest import FakeTable, make_giveaway

from giveaway_fairness import (
    EntryRecord,
    FairnessConfig,
    GiveawayStorage,
    ReferralRecord,
    TaskCompletion,
    TaskRecord,
    TicketResult,
    UserProfile,
)


def entry(user_id: str, joined_at: str, giveaway_id: str = "g1") -> EntryRecord:
    return EntryRecord(giveaway_id=giveaway_id, user_id=user_id, joined_at=joined_at)


def test_fairness_config_round_trip(storage: GiveawayStorage):
    assert storage.get_fairness_config() is None

    config = FairnessConfig(points_divisor=25, ratio_cap=3)
    storage.save_fairness_config(config)

    assert storage.get_fairness_config() == config


def test_add_points_creates_and_increments_profile(storage: GiveawayStorage):
    assert storage.get_user("u1") is None

    first = storage.add_points("u1", 50)
    second = storage.add_points("u1", 25)

    assert first == UserProfile(user_id="u1", points=50)
    assert second.points == 75
    assert storage.get_user("u1") == UserProfile(user_id="u1", points=75)


def test_add_points_rejects_negative_amount(storage: GiveawayStorage):
    with pytest.raises(ValueError):
        storage.add_points("u1", -5)


def test_add_referral_increments_count(storage: GiveawayStorage):
    storage.save_user(UserProfile(user_id="u1", points=10))

    profile = storage.add_referral("u1")

    assert profile == UserProfile(user_id="u1", points=10, referrals=1)


def test_create_entry_is_idempotent_and_counts(storage: GiveawayStorage):
    storage.save_giveaway(make_giveaway("g1"))

    assert storage.create_entry(entry("u1", "2024-01-01T00:00:00.000Z")) is True
    assert storage.create_entry(entry("u1", "2024-01-02T00:00:00.000Z")) is False

    assert storage.get_giveaway("g1").entry_count == 1
    assert storage.list_user_giveaway_ids("u1") == ["g1"]
    [stored] = storage.list_entries("g1")
    assert stored.joined_at == "2024-01-01T00:00:00.000Z"
    assert stored.tickets == 1


def test_list_entries_orders_by_join_time(storage: GiveawayStorage):
    storage.save_giveaway(make_giveaway("g1"))
    storage.create_entry(entry("zed", "2024-01-01T00:00:00.000Z"))
    storage.create_entry(entry("amy", "2024-01-03T00:00:00.000Z"))
    storage.create_entry(entry("bob", "2024-01-01T00:00:00.000Z"))
    storage.create_entry(entry("other", "2024-01-01T00:00:00.000Z", "g2"))

    assert [e.user_id for e in storage.list_entries("g1")] == ["bob", "zed", "amy"]


def test_save_entry_results_updates_and_skips_missing(
    storage: GiveawayStorage, table: FakeTable
):
    storage.save_giveaway(make_giveaway("g1"))
    storage.create_entry(entry("u1", "2024-01-01T00:00:00.000Z"))
    results = [
        TicketResult("u1", "g1:u1", tickets=14, probability=0.933328, weight=14.0),
        TicketResult("gone", "g1:gone", tickets=1, probability=0.066672, weight=1.0),
    ]

    updated = storage.save_entry_results("g1", results)

    assert updated == 1
    assert ("GIVEAWAY#g1", "ENTRY#gone") not in table.items
    [stored] = storage.list_entries("g1")
    assert stored.tickets == 14
    assert stored.probability == 0.933328


def test_record_winner_only_once(storage: GiveawayStorage):
    storage.save_giveaway(make_giveaway("g1"))

    assert storage.record_winner("g1", "u1", "2024-01-01T00:00:00.000Z") is True
    assert storage.record_winner("g1", "u2", "2024-01-02T00:00:00.000Z") is False

    giveaway = storage.get_giveaway("g1")
    assert giveaway.winner_id == "u1"
    assert giveaway.status == "ended"
    assert giveaway.ended_at == "2024-01-01T00:00:00.000Z"


def test_record_winner_requires_existing_giveaway(storage: GiveawayStorage):
    assert storage.record_winner("missing", "u1", "2024-01-01T00:00:00.000Z") is False


def test_mark_ended_only_from_active(storage: GiveawayStorage):
    storage.save_giveaway(make_giveaway("g1"))

    assert storage.mark_ended("g1", "2024-01-01T00:00:00.000Z") is True
    assert storage.mark_ended("g1", "2024-01-02T00:00:00.000Z") is False

    giveaway = storage.get_giveaway("g1")
    assert giveaway.status == "ended"
    assert giveaway.winner_id is None


def test_list_giveaways_filters_by_status(storage: GiveawayStorage):
    storage.save_giveaway(make_giveaway("g2", end_date="2024-02-01T00:00:00.000Z"))
    storage.save_giveaway(make_giveaway("g1", end_date="2024-01-01T00:00:00.000Z"))
    storage.save_giveaway(make_giveaway("g3", status="cancelled"))
    storage.save_user(UserProfile(user_id="u1"))

    assert [g.giveaway_id for g in storage.list_giveaways()] == ["g1", "g2", "g3"]
    assert [g.giveaway_id for g in storage.list_giveaways("active")] == ["g1", "g2"]


def test_unexpected_client_errors_propagate(
    storage: GiveawayStorage, table: FakeTable
):
    table.fail_with = ClientError(
        {"Error": {"Code": "ProvisionedThroughputExceededException"}}, "UpdateItem"
    )

    with pytest.raises(ClientError):
        storage.record_winner("g1", "u1", "2024-01-01T00:00:00.000Z")


def test_missing_table_raises():
    storage = GiveawayStorage(None)

    with pytest.raises(RuntimeError):
        storage.get_giveaway("g1")


def test_task_round_trip(storage: GiveawayStorage):
    assert storage.get_task("t1") is None

    task = TaskRecord(
        task_id="t1",
        giveaway_id="g1",
        title="Follow us",
        points=25,
        task_type="follow_twitter",
        link="https://example.com/follow",
    )
    storage.save_task(task)

    assert storage.get_task("t1") == task


def test_task_completion_recorded_once(storage: GiveawayStorage):
    completion = TaskCompletion(
        user_id="u1",
        task_id="t1",
        giveaway_id="g1",
        completed_at="2024-01-01T00:00:00.000Z",
        points_awarded=25,
    )

    assert storage.record_task_completion(completion) is True
    assert storage.record_task_completion(completion) is False
    assert storage.get_user("u1") is None


def test_referral_recorded_once_per_referred_user(storage: GiveawayStorage):
    first = ReferralRecord("newbie", "u1", "2024-01-01T00:00:00.000Z")
    second = ReferralRecord("newbie", "u2", "2024-01-02T00:00:00.000Z")

    assert storage.record_referral(first) is True
    assert storage.record_referral(second) is False
    assert storage.get_referral("newbie") == first
    assert storage.get_referral("someone-else") is None


def test_list_winners_newest_first(storage: GiveawayStorage):
    for gid in ("g1", "g2", "g3"):
        storage.save_giveaway(make_giveaway(gid))
    storage.save_task(TaskRecord("t1", "g1", "Share", 10))
    storage.record_winner("g1", "u1", "2024-01-01T00:00:00.000Z")
    storage.record_winner("g3", "u3", "2024-03-01T00:00:00.000Z")

    winners = storage.list_winners()

    assert [(g.giveaway_id, g.winner_id) for g in winners] == [
        ("g3", "u3"),
        ("g1", "u1"),
    ]
