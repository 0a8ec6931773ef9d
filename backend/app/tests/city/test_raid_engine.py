from datetime import date, datetime, timedelta, timezone

import pytest
from sqlmodel import col, select

from app.city.raids import (
    RAIDS_PER_WEEK,
    RaidError,
    attack_breakdown,
    defense_breakdown,
    execute_raid,
    expire_tags,
    reset_weekly_counters,
    week_start,
)
from app.models import ActivityFeed, Developer, DeveloperKudos, Purchase, Raid, RaidTag


def test_week_starts_monday_midnight_utc():
    thursday = datetime(2026, 10, 15, 17, 30, tzinfo=timezone.utc)
    assert week_start(thursday) == datetime(2026, 10, 12, tzinfo=timezone.utc)
    monday = datetime(2026, 10, 12, 0, 0, 1, tzinfo=timezone.utc)
    assert week_start(monday) == datetime(2026, 10, 12, tzinfo=timezone.utc)


def test_attack_breakdown_caps_each_bonus():
    attacker = Developer(
        github_login="a",
        current_week_contributions=1000,
        current_week_kudos_given=50,
        raid_xp=100_000,
    )
    breakdown = attack_breakdown(attacker, boost_bonus=10)
    assert breakdown == {
        "base": 10,
        "weekly_contributions": 20,
        "weekly_kudos_given": 10,
        "experience": 10,
        "boost": 10,
    }


def test_defense_breakdown_rewards_claimed_buildings():
    defender = Developer(github_login="d", claimed=True, current_week_kudos_received=2)
    breakdown = defense_breakdown(defender, owned_items=3)
    assert sum(breakdown.values()) == 10 + 0 + 4 + 3 + 5


def test_successful_raid_tags_building(session, make_developer):
    attacker = make_developer("attacker", claimed=True, current_week_contributions=100)
    defender = make_developer("defender")

    result = execute_raid(session, attacker, "Defender")

    assert result.success
    assert result.attack_score == 30
    assert result.defense_score == 10
    assert result.xp_gained == 50
    assert result.tag is not None and result.tag.attacker_login == "attacker"
    session.refresh(attacker)
    assert attacker.raid_xp == 50
    tags = session.exec(select(RaidTag).where(RaidTag.building_id == defender.id)).all()
    assert [t.active for t in tags] == [True]
    feed = session.exec(select(ActivityFeed).where(ActivityFeed.event_type == "raid")).one()
    assert feed.event_metadata["success"] is True


def test_failed_raid_rewards_defender(session, make_developer):
    attacker = make_developer("weak", claimed=True)
    defender = make_developer("fortress", claimed=True)

    result = execute_raid(session, attacker, "fortress")

    assert not result.success
    assert result.tag is None
    session.refresh(attacker)
    session.refresh(defender)
    assert attacker.raid_xp == 10
    assert defender.raid_xp == 25


def test_new_tag_replaces_active_tag(session, make_developer):
    first = make_developer("first", claimed=True, current_week_contributions=100)
    second = make_developer("second", claimed=True, current_week_contributions=100)
    target = make_developer("target")

    execute_raid(session, first, "target")
    execute_raid(session, second, "target")

    active = session.exec(
        select(RaidTag).where(RaidTag.building_id == target.id, col(RaidTag.active).is_(True))
    ).all()
    assert [t.attacker_login for t in active] == ["second"]


def test_raid_rules(session, make_developer):
    attacker = make_developer("raider", claimed=True)
    for i in range(RAIDS_PER_WEEK + 1):
        make_developer(f"victim{i}")

    with pytest.raises(RaidError) as missing:
        execute_raid(session, attacker, "nobody")
    assert missing.value.status_code == 404

    with pytest.raises(RaidError) as self_raid:
        execute_raid(session, attacker, "raider")
    assert self_raid.value.status_code == 400

    execute_raid(session, attacker, "victim0")
    with pytest.raises(RaidError) as repeat:
        execute_raid(session, attacker, "victim0")
    assert repeat.value.status_code == 409

    for i in range(1, RAIDS_PER_WEEK):
        execute_raid(session, attacker, f"victim{i}")
    with pytest.raises(RaidError) as weekly:
        execute_raid(session, attacker, f"victim{RAIDS_PER_WEEK}")
    assert weekly.value.status_code == 429


def test_raids_from_last_week_do_not_count(session, make_developer):
    attacker = make_developer("raider", claimed=True)
    make_developer("victim")
    last_week = datetime.now(timezone.utc) - timedelta(days=8)

    execute_raid(session, attacker, "victim", now=last_week)
    result = execute_raid(session, attacker, "victim")

    assert result.raid_id is not None
    assert len(session.exec(select(Raid)).all()) == 2


def test_booster_is_consumed(session, make_developer, grant):
    attacker = make_developer("booster", claimed=True)
    make_developer("target")
    purchase = grant(attacker, "raid_boost_large")

    result = execute_raid(session, attacker, "target", boost_item_id="raid_boost_large")

    assert result.attack_breakdown["boost"] == 20
    session.refresh(purchase)
    assert purchase.status == "consumed"


def test_booster_must_be_owned(session, make_developer):
    attacker = make_developer("booster", claimed=True)
    make_developer("target")

    with pytest.raises(RaidError) as exc:
        execute_raid(session, attacker, "target", boost_item_id="raid_boost_small")
    assert exc.value.status_code == 403
    assert session.exec(select(Raid)).all() == []


def test_non_consumable_boost_rejected(session, make_developer, grant):
    attacker = make_developer("booster", claimed=True)
    make_developer("target")
    grant(attacker, "spire")

    with pytest.raises(RaidError) as exc:
        execute_raid(session, attacker, "target", boost_item_id="spire")
    assert exc.value.status_code == 400
    assert session.exec(select(Purchase).where(Purchase.status == "consumed")).all() == []


def test_expire_tags(session, make_developer):
    attacker = make_developer("attacker", claimed=True, current_week_contributions=100)
    target = make_developer("target")
    execute_raid(session, attacker, "target")

    assert expire_tags(session) == 0
    assert expire_tags(session, now=datetime.now(timezone.utc) + timedelta(days=8)) == 1
    tag = session.exec(select(RaidTag).where(RaidTag.building_id == target.id)).one()
    assert tag.active is False


def test_reset_weekly_counters(session, make_developer):
    now = datetime(2026, 10, 15, 12, tzinfo=timezone.utc)
    giver = make_developer("giver", current_week_kudos_given=9, current_week_contributions=40)
    receiver = make_developer("receiver", current_week_kudos_received=9)
    session.add(DeveloperKudos(giver_id=giver.id, receiver_id=receiver.id, given_date=date(2026, 10, 13)))
    session.add(DeveloperKudos(giver_id=giver.id, receiver_id=receiver.id, given_date=date(2026, 10, 9)))
    session.commit()

    reset_weekly_counters(session, now=now)

    session.refresh(giver)
    session.refresh(receiver)
    assert giver.current_week_kudos_given == 1
    assert giver.current_week_contributions == 0
    assert receiver.current_week_kudos_received == 1
