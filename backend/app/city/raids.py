"""Raid resolution: score both sides, record the raid, tag the building.

A raid compares an attack score against a defense score, each a sum of
small capped bonuses. The database backs the two hard rules: the raids
CHECK constraint forbids self-raids and the partial unique index on
raid_tags keeps one active tag per building.
"""
import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, col, func, or_, select

from app.city.achievements import check_achievements
from app.city.items import (
    DEFAULT_RAID_TAG,
    DEFAULT_RAID_VEHICLE,
    is_consumable,
    owned_item_ids,
)
from app.models import (
    ActivityFeed,
    Developer,
    DeveloperCustomization,
    DeveloperKudos,
    Item,
    Purchase,
    Raid,
    RaidHistory,
    RaidHistoryEntry,
    RaidResult,
    RaidTag,
    RaidTagPublic,
)

logger = logging.getLogger(__name__)

RAIDS_PER_WEEK = 3
TAG_DURATION = timedelta(days=7)

BASE_SCORE = 10
XP_SUCCESS = 50
XP_FAILED_ATTACK = 10
XP_DEFENDED = 25


class RaidError(Exception):
    def __init__(self, status_code: int, detail: str):
        super().__init__(detail)
        self.status_code = status_code
        self.detail = detail


def week_start(now: datetime | None = None) -> datetime:
    """Monday 00:00 UTC of the current week."""
    now = now or datetime.now(timezone.utc)
    monday = now - timedelta(days=now.weekday())
    return monday.replace(hour=0, minute=0, second=0, microsecond=0)


def attack_breakdown(attacker: Developer, boost_bonus: int = 0) -> dict[str, int]:
    breakdown = {
        "base": BASE_SCORE,
        "weekly_contributions": min(20, attacker.current_week_contributions // 5),
        "weekly_kudos_given": min(10, attacker.current_week_kudos_given * 2),
        "experience": min(10, attacker.raid_xp // 200),
    }
    if boost_bonus:
        breakdown["boost"] = boost_bonus
    return breakdown


def defense_breakdown(defender: Developer, owned_items: int) -> dict[str, int]:
    return {
        "base": BASE_SCORE,
        "weekly_contributions": min(20, defender.current_week_contributions // 5),
        "weekly_kudos_received": min(10, defender.current_week_kudos_received * 2),
        "fortifications": min(10, owned_items),
        "claimed": 5 if defender.claimed else 0,
    }


def raid_loadout(session: Session, developer_id: int) -> dict[str, str]:
    row = session.exec(
        select(DeveloperCustomization).where(
            DeveloperCustomization.developer_id == developer_id,
            DeveloperCustomization.item_id == "raid_loadout",
        )
    ).first()
    config = row.config if row else {}
    return {
        "vehicle": config.get("vehicle") or DEFAULT_RAID_VEHICLE,
        "tag": config.get("tag") or DEFAULT_RAID_TAG,
    }


def expire_tags(session: Session, now: datetime | None = None) -> int:
    now = now or datetime.now(timezone.utc)
    result = session.execute(
        update(RaidTag)
        .where(col(RaidTag.active).is_(True), col(RaidTag.expires_at) <= now)
        .values(active=False)
    )
    session.commit()
    return result.rowcount or 0


def active_tag(session: Session, building_id: int) -> RaidTagPublic | None:
    expire_tags(session)
    tag = session.exec(
        select(RaidTag)
        .where(RaidTag.building_id == building_id, col(RaidTag.active).is_(True))
        .order_by(col(RaidTag.created_at).desc())
    ).first()
    if not tag:
        return None
    return RaidTagPublic(
        attacker_login=tag.attacker_login, tag_style=tag.tag_style, expires_at=tag.expires_at
    )


def _take_booster(session: Session, attacker: Developer, boost_item_id: str) -> int:
    if not is_consumable(boost_item_id):
        raise RaidError(400, f"{boost_item_id} is not a raid booster")
    item = session.get(Item, boost_item_id)
    purchase = session.exec(
        select(Purchase).where(
            Purchase.item_id == boost_item_id,
            Purchase.status == "completed",
            or_(
                (Purchase.developer_id == attacker.id) & col(Purchase.gifted_to).is_(None),
                Purchase.gifted_to == attacker.id,
            ),
        )
    ).first()
    if not item or not purchase:
        raise RaidError(403, f"You don't own {boost_item_id}")
    purchase.status = "consumed"
    session.add(purchase)
    return int(item.item_metadata.get("bonus", 0))


def execute_raid(
    session: Session,
    attacker: Developer,
    target_login: str,
    boost_item_id: str | None = None,
    now: datetime | None = None,
) -> RaidResult:
    now = now or datetime.now(timezone.utc)
    defender = session.exec(
        select(Developer).where(Developer.github_login == target_login.lower())
    ).first()
    if not defender:
        raise RaidError(404, "Target building not found")
    if defender.id == attacker.id:
        raise RaidError(400, "Cannot raid your own building")

    since = week_start(now)
    raids_this_week = session.exec(
        select(func.count())
        .select_from(Raid)
        .where(Raid.attacker_id == attacker.id, col(Raid.created_at) >= since)
    ).one()
    if raids_this_week >= RAIDS_PER_WEEK:
        raise RaidError(429, f"Weekly raid limit reached ({RAIDS_PER_WEEK}/week)")

    already_raided = session.exec(
        select(Raid.id).where(
            Raid.attacker_id == attacker.id,
            Raid.defender_id == defender.id,
            col(Raid.created_at) >= since,
        )
    ).first()
    if already_raided:
        raise RaidError(409, "You already raided this building this week")

    boost_bonus = _take_booster(session, attacker, boost_item_id) if boost_item_id else 0

    attack = attack_breakdown(attacker, boost_bonus)
    defense = defense_breakdown(defender, len(owned_item_ids(session, defender.id)))
    attack_score = sum(attack.values())
    defense_score = sum(defense.values())
    success = attack_score > defense_score
    loadout = raid_loadout(session, attacker.id)

    raid = Raid(
        attacker_id=attacker.id,
        defender_id=defender.id,
        attack_score=attack_score,
        defense_score=defense_score,
        success=success,
        attack_breakdown=attack,
        defense_breakdown=defense,
        attacker_vehicle=loadout["vehicle"],
        attacker_tag_style=loadout["tag"],
        created_at=now,
    )
    session.add(raid)

    tag_public = None
    if success:
        attacker.raid_xp += XP_SUCCESS
        xp_gained = XP_SUCCESS
        session.execute(
            update(RaidTag)
            .where(RaidTag.building_id == defender.id, col(RaidTag.active).is_(True))
            .values(active=False)
        )
        tag = RaidTag(
            raid_id=raid.id,
            building_id=defender.id,
            attacker_id=attacker.id,
            attacker_login=attacker.github_login,
            tag_style=loadout["tag"],
            expires_at=now + TAG_DURATION,
            created_at=now,
        )
        session.add(tag)
        tag_public = RaidTagPublic(
            attacker_login=tag.attacker_login, tag_style=tag.tag_style, expires_at=tag.expires_at
        )
    else:
        attacker.raid_xp += XP_FAILED_ATTACK
        defender.raid_xp += XP_DEFENDED
        xp_gained = XP_FAILED_ATTACK
        session.add(defender)
    session.add(attacker)
    session.add(
        ActivityFeed(
            event_type="raid",
            actor_id=attacker.id,
            target_id=defender.id,
            event_metadata={
                "attacker_login": attacker.github_login,
                "defender_login": defender.github_login,
                "success": success,
            },
            created_at=now,
        )
    )
    try:
        session.commit()
    except IntegrityError as exc:
        session.rollback()
        logger.warning(
            "Raid %s -> %s rejected by the database: %s",
            attacker.github_login,
            defender.github_login,
            exc,
        )
        raise RaidError(409, "Raid conflicted with another raid, try again") from exc

    logger.info(
        "Raid %s -> %s: %s (%s vs %s)",
        attacker.github_login,
        defender.github_login,
        "success" if success else "defended",
        attack_score,
        defense_score,
    )

    check_achievements(session, attacker)
    if not success:
        check_achievements(session, defender)

    return RaidResult(
        raid_id=raid.id,
        success=success,
        attack_score=attack_score,
        defense_score=defense_score,
        attack_breakdown=attack,
        defense_breakdown=defense,
        xp_gained=xp_gained,
        tag=tag_public,
    )


def raid_history(session: Session, developer_id: int, limit: int, offset: int) -> RaidHistory:
    def page(column) -> list[Raid]:
        return list(
            session.exec(
                select(Raid)
                .where(column == developer_id)
                .order_by(col(Raid.created_at).desc())
                .offset(offset)
                .limit(limit)
            ).all()
        )

    raids = page(Raid.attacker_id) + page(Raid.defender_id)
    raids.sort(key=lambda r: r.created_at, reverse=True)
    raids = raids[:limit]

    ids = {r.attacker_id for r in raids} | {r.defender_id for r in raids}
    logins = dict(
        session.exec(
            select(Developer.id, Developer.github_login).where(col(Developer.id).in_(ids))
        ).all()
    ) if ids else {}

    total = session.exec(
        select(func.count())
        .select_from(Raid)
        .where(or_(Raid.attacker_id == developer_id, Raid.defender_id == developer_id))
    ).one()

    return RaidHistory(
        raids=[
            RaidHistoryEntry(
                id=r.id,
                attacker_login=logins.get(r.attacker_id, "unknown"),
                defender_login=logins.get(r.defender_id, "unknown"),
                success=r.success,
                created_at=r.created_at,
            )
            for r in raids
        ],
        total=total,
        active_tag=active_tag(session, developer_id),
    )


def reset_weekly_counters(session: Session, now: datetime | None = None) -> None:
    """Recompute weekly kudos counters from this week's kudos and zero the rest.

    Weekly contributions are refilled by the GitHub stats refresh, so they
    simply start again from zero.
    """
    since = week_start(now).date()
    session.execute(
        update(Developer).values(
            current_week_kudos_given=0,
            current_week_kudos_received=0,
            current_week_contributions=0,
        )
    )
    given = session.exec(
        select(DeveloperKudos.giver_id, func.count())
        .where(col(DeveloperKudos.given_date) >= since)
        .group_by(DeveloperKudos.giver_id)
    ).all()
    for developer_id, count in given:
        session.execute(
            update(Developer)
            .where(col(Developer.id) == developer_id)
            .values(current_week_kudos_given=count)
        )
    received = session.exec(
        select(DeveloperKudos.receiver_id, func.count())
        .where(col(DeveloperKudos.given_date) >= since)
        .group_by(DeveloperKudos.receiver_id)
    ).all()
    for developer_id, count in received:
        session.execute(
            update(Developer)
            .where(col(Developer.id) == developer_id)
            .values(current_week_kudos_received=count)
        )
    session.commit()
    logger.info(
        "Weekly counters reset: %s givers, %s receivers this week", len(given), len(received)
    )
