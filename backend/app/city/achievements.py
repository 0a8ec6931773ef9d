"""Achievement catalog and the unlock check.

Unlocking is idempotent: the unique (developer_id, achievement_id) pair and
the already-unlocked lookup make a second run over the same stats a no-op, so
the check can be called from every place that changes a stat.
"""
import logging
from typing import Any

from pydantic import BaseModel
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from app.city.items import count_gifts, owned_item_ids
from app.models import Achievement, ActivityFeed, Developer, DeveloperAchievement, Purchase

logger = logging.getLogger(__name__)


class AchievementStats(BaseModel):
    contributions: int = 0
    public_repos: int = 0
    total_stars: int = 0
    referral_count: int = 0
    kudos_count: int = 0
    gifts_sent: int = 0
    gifts_received: int = 0
    raid_xp: int = 0


# Achievement category -> stat it is measured against
CATEGORY_STATS: dict[str, str] = {
    "commits": "contributions",
    "repos": "public_repos",
    "stars": "total_stars",
    "social": "referral_count",
    "kudos": "kudos_count",
    "gifts_sent": "gifts_sent",
    "gifts_received": "gifts_received",
    "raid": "raid_xp",
}


def _achievement(
    id: str,
    category: str,
    name: str,
    description: str,
    threshold: int,
    tier: str,
    sort_order: int,
    reward_item_id: str | None = None,
) -> dict[str, Any]:
    return {
        "id": id,
        "category": category,
        "name": name,
        "description": description,
        "threshold": threshold,
        "tier": tier,
        "reward_type": "unlock_item" if reward_item_id else "exclusive_badge",
        "reward_item_id": reward_item_id,
        "sort_order": sort_order,
    }


ACHIEVEMENT_CATALOG: list[dict[str, Any]] = [
    _achievement("first_push", "commits", "First Push", "Make 1 contribution", 1, "bronze", 10, "flag"),
    _achievement("committed", "commits", "Committed", "Make 100 contributions", 100, "silver", 11, "custom_color"),
    _achievement("grinder", "commits", "Grinder", "Make 500 contributions", 500, "gold", 12, "neon_trim"),
    _achievement("machine", "commits", "Machine", "Make 5000 contributions", 5000, "diamond", 13),
    _achievement("builder", "repos", "Builder", "Own 5 public repos", 5, "bronze", 20, "antenna_array"),
    _achievement("architect", "repos", "Architect", "Own 20 public repos", 20, "silver", 21, "rooftop_garden"),
    _achievement("urbanist", "repos", "Urbanist", "Own 100 public repos", 100, "gold", 22),
    _achievement("rising_star", "stars", "Rising Star", "Earn 10 stars", 10, "bronze", 30, "spotlight"),
    _achievement("constellation", "stars", "Constellation", "Earn 1000 stars", 1000, "gold", 31),
    _achievement("recruiter", "social", "Recruiter", "Refer 3 developers", 3, "silver", 40, "helipad"),
    _achievement("mayor", "social", "Mayor", "Refer 25 developers", 25, "gold", 41),
    _achievement("appreciated", "kudos", "Appreciated", "Receive 10 kudos", 10, "bronze", 50),
    _achievement("beloved", "kudos", "Beloved", "Receive 100 kudos", 100, "gold", 51),
    _achievement("generous", "gifts_sent", "Generous", "Send a gift", 1, "bronze", 60),
    _achievement("gifted", "gifts_received", "Gifted", "Receive a gift", 1, "bronze", 70),
    _achievement("pickpocket", "raid", "Pickpocket", "Earn 100 Raid XP", 100, "bronze", 170),
    _achievement("burglar", "raid", "Burglar", "Earn 500 Raid XP", 500, "silver", 171),
    _achievement("heist_master", "raid", "Heist Master", "Earn 2000 Raid XP", 2000, "gold", 172),
    _achievement("kingpin", "raid", "Kingpin", "Earn 10000 Raid XP", 10000, "diamond", 173),
]


def qualifies(achievement: Achievement, stats: AchievementStats) -> bool:
    stat = CATEGORY_STATS.get(achievement.category)
    if stat is None:
        return False
    return getattr(stats, stat) >= achievement.threshold


def stats_for(session: Session, developer: Developer) -> AchievementStats:
    return AchievementStats(
        contributions=developer.contributions,
        public_repos=developer.public_repos,
        total_stars=developer.total_stars,
        referral_count=developer.referral_count,
        kudos_count=developer.kudos_count,
        gifts_sent=count_gifts(session, developer.id, "sent"),
        gifts_received=count_gifts(session, developer.id, "received"),
        raid_xp=developer.raid_xp,
    )


def check_achievements(
    session: Session,
    developer: Developer,
    stats: AchievementStats | None = None,
) -> list[Achievement]:
    """Unlock every achievement the developer now qualifies for.

    Reward items are granted as zero-amount completed purchases with a
    deterministic provider_tx_id, and a single feed event summarizes the
    batch. Returns the newly unlocked achievements; commits the session.
    """
    if stats is None:
        stats = stats_for(session, developer)

    unlocked = set(
        session.exec(
            select(DeveloperAchievement.achievement_id).where(
                DeveloperAchievement.developer_id == developer.id
            )
        ).all()
    )
    catalog = session.exec(select(Achievement).order_by(Achievement.sort_order)).all()
    new_unlocks = [a for a in catalog if a.id not in unlocked and qualifies(a, stats)]
    if not new_unlocks:
        return []

    for achievement in new_unlocks:
        session.add(
            DeveloperAchievement(developer_id=developer.id, achievement_id=achievement.id)
        )
    try:
        session.commit()
    except IntegrityError:
        # A concurrent check got there first
        session.rollback()
        logger.info("Achievement check raced for developer %s", developer.github_login)
        return []

    for achievement in new_unlocks:
        if achievement.reward_type == "unlock_item" and achievement.reward_item_id:
            _grant_reward(session, developer, achievement)

    if len(new_unlocks) == 1:
        only = new_unlocks[0]
        metadata: dict[str, Any] = {
            "login": developer.github_login,
            "achievement_id": only.id,
            "achievement_name": only.name,
            "tier": only.tier,
        }
    else:
        metadata = {
            "login": developer.github_login,
            "count": len(new_unlocks),
            "achievements": [{"id": a.id, "name": a.name, "tier": a.tier} for a in new_unlocks],
        }
    session.add(
        ActivityFeed(
            event_type="achievement_unlocked",
            actor_id=developer.id,
            event_metadata=metadata,
        )
    )
    session.commit()

    logger.info(
        "Developer %s unlocked %s",
        developer.github_login,
        ", ".join(a.id for a in new_unlocks),
    )
    return new_unlocks


def _grant_reward(session: Session, developer: Developer, achievement: Achievement) -> None:
    # Gifted copies sit outside the unique completed-purchase index
    if achievement.reward_item_id in owned_item_ids(session, developer.id):
        return
    session.add(
        Purchase(
            developer_id=developer.id,
            item_id=achievement.reward_item_id,
            provider="achievement",
            provider_tx_id=f"achievement_{developer.id}_{achievement.id}",
            amount_cents=0,
            currency="usd",
            status="completed",
        )
    )
    try:
        session.commit()
    except IntegrityError:
        # Already owned (bought earlier or granted by a previous run)
        session.rollback()
