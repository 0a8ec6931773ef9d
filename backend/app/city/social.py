"""Kudos, building visits, the activity feed and leaderboard positions."""
import logging
import uuid
from datetime import date, datetime, timezone

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, col, func, select

from app.city.achievements import check_achievements
from app.models import (
    ActivityFeed,
    BuildingVisit,
    Developer,
    DeveloperAchievement,
    DeveloperKudos,
    FeedDeveloper,
    FeedEvent,
    FeedPage,
    LeaderboardPosition,
)

logger = logging.getLogger(__name__)

KUDOS_PER_DAY = 20
FEED_MAX_LIMIT = 50
LEADERBOARD_TABS = ("contributors", "stars", "architects", "recruiters", "achievers")


class SocialError(ValueError):
    def __init__(self, status_code: int, detail: str):
        super().__init__(detail)
        self.status_code = status_code
        self.detail = detail


def _today() -> date:
    return datetime.now(timezone.utc).date()


def give_kudos(
    session: Session, giver: Developer, receiver_login: str, today: date | None = None
) -> bool:
    """Record today's kudos from giver to receiver; False when already given."""
    today = today or _today()
    receiver = session.exec(
        select(Developer).where(Developer.github_login == receiver_login.lower())
    ).first()
    if not receiver:
        raise SocialError(404, "Receiver not found")
    if receiver.id == giver.id:
        raise SocialError(400, "Cannot give kudos to yourself")

    given_today = session.exec(
        select(func.count())
        .select_from(DeveloperKudos)
        .where(DeveloperKudos.giver_id == giver.id, DeveloperKudos.given_date == today)
    ).one()
    if given_today >= KUDOS_PER_DAY:
        raise SocialError(429, f"Daily kudos limit reached ({KUDOS_PER_DAY}/day)")

    if session.get(DeveloperKudos, (giver.id, receiver.id, today)) is not None:
        return False

    session.add(DeveloperKudos(giver_id=giver.id, receiver_id=receiver.id, given_date=today))
    try:
        session.flush()
    except IntegrityError:
        session.rollback()
        return False

    receiver.kudos_count += 1
    receiver.current_week_kudos_received += 1
    giver.current_week_kudos_given += 1
    session.add(receiver)
    session.add(giver)
    session.add(
        ActivityFeed(
            event_type="kudos_given",
            actor_id=giver.id,
            target_id=receiver.id,
            event_metadata={
                "giver_login": giver.github_login,
                "receiver_login": receiver.github_login,
            },
        )
    )
    session.commit()
    session.refresh(receiver)
    check_achievements(session, receiver)
    return True


def record_visit(
    session: Session, visitor: Developer, building_login: str, today: date | None = None
) -> bool:
    """Count one visit per visitor, building and day; self visits never count."""
    today = today or _today()
    building = session.exec(
        select(Developer).where(Developer.github_login == building_login.lower())
    ).first()
    if not building:
        raise SocialError(404, "Building not found")
    if building.id == visitor.id:
        return False
    if session.get(BuildingVisit, (visitor.id, building.id, today)) is not None:
        return False

    session.add(BuildingVisit(visitor_id=visitor.id, building_id=building.id, visit_date=today))
    building.visit_count += 1
    session.add(building)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        return False
    return True


def feed_page(session: Session, limit: int, before: uuid.UUID | None = None) -> FeedPage:
    limit = min(FEED_MAX_LIMIT, max(1, limit))
    statement = select(ActivityFeed).order_by(col(ActivityFeed.created_at).desc()).limit(limit)
    if before is not None:
        cursor = session.get(ActivityFeed, before)
        if cursor is not None:
            statement = statement.where(col(ActivityFeed.created_at) < cursor.created_at)
    events = session.exec(statement).all()

    ids = {e.actor_id for e in events if e.actor_id} | {e.target_id for e in events if e.target_id}
    developers: dict[int, FeedDeveloper] = {}
    if ids:
        for dev_id, login, avatar_url in session.exec(
            select(Developer.id, Developer.github_login, Developer.avatar_url).where(
                col(Developer.id).in_(ids)
            )
        ).all():
            developers[dev_id] = FeedDeveloper(login=login, avatar_url=avatar_url)

    return FeedPage(
        events=[
            FeedEvent(
                id=e.id,
                event_type=e.event_type,
                actor_id=e.actor_id,
                target_id=e.target_id,
                metadata=e.event_metadata,
                created_at=e.created_at,
                actor=developers.get(e.actor_id) if e.actor_id else None,
                target=developers.get(e.target_id) if e.target_id else None,
            )
            for e in events
        ],
        has_more=len(events) == limit,
    )


def _rank_above(session: Session, column, value: int) -> int:
    count = session.exec(select(func.count()).select_from(Developer).where(column > value)).one()
    return count + 1


def leaderboard_position(session: Session, tab: str, login: str) -> LeaderboardPosition:
    if tab not in LEADERBOARD_TABS:
        raise SocialError(400, f"Unknown tab {tab}")
    developer = session.exec(
        select(Developer).where(Developer.github_login == login.lower())
    ).first()
    if not developer:
        raise SocialError(404, "Not found")

    if tab == "contributors":
        position = developer.rank
        value = developer.contributions_total or developer.contributions
    elif tab == "stars":
        position = _rank_above(session, col(Developer.total_stars), developer.total_stars)
        value = developer.total_stars
    elif tab == "architects":
        position = _rank_above(session, col(Developer.public_repos), developer.public_repos)
        value = developer.public_repos
    elif tab == "recruiters":
        position = _rank_above(session, col(Developer.referral_count), developer.referral_count)
        value = developer.referral_count
    else:
        value = session.exec(
            select(func.count())
            .select_from(DeveloperAchievement)
            .where(DeveloperAchievement.developer_id == developer.id)
        ).one()
        per_developer = (
            select(DeveloperAchievement.developer_id)
            .group_by(DeveloperAchievement.developer_id)
            .having(func.count() > value)
            .subquery()
        )
        ahead = session.exec(select(func.count()).select_from(per_developer)).one()
        position = ahead + 1

    return LeaderboardPosition(
        github_login=developer.github_login,
        name=developer.name,
        avatar_url=developer.avatar_url,
        position=position,
        metricValue=f"{value:,}",
    )
