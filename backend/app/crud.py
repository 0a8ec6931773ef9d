import logging
from datetime import datetime, timezone
from typing import Any

from sqlmodel import Session, col, select

from app.city.buildings import dimensions_for
from app.city.items import owned_item_ids
from app.city.raids import active_tag, raid_loadout
from app.models import (
    ActivityFeed,
    Developer,
    DeveloperCustomization,
    DeveloperPublic,
    Purchase,
    User,
)
from app.providers.github import GitHubUser

logger = logging.getLogger(__name__)


def get_developer_by_login(*, session: Session, login: str) -> Developer | None:
    statement = select(Developer).where(Developer.github_login == login.lower())
    return session.exec(statement).first()


def upsert_user(*, session: Session, github_user: GitHubUser) -> User:
    db_user = session.exec(select(User).where(User.github_id == github_user.id)).first()
    if db_user is None:
        db_user = User(github_id=github_user.id, github_login=github_user.login)
    db_user.github_login = github_user.login
    db_user.email = github_user.email
    db_user.avatar_url = github_user.avatar_url
    session.add(db_user)
    session.commit()
    session.refresh(db_user)
    return db_user


def claim_developer(*, session: Session, developer: Developer, user: User) -> Developer:
    developer.claimed = True
    developer.claimed_by = user.id
    developer.claimed_at = datetime.now(timezone.utc)
    developer.fetch_priority = 1
    session.add(developer)
    session.commit()
    session.refresh(developer)
    logger.info("Building %s claimed by user %s", developer.github_login, user.id)
    return developer


def apply_referral(*, session: Session, developer: Developer, ref: str | None) -> Developer | None:
    """Credit `ref` for bringing `developer` in; returns the referrer when credited."""
    if not ref:
        return None
    ref = ref.lower()
    if ref == developer.github_login or developer.referred_by:
        return None
    referrer = get_developer_by_login(session=session, login=ref)
    if referrer is None:
        return None

    developer.referred_by = referrer.github_login
    referrer.referral_count += 1
    session.add(developer)
    session.add(referrer)
    record_feed_event(
        session=session,
        event_type="referral",
        actor_id=referrer.id,
        target_id=developer.id,
        metadata={"referrer_login": referrer.github_login, "referred_login": developer.github_login},
    )
    session.commit()
    session.refresh(referrer)
    logger.info("Referral credited: %s -> %s", referrer.github_login, developer.github_login)
    return referrer


def record_feed_event(
    *,
    session: Session,
    event_type: str,
    actor_id: int | None,
    target_id: int | None = None,
    metadata: dict[str, Any] | None = None,
) -> ActivityFeed:
    # Added to the caller's transaction, committed with it
    event = ActivityFeed(
        event_type=event_type,
        actor_id=actor_id,
        target_id=target_id,
        event_metadata=metadata or {},
    )
    session.add(event)
    return event


def get_customization(
    *, session: Session, developer_id: int, item_id: str
) -> DeveloperCustomization | None:
    statement = select(DeveloperCustomization).where(
        DeveloperCustomization.developer_id == developer_id,
        DeveloperCustomization.item_id == item_id,
    )
    return session.exec(statement).first()


def upsert_customization(
    *, session: Session, developer_id: int, item_id: str, config: dict[str, Any]
) -> DeveloperCustomization:
    db_obj = get_customization(session=session, developer_id=developer_id, item_id=item_id)
    if db_obj is None:
        db_obj = DeveloperCustomization(developer_id=developer_id, item_id=item_id)
    db_obj.config = config
    db_obj.updated_at = datetime.now(timezone.utc)
    session.add(db_obj)
    session.commit()
    session.refresh(db_obj)
    return db_obj


def delete_pending_purchases(*, session: Session, developer_id: int, item_id: str) -> int:
    pending = session.exec(
        select(Purchase).where(
            Purchase.developer_id == developer_id,
            Purchase.item_id == item_id,
            Purchase.status == "pending",
        )
    ).all()
    for purchase in pending:
        session.delete(purchase)
    if pending:
        session.commit()
    return len(pending)


def get_purchase_by_tx_id(*, session: Session, provider_tx_id: str) -> Purchase | None:
    statement = select(Purchase).where(col(Purchase.provider_tx_id) == provider_tx_id)
    return session.exec(statement).first()


def developer_public(*, session: Session, developer: Developer) -> DeveloperPublic:
    loadout = get_customization(session=session, developer_id=developer.id, item_id="loadout")
    return DeveloperPublic.model_validate(
        developer,
        update={
            "dimensions": dimensions_for(developer),
            "owned_items": owned_item_ids(session, developer.id),
            "loadout": loadout.config if loadout else None,
            "raid_loadout": raid_loadout(session, developer.id),
            "active_tag": active_tag(session, developer.id),
        },
    )
