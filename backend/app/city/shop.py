"""Purchase rules and the completion path shared by both payment webhooks."""
import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, col, func, or_, select

from app.city.achievements import check_achievements
from app.city.buildings import billboard_max_slots
from app.city.items import (
    BILLBOARD_ITEM,
    FREE_CLAIM_ITEM,
    is_consumable,
    is_stackable,
    owned_item_ids,
)
from app.city.sky_ads import AD_PLANS
from app.models import ActivityFeed, Developer, Item, Purchase, SkyAd

logger = logging.getLogger(__name__)


class PurchaseError(ValueError):
    def __init__(self, status_code: int, detail: str):
        super().__init__(detail)
        self.status_code = status_code
        self.detail = detail


def completed_billboards(session: Session, developer_id: int) -> int:
    return session.exec(
        select(func.count())
        .select_from(Purchase)
        .where(
            Purchase.item_id == BILLBOARD_ITEM,
            Purchase.status == "completed",
            or_(
                (Purchase.developer_id == developer_id) & col(Purchase.gifted_to).is_(None),
                Purchase.gifted_to == developer_id,
            ),
        )
    ).one()


def ensure_purchasable(session: Session, item: Item, owner: Developer) -> None:
    """Raise PurchaseError(409) when `owner` cannot take another copy of `item`.

    `owner` is the developer who will end up owning the item, which is the
    recipient for gifts.
    """
    if item.id == BILLBOARD_ITEM:
        slots = billboard_max_slots(owner.contributions, owner.public_repos)
        if completed_billboards(session, owner.id) >= slots:
            raise PurchaseError(409, f"Max billboard slots reached ({slots})")
        return
    if is_consumable(item.id):
        return
    if item.id in owned_item_ids(session, owner.id):
        raise PurchaseError(409, "Already owned")


def _expire_conflict(session: Session, purchase: Purchase) -> None:
    purchase.status = "expired"
    session.add(purchase)
    session.commit()
    logger.warning(
        "Purchase %s (%s) conflicts with an owned item, expired",
        purchase.id,
        purchase.item_id,
    )


def finalize_purchase(session: Session, purchase: Purchase) -> bool:
    """Mark a pending purchase completed; True when this call completed it.

    Repeated webhook deliveries are no-ops. When the final owner already has
    a non-stackable item (granted or gifted meanwhile) the purchase is expired
    instead. Gifts are outside the unique completed-purchase index, so the
    owner is checked here as well.
    """
    if purchase.status != "pending":
        return False

    owner_id = purchase.gifted_to or purchase.developer_id
    if not is_stackable(purchase.item_id) and purchase.item_id in owned_item_ids(
        session, owner_id
    ):
        _expire_conflict(session, purchase)
        return False

    purchase.status = "completed"
    session.add(purchase)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        session.refresh(purchase)
        _expire_conflict(session, purchase)
        return False

    buyer = session.get(Developer, purchase.developer_id)
    recipient = session.get(Developer, purchase.gifted_to) if purchase.gifted_to else None
    item = session.get(Item, purchase.item_id)
    if recipient is not None:
        session.add(
            ActivityFeed(
                event_type="gift_sent",
                actor_id=buyer.id if buyer else None,
                target_id=recipient.id,
                event_metadata={
                    "item_id": purchase.item_id,
                    "item_name": item.name if item else purchase.item_id,
                    "giver_login": buyer.github_login if buyer else None,
                    "receiver_login": recipient.github_login,
                },
            )
        )
    else:
        session.add(
            ActivityFeed(
                event_type="item_purchased",
                actor_id=purchase.developer_id,
                event_metadata={
                    "item_id": purchase.item_id,
                    "item_name": item.name if item else purchase.item_id,
                    "login": buyer.github_login if buyer else None,
                },
            )
        )
    session.commit()
    logger.info(
        "Purchase %s completed: %s via %s", purchase.id, purchase.item_id, purchase.provider
    )

    if buyer is not None:
        check_achievements(session, buyer)
    if recipient is not None:
        check_achievements(session, recipient)
    return True


def expire_purchase(session: Session, purchase: Purchase) -> bool:
    if purchase.status != "pending":
        return False
    purchase.status = "expired"
    session.add(purchase)
    session.commit()
    return True


def grant_free_claim_item(session: Session, developer: Developer) -> bool:
    """Give a claimed building its free item once; False when already had."""
    if FREE_CLAIM_ITEM in owned_item_ids(session, developer.id):
        return False
    session.add(
        Purchase(
            developer_id=developer.id,
            item_id=FREE_CLAIM_ITEM,
            provider="free_claim",
            provider_tx_id=f"free_claim_{developer.id}",
            amount_cents=0,
            currency="usd",
            status="completed",
        )
    )
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        return False
    logger.info("Free %s granted to %s", FREE_CLAIM_ITEM, developer.github_login)
    return True


def activate_sky_ad(session: Session, ad: SkyAd, now: datetime | None = None) -> bool:
    """Start a paid ad's run; repeat deliveries leave it untouched."""
    if ad.active:
        return False
    now = now or datetime.now(timezone.utc)
    plan = AD_PLANS.get(ad.plan_id or "")
    ad.active = True
    ad.starts_at = now
    ad.ends_at = now + timedelta(days=plan.duration_days) if plan else None
    session.add(ad)
    session.commit()
    logger.info("Sky ad %s activated on plan %s", ad.id, ad.plan_id)
    return True
