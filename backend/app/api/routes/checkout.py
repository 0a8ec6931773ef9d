import logging
import uuid
from typing import Any
from urllib.parse import quote

from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session, col, select

from app import crud
from app.api.deps import CurrentDeveloper, CurrentUser, get_current_developer, get_db
from app.city.items import FREE_CLAIM_ITEM
from app.city.rate_limit import rate_limiter
from app.city.shop import PurchaseError, ensure_purchasable, grant_free_claim_item
from app.core.config import settings
from app.models import CheckoutRequest, CheckoutStatus, Item, Purchase
from app.providers import ProviderError
from app.providers.abacatepay import create_pix_qr_code
from app.providers.stripe_checkout import create_session

logger = logging.getLogger(__name__)
router = APIRouter(tags=["shop"])

PROVIDERS = ("stripe", "abacatepay")
CHECKOUT_INTERVAL_SECONDS = 10


@router.post("/checkout")
def checkout(
    *,
    session: Session = Depends(get_db),
    current_user: CurrentUser,
    checkout_in: CheckoutRequest,
) -> Any:
    if not rate_limiter.hit(f"checkout:{current_user.id}", 1, CHECKOUT_INTERVAL_SECONDS):
        raise HTTPException(status_code=429, detail="Too fast. Wait a few seconds.")

    developer = get_current_developer(session, current_user)

    if checkout_in.provider not in PROVIDERS:
        raise HTTPException(status_code=400, detail="Invalid item_id or provider")

    item = session.exec(
        select(Item).where(Item.id == checkout_in.item_id, col(Item.is_active).is_(True))
    ).first()
    if not item:
        raise HTTPException(status_code=404, detail="Item not found or inactive")

    owner = developer
    if checkout_in.gift_to:
        owner = crud.get_developer_by_login(session=session, login=checkout_in.gift_to)
        if not owner:
            raise HTTPException(status_code=404, detail="Gift recipient not found")
        if owner.id == developer.id:
            raise HTTPException(status_code=400, detail="Cannot gift an item to yourself")

    try:
        ensure_purchasable(session, item, owner)
    except PurchaseError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.detail)

    # A stale pending row from an abandoned checkout would block the retry
    crud.delete_pending_purchases(session=session, developer_id=developer.id, item_id=item.id)

    gifted_to = owner.id if owner.id != developer.id else None
    if checkout_in.provider == "stripe":
        use_brl = checkout_in.currency == "brl"
        currency = "brl" if use_brl else "usd"
        amount = item.price_brl_cents if use_brl else item.price_usd_cents
    else:
        currency = "brl"
        amount = item.price_brl_cents

    purchase = Purchase(
        developer_id=developer.id,
        item_id=item.id,
        provider=checkout_in.provider,
        amount_cents=amount,
        currency=currency,
        status="pending",
        gifted_to=gifted_to,
    )
    session.add(purchase)
    session.commit()
    session.refresh(purchase)

    login = developer.github_login
    try:
        if checkout_in.provider == "stripe":
            session_id, url = create_session(
                name=item.name,
                amount_cents=amount,
                currency=currency,
                metadata={
                    "purchase_id": str(purchase.id),
                    "developer_id": str(developer.id),
                    "item_id": item.id,
                    "github_login": login,
                },
                success_url=f"{settings.FRONTEND_HOST}/shop/{quote(login)}?purchased={quote(item.id)}",
                cancel_url=f"{settings.FRONTEND_HOST}/shop/{quote(login)}",
                customer_email=current_user.email,
            )
            purchase.provider_tx_id = session_id
            session.add(purchase)
            session.commit()
            logger.info("Stripe checkout opened for %s: %s", login, item.id)
            return {"url": url, "purchase_id": str(purchase.id)}

        pix = create_pix_qr_code(
            amount_cents=amount,
            description=f"{item.name} - {login}",
            external_id=f"{developer.id}:{item.id}",
        )
        purchase.provider_tx_id = pix.pix_id
        session.add(purchase)
        session.commit()
        logger.info("PIX checkout opened for %s: %s", login, item.id)
        return {
            "brCode": pix.br_code,
            "brCodeBase64": pix.br_code_base64,
            "purchase_id": str(purchase.id),
        }
    except ProviderError as exc:
        logger.exception("Checkout with %s failed for %s", checkout_in.provider, login)
        raise HTTPException(status_code=502, detail="Failed to create checkout session") from exc


@router.get("/checkout/status", response_model=CheckoutStatus)
def checkout_status(
    *,
    session: Session = Depends(get_db),
    current_user: CurrentUser,
    purchase_id: uuid.UUID,
) -> Any:
    developer = crud.get_developer_by_login(session=session, login=current_user.github_login)
    if not developer:
        raise HTTPException(status_code=404, detail="Developer not found")
    purchase = session.get(Purchase, purchase_id)
    if not purchase or purchase.developer_id != developer.id:
        raise HTTPException(status_code=404, detail="Purchase not found")
    return CheckoutStatus(status=purchase.status)


@router.post("/claim-free-item")
def claim_free_item(
    *,
    session: Session = Depends(get_db),
    developer: CurrentDeveloper,
) -> Any:
    if not grant_free_claim_item(session, developer):
        raise HTTPException(status_code=409, detail="Already claimed")
    return {"claimed": True, "item_id": FREE_CLAIM_ITEM}
