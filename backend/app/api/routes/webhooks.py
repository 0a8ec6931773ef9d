"""Payment provider webhooks. Both are safe to deliver more than once."""
import json
import logging
import secrets
import uuid
from typing import Any

from fastapi import APIRouter, HTTPException, Request
from sqlmodel import Session

from app import crud
from app.api.deps import SessionDep
from app.city.shop import activate_sky_ad, expire_purchase, finalize_purchase
from app.core.config import settings
from app.models import Purchase, SkyAd
from app.providers import ProviderError
from app.providers.stripe_checkout import construct_event

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/webhooks", tags=["webhooks"])


def _purchase_for_session(session: Session, checkout: dict[str, Any]) -> Purchase | None:
    purchase = crud.get_purchase_by_tx_id(session=session, provider_tx_id=checkout.get("id", ""))
    if purchase is not None:
        return purchase
    purchase_id = (checkout.get("metadata") or {}).get("purchase_id")
    if not purchase_id:
        return None
    try:
        return session.get(Purchase, uuid.UUID(purchase_id))
    except ValueError:
        return None


@router.post("/stripe")
async def stripe_webhook(request: Request, session: SessionDep) -> Any:
    payload = await request.body()
    try:
        construct_event(payload, request.headers.get("stripe-signature"))
    except ProviderError as exc:
        logger.error("Stripe webhook received but not configured: %s", exc)
        raise HTTPException(status_code=500, detail="Webhook not configured")
    except ValueError as exc:
        logger.warning("Rejected Stripe webhook: %s", exc)
        raise HTTPException(status_code=400, detail="Invalid signature")

    event = json.loads(payload)
    event_type = event.get("type")
    checkout = (event.get("data") or {}).get("object") or {}
    metadata = checkout.get("metadata") or {}

    if event_type == "checkout.session.completed":
        if metadata.get("sky_ad_id"):
            ad = session.get(SkyAd, metadata["sky_ad_id"])
            if ad is None:
                logger.warning("Stripe completed unknown sky ad %s", metadata["sky_ad_id"])
            else:
                activate_sky_ad(session, ad)
            return {"received": True}
        purchase = _purchase_for_session(session, checkout)
        if purchase is None:
            logger.warning("Stripe completed unknown checkout session %s", checkout.get("id"))
            return {"received": True}
        finalize_purchase(session, purchase)
    elif event_type == "checkout.session.expired":
        purchase = _purchase_for_session(session, checkout)
        if purchase is not None:
            expire_purchase(session, purchase)
    else:
        logger.debug("Ignoring Stripe event %s", event_type)
    return {"received": True}


@router.post("/abacatepay")
async def abacatepay_webhook(
    request: Request, session: SessionDep, webhookSecret: str = ""
) -> Any:
    expected = settings.ABACATEPAY_WEBHOOK_SECRET
    if not expected or not secrets.compare_digest(
        webhookSecret.encode(), expected.encode()
    ):
        raise HTTPException(status_code=401, detail="Invalid webhook secret")

    try:
        body = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON")

    if body.get("event") != "billing.paid":
        return {"received": True}

    data = body.get("data") or {}
    pix_id = (data.get("pixQrCode") or {}).get("id") or data.get("id")
    if not pix_id:
        raise HTTPException(status_code=400, detail="Missing PIX id")

    purchase = crud.get_purchase_by_tx_id(session=session, provider_tx_id=pix_id)
    if purchase is None:
        logger.warning("AbacatePay paid unknown PIX %s", pix_id)
        return {"received": True}
    finalize_purchase(session, purchase)
    return {"received": True}
