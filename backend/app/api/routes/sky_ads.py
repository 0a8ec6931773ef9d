import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from sqlmodel import Session, select

from app.api.deps import client_ip, get_db
from app.city.rate_limit import rate_limiter
from app.city.sky_ads import (
    AD_PLANS,
    event_types_from,
    hash_ip,
    is_hex_color,
    is_allowed_link,
    load_ads,
    new_tracking_token,
    slots_left,
)
from app.core.config import settings
from app.models import (
    SkyAd,
    SkyAdCheckoutRequest,
    SkyAdEvent,
    SkyAdPublic,
    SkyAdSetupUpdate,
    SkyAdsPublic,
    SkyAdTrackRequest,
)
from app.providers import ProviderError
from app.providers.stripe_checkout import create_session

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/sky-ads", tags=["advertising"])

TRACK_LIMIT_PER_MINUTE = 120
AD_ID_MAX_LENGTH = 64


@router.get("", response_model=SkyAdsPublic)
def read_sky_ads(response: Response, session: Session = Depends(get_db)) -> Any:
    response.headers["Cache-Control"] = "public, s-maxage=60, stale-while-revalidate=300"
    return load_ads(session)


@router.get("/plans")
def read_plans() -> Any:
    return {"plans": list(AD_PLANS.values())}


@router.post("/checkout")
def sky_ad_checkout(
    *, session: Session = Depends(get_db), checkout_in: SkyAdCheckoutRequest
) -> Any:
    plan = AD_PLANS.get(checkout_in.plan_id)
    if plan is None:
        raise HTTPException(status_code=400, detail="Unknown plan")
    if not is_hex_color(checkout_in.color) or not is_hex_color(checkout_in.bg_color):
        raise HTTPException(status_code=400, detail="Colors must be #rrggbb hex values")
    if "@" not in checkout_in.email:
        raise HTTPException(status_code=400, detail="Invalid email")
    if slots_left(session, plan.vehicle) <= 0:
        raise HTTPException(status_code=409, detail=f"No {plan.vehicle} slots available")

    ad = SkyAd(
        text=checkout_in.text,
        color=checkout_in.color,
        bg_color=checkout_in.bg_color,
        vehicle=plan.vehicle,
        plan_id=plan.id,
        purchaser_email=checkout_in.email,
        tracking_token=new_tracking_token(),
        active=False,
    )
    session.add(ad)
    session.commit()
    session.refresh(ad)

    try:
        session_id, url = create_session(
            name=f"Git City ad: {plan.label}",
            amount_cents=plan.price_usd_cents,
            currency="usd",
            metadata={"sky_ad_id": ad.id, "plan_id": plan.id},
            success_url=f"{settings.FRONTEND_HOST}/advertise/setup/{ad.tracking_token}",
            cancel_url=f"{settings.FRONTEND_HOST}/advertise",
            customer_email=checkout_in.email,
        )
    except ProviderError as exc:
        logger.exception("Sky ad checkout failed for plan %s", plan.id)
        raise HTTPException(status_code=502, detail="Failed to create checkout session") from exc

    ad.provider_tx_id = session_id
    session.add(ad)
    session.commit()
    logger.info("Sky ad checkout opened: %s on %s", ad.id, plan.id)
    return {"url": url, "ad_id": ad.id}


def _ad_by_token(session: Session, token: str) -> SkyAd:
    ad = session.exec(select(SkyAd).where(SkyAd.tracking_token == token)).first()
    if not ad:
        raise HTTPException(status_code=404, detail="Ad not found")
    return ad


@router.get("/setup/{token}", response_model=SkyAdPublic)
def read_ad_setup(token: str, session: Session = Depends(get_db)) -> Any:
    return _ad_by_token(session, token)


@router.patch("/setup/{token}", response_model=SkyAdPublic)
def update_ad_setup(
    token: str, setup_in: SkyAdSetupUpdate, session: Session = Depends(get_db)
) -> Any:
    ad = _ad_by_token(session, token)
    changes = setup_in.model_dump(exclude_unset=True)
    if not is_allowed_link(changes.get("link")):
        raise HTTPException(status_code=400, detail="Link must start with https:// or mailto:")
    ad.sqlmodel_update(changes)
    session.add(ad)
    session.commit()
    session.refresh(ad)
    return ad


@router.post("/track", status_code=201)
def track_ad_event(
    request: Request,
    track_in: SkyAdTrackRequest,
    session: Session = Depends(get_db),
) -> Any:
    ip = client_ip(request)
    if not rate_limiter.hit(f"ad:{ip}", TRACK_LIMIT_PER_MINUTE, 60):
        raise HTTPException(status_code=429, detail="Too many requests")

    ad_id = track_in.ad_id
    if not ad_id or not isinstance(ad_id, str) or len(ad_id) > AD_ID_MAX_LENGTH:
        raise HTTPException(status_code=400, detail="Invalid payload")
    types = event_types_from(track_in.event_type, track_in.event_types)
    if not types:
        raise HTTPException(status_code=400, detail="Invalid event type")

    ip_hash = hash_ip(ip, settings.AD_EVENT_SALT)
    user_agent = request.headers.get("user-agent")
    login = track_in.github_login
    for event_type in types:
        session.add(
            SkyAdEvent(
                ad_id=ad_id,
                event_type=event_type,
                ip_hash=ip_hash,
                user_agent=user_agent[:256] if user_agent else None,
                github_login=login[:39].lower() if isinstance(login, str) else None,
            )
        )
    session.commit()
    return {"ok": True}
