"""Sky and building ads: plans, inventory and what the city renders."""
import hashlib
import re
import secrets
from datetime import datetime, timezone

from pydantic import BaseModel
from sqlmodel import Session, col, func, or_, select

from app.models import SkyAd, SkyAdPublic, SkyAdsPublic

MAX_PLANES = 3
MAX_BLIMPS = 2
MAX_TEXT_LENGTH = 80

BUILDING_VEHICLES = ("billboard", "rooftop_sign", "led_wrap")

# Paid ads that may run at the same time, per vehicle
INVENTORY: dict[str, int] = {
    "plane": 4,
    "blimp": 2,
    "billboard": 10,
    "rooftop_sign": 10,
    "led_wrap": 10,
}

EVENT_TYPES = ("impression", "click", "cta_click")

ALLOWED_LINK_PATTERN = re.compile(r"^(https://|mailto:)")
HEX_COLOR_PATTERN = re.compile(r"^#[0-9a-fA-F]{6}$")


class AdPlan(BaseModel):
    id: str
    vehicle: str
    duration_days: int
    price_usd_cents: int
    label: str


AD_PLANS: dict[str, AdPlan] = {
    plan.id: plan
    for plan in [
        AdPlan(id="plane_weekly", vehicle="plane", duration_days=7, price_usd_cents=2900, label="Plane, 1 week"),
        AdPlan(id="plane_monthly", vehicle="plane", duration_days=30, price_usd_cents=9900, label="Plane, 1 month"),
        AdPlan(id="blimp_weekly", vehicle="blimp", duration_days=7, price_usd_cents=4900, label="Blimp, 1 week"),
        AdPlan(id="blimp_monthly", vehicle="blimp", duration_days=30, price_usd_cents=14900, label="Blimp, 1 month"),
        AdPlan(id="billboard_monthly", vehicle="billboard", duration_days=30, price_usd_cents=4900, label="Billboard, 1 month"),
        AdPlan(id="rooftop_sign_monthly", vehicle="rooftop_sign", duration_days=30, price_usd_cents=6900, label="Rooftop sign, 1 month"),
        AdPlan(id="led_wrap_monthly", vehicle="led_wrap", duration_days=30, price_usd_cents=9900, label="LED wrap, 1 month"),
    ]
}


DEFAULT_SKY_ADS: list[SkyAdPublic] = [
    SkyAdPublic(
        id="gitcity",
        text="THEGITCITY.COM ★ YOUR CODE, YOUR CITY ★ THEGITCITY.COM",
        brand="Git City",
        description="A city built from GitHub contributions. Search your username and find your building among thousands of developers.",
        color="#f8d880",
        bg_color="#1a1018",
        link="https://thegitcity.com",
        vehicle="plane",
        priority=100,
    ),
    SkyAdPublic(
        id="samuel",
        text="HEY, I BUILD THIS! → SAMUELRIZZON.DEV",
        brand="Samuel Rizzon",
        description="Full-stack dev who builds weird and cool stuff. This city is one of them.",
        color="#c8e64a",
        bg_color="#1a1018",
        link="https://www.samuelrizzon.dev/en.html",
        vehicle="plane",
        priority=90,
    ),
    SkyAdPublic(
        id="build",
        text="YOUR AI COPILOT TO GROW ON X",
        brand="ReplyOS",
        description="Viral library, lead radar, post writer, auto-replies. Your AI copilot to grow on X.",
        color="#ffffff",
        bg_color="#2a1838",
        link="https://reply-os.com",
        vehicle="blimp",
        priority=80,
    ),
    SkyAdPublic(
        id="advertise",
        text="ADD YOUR AD HERE",
        brand="Sky Ads",
        description="Want your brand flying over Git City? Planes, blimps, your colors. Get in touch!",
        color="#f8d880",
        bg_color="#1a1018",
        link="mailto:samuelrizzondev@gmail.com?subject=Git%20City%20Sky%20Ad",
        vehicle="plane",
        priority=10,
    ),
]


def is_hex_color(value: str | None) -> bool:
    return bool(value) and HEX_COLOR_PATTERN.match(value) is not None


def is_allowed_link(value: str | None) -> bool:
    return not value or ALLOWED_LINK_PATTERN.match(value) is not None


def validate_ads(ads: list[SkyAdPublic]) -> list[SkyAdPublic]:
    """Drop ads the renderer must not show and order the rest by priority."""
    valid = [
        ad
        for ad in ads
        if len(ad.text) <= MAX_TEXT_LENGTH
        and is_allowed_link(ad.link)
        and is_hex_color(ad.color)
        and is_hex_color(ad.bg_color)
    ]
    return sorted(valid, key=lambda ad: ad.priority, reverse=True)


def get_active_ads(ads: list[SkyAdPublic]) -> SkyAdsPublic:
    valid = validate_ads(ads)
    return SkyAdsPublic(
        plane_ads=[ad for ad in valid if ad.vehicle == "plane"][:MAX_PLANES],
        blimp_ads=[ad for ad in valid if ad.vehicle == "blimp"][:MAX_BLIMPS],
        building_ads=[ad for ad in valid if ad.vehicle in BUILDING_VEHICLES],
    )


def _running(now: datetime):
    return (
        col(SkyAd.active).is_(True),
        or_(col(SkyAd.starts_at).is_(None), col(SkyAd.starts_at) <= now),
        or_(col(SkyAd.ends_at).is_(None), col(SkyAd.ends_at) > now),
    )


def load_ads(session: Session, now: datetime | None = None) -> SkyAdsPublic:
    """Running paid ads, or the house ads when nobody has paid for the sky."""
    now = now or datetime.now(timezone.utc)
    rows = session.exec(select(SkyAd).where(*_running(now))).all()
    paid = [SkyAdPublic.model_validate(row, from_attributes=True) for row in rows]
    ads = get_active_ads(paid)
    if not ads.plane_ads and not ads.blimp_ads:
        defaults = get_active_ads(DEFAULT_SKY_ADS)
        ads.plane_ads = defaults.plane_ads
        ads.blimp_ads = defaults.blimp_ads
    return ads


def slots_left(session: Session, vehicle: str, now: datetime | None = None) -> int:
    now = now or datetime.now(timezone.utc)
    running = session.exec(
        select(func.count()).select_from(SkyAd).where(SkyAd.vehicle == vehicle, *_running(now))
    ).one()
    return max(0, INVENTORY.get(vehicle, 0) - running)


def new_tracking_token() -> str:
    return secrets.token_urlsafe(24)


def hash_ip(ip: str, salt: str) -> str:
    return hashlib.sha256((ip + salt).encode()).hexdigest()


def event_types_from(event_type: object, event_types: object) -> list[str]:
    """Accept a single event_type and/or a batch, keep known types once each."""
    types: list[str] = []
    if isinstance(event_type, str) and event_type in EVENT_TYPES:
        types.append(event_type)
    if isinstance(event_types, list):
        for value in event_types:
            if isinstance(value, str) and value in EVENT_TYPES and value not in types:
                types.append(value)
    return types
