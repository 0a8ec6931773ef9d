from unittest.mock import patch

from sqlmodel import select

from app.city.sky_ads import AD_PLANS, INVENTORY
from app.core.config import settings
from app.models import SkyAd, SkyAdEvent

API = settings.API_V1_STR

ORDER = {
    "plan_id": "blimp_weekly",
    "text": "BUY OUR WIDGETS",
    "color": "#ffffff",
    "bg_color": "#112233",
    "email": "ads@example.com",
}


def test_sky_ads_default_to_house_ads(client):
    response = client.get(f"{API}/sky-ads")

    assert response.status_code == 200
    assert "s-maxage=60" in response.headers["cache-control"]
    body = response.json()
    assert body["plane_ads"][0]["id"] == "gitcity"
    assert body["blimp_ads"][0]["id"] == "build"


def test_plans(client):
    plans = client.get(f"{API}/sky-ads/plans").json()["plans"]
    assert {p["id"] for p in plans} == set(AD_PLANS)


def test_ad_checkout_creates_inactive_ad(client, session):
    with patch(
        "app.api.routes.sky_ads.create_session", return_value=("cs_ad_1", "https://pay/ad")
    ) as create:
        response = client.post(f"{API}/sky-ads/checkout", json=ORDER)

    assert response.status_code == 200
    ad = session.get(SkyAd, response.json()["ad_id"])
    assert ad.active is False
    assert ad.vehicle == "blimp"
    assert ad.provider_tx_id == "cs_ad_1"
    assert create.call_args.kwargs["amount_cents"] == AD_PLANS["blimp_weekly"].price_usd_cents
    assert create.call_args.kwargs["metadata"]["sky_ad_id"] == ad.id


def test_ad_checkout_validation(client):
    assert client.post(f"{API}/sky-ads/checkout", json={**ORDER, "plan_id": "zeppelin"}).status_code == 400
    assert client.post(f"{API}/sky-ads/checkout", json={**ORDER, "color": "red"}).status_code == 400
    assert client.post(f"{API}/sky-ads/checkout", json={**ORDER, "email": "nope"}).status_code == 400


def test_ad_checkout_sold_out(client, session):
    for i in range(INVENTORY["blimp"]):
        session.add(
            SkyAd(
                text="TAKEN",
                color="#ffffff",
                bg_color="#000000",
                vehicle="blimp",
                tracking_token=f"taken-{i}",
                active=True,
            )
        )
    session.commit()

    response = client.post(f"{API}/sky-ads/checkout", json=ORDER)

    assert response.status_code == 409


def test_setup_by_token(client, session):
    ad = SkyAd(
        text="HELLO", color="#ffffff", bg_color="#000000", vehicle="plane", tracking_token="tok-1"
    )
    session.add(ad)
    session.commit()

    assert client.get(f"{API}/sky-ads/setup/tok-1").json()["text"] == "HELLO"
    assert client.get(f"{API}/sky-ads/setup/missing").status_code == 404

    bad_link = client.patch(f"{API}/sky-ads/setup/tok-1", json={"link": "http://x.example"})
    updated = client.patch(
        f"{API}/sky-ads/setup/tok-1",
        json={"link": "https://brand.example", "brand": "Brand"},
    )

    assert bad_link.status_code == 400
    assert updated.json()["link"] == "https://brand.example"
    assert updated.json()["brand"] == "Brand"


def test_track_events(client, session):
    response = client.post(
        f"{API}/sky-ads/track",
        json={"ad_id": "gitcity", "event_types": ["impression", "click", "wobble"], "github_login": "Octo"},
        headers={"user-agent": "pytest", "x-forwarded-for": "203.0.113.9, 10.0.0.1"},
    )

    assert response.status_code == 201
    events = session.exec(select(SkyAdEvent).order_by(SkyAdEvent.event_type)).all()
    assert [e.event_type for e in events] == ["click", "impression"]
    assert events[0].github_login == "octo"
    assert events[0].ip_hash != "203.0.113.9"
    assert len(events[0].ip_hash) == 64


def test_track_rejects_bad_payloads(client):
    assert client.post(f"{API}/sky-ads/track", json={"event_type": "click"}).status_code == 400
    assert client.post(f"{API}/sky-ads/track", json={"ad_id": 5, "event_type": "click"}).status_code == 400
    assert client.post(f"{API}/sky-ads/track", json={"ad_id": "x", "event_type": "hover"}).status_code == 400


def test_track_rejects_oversized_ad_id(client, session):
    response = client.post(f"{API}/sky-ads/track", json={"ad_id": "a" * 65, "event_type": "click"})
    assert response.status_code == 400
    assert session.exec(select(SkyAdEvent)).all() == []

    response = client.post(f"{API}/sky-ads/track", json={"ad_id": "a" * 64, "event_type": "click"})
    assert response.status_code == 201


def test_track_rate_limited_per_ip(client):
    headers = {"x-forwarded-for": "198.51.100.7"}
    payload = {"ad_id": "gitcity", "event_type": "impression"}
    statuses = [
        client.post(f"{API}/sky-ads/track", json=payload, headers=headers).status_code
        for _ in range(121)
    ]
    assert statuses[:120] == [201] * 120
    assert statuses[120] == 429
