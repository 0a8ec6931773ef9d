import unittest
from datetime import datetime, timedelta, timezone

from app.city.shop import activate_sky_ad
from app.city.sky_ads import (
    DEFAULT_SKY_ADS,
    INVENTORY,
    MAX_PLANES,
    event_types_from,
    get_active_ads,
    hash_ip,
    is_allowed_link,
    load_ads,
    new_tracking_token,
    slots_left,
)
from app.models import SkyAd, SkyAdPublic


def _ad(id: str, vehicle: str = "plane", priority: int = 50, **fields) -> SkyAdPublic:
    values = {
        "id": id,
        "text": f"AD {id}",
        "color": "#ffffff",
        "bg_color": "#000000",
        "vehicle": vehicle,
        "priority": priority,
    }
    values.update(fields)
    return SkyAdPublic(**values)


class TestActiveAds(unittest.TestCase):
    def test_defaults_split_by_vehicle(self):
        ads = get_active_ads(DEFAULT_SKY_ADS)
        self.assertEqual([a.id for a in ads.plane_ads], ["gitcity", "samuel", "advertise"])
        self.assertEqual([a.id for a in ads.blimp_ads], ["build"])
        self.assertEqual(ads.building_ads, [])

    def test_invalid_ads_are_dropped(self):
        ads = get_active_ads(
            [
                _ad("long", text="X" * 81),
                _ad("http", link="http://insecure.example"),
                _ad("color", color="white"),
                _ad("ok", link="https://example.com"),
            ]
        )
        self.assertEqual([a.id for a in ads.plane_ads], ["ok"])

    def test_plane_cap_keeps_highest_priority(self):
        ads = get_active_ads([_ad(str(i), priority=i) for i in range(6)])
        self.assertEqual(len(ads.plane_ads), MAX_PLANES)
        self.assertEqual([a.id for a in ads.plane_ads], ["5", "4", "3"])

    def test_links(self):
        self.assertTrue(is_allowed_link(None))
        self.assertTrue(is_allowed_link("mailto:ads@example.com"))
        self.assertFalse(is_allowed_link("javascript:alert(1)"))


class TestEventTypes(unittest.TestCase):
    def test_single_and_batch_are_merged(self):
        self.assertEqual(
            event_types_from("impression", ["click", "impression", "bogus", 3]),
            ["impression", "click"],
        )

    def test_unknown_values_yield_nothing(self):
        self.assertEqual(event_types_from("hover", {"click": 1}), [])

    def test_ip_hash_depends_on_salt(self):
        self.assertNotEqual(hash_ip("1.2.3.4", "a"), hash_ip("1.2.3.4", "b"))
        self.assertEqual(len(hash_ip("1.2.3.4", "a")), 64)


def _paid_ad(session, vehicle: str, plan_id: str, **fields) -> SkyAd:
    ad = SkyAd(
        text="PAID",
        color="#ffffff",
        bg_color="#000000",
        vehicle=vehicle,
        plan_id=plan_id,
        tracking_token=new_tracking_token(),
        **fields,
    )
    session.add(ad)
    session.commit()
    session.refresh(ad)
    return ad


def test_house_ads_fill_an_empty_sky(session):
    ads = load_ads(session)
    assert [a.id for a in ads.plane_ads] == ["gitcity", "samuel", "advertise"]


def test_paid_ads_replace_house_ads(session):
    ad = _paid_ad(session, "blimp", "blimp_weekly")
    activate_sky_ad(session, ad)

    ads = load_ads(session)

    assert [a.id for a in ads.blimp_ads] == [ad.id]
    assert ads.plane_ads == []


def test_activation_sets_run_window(session):
    now = datetime(2026, 10, 1, tzinfo=timezone.utc)
    ad = _paid_ad(session, "plane", "plane_monthly")

    assert activate_sky_ad(session, ad, now=now) is True
    assert activate_sky_ad(session, ad, now=now + timedelta(days=1)) is False

    session.refresh(ad)
    assert ad.active is True
    assert ad.ends_at.replace(tzinfo=None) == datetime(2026, 10, 31)


def test_expired_ads_free_their_slot(session):
    now = datetime.now(timezone.utc)
    _paid_ad(session, "plane", "plane_weekly", active=True, ends_at=now - timedelta(days=1))
    _paid_ad(session, "plane", "plane_weekly", active=True, starts_at=now - timedelta(days=1))

    assert slots_left(session, "plane") == INVENTORY["plane"] - 1
    assert slots_left(session, "hot_air_balloon") == 0
