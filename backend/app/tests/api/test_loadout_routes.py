from app.core.config import settings

API = settings.API_V1_STR


def test_equip_owned_items(client, make_developer, auth_headers, grant):
    developer = make_developer("stylish", claimed=True)
    grant(developer, "spire")
    grant(developer, "neon_trim")

    response = client.post(
        f"{API}/loadout",
        headers=auth_headers(developer),
        json={"crown": "spire", "aura": "neon_trim"},
    )

    assert response.status_code == 200
    assert response.json()["loadout"] == {"crown": "spire", "roof": None, "aura": "neon_trim"}
    saved = client.get(f"{API}/loadout", params={"developer_id": developer.id})
    assert saved.json()["loadout"]["crown"] == "spire"


def test_loadout_rejects_wrong_zone_and_unowned(client, make_developer, auth_headers, grant):
    developer = make_developer("stylish", claimed=True)
    headers = auth_headers(developer)
    grant(developer, "spire")

    wrong_zone = client.post(f"{API}/loadout", headers=headers, json={"roof": "spire"})
    unowned = client.post(f"{API}/loadout", headers=headers, json={"crown": "helipad"})

    assert wrong_zone.status_code == 400
    assert unowned.status_code == 403


def test_empty_loadout(client, make_developer):
    developer = make_developer("plain")
    assert client.get(f"{API}/loadout", params={"developer_id": developer.id}).json() == {
        "loadout": None
    }


def test_raid_loadout(client, make_developer, auth_headers, grant):
    developer = make_developer("raider", claimed=True)
    headers = auth_headers(developer)
    grant(developer, "raid_drone")

    ok = client.post(f"{API}/raid/loadout", headers=headers, json={"vehicle": "raid_drone"})
    not_owned = client.post(f"{API}/raid/loadout", headers=headers, json={"tag": "tag_gold"})

    assert ok.json() == {"ok": True, "vehicle": "raid_drone", "tag": "default"}
    assert not_owned.status_code == 403
    public = client.get(f"{API}/raid/loadout", params={"developer_id": developer.id})
    assert public.json() == {"vehicle": "raid_drone", "tag": "default"}


def test_raid_loadout_requires_identity(client):
    assert client.get(f"{API}/raid/loadout").status_code == 401


def test_custom_color(client, make_developer, auth_headers, grant):
    developer = make_developer("painter", claimed=True)
    headers = auth_headers(developer)

    assert (
        client.post(
            f"{API}/customizations/custom_color", headers=headers, json={"color": "#AABBCC"}
        ).status_code
        == 403
    )
    grant(developer, "custom_color")
    bad = client.post(f"{API}/customizations/custom_color", headers=headers, json={"color": "red"})
    good = client.post(
        f"{API}/customizations/custom_color", headers=headers, json={"color": "#AABBCC"}
    )

    assert bad.status_code == 400
    assert good.json() == {"ok": True, "color": "#aabbcc"}


def test_billboard_images_limited_by_slots(client, make_developer, auth_headers, grant):
    developer = make_developer("marketer", claimed=True)
    headers = auth_headers(developer)
    images = ["https://img.example/a.png", "https://img.example/b.png"]

    assert (
        client.post(f"{API}/customizations/billboard", headers=headers, json={"images": images})
        .status_code
        == 403
    )
    grant(developer, "billboard")
    too_many = client.post(
        f"{API}/customizations/billboard", headers=headers, json={"images": images}
    )
    insecure = client.post(
        f"{API}/customizations/billboard",
        headers=headers,
        json={"images": ["http://img.example/a.png"]},
    )
    ok = client.post(
        f"{API}/customizations/billboard", headers=headers, json={"images": images[:1]}
    )

    assert too_many.status_code == 400
    assert insecure.status_code == 400
    assert ok.json()["images"] == images[:1]
