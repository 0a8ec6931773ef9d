from unittest.mock import patch
from urllib.parse import parse_qs, urlparse

from sqlmodel import select

from app.core.config import settings
from app.core.security import create_state_token, read_state_token
from app.models import ActivityFeed, User
from app.providers import ProviderError
from app.providers.github import GitHubUser

API = settings.API_V1_STR


def _callback(client, state: str, code: str = "abc"):
    return client.get(
        f"{API}/auth/callback", params={"code": code, "state": state}, follow_redirects=False
    )


def test_login_redirects_to_github_with_signed_state(client):
    response = client.get(f"{API}/auth/login", params={"next": "/shop"}, follow_redirects=False)

    assert response.status_code == 302
    location = urlparse(response.headers["location"])
    assert f"{location.scheme}://{location.netloc}{location.path}" == (
        f"{settings.GITHUB_OAUTH_URL}/authorize"
    )
    query = parse_qs(location.query)
    assert query["redirect_uri"][0].endswith(f"{API}/auth/callback")
    assert read_state_token(query["state"][0])["next"] == "/shop"


def test_callback_without_code(client):
    response = client.get(f"{API}/auth/callback", follow_redirects=False)
    assert response.headers["location"] == f"{settings.FRONTEND_HOST}/?error=no_code"


def test_callback_rejects_forged_state(client):
    with patch("app.api.routes.auth.exchange_code") as exchange:
        response = _callback(client, "not-a-jwt")
    assert response.headers["location"] == f"{settings.FRONTEND_HOST}/?error=auth_failed"
    exchange.assert_not_called()


def test_callback_exchange_failure(client):
    with patch(
        "app.api.routes.auth.exchange_code", side_effect=ProviderError("github", "bad code")
    ):
        response = _callback(client, create_state_token({}))
    assert response.headers["location"] == f"{settings.FRONTEND_HOST}/?error=auth_failed"


def test_callback_claims_building_and_credits_referrer(client, session, make_developer):
    building = make_developer("octo")
    referrer = make_developer("hubber")
    github_user = GitHubUser(id=42, login="Octo", email="octo@example.com")

    with patch("app.api.routes.auth.exchange_code", return_value=github_user):
        response = _callback(client, create_state_token({"ref": "Hubber"}))

    assert response.status_code == 302
    assert response.headers["location"] == f"{settings.FRONTEND_HOST}/?user=octo"
    assert settings.SESSION_COOKIE_NAME in response.cookies

    session.refresh(building)
    session.refresh(referrer)
    user = session.exec(select(User).where(User.github_id == 42)).one()
    assert building.claimed
    assert building.claimed_by == user.id
    assert building.fetch_priority == 1
    assert building.referred_by == "hubber"
    assert referrer.referral_count == 1
    assert session.exec(
        select(ActivityFeed).where(ActivityFeed.event_type == "referral")
    ).one().target_id == building.id


def test_callback_sends_shoppers_back_to_the_shop(client, make_developer):
    make_developer("octo")
    github_user = GitHubUser(id=7, login="octo")

    with patch("app.api.routes.auth.exchange_code", return_value=github_user):
        response = _callback(client, create_state_token({"next": "/shop"}))

    assert response.headers["location"] == f"{settings.FRONTEND_HOST}/shop/octo"


def test_self_referral_is_ignored(client, session, make_developer):
    building = make_developer("octo")

    with patch("app.api.routes.auth.exchange_code", return_value=GitHubUser(id=8, login="octo")):
        _callback(client, create_state_token({"ref": "octo"}))

    session.refresh(building)
    assert building.referred_by is None
    assert building.referral_count == 0


def test_session_cookie_authenticates(client, make_developer):
    make_developer("octo")
    with patch("app.api.routes.auth.exchange_code", return_value=GitHubUser(id=9, login="octo")):
        response = _callback(client, create_state_token({}))
    token = response.cookies[settings.SESSION_COOKIE_NAME]

    client.cookies.set(settings.SESSION_COOKIE_NAME, token)
    loadout = client.get(f"{API}/raid/loadout")

    assert loadout.status_code == 200
    assert loadout.json() == {"vehicle": "airplane", "tag": "default"}


def test_invalid_bearer_token(client):
    response = client.get(
        f"{API}/raid/loadout", headers={"Authorization": "Bearer nonsense"}
    )
    assert response.status_code == 401


def test_logout_clears_cookie(client):
    response = client.post(f"{API}/auth/logout", follow_redirects=False)
    assert response.status_code == 302
    assert settings.SESSION_COOKIE_NAME in response.headers["set-cookie"]
