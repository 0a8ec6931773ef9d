import logging
from datetime import timedelta
from urllib.parse import quote

from fastapi import APIRouter, Request
from fastapi.responses import RedirectResponse

from app import crud
from app.api.deps import SessionDep
from app.city.achievements import check_achievements
from app.core.config import settings
from app.core.security import create_access_token, create_state_token, read_state_token
from app.providers import ProviderError
from app.providers.github import authorize_url, exchange_code

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/auth", tags=["auth"])


def _frontend(path: str) -> RedirectResponse:
    return RedirectResponse(f"{settings.FRONTEND_HOST}{path}", status_code=302)


@router.get("/login")
def login(request: Request, next: str | None = None, ref: str | None = None) -> RedirectResponse:
    state = create_state_token({"next": next, "ref": ref})
    redirect_uri = str(request.url_for("auth_callback"))
    return RedirectResponse(authorize_url(state, redirect_uri), status_code=302)


@router.get("/callback", name="auth_callback")
def callback(
    request: Request,
    session: SessionDep,
    code: str | None = None,
    state: str | None = None,
) -> RedirectResponse:
    if not code:
        return _frontend("/?error=no_code")

    state_data = read_state_token(state)
    if state_data is None:
        logger.warning("OAuth callback with an invalid state")
        return _frontend("/?error=auth_failed")

    try:
        github_user = exchange_code(code, str(request.url_for("auth_callback")))
    except ProviderError as exc:
        logger.warning("OAuth code exchange failed: %s", exc)
        return _frontend("/?error=auth_failed")

    user = crud.upsert_user(session=session, github_user=github_user)
    login = github_user.login.lower()

    developer = crud.get_developer_by_login(session=session, login=login)
    if developer is not None:
        if not developer.claimed:
            developer = crud.claim_developer(session=session, developer=developer, user=user)
        referrer = crud.apply_referral(
            session=session, developer=developer, ref=state_data.get("ref")
        )
        if referrer is not None:
            check_achievements(session, referrer)
        check_achievements(session, developer)

    if state_data.get("next") == "/shop" and developer is not None:
        response = _frontend(f"/shop/{quote(login)}")
    else:
        response = _frontend(f"/?user={quote(login)}")

    token = create_access_token(
        user.id, expires_delta=timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    response.set_cookie(
        settings.SESSION_COOKIE_NAME,
        token,
        max_age=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        httponly=True,
        secure=settings.ENVIRONMENT != "local",
        samesite="lax",
    )
    return response


@router.post("/logout")
def logout() -> RedirectResponse:
    response = _frontend("/")
    response.delete_cookie(settings.SESSION_COOKIE_NAME)
    return response
