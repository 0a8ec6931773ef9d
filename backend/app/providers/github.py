"""GitHub OAuth web flow: authorize URL, code exchange, user lookup."""
import logging
from typing import Any
from urllib.parse import urlencode

import httpx
from pydantic import BaseModel
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from app.core.config import settings
from app.providers import ProviderError

logger = logging.getLogger(__name__)

_retry = retry(
    retry=retry_if_exception_type(httpx.TransportError),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
    reraise=True,
)


class GitHubUser(BaseModel):
    id: int
    login: str
    email: str | None = None
    avatar_url: str | None = None
    name: str | None = None


def authorize_url(state: str, redirect_uri: str) -> str:
    query = urlencode(
        {
            "client_id": settings.GITHUB_CLIENT_ID,
            "redirect_uri": redirect_uri,
            "scope": "read:user user:email",
            "state": state,
        }
    )
    return f"{settings.GITHUB_OAUTH_URL}/authorize?{query}"


@_retry
def _post_token(code: str, redirect_uri: str) -> dict[str, Any]:
    with httpx.Client(timeout=15.0) as client:
        response = client.post(
            f"{settings.GITHUB_OAUTH_URL}/access_token",
            data={
                "client_id": settings.GITHUB_CLIENT_ID,
                "client_secret": settings.GITHUB_CLIENT_SECRET,
                "code": code,
                "redirect_uri": redirect_uri,
            },
            headers={"Accept": "application/json"},
        )
        response.raise_for_status()
        return response.json()


@_retry
def _get_user(access_token: str) -> dict[str, Any]:
    with httpx.Client(timeout=15.0) as client:
        response = client.get(
            f"{settings.GITHUB_API_URL}/user",
            headers={
                "Authorization": f"Bearer {access_token}",
                "Accept": "application/vnd.github+json",
            },
        )
        response.raise_for_status()
        return response.json()


def exchange_code(code: str, redirect_uri: str) -> GitHubUser:
    """Trade an OAuth code for the GitHub account that granted it."""
    if not settings.GITHUB_CLIENT_ID or not settings.GITHUB_CLIENT_SECRET:
        raise ProviderError("github", "OAuth client is not configured")
    try:
        token = _post_token(code, redirect_uri)
        access_token = token.get("access_token")
        if not access_token:
            raise ProviderError("github", token.get("error_description") or "code exchange failed")
        return GitHubUser.model_validate(_get_user(access_token))
    except httpx.HTTPError as exc:
        logger.warning("GitHub OAuth request failed: %s", exc)
        raise ProviderError("github", "request failed") from exc
