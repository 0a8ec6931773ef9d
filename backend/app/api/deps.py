import uuid
from collections.abc import Generator
from typing import Annotated

import jwt
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import ValidationError
from sqlmodel import Session, select

from app.core.config import settings
from app.core.db import engine
from app.core.security import decode_access_token
from app.models import Developer, TokenPayload, User

bearer_scheme = HTTPBearer(auto_error=False)


def get_db() -> Generator[Session, None, None]:
    with Session(engine) as session:
        yield session


SessionDep = Annotated[Session, Depends(get_db)]


def _session_token(
    request: Request, credentials: HTTPAuthorizationCredentials | None
) -> str | None:
    if credentials is not None:
        return credentials.credentials
    return request.cookies.get(settings.SESSION_COOKIE_NAME)


def get_optional_user(
    request: Request,
    session: SessionDep,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
) -> User | None:
    token = _session_token(request, credentials)
    if not token:
        return None
    try:
        token_data = TokenPayload(**decode_access_token(token))
        user_id = uuid.UUID(token_data.sub or "")
    except (jwt.InvalidTokenError, ValidationError, ValueError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
        )
    return session.get(User, user_id)


def get_current_user(
    user: Annotated[User | None, Depends(get_optional_user)],
) -> User:
    if not user:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return user


OptionalUser = Annotated[User | None, Depends(get_optional_user)]
CurrentUser = Annotated[User, Depends(get_current_user)]


def get_current_developer(session: SessionDep, current_user: CurrentUser) -> Developer:
    """The building the signed-in user has claimed."""
    login = (current_user.github_login or "").lower()
    if not login:
        raise HTTPException(status_code=400, detail="No GitHub login found")
    developer = session.exec(select(Developer).where(Developer.github_login == login)).first()
    if not developer or not developer.claimed:
        raise HTTPException(status_code=403, detail="You must claim your building first")
    if developer.claimed_by != current_user.id:
        raise HTTPException(status_code=403, detail="This building is not yours")
    return developer


CurrentDeveloper = Annotated[Developer, Depends(get_current_developer)]


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return request.headers.get("x-real-ip") or (
        request.client.host if request.client else "unknown"
    )
