import itertools
from collections.abc import Callable, Generator
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from app.api.deps import get_db
from app.city.rate_limit import rate_limiter
from app.core.db import init_db
from app.core.security import create_access_token
from app.main import app
from app.models import Developer, Purchase, User

_github_ids = itertools.count(1000)


@pytest.fixture
def session() -> Generator[Session, None, None]:
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    with Session(engine) as session:
        init_db(session)
        yield session
    SQLModel.metadata.drop_all(engine)


@pytest.fixture
def client(session: Session) -> Generator[TestClient, None, None]:
    def override_get_db() -> Generator[Session, None, None]:
        yield session

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def reset_rate_limits() -> None:
    rate_limiter.reset()


@pytest.fixture
def make_developer(session: Session) -> Callable[..., Developer]:
    def _make(login: str, *, claimed: bool = False, **fields) -> Developer:
        developer = Developer(github_login=login.lower(), **fields)
        if claimed:
            user = User(github_id=next(_github_ids), github_login=login)
            session.add(user)
            session.flush()
            developer.claimed = True
            developer.claimed_by = user.id
        session.add(developer)
        session.commit()
        session.refresh(developer)
        return developer

    return _make


@pytest.fixture
def make_user(session: Session) -> Callable[..., User]:
    def _make(login: str, github_id: int = 1, email: str | None = None) -> User:
        user = User(github_id=github_id, github_login=login, email=email)
        session.add(user)
        session.commit()
        session.refresh(user)
        return user

    return _make


@pytest.fixture
def auth_headers(session: Session) -> Callable[[Developer | User], dict[str, str]]:
    def _headers(owner: Developer | User) -> dict[str, str]:
        user_id = owner.claimed_by if isinstance(owner, Developer) else owner.id
        token = create_access_token(user_id, expires_delta=timedelta(minutes=5))
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
def grant(session: Session) -> Callable[..., Purchase]:
    """Give a developer a completed purchase of an item."""

    def _grant(developer: Developer, item_id: str, *, gifted_to: int | None = None) -> Purchase:
        purchase = Purchase(
            developer_id=developer.id,
            item_id=item_id,
            provider="stripe",
            amount_cents=100,
            currency="usd",
            status="completed",
            gifted_to=gifted_to,
        )
        session.add(purchase)
        session.commit()
        session.refresh(purchase)
        return purchase

    return _grant
