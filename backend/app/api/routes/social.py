import uuid
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from sqlmodel import Session
from sse_starlette.sse import EventSourceResponse

from app.api.deps import CurrentDeveloper, CurrentUser, get_current_developer, get_db
from app.city.presence import presence_hub
from app.city.rate_limit import rate_limiter
from app.city.social import SocialError, feed_page, give_kudos, leaderboard_position, record_visit
from app.models import FeedPage, KudosRequest, LeaderboardPosition, VisitRequest

router = APIRouter(tags=["social"])


@router.post("/interactions/kudos")
def kudos(
    *,
    session: Session = Depends(get_db),
    current_user: CurrentUser,
    kudos_in: KudosRequest,
) -> Any:
    if not rate_limiter.hit(f"kudos:{current_user.id}", 1, 1):
        raise HTTPException(status_code=429, detail="Too fast")
    giver = get_current_developer(session, current_user)
    try:
        give_kudos(session, giver, kudos_in.receiver_login)
    except SocialError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.detail)
    return {"ok": True}


@router.post("/interactions/visit")
def visit(
    *,
    session: Session = Depends(get_db),
    developer: CurrentDeveloper,
    visit_in: VisitRequest,
) -> Any:
    try:
        counted = record_visit(session, developer, visit_in.building_login)
    except SocialError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.detail)
    return {"ok": True, "counted": counted}


@router.get("/feed", response_model=FeedPage)
def read_feed(
    response: Response,
    session: Session = Depends(get_db),
    limit: int = 20,
    before: uuid.UUID | None = None,
) -> Any:
    response.headers["Cache-Control"] = "public, s-maxage=30, stale-while-revalidate=60"
    return feed_page(session, limit, before)


@router.get("/leaderboard-position", response_model=LeaderboardPosition)
def read_leaderboard_position(
    login: str,
    response: Response,
    session: Session = Depends(get_db),
    tab: str = "contributors",
) -> Any:
    try:
        position = leaderboard_position(session, tab, login)
    except SocialError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.detail)
    response.headers["Cache-Control"] = "public, s-maxage=300, stale-while-revalidate=600"
    return position


@router.get("/presence")
def read_presence() -> Any:
    return {"count": presence_hub.count}


@router.get("/presence/stream")
async def presence_stream(request: Request) -> EventSourceResponse:
    return EventSourceResponse(presence_hub.stream(request.is_disconnected))
