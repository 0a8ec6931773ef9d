from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session

from app import crud
from app.api.deps import CurrentUser, get_db
from app.models import DeveloperPublic

router = APIRouter(prefix="/developers", tags=["developers"])


@router.post("/claim", response_model=DeveloperPublic)
def claim_building(
    *,
    session: Session = Depends(get_db),
    current_user: CurrentUser,
) -> Any:
    developer = crud.get_developer_by_login(session=session, login=current_user.github_login)
    if not developer:
        raise HTTPException(status_code=404, detail="Building not found")
    if developer.claimed:
        raise HTTPException(status_code=409, detail="Building already claimed")
    developer = crud.claim_developer(session=session, developer=developer, user=current_user)
    return crud.developer_public(session=session, developer=developer)


@router.get("/{login}", response_model=DeveloperPublic)
def read_developer(login: str, session: Session = Depends(get_db)) -> Any:
    developer = crud.get_developer_by_login(session=session, login=login)
    if not developer:
        raise HTTPException(status_code=404, detail="Developer not found")
    return crud.developer_public(session=session, developer=developer)
