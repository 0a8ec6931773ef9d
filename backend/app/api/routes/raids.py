from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlmodel import Session

from app.api.deps import CurrentDeveloper, get_db
from app.city.raids import RaidError, execute_raid, raid_history
from app.models import RaidHistory, RaidRequest, RaidResult

router = APIRouter(prefix="/raid", tags=["raids"])


@router.post("", response_model=RaidResult)
def raid(
    *,
    session: Session = Depends(get_db),
    developer: CurrentDeveloper,
    raid_in: RaidRequest,
) -> Any:
    try:
        return execute_raid(
            session, developer, raid_in.target_login, boost_item_id=raid_in.boost_item_id
        )
    except RaidError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.detail)


@router.get("/history", response_model=RaidHistory)
def read_raid_history(
    developer_id: int,
    session: Session = Depends(get_db),
    limit: int = Query(default=20, ge=1),
    offset: int = Query(default=0),
) -> Any:
    return raid_history(session, developer_id, limit=min(50, limit), offset=max(0, offset))
