from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy import update
from sqlmodel import Session, col, select

from app.api.deps import CurrentDeveloper, get_db
from app.models import (
    Achievement,
    AchievementsPublic,
    AchievementStatus,
    DeveloperAchievement,
)

router = APIRouter(prefix="/achievements", tags=["achievements"])


@router.post("/seen")
def mark_achievements_seen(
    *,
    session: Session = Depends(get_db),
    developer: CurrentDeveloper,
) -> Any:
    result = session.execute(
        update(DeveloperAchievement)
        .where(
            col(DeveloperAchievement.developer_id) == developer.id,
            col(DeveloperAchievement.seen).is_(False),
        )
        .values(seen=True)
    )
    session.commit()
    return {"ok": True, "marked": result.rowcount or 0}


@router.get("/{developer_id}", response_model=AchievementsPublic)
def read_achievements(
    developer_id: str, response: Response, session: Session = Depends(get_db)
) -> Any:
    if not developer_id.isdigit():
        raise HTTPException(status_code=400, detail="Invalid developer ID")

    catalog = session.exec(select(Achievement).order_by(Achievement.sort_order)).all()
    unlocked = {
        row.achievement_id: row
        for row in session.exec(
            select(DeveloperAchievement).where(
                DeveloperAchievement.developer_id == int(developer_id)
            )
        ).all()
    }
    response.headers["Cache-Control"] = "public, s-maxage=60, stale-while-revalidate=120"
    return AchievementsPublic(
        achievements=[
            AchievementStatus.model_validate(
                achievement,
                update={
                    "unlocked": achievement.id in unlocked,
                    "unlocked_at": unlocked[achievement.id].unlocked_at
                    if achievement.id in unlocked
                    else None,
                    "seen": unlocked[achievement.id].seen if achievement.id in unlocked else False,
                },
            )
            for achievement in catalog
        ]
    )
