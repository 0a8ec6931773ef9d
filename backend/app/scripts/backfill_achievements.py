"""Run the achievement check for every developer, in rank order."""
import logging

from sqlmodel import Session, col, select

from app.city.achievements import check_achievements
from app.core.config import settings
from app.core.db import engine
from app.models import Developer

logger = logging.getLogger(__name__)


def backfill(session: Session) -> int:
    """Returns the number of achievements unlocked."""
    developers = session.exec(
        select(Developer).order_by(col(Developer.rank).is_(None), Developer.rank, Developer.id)
    ).all()
    logger.info("Checking achievements for %s developers", len(developers))

    unlocked = 0
    for developer in developers:
        new = check_achievements(session, developer)
        if new:
            unlocked += len(new)
            logger.info("  @%s: %s", developer.github_login, ", ".join(a.id for a in new))
    logger.info("Backfill done: %s achievements unlocked", unlocked)
    return unlocked


def main() -> None:
    logging.basicConfig(level=settings.LOG_LEVEL)
    with Session(engine) as session:
        backfill(session)


if __name__ == "__main__":
    main()
