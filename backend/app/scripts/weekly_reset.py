"""Weekly maintenance: expire raid tags and reset the weekly counters.

Meant to run from a scheduler shortly after Monday 00:00 UTC.
"""
import logging

from sqlmodel import Session

from app.city.raids import expire_tags, reset_weekly_counters
from app.core.config import settings
from app.core.db import engine

logger = logging.getLogger(__name__)


def main() -> None:
    logging.basicConfig(level=settings.LOG_LEVEL)
    with Session(engine) as session:
        expired = expire_tags(session)
        logger.info("Expired %s raid tags", expired)
        reset_weekly_counters(session)


if __name__ == "__main__":
    main()
