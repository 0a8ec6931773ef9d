import logging

from sqlmodel import Session

from app.core.db import engine, init_db

logger = logging.getLogger(__name__)


def init() -> None:
    with Session(engine) as session:
        init_db(session, create_tables=True)


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    logger.info("Creating initial data")
    init()
    logger.info("Initial data created")


if __name__ == "__main__":
    main()
