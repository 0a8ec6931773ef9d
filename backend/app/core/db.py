import logging

from sqlmodel import Session, SQLModel, create_engine, select

from app.city.achievements import ACHIEVEMENT_CATALOG
from app.city.items import ITEM_CATALOG
from app.core.config import settings
from app.models import Achievement, Item

logger = logging.getLogger(__name__)

engine = create_engine(str(settings.SQLALCHEMY_DATABASE_URI), pool_pre_ping=True)


def init_db(session: Session, *, create_tables: bool = False) -> None:
    """Create tables if asked, then seed the item and achievement catalogs.

    Seeding only inserts ids that are missing, so running it again never
    overwrites prices or thresholds edited in the database.
    """
    if create_tables:
        SQLModel.metadata.create_all(session.get_bind())

    existing_items = set(session.exec(select(Item.id)).all())
    new_items = [Item(**row) for row in ITEM_CATALOG if row["id"] not in existing_items]
    session.add_all(new_items)
    # Achievements reference reward items
    session.flush()

    existing_achievements = set(session.exec(select(Achievement.id)).all())
    new_achievements = [
        Achievement(**row)
        for row in ACHIEVEMENT_CATALOG
        if row["id"] not in existing_achievements
    ]
    session.add_all(new_achievements)
    session.commit()

    if new_items or new_achievements:
        logger.info(
            "Seeded %s items and %s achievements", len(new_items), len(new_achievements)
        )
