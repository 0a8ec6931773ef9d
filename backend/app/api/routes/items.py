from typing import Any

from fastapi import APIRouter, Depends, Response
from sqlmodel import Session, col, select

from app.api.deps import get_db
from app.models import Item, ItemPublic, ItemsPublic

router = APIRouter(tags=["shop"])


@router.get("/items", response_model=ItemsPublic)
def read_items(response: Response, session: Session = Depends(get_db)) -> Any:
    items = session.exec(
        select(Item)
        .where(col(Item.is_active).is_(True))
        .order_by(Item.category, Item.price_usd_cents)
    ).all()
    response.headers["Cache-Control"] = "public, s-maxage=3600, stale-while-revalidate=7200"
    return ItemsPublic(
        items=[
            ItemPublic(
                id=item.id,
                category=item.category,
                name=item.name,
                description=item.description,
                price_usd_cents=item.price_usd_cents,
                price_brl_cents=item.price_brl_cents,
                zone=item.zone,
                metadata=item.item_metadata,
            )
            for item in items
        ]
    )
