from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session

from app import crud
from app.api.deps import CurrentDeveloper, OptionalUser, get_db
from app.city.items import (
    BILLBOARD_ITEM,
    DEFAULT_RAID_TAG,
    DEFAULT_RAID_VEHICLE,
    RAID_TAG_ITEMS,
    RAID_VEHICLE_ITEMS,
    ZONE_ITEMS,
    owned_item_ids,
)
from app.city.raids import raid_loadout
from app.city.shop import completed_billboards
from app.city.sky_ads import is_hex_color
from app.models import (
    BillboardUpdate,
    CustomColorUpdate,
    LoadoutUpdate,
    RaidLoadoutUpdate,
)

router = APIRouter(tags=["loadout"])


@router.get("/loadout")
def read_loadout(developer_id: int, session: Session = Depends(get_db)) -> Any:
    loadout = crud.get_customization(session=session, developer_id=developer_id, item_id="loadout")
    return {"loadout": loadout.config if loadout else None}


@router.post("/loadout")
def update_loadout(
    *,
    session: Session = Depends(get_db),
    developer: CurrentDeveloper,
    loadout_in: LoadoutUpdate,
) -> Any:
    owned = set(owned_item_ids(session, developer.id))
    config: dict[str, str | None] = {}
    for zone, item_id in loadout_in.model_dump().items():
        if item_id is None:
            config[zone] = None
            continue
        if item_id not in ZONE_ITEMS[zone]:
            raise HTTPException(status_code=400, detail=f"{item_id} is not valid for zone {zone}")
        if item_id not in owned:
            raise HTTPException(status_code=403, detail=f"You don't own {item_id}")
        config[zone] = item_id

    crud.upsert_customization(
        session=session, developer_id=developer.id, item_id="loadout", config=config
    )
    return {"ok": True, "loadout": config}


@router.get("/raid/loadout")
def read_raid_loadout(
    *,
    session: Session = Depends(get_db),
    current_user: OptionalUser,
    developer_id: int | None = None,
) -> Any:
    if developer_id is None:
        if current_user is None:
            raise HTTPException(status_code=401, detail="Not authenticated")
        developer = crud.get_developer_by_login(session=session, login=current_user.github_login)
        if developer is None:
            return {"vehicle": DEFAULT_RAID_VEHICLE, "tag": DEFAULT_RAID_TAG}
        developer_id = developer.id
    return raid_loadout(session, developer_id)


@router.post("/raid/loadout")
def update_raid_loadout(
    *,
    session: Session = Depends(get_db),
    developer: CurrentDeveloper,
    loadout_in: RaidLoadoutUpdate,
) -> Any:
    owned = set(owned_item_ids(session, developer.id))
    config = raid_loadout(session, developer.id)
    changes = loadout_in.model_dump(exclude_unset=True)

    if "vehicle" in changes:
        vehicle = changes["vehicle"]
        if vehicle == DEFAULT_RAID_VEHICLE or (vehicle in RAID_VEHICLE_ITEMS and vehicle in owned):
            config["vehicle"] = vehicle
        else:
            raise HTTPException(status_code=403, detail="Vehicle not owned or invalid")
    if "tag" in changes:
        tag = changes["tag"]
        if tag == DEFAULT_RAID_TAG or (tag in RAID_TAG_ITEMS and tag in owned):
            config["tag"] = tag
        else:
            raise HTTPException(status_code=403, detail="Tag not owned or invalid")

    crud.upsert_customization(
        session=session, developer_id=developer.id, item_id="raid_loadout", config=config
    )
    return {"ok": True, **config}


@router.post("/customizations/custom_color")
def update_custom_color(
    *,
    session: Session = Depends(get_db),
    developer: CurrentDeveloper,
    color_in: CustomColorUpdate,
) -> Any:
    if not is_hex_color(color_in.color):
        raise HTTPException(status_code=400, detail="Color must be a #rrggbb hex value")
    if "custom_color" not in owned_item_ids(session, developer.id):
        raise HTTPException(status_code=403, detail="You don't own custom_color")
    crud.upsert_customization(
        session=session,
        developer_id=developer.id,
        item_id="custom_color",
        config={"color": color_in.color.lower()},
    )
    return {"ok": True, "color": color_in.color.lower()}


@router.post("/customizations/billboard")
def update_billboard(
    *,
    session: Session = Depends(get_db),
    developer: CurrentDeveloper,
    billboard_in: BillboardUpdate,
) -> Any:
    owned = completed_billboards(session, developer.id)
    if owned == 0:
        raise HTTPException(status_code=403, detail=f"You don't own {BILLBOARD_ITEM}")
    if len(billboard_in.images) > owned:
        raise HTTPException(
            status_code=400, detail=f"You own {owned} billboard slot(s)"
        )
    if any(not url.startswith("https://") for url in billboard_in.images):
        raise HTTPException(status_code=400, detail="Billboard images must be https URLs")
    crud.upsert_customization(
        session=session,
        developer_id=developer.id,
        item_id=BILLBOARD_ITEM,
        config={"images": billboard_in.images},
    )
    return {"ok": True, "images": billboard_in.images}
