"""Item catalog, customization zones and ownership helpers."""
from typing import Any

from sqlmodel import Session, col, func, or_, select

from app.models import Purchase

# Equippable items per customization zone
ZONE_ITEMS: dict[str, list[str]] = {
    "crown": ["flag", "helipad", "spire", "satellite_dish", "crown_item"],
    "roof": ["antenna_array", "rooftop_garden", "rooftop_fire", "pool_party"],
    "aura": ["neon_trim", "spotlight", "hologram_ring", "lightning_aura"],
}

RAID_VEHICLE_ITEMS = ["raid_helicopter", "raid_drone", "raid_rocket"]
RAID_TAG_ITEMS = ["tag_neon", "tag_fire", "tag_gold"]
DEFAULT_RAID_VEHICLE = "airplane"
DEFAULT_RAID_TAG = "default"

BILLBOARD_ITEM = "billboard"
FREE_CLAIM_ITEM = "flag"


def _item(
    id: str,
    category: str,
    name: str,
    description: str,
    usd: int,
    brl: int,
    *,
    zone: str | None = None,
    is_active: bool = True,
    metadata: dict[str, Any] | None = None,
) -> dict[str, Any]:
    return {
        "id": id,
        "category": category,
        "name": name,
        "description": description,
        "price_usd_cents": usd,
        "price_brl_cents": brl,
        "zone": zone,
        "is_active": is_active,
        "item_metadata": metadata or {},
    }


ITEM_CATALOG: list[dict[str, Any]] = [
    # Crown
    _item("flag", "identity", "Flag", "Custom flag on the rooftop", 100, 490, zone="crown"),
    _item("helipad", "structure", "Helipad", "Helicopter landing pad on top", 75, 390, zone="crown"),
    _item("spire", "structure", "Spire", "Empire State-style spire on top", 100, 490, zone="crown"),
    _item("satellite_dish", "structure", "Satellite Dish", "Dish listening to the stars", 100, 490, zone="crown"),
    _item("crown_item", "structure", "Crown", "A golden crown for the tallest egos", 150, 790, zone="crown"),
    # Roof
    _item("antenna_array", "structure", "Antenna Array", "Multiple antennas on the rooftop", 75, 390, zone="roof"),
    _item("rooftop_garden", "structure", "Rooftop Garden", "Green rooftop with trees", 75, 390, zone="roof"),
    _item("rooftop_fire", "effect", "Rooftop Fire", "Stylized flames on the rooftop", 100, 490, zone="roof"),
    _item("pool_party", "structure", "Pool Party", "Rooftop pool with lights", 150, 790, zone="roof"),
    # Aura
    _item("neon_trim", "effect", "Neon Trim", "Glowing trim along the building edges", 100, 490, zone="aura"),
    _item("spotlight", "effect", "Spotlight", "Spotlight beam pointing to the sky", 100, 490, zone="aura"),
    _item("hologram_ring", "effect", "Hologram Ring", "Rotating holographic ring", 150, 790, zone="aura"),
    _item("lightning_aura", "effect", "Lightning Aura", "Crackling lightning around the building", 150, 790, zone="aura"),
    # Identity
    _item("custom_color", "identity", "Custom Color", "Choose your building color", 100, 490,
          metadata={"default_color": "#c8e64a"}),
    _item("billboard", "identity", "Billboard", "Logo or image on the building side", 200, 990),
    _item("led_banner", "identity", "LED Banner", "Scrolling LED banner on the facade", 150, 790),
    # Legacy
    _item("neon_outline", "effect", "Neon Outline", "Glowing outline on building edges", 100, 490, is_active=False),
    _item("particle_aura", "effect", "Particle Aura", "Floating particles around the building", 150, 790, is_active=False),
    # Raid vehicles and tags (cosmetic)
    _item("raid_helicopter", "effect", "Helicopter", "Raid vehicle: helicopter", 299, 1490,
          metadata={"type": "raid_vehicle"}),
    _item("raid_drone", "effect", "Stealth Drone", "Raid vehicle: drone", 199, 990,
          metadata={"type": "raid_vehicle"}),
    _item("raid_rocket", "effect", "Rocket", "Raid vehicle: rocket", 399, 1990,
          metadata={"type": "raid_vehicle"}),
    _item("tag_neon", "effect", "Neon Tag", "Neon-colored raid graffiti", 149, 790,
          metadata={"type": "raid_tag"}),
    _item("tag_fire", "effect", "Fire Tag", "Fire-animated raid graffiti", 199, 990,
          metadata={"type": "raid_tag"}),
    _item("tag_gold", "effect", "Gold Tag", "Golden raid graffiti", 249, 1290,
          metadata={"type": "raid_tag"}),
    # Consumable attack boosters, one raid each
    _item("raid_boost_small", "consumable", "War Paint", "+5 attack for 1 raid", 99, 490,
          metadata={"type": "raid_boost", "bonus": 5}),
    _item("raid_boost_medium", "consumable", "Battle Armor", "+10 attack for 1 raid", 179, 890,
          metadata={"type": "raid_boost", "bonus": 10}),
    _item("raid_boost_large", "consumable", "EMP Device", "+20 attack for 1 raid", 299, 1490,
          metadata={"type": "raid_boost", "bonus": 20}),
]


def is_consumable(item_id: str) -> bool:
    return item_id.startswith("raid_boost_")


def is_stackable(item_id: str) -> bool:
    """Items that may be owned more than once."""
    return item_id == BILLBOARD_ITEM or is_consumable(item_id)


def owned_item_ids(session: Session, developer_id: int) -> list[str]:
    """Completed purchases kept by the developer plus gifts they received."""
    statement = select(Purchase.item_id).where(
        Purchase.status == "completed",
        or_(
            (Purchase.developer_id == developer_id) & col(Purchase.gifted_to).is_(None),
            Purchase.gifted_to == developer_id,
        ),
    )
    return list(session.exec(statement).all())


def count_gifts(session: Session, developer_id: int, direction: str) -> int:
    column = Purchase.developer_id if direction == "sent" else Purchase.gifted_to
    statement = select(func.count()).select_from(Purchase).where(
        column == developer_id,
        Purchase.status == "completed",
        col(Purchase.gifted_to).is_not(None),
    )
    return session.exec(statement).one()
