import uuid
from datetime import date, datetime, timezone
from typing import Any

from pydantic import BaseModel
from sqlalchemy import JSON, CheckConstraint, Column, DateTime, Index, UniqueConstraint, text
from sqlmodel import Field, SQLModel


def get_datetime_utc() -> datetime:
    return datetime.now(timezone.utc)


# OAuth identity of a signed-in GitHub account
class User(SQLModel, table=True):
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    github_id: int = Field(unique=True, index=True)
    github_login: str = Field(index=True, max_length=39)
    email: str | None = Field(default=None, max_length=255)
    avatar_url: str | None = Field(default=None, max_length=500)
    created_at: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
    )


# Shared properties of a building
class DeveloperBase(SQLModel):
    github_login: str = Field(unique=True, index=True, max_length=39)
    name: str | None = Field(default=None, max_length=255)
    avatar_url: str | None = Field(default=None, max_length=500)
    contributions: int = 0
    contributions_total: int = 0
    public_repos: int = 0
    total_stars: int = 0
    followers: int = 0
    primary_language: str | None = Field(default=None, max_length=100)
    rank: int | None = None


class Developer(DeveloperBase, table=True):
    __tablename__ = "developers"  # type: ignore

    id: int | None = Field(default=None, primary_key=True)
    claimed: bool = False
    claimed_by: uuid.UUID | None = Field(default=None, foreign_key="user.id")
    claimed_at: datetime | None = Field(
        default=None,
        sa_type=DateTime(timezone=True),  # type: ignore
    )
    fetch_priority: int = 0
    referred_by: str | None = Field(default=None, max_length=39)
    referral_count: int = 0
    kudos_count: int = 0
    visit_count: int = 0
    raid_xp: int = 0
    current_week_contributions: int = 0
    current_week_kudos_given: int = 0
    current_week_kudos_received: int = 0
    created_at: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
    )


class BuildingDimensions(SQLModel):
    width: int
    depth: int
    height: float
    billboard_slots: int


class Item(SQLModel, table=True):
    __tablename__ = "items"  # type: ignore

    id: str = Field(primary_key=True, max_length=64)
    category: str = Field(max_length=32)  # effect | structure | identity | consumable
    name: str = Field(max_length=255)
    description: str | None = None
    price_usd_cents: int
    price_brl_cents: int
    is_active: bool = True
    zone: str | None = Field(default=None, max_length=16)
    # "metadata" is reserved on declarative classes
    item_metadata: dict = Field(
        default_factory=dict, sa_column=Column("metadata", JSON, nullable=False)
    )
    created_at: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
    )


class ItemPublic(BaseModel):
    id: str
    category: str
    name: str
    description: str | None = None
    price_usd_cents: int
    price_brl_cents: int
    zone: str | None = None
    metadata: dict[str, Any] = {}


class ItemsPublic(BaseModel):
    items: list[ItemPublic]


# Billboards and raid boosters are bought more than once; gifts are tracked
# per recipient in application code.
UNIQUE_COMPLETED_PURCHASE = text(
    "status = 'completed' AND gifted_to IS NULL "
    "AND item_id <> 'billboard' AND item_id NOT LIKE 'raid_boost_%'"
)


class Purchase(SQLModel, table=True):
    __tablename__ = "purchases"  # type: ignore
    __table_args__ = (
        Index(
            "idx_purchases_unique_completed",
            "developer_id",
            "item_id",
            unique=True,
            postgresql_where=UNIQUE_COMPLETED_PURCHASE,
            sqlite_where=UNIQUE_COMPLETED_PURCHASE,
        ),
        Index("idx_purchases_dev", "developer_id", "status"),
    )

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    developer_id: int = Field(foreign_key="developers.id", nullable=False)
    item_id: str = Field(foreign_key="items.id", nullable=False)
    provider: str = Field(max_length=32)  # stripe | abacatepay | achievement | free_claim
    provider_tx_id: str | None = Field(default=None, unique=True)
    amount_cents: int
    currency: str = Field(max_length=3)
    status: str = Field(default="pending")  # pending, completed, expired, refunded, consumed
    gifted_to: int | None = Field(default=None, foreign_key="developers.id")
    created_at: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
    )


class CheckoutRequest(SQLModel):
    item_id: str = Field(min_length=1, max_length=64)
    provider: str
    currency: str | None = None
    gift_to: str | None = Field(default=None, max_length=39)


class CheckoutStatus(SQLModel):
    status: str


class DeveloperCustomization(SQLModel, table=True):
    __tablename__ = "developer_customizations"  # type: ignore
    __table_args__ = (UniqueConstraint("developer_id", "item_id"),)

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    developer_id: int = Field(foreign_key="developers.id", nullable=False)
    # Catalog item id, or the pseudo ids "loadout" / "raid_loadout"
    item_id: str = Field(max_length=64)
    config: dict = Field(default_factory=dict, sa_type=JSON)
    updated_at: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
    )


class LoadoutUpdate(SQLModel):
    crown: str | None = None
    roof: str | None = None
    aura: str | None = None


class RaidLoadoutUpdate(SQLModel):
    vehicle: str | None = None
    tag: str | None = None


class CustomColorUpdate(SQLModel):
    color: str


class BillboardUpdate(SQLModel):
    images: list[str]


class Achievement(SQLModel, table=True):
    __tablename__ = "achievements"  # type: ignore

    id: str = Field(primary_key=True, max_length=64)
    # commits | repos | stars | social | kudos | gifts_sent | gifts_received | raid
    category: str = Field(max_length=32)
    name: str = Field(max_length=255)
    description: str | None = None
    threshold: int
    tier: str = Field(max_length=16)  # bronze, silver, gold, diamond
    reward_type: str = Field(max_length=32)  # unlock_item | exclusive_badge
    reward_item_id: str | None = Field(default=None, foreign_key="items.id")
    sort_order: int = 0


class DeveloperAchievement(SQLModel, table=True):
    __tablename__ = "developer_achievements"  # type: ignore
    __table_args__ = (UniqueConstraint("developer_id", "achievement_id"),)

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    developer_id: int = Field(foreign_key="developers.id", nullable=False, index=True)
    achievement_id: str = Field(foreign_key="achievements.id", nullable=False)
    unlocked_at: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
    )
    seen: bool = False


class AchievementStatus(SQLModel):
    id: str
    category: str
    name: str
    description: str | None = None
    threshold: int
    tier: str
    reward_type: str
    reward_item_id: str | None = None
    sort_order: int
    unlocked: bool
    unlocked_at: datetime | None = None
    seen: bool


class AchievementsPublic(SQLModel):
    achievements: list[AchievementStatus]


class DeveloperKudos(SQLModel, table=True):
    __tablename__ = "developer_kudos"  # type: ignore

    giver_id: int = Field(foreign_key="developers.id", primary_key=True)
    receiver_id: int = Field(foreign_key="developers.id", primary_key=True)
    given_date: date = Field(primary_key=True)
    created_at: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
    )


class KudosRequest(SQLModel):
    receiver_login: str = Field(min_length=1, max_length=39)


class BuildingVisit(SQLModel, table=True):
    __tablename__ = "building_visits"  # type: ignore

    visitor_id: int = Field(foreign_key="developers.id", primary_key=True)
    building_id: int = Field(foreign_key="developers.id", primary_key=True)
    visit_date: date = Field(primary_key=True)
    created_at: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
    )


class VisitRequest(SQLModel):
    building_login: str = Field(min_length=1, max_length=39)


class ActivityFeed(SQLModel, table=True):
    __tablename__ = "activity_feed"  # type: ignore

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    # referral, kudos_given, item_purchased, gift_sent, achievement_unlocked, raid
    event_type: str = Field(max_length=32)
    actor_id: int | None = Field(default=None, foreign_key="developers.id")
    target_id: int | None = Field(default=None, foreign_key="developers.id")
    event_metadata: dict = Field(
        default_factory=dict, sa_column=Column("metadata", JSON, nullable=False)
    )
    created_at: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
        index=True,
    )


class FeedDeveloper(BaseModel):
    login: str
    avatar_url: str | None = None


class FeedEvent(BaseModel):
    id: uuid.UUID
    event_type: str
    actor_id: int | None = None
    target_id: int | None = None
    metadata: dict[str, Any] = {}
    created_at: datetime | None = None
    actor: FeedDeveloper | None = None
    target: FeedDeveloper | None = None


class FeedPage(BaseModel):
    events: list[FeedEvent]
    has_more: bool


class Raid(SQLModel, table=True):
    __tablename__ = "raids"  # type: ignore
    __table_args__ = (
        CheckConstraint("attacker_id != defender_id", name="raids_no_self"),
        Index("idx_raids_pair_week", "attacker_id", "defender_id", "created_at"),
    )

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    attacker_id: int = Field(foreign_key="developers.id", nullable=False, index=True)
    defender_id: int = Field(foreign_key="developers.id", nullable=False, index=True)
    attack_score: int
    defense_score: int
    success: bool
    attack_breakdown: dict = Field(default_factory=dict, sa_type=JSON)
    defense_breakdown: dict = Field(default_factory=dict, sa_type=JSON)
    attacker_vehicle: str = Field(default="airplane", max_length=64)
    attacker_tag_style: str = Field(default="default", max_length=64)
    created_at: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
    )


class RaidTag(SQLModel, table=True):
    __tablename__ = "raid_tags"  # type: ignore
    __table_args__ = (
        # Only one active tag per building
        Index(
            "idx_raid_tags_building_active",
            "building_id",
            unique=True,
            postgresql_where=text("active"),
            sqlite_where=text("active"),
        ),
    )

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    raid_id: uuid.UUID = Field(foreign_key="raids.id", nullable=False, ondelete="CASCADE")
    building_id: int = Field(foreign_key="developers.id", nullable=False)
    attacker_id: int = Field(foreign_key="developers.id", nullable=False)
    attacker_login: str = Field(max_length=39)
    tag_style: str = Field(default="default", max_length=64)
    active: bool = True
    expires_at: datetime = Field(sa_type=DateTime(timezone=True), index=True)  # type: ignore
    created_at: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
    )


class RaidTagPublic(SQLModel):
    attacker_login: str
    tag_style: str
    expires_at: datetime


class DeveloperPublic(DeveloperBase):
    id: int
    claimed: bool
    referral_count: int
    kudos_count: int
    visit_count: int
    raid_xp: int
    dimensions: BuildingDimensions
    owned_items: list[str]
    loadout: dict[str, Any] | None = None
    raid_loadout: dict[str, str]
    active_tag: RaidTagPublic | None = None




class RaidRequest(SQLModel):
    target_login: str = Field(min_length=1, max_length=39)
    boost_item_id: str | None = None


class RaidResult(SQLModel):
    raid_id: uuid.UUID
    success: bool
    attack_score: int
    defense_score: int
    attack_breakdown: dict[str, int]
    defense_breakdown: dict[str, int]
    xp_gained: int
    tag: RaidTagPublic | None = None


class RaidHistoryEntry(SQLModel):
    id: uuid.UUID
    attacker_login: str
    defender_login: str
    success: bool
    created_at: datetime | None = None


class RaidHistory(SQLModel):
    raids: list[RaidHistoryEntry]
    total: int
    active_tag: RaidTagPublic | None = None


class SkyAd(SQLModel, table=True):
    __tablename__ = "sky_ads"  # type: ignore

    id: str = Field(default_factory=lambda: uuid.uuid4().hex, primary_key=True)
    text: str = Field(max_length=80)
    brand: str | None = Field(default=None, max_length=80)
    description: str | None = Field(default=None, max_length=500)
    color: str = Field(max_length=7)
    bg_color: str = Field(max_length=7)
    link: str | None = Field(default=None, max_length=500)
    # plane | blimp | billboard | rooftop_sign | led_wrap
    vehicle: str = Field(max_length=32)
    priority: int = 50
    plan_id: str | None = Field(default=None, max_length=64)
    purchaser_email: str | None = Field(default=None, max_length=255)
    provider_tx_id: str | None = Field(default=None, unique=True)
    tracking_token: str = Field(unique=True, index=True, max_length=64)
    active: bool = False
    starts_at: datetime | None = Field(default=None, sa_type=DateTime(timezone=True))  # type: ignore
    ends_at: datetime | None = Field(default=None, sa_type=DateTime(timezone=True))  # type: ignore
    created_at: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
    )


class SkyAdPublic(SQLModel):
    id: str
    text: str
    brand: str | None = None
    description: str | None = None
    color: str
    bg_color: str
    link: str | None = None
    vehicle: str
    priority: int


class SkyAdsPublic(SQLModel):
    plane_ads: list[SkyAdPublic]
    blimp_ads: list[SkyAdPublic]
    building_ads: list[SkyAdPublic]


class SkyAdCheckoutRequest(SQLModel):
    plan_id: str
    text: str = Field(min_length=1, max_length=80)
    color: str
    bg_color: str
    email: str = Field(min_length=3, max_length=255)


class SkyAdSetupUpdate(SQLModel):
    brand: str | None = Field(default=None, max_length=80)
    description: str | None = Field(default=None, max_length=500)
    link: str | None = Field(default=None, max_length=500)


class SkyAdEvent(SQLModel, table=True):
    __tablename__ = "sky_ad_events"  # type: ignore

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    ad_id: str = Field(index=True, max_length=64)
    event_type: str = Field(max_length=16)  # impression | click | cta_click
    ip_hash: str = Field(max_length=64)
    user_agent: str | None = Field(default=None, max_length=256)
    github_login: str | None = Field(default=None, max_length=39)
    created_at: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
    )


class SkyAdTrackRequest(SQLModel):
    # Loosely typed; unknown values are filtered rather than rejected
    ad_id: Any = None
    event_type: Any = None
    event_types: Any = None
    github_login: Any = None


class LeaderboardPosition(SQLModel):
    github_login: str
    name: str | None = None
    avatar_url: str | None = None
    position: int | None = None
    metricValue: str


# Contents of JWT token
class TokenPayload(SQLModel):
    sub: str | None = None

