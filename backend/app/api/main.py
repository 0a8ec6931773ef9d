from fastapi import APIRouter

from app.api.routes import (
    achievements,
    auth,
    checkout,
    developers,
    items,
    loadout,
    raids,
    sky_ads,
    social,
    utils,
    webhooks,
)

api_router = APIRouter()
api_router.include_router(auth.router)
api_router.include_router(developers.router)
api_router.include_router(items.router)
api_router.include_router(checkout.router)
api_router.include_router(webhooks.router)
api_router.include_router(loadout.router)
api_router.include_router(raids.router)
api_router.include_router(achievements.router)
api_router.include_router(social.router)
api_router.include_router(sky_ads.router)
api_router.include_router(utils.router)
