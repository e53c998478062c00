"""API v1 router aggregating all endpoints."""

from fastapi import APIRouter

from assetgate.api.v1 import assets, media

api_router = APIRouter()

api_router.include_router(media.router, prefix="/media", tags=["media"])
api_router.include_router(assets.router, prefix="/assets", tags=["assets"])
