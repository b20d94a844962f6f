from fastapi import APIRouter

from video_hub.api import live, videos

api_router = APIRouter()
api_router.include_router(videos.router, prefix="/api", tags=["videos"])
api_router.include_router(live.router, tags=["live"])
