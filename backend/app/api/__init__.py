from fastapi import APIRouter

from .stitch import router as stitch_router

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(stitch_router, prefix="/stitch", tags=["stitch"])
