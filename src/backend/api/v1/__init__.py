"""
API v1 router aggregating all endpoints.
"""

from fastapi import APIRouter

from api.v1.admin_videos import router as admin_videos_router
from api.v1.verifications import router as verifications_router

router = APIRouter()

router.include_router(verifications_router, prefix="/talent-videos", tags=["Talent Video Verification"])
router.include_router(admin_videos_router, prefix="/admin/talent-videos", tags=["Admin - Talent Videos"])
