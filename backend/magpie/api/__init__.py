"""API routes module."""

from fastapi import APIRouter

from magpie.api import admin, internal, scholarships

router = APIRouter()

# Public routes
router.include_router(scholarships.router, prefix="/scholarships", tags=["scholarships"])

# Admin routes
router.include_router(admin.router, prefix="/admin", tags=["admin"])

# Scheduler routes
router.include_router(internal.router, prefix="/cron", tags=["cron"])
