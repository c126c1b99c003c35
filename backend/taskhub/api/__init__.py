"""API router package."""

from fastapi import APIRouter

from taskhub.api.v1 import (
    auth,
    comments,
    custom_properties,
    health,
    organizations,
    projects,
    tasks,
)

router = APIRouter()

# Include all API routers
router.include_router(health.router, tags=["Health"])
router.include_router(auth.router, prefix="/auth", tags=["Authentication"])
router.include_router(organizations.router, prefix="/organizations", tags=["Organizations"])
router.include_router(projects.router, tags=["Projects"])
router.include_router(tasks.router, tags=["Tasks"])
router.include_router(comments.router, tags=["Comments"])
router.include_router(custom_properties.router, tags=["Custom Properties"])
