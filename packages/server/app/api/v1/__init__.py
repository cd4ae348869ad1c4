"""
API v1 Router

Everything except authentication is mounted under /api/v1.
"""

from fastapi import APIRouter
from . import notifications, projects, resources, teams, tickets, users

router = APIRouter()

router.include_router(tickets.router, prefix="/tickets", tags=["Tickets"])
router.include_router(projects.router, prefix="/projects", tags=["Projects"])
router.include_router(resources.router, prefix="/resources", tags=["Resources"])
router.include_router(teams.router, prefix="/teams", tags=["Teams"])
router.include_router(users.router, prefix="/users", tags=["Users"])
router.include_router(notifications.router, prefix="/notifications", tags=["Notifications"])


@router.get("/", tags=["API"])
async def api_root():
    """API root: version and available endpoints."""
    return {
        "api": "v1",
        "version": "0.1.0",
        "endpoints": [
            "/tickets",
            "/projects",
            "/resources",
            "/teams",
            "/users",
            "/notifications",
        ],
    }
