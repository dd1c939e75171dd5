"""API route aggregation.

All routers registered here get mounted in main.py.

Learn: Health and auth routers are open at the router level; individual
auth routes (/me, /password) pull in get_current_user themselves. The
teams router is protected as a whole, and its per-team routes add the
membership guard on top.
"""

from fastapi import APIRouter, Depends

from taskhub.api.auth import router as auth_router
from taskhub.api.health import router as health_router
from taskhub.api.teams import router as teams_router
from taskhub.auth.dependencies import get_current_user

# All protected routers require authentication
_auth = [Depends(get_current_user)]

api_router = APIRouter(prefix="/api/v1")

# Open routes
api_router.include_router(health_router, tags=["health"])
api_router.include_router(auth_router, tags=["auth"])

# Protected routes: need a session-access token
api_router.include_router(teams_router, tags=["teams"], dependencies=_auth)
