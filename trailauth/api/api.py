"""
API Router configuration.

Aggregates the auth and identity endpoints with their tags and prefixes.
"""

from fastapi import APIRouter

from trailauth.api.endpoints import auth, users

api_router = APIRouter()

# Public auth flows (logout and logout-all need a bearer credential)
api_router.include_router(
    auth.router,
    prefix="/auth",
    tags=["authentication"]
)

# Signed-in identity
api_router.include_router(
    users.router,
    prefix="/users",
    tags=["users"]
)
