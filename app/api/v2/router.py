from fastapi import APIRouter
from app.api.v2 import (
    auth,
    icp_segments,
    invites,
    offers,
    organizations,
)

api_router = APIRouter()

# Include all v2 routers
api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(icp_segments.router, prefix="/icp-segments", tags=["icp-segments"])
api_router.include_router(offers.router, prefix="/offers", tags=["offers"])
api_router.include_router(organizations.router, prefix="/organizations", tags=["organizations"])
api_router.include_router(invites.router, prefix="/invites", tags=["invites"])
