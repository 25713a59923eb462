from fastapi import APIRouter

from vtoken.presentation.routers.v1.sessions import router as sessions_router
from vtoken.presentation.routers.v1.verification import router as verification_router
from vtoken.presentation.routes.health import router as health_router

api = APIRouter()
api.include_router(health_router)

# Add all v1 routers here
routers = (verification_router, sessions_router)
for router in routers:
    api.include_router(router, prefix="/v1")
