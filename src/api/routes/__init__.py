from fastapi import APIRouter

from src.api.routes.admin import router as admin_router
from src.api.routes.auth import router as auth_router

api_router = APIRouter()
api_router.include_router(auth_router, prefix="/api/auth", tags=["auth"])
api_router.include_router(admin_router, prefix="/api/admin", tags=["admin"])
