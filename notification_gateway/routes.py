from fastapi import APIRouter

from .routers import health_router


def get_apps_router():
    router = APIRouter()
    router.include_router(health_router.router)
    return router
