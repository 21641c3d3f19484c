from fastapi import APIRouter

# Aggregate all v1 routers here
from .routers import orders, temporary_links

api_router = APIRouter()
api_router.include_router(orders.router)
api_router.include_router(temporary_links.router)

__all__ = ["api_router"]
