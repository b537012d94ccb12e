"""
API routers for the Health Search Engine
"""
from .query import router as query_router
from .videos import router as videos_router

__all__ = ["query_router", "videos_router"]
