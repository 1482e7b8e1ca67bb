"""API routes package."""

from uploader.routes.file_routes import router as file_router

__all__ = ["file_router"]
