"""API routers for the web backend."""

from .ideas import router as ideas_router
from .jobs import router as jobs_router
from .projects import router as projects_router
from .segments import router as segments_router

__all__ = [
    "ideas_router",
    "jobs_router",
    "projects_router",
    "segments_router",
]
