"""
CV refiner service route modules.

Each module handles a specific area of functionality.
"""

from .cv import router as cv_router
from .resume import router as resume_router

__all__ = [
    "cv_router",
    "resume_router",
]
