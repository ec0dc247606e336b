"""
Friends API Routes Package.

This package contains all FastAPI route handlers organized by domain.
Use this module to import routers for registration with the FastAPI app.

Example:
    from api.routes import review_router, stories_router

    app.include_router(review_router)
    app.include_router(stories_router)
"""

# ============================================================================
# Story & Extraction Routers
# ============================================================================

from api.routes.mentions import router as mentions_router
from api.routes.stories import router as stories_router
from api.routes.review import router as review_router

# ============================================================================
# People & Settings Routers
# ============================================================================

from api.routes.people import router as people_router
from api.routes.preferences import router as preferences_router


__all__ = [
    # Story & extraction
    "mentions_router",
    "stories_router",
    "review_router",
    # People & settings
    "people_router",
    "preferences_router",
]
