"""
API Routes Package

This package contains route handlers organized by feature:
- enrollment.py: Face ID registration for signed-in users
- authentication.py: Face ID login and session endpoints
- management.py: Profile listing, deactivation and statistics
"""

from api.routes.enrollment import router as enrollment_router
from api.routes.authentication import router as authentication_router
from api.routes.authentication import session_router
from api.routes.management import router as management_router

__all__ = [
    "enrollment_router",
    "authentication_router",
    "session_router",
    "management_router",
]
