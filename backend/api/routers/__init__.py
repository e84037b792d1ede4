"""API Routers package

This package contains all API route handlers.
Routers are organized by feature domain.
"""

from . import birthday_router, birthday_settings_router

__all__ = [
    "birthday_router",
    "birthday_settings_router",
]
