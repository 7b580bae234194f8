"""
Marketplace Middleware.

All middleware components are imported here.
"""

from marketplace.middleware.auth import AuthMiddleware
from marketplace.middleware.maintenance import MaintenanceModeMiddleware

__all__ = [
    "AuthMiddleware",
    "MaintenanceModeMiddleware",
]
