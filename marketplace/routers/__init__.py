"""
Marketplace API routers.
"""

from marketplace.routers.auth import router as auth_router
from marketplace.routers.otp import router as otp_router
from marketplace.routers.fraud import router as fraud_router

__all__ = [
    "auth_router",
    "otp_router",
    "fraud_router",
]
