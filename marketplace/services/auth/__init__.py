"""
Auth services.

Token issuance/rotation and device detection.
"""

from marketplace.services.auth.token_manager import TokenManager, TokenPair
from marketplace.services.auth.device_detector import DeviceDetector, DeviceInfo

__all__ = ["TokenManager", "TokenPair", "DeviceDetector", "DeviceInfo"]
