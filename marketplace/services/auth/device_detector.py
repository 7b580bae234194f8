"""
Device detection from User-Agent strings.

Extracts device type, OS and browser for device-session records.
"""

import re
from typing import TypedDict


class DeviceInfo(TypedDict):
    deviceType: str
    os: str
    browser: str
    displayName: str


class DeviceDetector:
    """
    Parses a User-Agent header into a DeviceInfo.
    """

    _OS_PATTERNS = [
        (r"iPhone|iPad|iPod", "iOS"),
        (r"Android", "Android"),
        (r"Windows NT", "Windows"),
        (r"Mac OS X", "macOS"),
        (r"CrOS", "Chrome OS"),
        (r"Linux", "Linux"),
    ]

    # Order matters: Edge and Opera UAs also contain "Chrome/"
    _BROWSER_PATTERNS = [
        (r"Edg/", "Edge"),
        (r"OPR/|Opera", "Opera"),
        (r"Chrome/", "Chrome"),
        (r"Firefox/", "Firefox"),
        (r"Safari/", "Safari"),
    ]

    _MOBILE_PATTERN = re.compile(r"Mobile|iPhone|iPod", re.IGNORECASE)
    _TABLET_PATTERN = re.compile(r"iPad|Tablet|Android", re.IGNORECASE)

    def detect(self, user_agent: str) -> DeviceInfo:
        """
        Parse User-Agent and return device information.

        An empty header yields "Unknown device" on desktop.
        """
        if not user_agent:
            return DeviceInfo(
                deviceType="desktop",
                os="Unknown",
                browser="Unknown",
                displayName="Unknown device",
            )

        os_name = self._match(self._OS_PATTERNS, user_agent)
        browser = self._match(self._BROWSER_PATTERNS, user_agent)

        if self._MOBILE_PATTERN.search(user_agent):
            device_type = "mobile"
        elif self._TABLET_PATTERN.search(user_agent):
            device_type = "tablet"
        else:
            device_type = "desktop"

        return DeviceInfo(
            deviceType=device_type,
            os=os_name,
            browser=browser,
            displayName=f"{browser} on {os_name}",
        )

    @staticmethod
    def _match(patterns, user_agent: str) -> str:
        for pattern, name in patterns:
            if re.search(pattern, user_agent, re.IGNORECASE):
                return name
        return "Unknown"
