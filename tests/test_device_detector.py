"""Tests for DeviceDetector."""

import pytest

IPHONE_SAFARI = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1"
)
ANDROID_TABLET = (
    "Mozilla/5.0 (Linux; Android 13; SM-X700) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
WINDOWS_EDGE = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36 Edg/120.0.0.0"
)


@pytest.mark.parametrize(
    "user_agent, expected",
    [
        (IPHONE_SAFARI, ("mobile", "iOS", "Safari")),
        (ANDROID_TABLET, ("tablet", "Android", "Chrome")),
        (WINDOWS_EDGE, ("desktop", "Windows", "Edge")),
    ],
)
def test_detect(device_detector, user_agent, expected):
    info = device_detector.detect(user_agent)
    assert (info["deviceType"], info["os"], info["browser"]) == expected
    assert info["displayName"] == f"{expected[2]} on {expected[1]}"


def test_empty_user_agent(device_detector):
    info = device_detector.detect("")
    assert info["displayName"] == "Unknown device"
    assert info["deviceType"] == "desktop"
