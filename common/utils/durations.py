"""
Duration strings used in configuration ("30s", "15m", "12h", "7d").
"""

import re

_EXPIRY_PATTERN = re.compile(r"^(\d+)([smhd])$")

_UNIT_SECONDS = {
    "s": 1,
    "m": 60,
    "h": 60 * 60,
    "d": 24 * 60 * 60,
}


def parse_expiry(value: str) -> int:
    """
    Convert an expiry string into seconds.

    Args:
        value: Number followed by one of s, m, h, d

    Returns:
        Duration in seconds

    Raises:
        ValueError: If the string is not in the expected format or is zero
    """
    if not isinstance(value, str):
        raise ValueError(f"Invalid expiry format: {value!r}")

    match = _EXPIRY_PATTERN.match(value.strip())
    if not match:
        raise ValueError(f"Invalid expiry format: {value!r}")

    amount, unit = match.groups()
    seconds = int(amount) * _UNIT_SECONDS[unit]
    if seconds <= 0:
        raise ValueError(f"Expiry must be positive: {value!r}")
    return seconds

