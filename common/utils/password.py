"""
Password strength rules shared by registration, reset and change-password.

A password must be 8-128 characters, mix upper and lower case, contain a
digit, and not be one of a short list of well-known passwords.
"""

import re
from typing import List, Tuple

MIN_LENGTH = 8
MAX_LENGTH = 128

COMMON_PASSWORDS = frozenset([
    "123456", "12345678", "123456789", "password", "password1", "password123",
    "passw0rd", "qwerty", "qwerty123", "111111", "123123", "abc123",
    "iloveyou", "welcome", "letmein", "admin",
])

_RULES = (
    (re.compile(r"[A-Z]"), "Password must contain at least one uppercase letter"),
    (re.compile(r"[a-z]"), "Password must contain at least one lowercase letter"),
    (re.compile(r"\d"), "Password must contain at least one digit"),
)


def validate_password(
    password: str,
    min_length: int = MIN_LENGTH,
    max_length: int = MAX_LENGTH,
) -> Tuple[bool, List[str]]:
    """
    Check a password against the strength rules.

    Returns:
        Tuple of (is_valid, errors), errors in rule order

    Example:
        >>> validate_password("Str0ngPassw0rd")
        (True, [])
    """
    errors: List[str] = []

    if len(password) < min_length:
        errors.append(f"Password must be at least {min_length} characters")
    elif len(password) > max_length:
        errors.append(f"Password must be no more than {max_length} characters")

    errors.extend(message for pattern, message in _RULES if not pattern.search(password))

    if password.lower() in COMMON_PASSWORDS:
        errors.append("Password is too common")

    return not errors, errors
