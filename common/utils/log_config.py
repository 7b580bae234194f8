"""
Logging configuration helpers.

Configures process-wide logging once and provides masking helpers so
phone numbers and email addresses are not written to logs in full.
"""

import logging

_LOGGING_CONFIGURED = False


def configure_logging(level_name: str = "INFO") -> None:
    """Configure process-wide logging. Later calls are no-ops."""
    global _LOGGING_CONFIGURED
    if _LOGGING_CONFIGURED:
        return

    level = getattr(logging, level_name.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    _LOGGING_CONFIGURED = True


def mask_phone(phone: str) -> str:
    """Keep only the last four digits of a phone number."""
    if not phone:
        return ""
    return f"***{phone[-4:]}"


def mask_email(email: str) -> str:
    """Keep the first character of the local part and the domain."""
    if not email or "@" not in email:
        return "***"
    local, domain = email.split("@", 1)
    return f"{local[:1]}***@{domain}"
