"""
Delivery adapters for email and SMS.
"""

from marketplace.services.messaging.email_service import EmailService
from marketplace.services.messaging.sms_service import SmsService

__all__ = ["EmailService", "SmsService"]
