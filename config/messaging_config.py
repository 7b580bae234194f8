"""
Delivery provider constants.

These are fixed values that don't change per environment.
Environment-specific values (API keys, sender numbers) come from settings.
"""

# Resend API endpoint
RESEND_API_URL = "https://api.resend.com/emails"

# Twilio Messages endpoint, formatted with the account SID
TWILIO_MESSAGES_URL = "https://api.twilio.com/2010-04-01/Accounts/{account_sid}/Messages.json"

# Outbound HTTP timeout for delivery providers (seconds)
DELIVERY_HTTP_TIMEOUT = 10.0

SMS_MAX_LENGTH = 160
