"""
Marketplace backend: credentials, session tokens, OTP verification and fraud risk.
"""
