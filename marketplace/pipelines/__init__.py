"""
Pipeline functions.

Stateless orchestration composing the credential services.
"""
