"""
Marketplace services.

Services take their collaborators in the constructor and are wired once
at startup in marketplace.dependencies.
"""
