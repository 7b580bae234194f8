"""
Marketplace data access.

Provides the credential store accessor and startup index management.
"""

from marketplace.database.credential_store import (
    CredentialStore,
    resolve_role_name,
    to_object_id,
    utc_now,
)
from marketplace.database.indexes import ensure_indexes, seed_roles, DEFAULT_ROLES

__all__ = [
    "CredentialStore",
    "resolve_role_name",
    "to_object_id",
    "utc_now",
    "ensure_indexes",
    "seed_roles",
    "DEFAULT_ROLES",
]
