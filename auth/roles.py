"""
auth/roles.py -- Role allow-lists and the one predicate that checks them.

Every authorization decision in Storekeep, at the request boundary
(auth/dependencies.require_roles) or inside a service (AccountManager),
goes through role_allowed(). Allow-lists are frozensets of Role members.
"""

from __future__ import annotations

from auth.models import Role

ADMIN_ONLY: frozenset[Role] = frozenset({Role.ADMIN})
ADMIN_OR_SUPER: frozenset[Role] = frozenset({Role.ADMIN, Role.SUPER_ADMIN})
SUPER_ONLY: frozenset[Role] = frozenset({Role.SUPER_ADMIN})
# Only plain users may be deleted.
DELETABLE: frozenset[Role] = frozenset({Role.USER})


def role_allowed(role: Role | str | None, allowed: frozenset[Role]) -> bool:
    """Return True if `role` is a known Role and a member of `allowed`.

    Unknown role strings are rejected rather than raising.
    """
    if role is None:
        return False
    try:
        return Role(role) in allowed
    except ValueError:
        return False
