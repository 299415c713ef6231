"""
Role based authorization rules.

Every ``Role`` maps to an explicit permission set; the table is checked for
completeness at import time so adding a role without deciding its
permissions fails loudly.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet

from gemmarket.errors import AuthorizationError
from gemmarket.types import Role


class Permission(str, Enum):
    CREATE_LISTING = "create_listing"
    VIEW_OWN_LISTINGS = "view_own_listings"
    EDIT_OWN_LISTING = "edit_own_listing"
    MANAGE_ANY_LISTING = "manage_any_listing"
    WATCH_LISTING = "watch_listing"


ROLE_PERMISSIONS: Dict[Role, FrozenSet[Permission]] = {
    Role.BUYER: frozenset({Permission.WATCH_LISTING}),
    Role.SELLER: frozenset(
        {
            Permission.CREATE_LISTING,
            Permission.VIEW_OWN_LISTINGS,
            Permission.EDIT_OWN_LISTING,
            Permission.WATCH_LISTING,
        }
    ),
    Role.COLLECTOR: frozenset(
        {
            Permission.CREATE_LISTING,
            Permission.VIEW_OWN_LISTINGS,
            Permission.EDIT_OWN_LISTING,
            Permission.WATCH_LISTING,
        }
    ),
    Role.ADMIN: frozenset(
        {
            Permission.EDIT_OWN_LISTING,
            Permission.MANAGE_ANY_LISTING,
            Permission.WATCH_LISTING,
        }
    ),
}

_missing = set(Role) - set(ROLE_PERMISSIONS)
if _missing:
    raise RuntimeError(f"Roles without a permission set: {sorted(r.value for r in _missing)}")


@dataclass(frozen=True)
class Requester:
    """Identity supplied by the authentication layer."""

    user_id: str
    role: Role

    def has(self, permission: Permission) -> bool:
        return permission in ROLE_PERMISSIONS[self.role]


def roles_with(permission: Permission) -> tuple[Role, ...]:
    return tuple(role for role, perms in ROLE_PERMISSIONS.items() if permission in perms)


def require_permission(requester: Requester, permission: Permission, message: str) -> None:
    if not requester.has(permission):
        raise AuthorizationError(message)


def can_modify_listing(requester: Requester, owner_id: str) -> bool:
    """Owners may edit their listings; admins may edit any listing."""
    if requester.has(Permission.MANAGE_ANY_LISTING):
        return True
    return requester.user_id == owner_id and requester.has(Permission.EDIT_OWN_LISTING)
