"""Permission oracle.

Callers are resolved from the JWT identity (the user's email) against the stored
user row on every request, so role or grant changes apply without re-login.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any
from flask_jwt_extended import get_jwt_identity
from sqlalchemy import select
from backoffice.models.authz import User
from backoffice.constants.pages import ROLE_SUPERADMIN, PERMISSION_TYPES
from backoffice import get_db


@dataclass(frozen=True)
class Caller:
    email: str
    name: str
    role: str
    approved: bool
    page_permissions: List[Dict[str, Any]] = field(default_factory=list)

    @classmethod
    def from_user(cls, user: User) -> 'Caller':
        return cls(
            email=user.email,
            name=user.name or '',
            role=user.role,
            approved=bool(user.approved),
            page_permissions=list(user.page_permissions or []),
        )


def resolve_caller(identity: Optional[str] = None) -> Optional[Caller]:
    """Map the authenticated identity to a Caller; None when no user record exists."""
    if identity is None:
        identity = get_jwt_identity()
    if not identity:
        return None
    session = get_db()
    user = session.execute(select(User).where(User.email == str(identity).lower())).scalar_one_or_none()
    if not user:
        return None
    return Caller.from_user(user)


def is_highest_privilege(caller: Optional[Caller]) -> bool:
    return bool(caller) and caller.approved and caller.role == ROLE_SUPERADMIN


def has_page_permission(resource_id: str, capability: str, caller: Optional[Caller]) -> bool:
    if caller is None or not caller.approved:
        return False
    if caller.role == ROLE_SUPERADMIN:
        return True
    if capability not in PERMISSION_TYPES:
        return False
    for grant in caller.page_permissions:
        if grant.get('pageId') == resource_id:
            return capability in (grant.get('permissions') or [])
    return False


def grants_any_capability(page_permissions) -> bool:
    return any(g.get('permissions') for g in (page_permissions or []))

__all__ = ['Caller', 'resolve_caller', 'is_highest_privilege', 'has_page_permission', 'grants_any_capability']
