from __future__ import annotations
import logging
from typing import Any, Dict, List

from flask import abort
from sqlalchemy import select, func

from backoffice import get_db
from backoffice.constants.pages import (
    ALL_ROLES, ROLE_USER, ROLE_ADMIN, ROLE_SUPERADMIN, PAGE_IDS, PERMISSION_TYPES, full_page_grants,
)
from backoffice.models.authz import User
from backoffice.services.policy import Caller, is_highest_privilege, grants_any_capability
from backoffice.utils.timeutil import iso, utcnow
from backoffice.utils.validation import clean_text

logger = logging.getLogger(__name__)

PRIVILEGED_FIELDS = ('role', 'approved', 'pagePermissions')
_UNCHANGED: Any = object()


def user_json(u: User) -> Dict[str, Any]:
    return {
        'id': u.id,
        'email': u.email,
        'name': u.name,
        'role': u.role,
        'approved': bool(u.approved),
        'pagePermissions': list(u.page_permissions or []),
        'createdAt': iso(u.created_at),
        'updatedAt': iso(u.updated_at),
    }


def validate_page_permissions(value: Any) -> List[Dict[str, Any]]:
    """Normalize a grant list; 400 on unknown pages or capabilities."""
    if not isinstance(value, list):
        abort(400, description='pagePermissions must be an array')
    grants: Dict[str, List[str]] = {}
    for entry in value:
        if not isinstance(entry, dict):
            abort(400, description='pagePermissions entries must be objects')
        page_id = entry.get('pageId')
        if page_id not in PAGE_IDS:
            abort(400, description=f'Unknown page {page_id}')
        perms = entry.get('permissions') or []
        if not isinstance(perms, list) or any(p not in PERMISSION_TYPES for p in perms):
            abort(400, description=f'Invalid permissions for page {page_id}')
        merged = grants.setdefault(page_id, [])
        merged.extend(p for p in perms if p not in merged)
    return [{'pageId': pid, 'permissions': [p for p in PERMISSION_TYPES if p in perms]}
            for pid, perms in grants.items()]


def get_user_or_404(user_id: int) -> User:
    user = get_db().get(User, user_id)
    if not user:
        abort(404, description='User not found')
    return user


def _other_superadmins(session, user_id: int) -> int:
    return session.execute(
        select(func.count(User.id)).where(User.role == ROLE_SUPERADMIN, User.approved.is_(True), User.id != user_id)
    ).scalar_one()


def update_user(user_id: int, payload: Dict[str, Any], caller: Caller) -> User:
    if not isinstance(payload, dict):
        abort(400, description='Request body must be a JSON object')
    superadmin = is_highest_privilege(caller)
    if any(k in payload for k in PRIVILEGED_FIELDS) and not superadmin:
        abort(403, description='Only super admins can manage user roles, approvals and permissions')
    session = get_db()
    user = get_user_or_404(user_id)
    if not superadmin and user.email != caller.email:
        abort(403, description='You can only update your own profile')

    name = _UNCHANGED
    if 'name' in payload:
        name = clean_text(payload['name'], 'name') or ''
    role = payload.get('role', user.role)
    if role not in ALL_ROLES:
        abort(400, description='role invalid')
    if 'approved' in payload and not isinstance(payload['approved'], bool):
        abort(400, description='approved must be a boolean')
    grants = user.page_permissions or []
    if 'pagePermissions' in payload:
        grants = validate_page_permissions(payload['pagePermissions'])
    approved = payload.get('approved', bool(user.approved))

    role_supplied = 'role' in payload
    if role_supplied and role == ROLE_ADMIN and not grants_any_capability(grants):
        abort(400, description='Admin users must have at least one page permission. '
                               'Grant permissions before promoting to admin.')
    if role_supplied and role in (ROLE_ADMIN, ROLE_SUPERADMIN):
        approved = True
    if role_supplied and role == ROLE_SUPERADMIN:
        grants = full_page_grants()

    if user.role == ROLE_SUPERADMIN and user.approved and (role != ROLE_SUPERADMIN or not approved):
        if _other_superadmins(session, user.id) == 0:
            abort(400, description='Cannot demote the last super admin')

    if name is not _UNCHANGED:
        user.name = name
    user.role = role
    user.approved = approved
    user.page_permissions = grants
    user.updated_at = utcnow()
    session.commit()
    logger.info('User %s updated by %s (role=%s approved=%s)', user.email, caller.email, user.role, user.approved)
    return user


def delete_user(user_id: int, caller: Caller):
    session = get_db()
    user = get_user_or_404(user_id)
    if user.role == ROLE_SUPERADMIN and _other_superadmins(session, user.id) == 0:
        abort(400, description='Cannot delete the last super admin')
    session.delete(user)
    session.commit()
    logger.info('User %s deleted by %s', user.email, caller.email)


def register_user(email: Any, password: Any, name: Any = None) -> User:
    email = clean_text(email, 'email')
    if not email or '@' not in email:
        abort(400, description='A valid email is required')
    if not isinstance(password, str) or len(password) < 8:
        abort(400, description='Password must be at least 8 characters')
    email = email.lower()
    session = get_db()
    if session.execute(select(User.id).where(User.email == email)).first():
        abort(400, description='Email already registered')
    user = User(email=email, name=clean_text(name, 'name') or '', role=ROLE_USER, approved=False, page_permissions=[])
    user.set_password(password)
    session.add(user)
    session.commit()
    logger.info('Registered %s (pending approval)', email)
    return user


def authenticate(email: Any, password: Any) -> User:
    if not isinstance(email, str) or not isinstance(password, str):
        abort(400, description='email and password are required')
    user = get_db().execute(select(User).where(User.email == email.strip().lower())).scalar_one_or_none()
    if not user or not user.verify_password(password):
        abort(401, description='Invalid credentials')
    return user

__all__ = ['user_json', 'validate_page_permissions', 'get_user_or_404', 'update_user', 'delete_user',
           'register_user', 'authenticate']
