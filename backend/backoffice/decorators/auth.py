from functools import wraps
from flask import abort, g
from flask_jwt_extended import verify_jwt_in_request
from backoffice.services.policy import resolve_caller, has_page_permission, is_highest_privilege


def current_caller():
    return g.caller


def require_caller(fn):
    """Authenticate and stash the resolved Caller on flask.g (401 when unknown)."""
    @wraps(fn)
    def wrapper(*args, **kwargs):
        verify_jwt_in_request()
        caller = resolve_caller()
        if caller is None:
            abort(401, description='Unknown caller')
        g.caller = caller
        return fn(*args, **kwargs)
    return wrapper


def require_page_permission(page_id: str, capability: str):
    def outer(fn):
        @wraps(fn)
        @require_caller
        def wrapper(*args, **kwargs):
            if not has_page_permission(page_id, capability, g.caller):
                abort(403, description=f'You do not have permission to {capability} {page_id}')
            return fn(*args, **kwargs)
        return wrapper
    return outer


def require_superadmin(fn):
    @wraps(fn)
    @require_caller
    def wrapper(*args, **kwargs):
        if not is_highest_privilege(g.caller):
            abort(403, description='Only super admin can perform this action')
        return fn(*args, **kwargs)
    return wrapper
