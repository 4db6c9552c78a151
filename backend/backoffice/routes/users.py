from flask import Blueprint, request, abort

from backoffice import get_db
from backoffice.constants.pages import PAGE_USERS, CAP_VIEW, ALL_ROLES
from backoffice.decorators.auth import require_caller, require_page_permission, require_superadmin, current_caller
from backoffice.decorators.audit import audit_log
from backoffice.models.authz import User
from backoffice.services import users as user_service
from backoffice.services.users import user_json
from backoffice.utils.listing import apply_pagination, build_list_payload, parse_bool_arg
from backoffice.utils.sorting import apply_multi_sort

users_bp = Blueprint('users', __name__)

SORT_FIELDS = {'email': User.email, 'name': User.name, 'role': User.role, 'createdAt': User.created_at}


def _prefetch_user(user_id):
    u = get_db().get(User, user_id) if user_id is not None else None
    return user_json(u) if u else {}


@users_bp.get('')
@require_page_permission(PAGE_USERS, CAP_VIEW)
def list_users():
    q = get_db().query(User)
    role = request.args.get('role')
    if role:
        if role not in ALL_ROLES:
            abort(400, description='role invalid')
        q = q.filter(User.role == role)
    approved = parse_bool_arg('approved')
    if approved is not None:
        q = q.filter(User.approved.is_(approved))
    q = apply_multi_sort(q, request.args.get('sort'), SORT_FIELDS, User.created_at.desc(), User.id)
    paged_q, total, limit, offset = apply_pagination(q)
    return build_list_payload('users', [user_json(u) for u in paged_q.all()], total, limit, offset)


@users_bp.get('/<int:user_id>')
@require_page_permission(PAGE_USERS, CAP_VIEW)
def get_user(user_id: int):
    return user_json(user_service.get_user_or_404(user_id))


@users_bp.put('/<int:user_id>')
@require_caller
@audit_log('USER.UPDATE', entity='User', entity_id_key='id',
           diff_keys=['name', 'role', 'approved', 'pagePermissions'],
           pre_fetch=lambda a, kw: _prefetch_user(kw.get('user_id')))
def update_user(user_id: int):
    u = user_service.update_user(user_id, request.get_json(silent=True), current_caller())
    return user_json(u)


@users_bp.delete('/<int:user_id>')
@require_superadmin
@audit_log('USER.DELETE', entity='User', entity_id_arg='user_id')
def delete_user(user_id: int):
    user_service.delete_user(user_id, current_caller())
    return {'deleted': True}
