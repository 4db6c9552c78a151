from flask import Blueprint, request
from flask_jwt_extended import create_access_token

from backoffice.decorators.auth import require_caller, current_caller
from backoffice.services.users import authenticate, register_user, user_json
from backoffice.services.audit import add_audit
from backoffice.models.authz import User
from backoffice import get_db
from sqlalchemy import select

auth_bp = Blueprint('auth', __name__)


@auth_bp.post('/login')
def login():
    data = request.get_json(silent=True) or {}
    user = authenticate(data.get('email'), data.get('password'))
    # identity is the email; every request re-reads role and grants from the users table
    token = create_access_token(identity=user.email)
    return {'accessToken': token, 'approved': bool(user.approved)}


@auth_bp.post('/register')
def register():
    data = request.get_json(silent=True) or {}
    user = register_user(data.get('email'), data.get('password'), data.get('name'))
    add_audit('USER.REGISTER', 'User', user.id, {'email': user.email}, actor_email=user.email)
    get_db().commit()
    return user_json(user), 201


@auth_bp.get('/me')
@require_caller
def me():
    caller = current_caller()
    user = get_db().execute(select(User).where(User.email == caller.email)).scalar_one()
    return user_json(user)
