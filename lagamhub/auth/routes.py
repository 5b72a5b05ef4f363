from functools import wraps

from flask import (
    Blueprint,
    abort,
    current_app,
    jsonify,
    request,
    session,
)
from werkzeug.security import check_password_hash, generate_password_hash

from lagamhub import db as db_module
from lagamhub.models import Role, public_user, timestamp_id

auth_bp = Blueprint('auth', __name__)

SESSION_KEYS = ('user_id', 'name', 'email', 'role')


def current_user() -> dict | None:
    """Return the session user or ``None`` when nobody is logged in."""

    if not session.get('user_id'):
        return None
    return {key: session.get(key) for key in SESSION_KEYS}


def require_login() -> dict:
    user = current_user()
    if user is None:
        abort(401, description='Authentication required')
    return user


def role_required(allowed_roles):
    """Decorator restricting a view to the given :class:`Role` members."""

    allowed = frozenset(allowed_roles)

    def decorator(view):
        @wraps(view)
        def wrapped_view(*args, **kwargs):
            user = require_login()
            try:
                role = Role.parse(user.get('role'))
            except ValueError:
                abort(403, description='Forbidden')
            if role not in allowed:
                abort(403, description='Forbidden')
            return view(*args, **kwargs)

        return wrapped_view

    return decorator


def json_body(expected=dict):
    """Return the request JSON or abort with 400 when it is not ``expected``."""

    payload = request.get_json(silent=True)
    if not isinstance(payload, expected):
        abort(400, description='A JSON body is required')
    return payload


@auth_bp.route('/api/auth/login', methods=['POST'])
def login():
    payload = json_body()
    email = (payload.get('email') or '').strip()
    password = payload.get('password') or ''
    if not email or not password:
        abort(400, description='Email and password are required')

    user, error = db_module.fetch_user_by_email(email)
    if error:
        abort(500, description=error)
    if not user or not user.get('password'):
        abort(404, description='User not found or password not set')
    if not check_password_hash(user['password'], password):
        current_app.logger.info("Rejected login for %s", email)
        abort(401, description='Invalid credentials')

    session['user_id'] = user.get('id')
    session['name'] = user.get('name')
    session['email'] = user.get('email')
    session['role'] = user.get('role')
    return jsonify(public_user(user))


@auth_bp.route('/api/auth/signup', methods=['POST'])
def signup():
    payload = json_body()
    name = (payload.get('name') or '').strip()
    email = (payload.get('email') or '').strip()
    password = payload.get('password') or ''
    if not name or not email or not password:
        abort(400, description='Missing required fields')

    users, error = db_module.fetch_users(include_sensitive=True)
    if error:
        abort(500, description=error)
    if any(str(u.get('email') or '').casefold() == email.casefold() for u in users):
        abort(409, description='User with this email already exists')

    users.append(
        {
            'id': timestamp_id('USR'),
            'name': name,
            'email': email,
            'password': generate_password_hash(password),
            'role': Role.OPERATOR.value,
        }
    )
    _, error = db_module.save_users(users)
    if error:
        abort(500, description=error)
    return jsonify({'message': 'User created successfully'}), 201


@auth_bp.route('/api/auth/logout', methods=['POST'])
def logout():
    for key in SESSION_KEYS:
        session.pop(key, None)
    return jsonify({'message': 'Logged out successfully'})


@auth_bp.route('/api/auth/user', methods=['GET'])
def session_user():
    user = current_user()
    if user is None:
        return jsonify({'isLoggedIn': False}), 401
    return jsonify(
        {
            'isLoggedIn': True,
            'id': user['user_id'],
            'name': user['name'],
            'email': user['email'],
            'role': user['role'],
        }
    )


@auth_bp.route('/api/users/change-password', methods=['POST'])
def change_password():
    payload = json_body()
    user_id = payload.get('userId')
    current_password = payload.get('currentPassword')
    new_password = payload.get('newPassword')
    if not user_id or not current_password or not new_password:
        abort(400, description='User ID, current password, and new password are required')

    users, error = db_module.fetch_users(include_sensitive=True)
    if error:
        abort(500, description=error)
    user = next((u for u in users if u.get('id') == user_id), None)
    if user is None:
        abort(404, description='User not found')
    if not user.get('password'):
        abort(400, description='Password not set for this user.')
    if not check_password_hash(user['password'], current_password):
        abort(401, description='Invalid current password')

    user['password'] = generate_password_hash(new_password)
    _, error = db_module.save_users(users)
    if error:
        abort(500, description=error)
    return jsonify({'message': 'Password changed successfully'})
