"""Middleware for bearer token authentication."""
from datetime import datetime, timedelta, timezone
from functools import wraps

import jwt
from flask import current_app, g, jsonify, request

ROLES = ('USER', 'ADMIN')


def load_user_from_token():
    """
    Load the caller identity into g (Flask's per-request global).

    Called before each request. Sets g.user_id, g.username and g.user_role
    when the request carries a valid `Authorization: Bearer <jwt>` header.
    Invalid or expired tokens leave the request anonymous.
    """
    g.user_id = None
    g.username = None
    g.user_role = None
    g.auth_error = None

    header = request.headers.get('Authorization', '')
    if not header.startswith('Bearer '):
        return

    token = header[len('Bearer '):].strip()
    try:
        payload = jwt.decode(
            token,
            current_app.config['SECRET_KEY'],
            algorithms=[current_app.config.get('AUTH_ALGORITHM', 'HS256')]
        )
    except jwt.ExpiredSignatureError:
        g.auth_error = 'Token has expired'
        return
    except jwt.InvalidTokenError as e:
        current_app.logger.warning(f"Rejected bearer token: {e}")
        g.auth_error = 'Invalid token'
        return

    role = str(payload.get('role', '')).upper()
    if role not in ROLES:
        g.auth_error = 'Unknown role'
        return

    g.user_id = payload.get('sub')
    g.username = payload.get('username') or payload.get('sub')
    g.user_role = role


def issue_token(username: str, role: str, secret_key: str, expires_in: int = 3600,
                algorithm: str = 'HS256') -> str:
    """Sign a token the way the authentication service does (CLI and tests)."""
    payload = {
        'sub': username,
        'username': username,
        'role': role.upper(),
        'exp': datetime.now(timezone.utc) + timedelta(seconds=expires_in),
    }
    return jwt.encode(payload, secret_key, algorithm=algorithm)


def require_login(f):
    """
    Decorator: Require a valid bearer token.

    Returns 401 JSON if the caller is anonymous.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if g.get('user_role') is None:
            message = g.get('auth_error') or 'Authentication required'
            return jsonify({'status': 'error', 'message': message}), 401
        return f(*args, **kwargs)
    return decorated_function
