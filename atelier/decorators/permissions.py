"""
Permission decorators for role-based access control.
Extends require_login with role checks.
"""

from functools import wraps
from flask import g, jsonify


def require_role(*allowed_roles):
    """
    Decorator to restrict access to specific roles.

    Usage:
        @require_role('ADMIN')
        @require_role('USER', 'ADMIN')

    Must be used AFTER require_login.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            user_role = g.get('user_role')

            if not user_role:
                return jsonify({'status': 'error', 'message': 'Authentication required'}), 401

            if user_role not in allowed_roles:
                return jsonify({
                    'status': 'error',
                    'message': 'You do not have permission to perform this action'
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator
