"""Middleware for request user context and access decorators."""
from functools import wraps
from flask import session, g, jsonify, current_app
from roomshop.database import get_session
from roomshop.models import User


def load_user():
    """
    Load the current user into g (Flask's per-request global).

    Called before each request. Sets g.user when the session carries the
    id of an active user; issuing that session is handled elsewhere.
    """
    g.user = None

    try:
        user_id = session.get('user_id')
        if user_id:
            db_session = get_session()
            if not db_session:
                return

            user = db_session.query(User).filter_by(id=user_id, active=True).first()
            if user:
                g.user = user
                g.user_id = user.id
            else:
                session.pop('user_id', None)
    except Exception as e:
        # Avoid crashing the whole app if context loading fails
        current_app.logger.error(f"Error in load_user: {e}")


def require_login(f):
    """Decorator: Require an authenticated user (401 JSON otherwise)."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if g.get('user') is None:
            return jsonify({
                'status': 'error',
                'error': 'not_authenticated',
                'message': 'Authentication required'
            }), 401
        return f(*args, **kwargs)
    return decorated_function


def require_admin(f):
    """
    Decorator: Require an admin user.

    Must be used AFTER require_login.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if g.get('user') is None or not g.user.is_admin:
            return jsonify({
                'status': 'error',
                'error': 'not_authorized',
                'message': 'You are not allowed to perform this action'
            }), 403
        return f(*args, **kwargs)
    return decorated_function
