"""Middleware for cashier authentication and admin access."""
from functools import wraps

from flask import session, g, current_app, request

from pos.database import get_session
from pos.exceptions import UnauthorizedError
from pos.models import AppUser, UserRole


def load_user():
    """
    Load the current cashier into g.

    Called before each request. Sets g.user (AppUser or None).
    """
    g.user = None

    user_id = session.get('user_id')
    if not user_id:
        return
    db_session = get_session()
    user = db_session.query(AppUser).filter_by(id=user_id, is_active=True).first()
    if user:
        g.user = user
    else:
        # Deactivated or deleted while logged in
        current_app.logger.info(f"Dropping session of inactive user {user_id}")
        session.clear()


def require_login(f):
    """Decorator: require a logged-in cashier (401 JSON otherwise)."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if g.get('user') is None:
            raise UnauthorizedError('Login required', status_code=401)
        return f(*args, **kwargs)
    return decorated_function


def require_admin(f):
    """Decorator: require a logged-in admin (401 without login, 403 for other roles)."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user = g.get('user')
        if user is None:
            raise UnauthorizedError('Login required', status_code=401)
        if user.role != UserRole.ADMIN.value:
            current_app.logger.warning(f"User {user.username} denied admin access to {request.path}")
            raise UnauthorizedError('Admin access required', status_code=403)
        return f(*args, **kwargs)
    return decorated_function
