"""Middleware for bearer token authentication."""
from functools import wraps
from flask import g, request, current_app
from printshop.database import get_session
from printshop.models import AppUser, hash_api_token
from printshop.exceptions import UnauthenticatedError, UnauthorizedError


def _bearer_token():
    header = request.headers.get('Authorization', '')
    scheme, _, token = header.partition(' ')
    if scheme.lower() != 'bearer' or not token.strip():
        return None
    return token.strip()


def load_api_user():
    """
    Resolve the Authorization: Bearer token into g.user.

    Called before each request. Sets g.user to the active AppUser owning the
    token, or None.
    """
    g.user = None

    token = _bearer_token()
    if not token:
        return

    try:
        db_session = get_session()
        g.user = db_session.query(AppUser).filter_by(
            api_token_hash=hash_api_token(token),
            active=True
        ).first()
    except Exception as e:
        # Treated as unauthenticated; the endpoint answers 401
        current_app.logger.error(f"Error in load_api_user: {e}")


def require_api_user(f):
    """Decorator: the request must carry a valid bearer token (401 otherwise)."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if g.get('user') is None:
            raise UnauthenticatedError()
        return f(*args, **kwargs)
    return decorated_function


def require_admin(f):
    """Decorator: the token must belong to an admin (401/403 otherwise)."""
    @wraps(f)
    @require_api_user
    def decorated_function(*args, **kwargs):
        if not g.user.is_admin:
            raise UnauthorizedError('Forbidden: admin role required')
        return f(*args, **kwargs)
    return decorated_function
