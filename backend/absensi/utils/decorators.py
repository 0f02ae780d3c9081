# backend/absensi/utils/decorators.py
"""Custom decorators for authorization."""
from functools import wraps
from flask import g
from flask_jwt_extended import get_jwt_identity
from absensi import db
from absensi.models.user import User, UserRole
from absensi.utils.helpers import error_response

def current_user() -> User:
    """Load the authenticated principal for this request."""
    identity = get_jwt_identity()
    if g.get('current_user_identity') != identity or 'current_user' not in g:
        g.current_user = db.session.get(User, int(identity)) if identity else None
        g.current_user_identity = identity
    return g.current_user

def roles_required(*roles: UserRole):
    """Decorator to require one of the given roles (use under @jwt_required)."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            user = current_user()
            
            if not user or not user.is_active:
                return error_response("User not found", 404)
            
            if roles and user.role not in roles:
                return error_response("Anda tidak memiliki akses ke halaman ini", 403)
            
            return f(*args, **kwargs)
        return decorated_function
    return decorator
