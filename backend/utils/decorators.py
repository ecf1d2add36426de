from functools import wraps
from flask_jwt_extended import get_jwt_identity
from flask import jsonify, g
from church_admin.extensions import db
from church_admin.models import User
from utils.access_control import has_permission


def _load_current_user():
    user_id = get_jwt_identity()
    if not user_id:
        return None, (jsonify({"success": False, "message": "Missing or invalid JWT token"}), 401)

    user = db.session.get(User, int(user_id))
    if not user or not user.is_active:
        return None, (jsonify({"success": False, "message": "User not found or inactive"}), 401)

    g.current_user = user
    return user, None


def role_required(*allowed_roles):
    """
    Restrict access to users with specific roles.
    Usage: @role_required("admin", "super_admin")
    Must sit below @jwt_required().
    """
    allowed_roles = set(role.lower() for role in allowed_roles)

    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            user, error = _load_current_user()
            if error:
                return error

            if user.role_name.lower() not in allowed_roles:
                return jsonify({"success": False, "message": "Access forbidden: insufficient permissions"}), 403

            return fn(*args, **kwargs)
        return wrapper
    return decorator


def permission_required(permission):
    """
    Restrict access to users whose role grants a permission.
    Usage: @permission_required("junior_church.checkin")
    """
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            user, error = _load_current_user()
            if error:
                return error

            if not has_permission(user, permission):
                return jsonify({"success": False, "message": "Access forbidden: insufficient permissions"}), 403

            return fn(*args, **kwargs)
        return wrapper
    return decorator
