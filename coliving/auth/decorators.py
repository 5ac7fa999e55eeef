"""Decorators for the auth blueprint."""

from functools import wraps

from flask import jsonify, session

from .services import current_user_id


def login_required(f=None, admin_required=False):
    """Reject the request with 401 if the user is not logged in.

    Usage:
    @login_required
    def protected_view():
        ...

    @login_required(admin_required=True)
    def admin_view():
        ...
    """

    def decorator(func):
        @wraps(func)
        def decorated_function(*args, **kwargs):
            if current_user_id() is None:
                return (
                    jsonify({"status": "error", "message": "Please log in first."}),
                    401,
                )
            if admin_required and not session.get("is_admin"):
                return (
                    jsonify(
                        {"status": "error", "message": "You are not authorized."}
                    ),
                    403,
                )
            return func(*args, **kwargs)

        return decorated_function

    if f:
        return decorator(f)
    return decorator
