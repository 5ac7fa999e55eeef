"""Routes for the auth blueprint."""

from firebase_admin import auth
from flask import current_app, jsonify, request, session
from flask_wtf.csrf import generate_csrf

from coliving.core.store import get_store

from . import bp
from .services import get_profile, is_admin_profile


@bp.route("/session_login", methods=["POST"])
def session_login():
    """
    This endpoint is called from the client-side after a successful Firebase login.
    It receives the ID token, verifies it, and creates a server-side session.
    """
    id_token = (request.get_json(silent=True) or {}).get("idToken")
    if not id_token:
        return jsonify({"status": "error", "message": "idToken is required."}), 400
    try:
        decoded_token = auth.verify_id_token(id_token)
    except (auth.InvalidIdTokenError, auth.ExpiredIdTokenError, ValueError) as e:
        current_app.logger.warning(f"Rejected session login: {e}")
        return jsonify({"status": "error", "message": "Invalid token."}), 401

    uid = decoded_token["uid"]
    profile = get_profile(get_store(), uid)
    if profile is None:
        return (
            jsonify({"status": "error", "message": "Profile not found."}),
            404,
        )
    session["user_id"] = uid
    session["is_admin"] = is_admin_profile(profile)
    return jsonify({"status": "success", "uid": uid})


@bp.route("/logout", methods=["POST"])
def logout():
    """Clear the server-side session. Firebase sign-out happens on the client."""
    session.clear()
    return jsonify({"status": "success"})


@bp.route("/csrf_token", methods=["GET"])
def csrf_token():
    """Return a CSRF token for the X-CSRFToken header of write requests."""
    return jsonify({"csrfToken": generate_csrf()})
