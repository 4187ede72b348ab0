# Overview: Flask API routes for the operator login gate; parses input and returns JSON responses.

from datetime import timedelta

from flask import Blueprint, request, jsonify, current_app, g

from ..live import records
from ..services import session_service
from ..services.record_store import StoreError
from ..decorators import require_admin
from opsdesk.time_utils import to_utc_z


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    """
    Check the shared admin key and create a session token.

    Request: {"key": "..."}
    Response: {"token": "...", "expires_at": "...Z"}
    """
    try:
        data = request.get_json(silent=True) or {}
        key = data.get("key")
        if not key or not isinstance(key, str):
            return jsonify({"error": "key is required"}), 400

        if not session_service.check_admin_key(records, key):
            current_app.logger.warning("Rejected admin login from %s", request.remote_addr)
            return jsonify({"error": "Invalid admin key"}), 401

        ttl = timedelta(seconds=int(current_app.config.get("ADMIN_SESSION_TTL_SECONDS", 3600)))
        session, token = session_service.create_session(
            ttl=ttl,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )
        return jsonify({"token": token, "expires_at": to_utc_z(session.expires_at)}), 200
    except StoreError:
        current_app.logger.exception("Admin key lookup failed")
        return jsonify({"error": "Record store unavailable"}), 503
    except Exception:
        current_app.logger.exception("Failed to login")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/logout")
@require_admin
def logout_route():
    token = request.headers.get("Authorization", "").split(" ", 1)[-1].strip()
    session_service.revoke_session(token)
    return jsonify({"message": "Logged out"}), 200


@auth_bp.get("/session")
@require_admin
def session_route():
    return jsonify({"authorized": True, "session": g.admin_session.to_dict()}), 200
