# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .services import session_service


def _bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        return auth_header.split(" ", 1)[1].strip()
    # EventSource clients cannot set headers; live streams pass the token in the query
    if request.method == "GET":
        return request.args.get("access_token")
    return None


def require_admin(f):
    """
    Require an operator session.

    Sets the following Flask g attributes:
    - g.is_authorized: True for the rest of the request
    - g.admin_session: The AdminSession row

    Returns 401 if the token is missing, unknown, revoked or expired.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = _bearer_token()
        if not token:
            return jsonify({"error": "Authentication required"}), 401

        session = session_service.validate_session(token)
        if session is None:
            return jsonify({"error": "Invalid or expired token"}), 401

        g.is_authorized = True
        g.admin_session = session
        return f(*args, **kwargs)

    return decorated_function
