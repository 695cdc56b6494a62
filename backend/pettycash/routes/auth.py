# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

"""
Authentication API routes

- Login returns a bearer token (shown once; only its hash is stored)
- Logout revokes it
- /me returns the user with permissions and pending-approval counts
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..decorators import require_auth, bearer_token
from ..services import approval_service
from ..services import auth_service
from ..services import permission_service
from ..services import session_service
from ..time_utils import to_utc_z


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create session token.

    Request body:
    {
        "username": str,   // or "email"
        "password": str
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        username = data.get("username") or data.get("email")
        password = data.get("password")

        if not all([username, password]):
            return jsonify({"error": "username/email and password required"}), 400

        user = auth_service.authenticate(username, password)
        if not user:
            return jsonify({"error": "Invalid credentials"}), 401

        session, token = session_service.create_session(
            user_id=user.id,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )

        return jsonify({
            "user": user.to_dict(),
            "permissions": sorted(permission_service.get_user_permissions(user.id)),
            "token": token,
            "expires_at": to_utc_z(session.expires_at),
            "message": "Login successful"
        }), 200

    except Exception:
        current_app.logger.exception("Failed to login user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/logout")
def logout_route():
    """Revoke session token (logout). Expects Authorization: Bearer <token>."""
    try:
        token = bearer_token()
        if not token:
            return jsonify({"error": "Authorization header required"}), 401

        if not session_service.revoke_session(token, reason="User logout"):
            return jsonify({"error": "Invalid or expired token"}), 401

        return jsonify({"message": "Logout successful"}), 200

    except Exception:
        current_app.logger.exception("Failed to logout user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.get("/me")
@require_auth
def me_route():
    user = g.current_user
    policy = permission_service.get_policy()
    return jsonify({
        "user": user.to_dict(),
        "permissions": sorted(permission_service.get_user_permissions(user.id)),
        "requires_review": policy.is_review_required(user),
        "can_approve": approval_service.can_user_approve(user),
        "pending_approvals": approval_service.get_pending_approvals_count(user),
        "my_pending_requests": approval_service.get_user_pending_count(user.id),
    }), 200
