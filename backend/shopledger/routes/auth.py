# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

"""
Phone + one-time code login.

FLOW:
1. POST /send-otp {phone}            -> code delivered by the SMS collaborator
2. POST /verify-otp {phone, otp, name?} -> user + bearer token
   (unknown phone with a name registers a CUSTOMER; without a name -> 404)
3. Authorization: Bearer <token> on every protected route
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..errors import ShopError, error_response
from ..services import auth_service
from ..services import session_service
from ..services import permission_service
from ..permissions import permissions_for_role
from ..decorators import require_auth, bearer_token


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/send-otp")
def send_otp_route():
    try:
        data = request.get_json(silent=True) or {}
        auth_service.send_otp(data.get("phone"))
        return jsonify({"message": "OTP sent successfully"}), 200
    except ShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to send OTP")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/verify-otp")
def verify_otp_route():
    """
    Verify the login code and open a session.

    Returns {"user": {...}, "token": "...", "permissions": [...]}.
    """
    data = request.get_json(silent=True) or {}
    user_agent = request.headers.get("User-Agent")
    ip_address = request.remote_addr

    try:
        user = auth_service.verify_otp(data.get("phone"), data.get("otp"), name=data.get("name"))
    except ShopError as e:
        permission_service.log_security_event(
            user_id=None,
            event_type="LOGIN_FAILED",
            success=False,
            resource="/api/auth/verify-otp",
            action="LOGIN",
            reason=e.code or str(e),
            ip_address=ip_address,
            user_agent=user_agent,
        )
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to verify OTP")
        return jsonify({"error": "Internal server error"}), 500

    try:
        _, token = session_service.create_session(user.id, user_agent=user_agent, ip_address=ip_address)
    except ValueError as e:
        return jsonify({"error": str(e)}), 403

    permission_service.log_security_event(
        user_id=user.id,
        event_type="LOGIN_SUCCEEDED",
        success=True,
        resource="/api/auth/verify-otp",
        action="LOGIN",
        ip_address=ip_address,
        user_agent=user_agent,
    )

    return jsonify({
        "user": user.to_dict(),
        "token": token,
        "permissions": sorted(permissions_for_role(user.role)),
    }), 200


@auth_bp.get("/me")
@require_auth
def me_route():
    user = g.current_user
    return jsonify({
        "user": user.to_dict(),
        "permissions": sorted(permissions_for_role(user.role)),
    }), 200


@auth_bp.post("/logout")
@require_auth
def logout_route():
    session_service.revoke_session(bearer_token(), reason="User logout")
    permission_service.log_security_event(
        user_id=g.current_user.id,
        event_type="LOGOUT",
        success=True,
        resource="/api/auth/logout",
        action="LOGOUT",
        ip_address=request.remote_addr,
        user_agent=request.headers.get("User-Agent"),
    )
    return jsonify({"message": "Logged out"}), 200
