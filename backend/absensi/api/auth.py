"""Authentication API."""
from flask import Blueprint, request
from flask_jwt_extended import jwt_required, get_jwt_identity, create_access_token
from absensi import limiter
from absensi.services.auth_service import AuthService
from absensi.utils.decorators import current_user
from absensi.utils.helpers import success_response, error_response

auth_bp = Blueprint("auth", __name__)

@auth_bp.route("/login", methods=["POST"])
@limiter.limit("5 per minute")
def login():
    """Operator login (admins, teachers, staff)."""
    try:
        data = request.get_json(silent=True)
        
        if not data:
            return error_response("Request body must be JSON", 400)
        
        email = (data.get("email") or "").strip()
        password = data.get("password") or ""
        
        if not email or not password:
            return error_response("Email and password are required", 400)
        
        result, error = AuthService.login(email, password)
        
        if error:
            return error_response(error, 401)
        
        return success_response(
            data=result,
            message="Login successful"
        )
        
    except Exception as e:
        return error_response(f"Login error: {str(e)}", 500)

@auth_bp.route("/me", methods=["GET"])
@jwt_required()
def get_current_user():
    """Get current user profile."""
    try:
        user = current_user()
        
        if not user:
            return error_response("User not found", 404)
        
        response_data = user.to_dict()
        response_data['school'] = user.school.to_dict() if user.school else None
        
        if user.subject is not None:
            response_data['subject'] = {
                'id': user.subject.id,
                'name': user.subject.name,
                'secondary_id': user.subject.secondary_id,
                'category_label': user.subject.category_label
            }
        
        return success_response(data=response_data)
        
    except Exception as e:
        return error_response(f"Profile error: {str(e)}", 500)

@auth_bp.route("/refresh", methods=["POST"])
@jwt_required(refresh=True)
def refresh_token():
    """Refresh access token."""
    try:
        new_access_token = create_access_token(identity=get_jwt_identity())
        
        return success_response(
            data={
                "access_token": new_access_token
            },
            message="Token refreshed successfully"
        )
        
    except Exception as e:
        return error_response(f"Token refresh error: {str(e)}", 500)
