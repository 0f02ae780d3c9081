"""Helper functions for the application."""
from flask import jsonify
from typing import Any, Dict, Optional

def handle_error(error, status_code: int):
    """Handle application errors with consistent format."""
    message = getattr(error, 'description', None) or str(error)
    return jsonify({
        'error': True,
        'message': message,
        'status_code': status_code
    }), status_code

def success_response(data: Any = None, message: str = "Success", status_code: int = 200):
    """Return consistent success response."""
    response = {
        'error': False,
        'message': message
    }
    
    if data is not None:
        response['data'] = data
    
    return jsonify(response), status_code

def error_response(
    message: str,
    status_code: int = 400,
    code: Optional[str] = None,
    details: Optional[Dict] = None
):
    """Return consistent error response."""
    response = {
        'error': True,
        'message': message,
        'status_code': status_code
    }
    
    if code:
        response['code'] = code
    if details:
        response['details'] = details
    
    return jsonify(response), status_code

def domain_error_response(error):
    """Render an AttendanceError in the standard envelope."""
    return error_response(
        error.message,
        error.status_code,
        code=error.code,
        details=error.details or None
    )
