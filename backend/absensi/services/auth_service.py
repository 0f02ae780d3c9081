"""Authentication service for operator accounts."""
import logging
from typing import Dict, Optional, Tuple

from flask_jwt_extended import create_access_token, create_refresh_token

from absensi.models.base import utcnow
from absensi.models.user import User
from absensi.utils.validators import Validator

logger = logging.getLogger(__name__)

class AuthService:
    @staticmethod
    def login(email: str, password: str) -> Tuple[Optional[Dict], Optional[str]]:
        """Authenticate user and return tokens."""
        if not email or not password:
            return None, "Email and password are required"
        
        if not Validator.validate_email(email):
            return None, "Invalid email format"
        
        user = User.query.filter_by(email=email.lower().strip()).first()
        
        if not user:
            return None, "Invalid email or password"
        
        if not user.check_password(password):
            user.failed_login_attempts = (user.failed_login_attempts or 0) + 1
            user.save()
            logger.info("Failed login for %s (%d attempts)", user.email, user.failed_login_attempts)
            return None, "Invalid email or password"
        
        if not user.is_active:
            return None, "Account is deactivated"
        
        user.failed_login_attempts = 0
        user.last_login = utcnow()
        user.save()
        
        # identities must be strings for flask-jwt-extended
        access_token = create_access_token(identity=str(user.id))
        refresh_token = create_refresh_token(identity=str(user.id))
        
        return {
            "access_token": access_token,
            "refresh_token": refresh_token,
            "user": user.to_dict()
        }, None
