"""Validation utilities for request payloads."""
import math
import re
from typing import Dict

class ValidationError(Exception):
    """Raised when a request payload is malformed."""
    pass

class Validator:
    """Validation helper class."""
    
    @staticmethod
    def validate_email(email: str) -> bool:
        """Validate email format."""
        if not email:
            return False
        pattern = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'
        return bool(re.match(pattern, email))
    
    @staticmethod
    def coordinate(data: Dict, field: str, limit: float) -> float:
        """Parse a latitude/longitude value within +/- limit degrees."""
        try:
            value = float(data[field])
        except KeyError:
            raise ValidationError(f"Missing required field: {field}")
        except (TypeError, ValueError):
            raise ValidationError(f"{field} must be a number")
        
        if math.isnan(value) or abs(value) > limit:
            raise ValidationError(f"{field} is out of range")
        return value
    
    @staticmethod
    def optional_float(data: Dict, field: str):
        """Parse an optional non-negative float."""
        value = data.get(field)
        if value is None:
            return None
        try:
            value = float(value)
        except (TypeError, ValueError):
            raise ValidationError(f"{field} must be a number")
        if value < 0:
            raise ValidationError(f"{field} must not be negative")
        return value
