"""Models package with all models."""
from .base import BaseModel
from .school import School
from .subject import Subject, SubjectCategory
from .user import User, UserRole
from .attendance import AttendanceRecord, AttendanceType, AttendanceStatus

__all__ = [
    'BaseModel', 'School', 'Subject', 'SubjectCategory',
    'User', 'UserRole',
    'AttendanceRecord', 'AttendanceType', 'AttendanceStatus'
]
