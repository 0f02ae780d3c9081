"""Attendance record model (append-only)."""
from enum import Enum
from typing import Optional
from absensi import db
from absensi.models.base import BaseModel

class AttendanceType(Enum):
    """Direction of a record; students have a single daily record."""
    CHECK_IN = 'check_in'
    CHECK_OUT = 'check_out'
    NOT_APPLICABLE = 'na'

class AttendanceStatus(Enum):
    """Unified status vocabulary."""
    PRESENT = 'present'
    LATE = 'late'
    SICK = 'sick'
    PERMITTED = 'permitted'
    ABSENT = 'absent'

def _enum_values(enum_class):
    return [member.value for member in enum_class]

class AttendanceRecord(BaseModel):
    """At most one record per (subject, date, type)."""
    
    __tablename__ = 'attendance_records'
    __table_args__ = (
        db.UniqueConstraint('subject_id', 'date', 'type', name='uq_attendance_subject_date_type'),
        db.Index('ix_attendance_school_date', 'school_id', 'date'),
    )
    
    school_id = db.Column(db.Integer, db.ForeignKey('schools.id'), nullable=False)
    subject_id = db.Column(db.Integer, db.ForeignKey('subjects.id'), nullable=False)
    
    # Subject snapshot at submission time
    subject_name = db.Column(db.String(255), nullable=False)
    subject_secondary_id = db.Column(db.String(50), nullable=True)
    subject_class = db.Column(db.String(50), nullable=True)
    
    # Local wall clock
    date = db.Column(db.String(10), nullable=False)  # YYYY-MM-DD
    time = db.Column(db.String(8), nullable=False)  # HH:MM:SS
    day = db.Column(db.String(10), nullable=False)  # Senin..Minggu
    month = db.Column(db.String(7), nullable=False)  # MM-YYYY
    
    # stored by value (check_in, check_out, na; present, late, ...)
    type = db.Column(db.Enum(AttendanceType, values_callable=_enum_values), nullable=False)
    status = db.Column(
        db.Enum(AttendanceStatus, values_callable=_enum_values),
        nullable=False,
        default=AttendanceStatus.PRESENT
    )
    note = db.Column(db.Text, nullable=False, default='')
    
    # Location where check-in happened
    latitude = db.Column(db.Float, nullable=False)
    longitude = db.Column(db.Float, nullable=False)
    
    recorded_by = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    flow = db.Column(db.String(30), nullable=False)
    
    @classmethod
    def find_existing(cls, subject_id: int, date: str, attendance_type: AttendanceType) -> Optional['AttendanceRecord']:
        """Exact-match lookup used for the duplicate check."""
        return cls.query.filter_by(
            subject_id=subject_id,
            date=date,
            type=attendance_type
        ).first()
    
    def __repr__(self):
        return f'<AttendanceRecord {self.subject_id}-{self.date}-{self.type.value}>'
