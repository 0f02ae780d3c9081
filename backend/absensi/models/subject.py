"""Directory entry for a teacher, staff member or student."""
from enum import Enum
from absensi import db
from absensi.models.base import BaseModel

class SubjectCategory(Enum):
    """Directory categories."""
    TEACHER = 'teacher'
    STAFF = 'staff'
    STUDENT = 'student'

class Subject(BaseModel):
    """Person whose attendance is recorded."""
    
    __tablename__ = 'subjects'
    __table_args__ = (
        db.UniqueConstraint('school_id', 'secondary_id', name='uq_subject_school_secondary_id'),
    )
    
    school_id = db.Column(db.Integer, db.ForeignKey('schools.id'), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    secondary_id = db.Column(db.String(50), nullable=True, index=True)  # NIK / NIP / NISN
    category = db.Column(db.Enum(SubjectCategory), nullable=False)
    class_name = db.Column(db.String(50), nullable=True)  # students only
    
    # Telegram chat id of the subject (students: parent's chat)
    telegram_chat_id = db.Column(db.String(100), nullable=True)
    
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    
    attendance_records = db.relationship('AttendanceRecord', backref='subject', lazy='dynamic')
    
    @property
    def category_label(self) -> str:
        return {
            SubjectCategory.TEACHER: 'Guru',
            SubjectCategory.STAFF: 'Tenaga Kependidikan',
            SubjectCategory.STUDENT: 'Siswa'
        }[self.category]
    
    def __repr__(self) -> str:
        return f'<Subject {self.secondary_id} {self.name}>'
