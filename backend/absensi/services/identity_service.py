# backend/absensi/services/identity_service.py
"""Maps captured evidence to a directory subject.

There is no biometric matching: a selfie is evidentiary only and the
subject is the authenticated principal's own directory record, while a
QR payload is the student's NISN looked up within the tenant.
"""
from dataclasses import dataclass
from typing import Dict, Optional

from absensi.models.subject import Subject, SubjectCategory
from absensi.models.user import User
from absensi.services.capture_service import CapturedEvidence, EvidenceKind
from absensi.utils.errors import IdentityNotFound

@dataclass(frozen=True)
class SubjectSnapshot:
    """Immutable view of a subject for the duration of one submission."""
    id: int
    name: str
    secondary_id: Optional[str]
    category: str
    category_label: str
    class_name: Optional[str] = None
    messaging_handle: Optional[str] = None
    
    @classmethod
    def from_model(cls, subject: Subject) -> 'SubjectSnapshot':
        return cls(
            id=subject.id,
            name=subject.name,
            secondary_id=subject.secondary_id,
            category=subject.category.value,
            category_label=subject.category_label,
            class_name=subject.class_name,
            messaging_handle=subject.telegram_chat_id
        )
    
    def to_dict(self) -> Dict:
        return {
            'id': self.id,
            'name': self.name,
            'secondary_id': self.secondary_id,
            'category': self.category,
            'category_label': self.category_label,
            'class_name': self.class_name
        }

class IdentityResolver:
    """Resolve evidence to a subject of the given school."""
    
    @staticmethod
    def resolve(evidence: CapturedEvidence, principal: User, school_id: int) -> SubjectSnapshot:
        if evidence.kind == EvidenceKind.SELFIE:
            return IdentityResolver._resolve_principal(principal, school_id)
        return IdentityResolver._resolve_code(evidence.code, school_id)
    
    @staticmethod
    def _resolve_principal(principal: User, school_id: int) -> SubjectSnapshot:
        subject = principal.subject if principal else None
        
        if subject is None or not subject.is_active or subject.school_id != school_id:
            raise IdentityNotFound("Data pengguna tidak ditemukan")
        
        return SubjectSnapshot.from_model(subject)
    
    @staticmethod
    def _resolve_code(code: Optional[str], school_id: int) -> SubjectSnapshot:
        if not code:
            raise IdentityNotFound()
        
        subject = Subject.query.filter_by(
            school_id=school_id,
            secondary_id=code.strip(),
            category=SubjectCategory.STUDENT,
            is_active=True
        ).limit(1).first()
        
        if subject is None:
            raise IdentityNotFound()
        
        return SubjectSnapshot.from_model(subject)
