"""Database seeding service for demo data."""
import logging
from typing import Dict

from absensi import db
from absensi.models.school import School
from absensi.models.subject import Subject, SubjectCategory
from absensi.models.user import User, UserRole

logger = logging.getLogger(__name__)

DEMO_NPSN = '20100001'

class SeedService:
    """Seed one demo school with staff, students and accounts."""
    
    @staticmethod
    def seed_all(password: str) -> Dict[str, int]:
        school = SeedService.seed_school()
        staff = SeedService.seed_staff(school, password)
        students = SeedService.seed_students(school)
        db.session.commit()
        
        logger.info("Seeded demo school %s (%d staff, %d students)", school.npsn, staff, students)
        return {'school_id': school.id, 'staff': staff, 'students': students}
    
    @staticmethod
    def seed_school() -> School:
        school = School.query.filter_by(npsn=DEMO_NPSN).first()
        if school:
            return school
        
        # Monas, Jakarta
        school = School(
            name='SD Negeri Contoh 01',
            npsn=DEMO_NPSN,
            latitude=-6.175392,
            longitude=106.827153,
            radius_meters=100
        )
        db.session.add(school)
        db.session.flush()
        return school
    
    @staticmethod
    def seed_staff(school: School, password: str) -> int:
        people = [
            ('Siti Rahmawati', '198706152010012001', SubjectCategory.TEACHER, UserRole.ADMIN, 'admin@sekolah.test'),
            ('Budi Santoso', '198902032014031002', SubjectCategory.TEACHER, UserRole.TEACHER, 'budi@sekolah.test'),
            ('Dewi Lestari', '3171014509900003', SubjectCategory.STAFF, UserRole.STAFF, 'dewi@sekolah.test'),
        ]
        
        created = 0
        for name, secondary_id, category, role, email in people:
            if User.query.filter_by(email=email).first():
                continue
            
            subject = Subject(
                school_id=school.id,
                name=name,
                secondary_id=secondary_id,
                category=category
            )
            db.session.add(subject)
            db.session.flush()
            
            user = User(email=email, name=name, role=role, school_id=school.id, subject_id=subject.id)
            user.set_password(password)
            db.session.add(user)
            created += 1
        return created
    
    @staticmethod
    def seed_students(school: School) -> int:
        students = [
            ('Ahmad Fauzi', '0123456781', '4A'),
            ('Putri Ayu', '0123456782', '4A'),
            ('Rizky Pratama', '0123456783', '5B'),
        ]
        
        created = 0
        for name, nisn, class_name in students:
            exists = Subject.query.filter_by(school_id=school.id, secondary_id=nisn).first()
            if exists:
                continue
            db.session.add(Subject(
                school_id=school.id,
                name=name,
                secondary_id=nisn,
                category=SubjectCategory.STUDENT,
                class_name=class_name
            ))
            created += 1
        return created
