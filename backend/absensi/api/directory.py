"""Read-only directory lookups used by capture clients."""
from flask import Blueprint
from flask_jwt_extended import jwt_required
from absensi import db
from absensi.models.subject import Subject
from absensi.models.user import UserRole
from absensi.services.qr_service import QRService
from absensi.utils.decorators import current_user, roles_required
from absensi.utils.errors import AttendanceError
from absensi.utils.helpers import success_response, error_response, domain_error_response

directory_bp = Blueprint("directory", __name__)

@directory_bp.route("/geofence", methods=["GET"])
@jwt_required()
@roles_required(UserRole.ADMIN, UserRole.TEACHER, UserRole.STAFF)
def get_geofence():
    """Geofence of the principal's school (null when not configured)."""
    try:
        school = current_user().school
        geofence = school.geofence() if school else None
        
        return success_response(data={
            'school_id': school.id if school else None,
            'school_name': school.name if school else None,
            'geofence': geofence.to_dict() if geofence else None
        })
        
    except Exception as e:
        return error_response(f"Geofence error: {str(e)}", 500)

@directory_bp.route("/students/<int:subject_id>/qr", methods=["GET"])
@jwt_required()
@roles_required(UserRole.ADMIN, UserRole.TEACHER)
def get_student_qr(subject_id):
    """QR card for one student of the principal's school."""
    try:
        subject = db.session.get(Subject, subject_id)
        
        if subject is None or subject.school_id != current_user().school_id:
            return error_response("Siswa tidak ditemukan dalam database", 404)
        
        return success_response(data=QRService.generate_card(subject))
        
    except AttendanceError as e:
        return domain_error_response(e)
    except Exception as e:
        return error_response(f"QR generation error: {str(e)}", 500)
