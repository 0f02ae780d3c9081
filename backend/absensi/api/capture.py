"""Attendance capture API.

A client drives one capture session through camera, evidence, location
and submit. Location fixes carry the session ``generation`` they were
requested for; fixes from an earlier generation are rejected.
"""
from flask import Blueprint, request
from flask_jwt_extended import jwt_required
from absensi.models.attendance import AttendanceStatus, AttendanceType
from absensi.models.user import UserRole
from absensi.services.attendance_service import get_engine
from absensi.services.camera_service import FacingMode
from absensi.services.geolocation_service import GeolocationService
from absensi.utils.decorators import current_user, roles_required
from absensi.utils.errors import AttendanceError, InvalidStatus
from absensi.utils.helpers import success_response, error_response, domain_error_response
from absensi.utils.validators import ValidationError, Validator

capture_bp = Blueprint("capture", __name__)

OPERATOR_ROLES = (UserRole.ADMIN, UserRole.TEACHER, UserRole.STAFF)

def _session_payload(session):
    data = session.to_dict()
    if session.geofence and session.location:
        data['verdict'] = GeolocationService.classify(session.location, session.geofence).to_dict()
    return data

@capture_bp.route("/sessions", methods=["POST"])
@jwt_required()
@roles_required(*OPERATOR_ROLES)
def open_session():
    """Open a capture session for a flow (staff_selfie / student_qr)."""
    try:
        data = request.get_json(silent=True) or {}
        flow = data.get("flow")
        
        if not flow:
            return error_response("Missing required field: flow", 400)
        
        session = get_engine().open_session(flow, current_user())
        return success_response(
            data=_session_payload(session),
            message="Sesi absensi dibuat",
            status_code=201
        )
        
    except AttendanceError as e:
        return domain_error_response(e)
    except Exception as e:
        return error_response(f"Session error: {str(e)}", 500)

@capture_bp.route("/sessions/<session_id>", methods=["GET"])
@jwt_required()
@roles_required(*OPERATOR_ROLES)
def get_session(session_id):
    try:
        session = get_engine().get_session(session_id, current_user())
        return success_response(data=_session_payload(session))
        
    except AttendanceError as e:
        return domain_error_response(e)
    except Exception as e:
        return error_response(f"Session error: {str(e)}", 500)

@capture_bp.route("/sessions/<session_id>", methods=["DELETE"])
@jwt_required()
@roles_required(*OPERATOR_ROLES)
def close_session(session_id):
    """Tear the session down and forget it."""
    try:
        engine = get_engine()
        engine.close(engine.get_session(session_id, current_user()))
        return success_response(message="Sesi absensi ditutup")
        
    except AttendanceError as e:
        return domain_error_response(e)
    except Exception as e:
        return error_response(f"Session error: {str(e)}", 500)

@capture_bp.route("/sessions/<session_id>/camera", methods=["POST"])
@jwt_required()
@roles_required(*OPERATOR_ROLES)
def start_camera(session_id):
    """Acquire the camera for this session."""
    try:
        data = request.get_json(silent=True) or {}
        
        facing = None
        if data.get("facing"):
            try:
                facing = FacingMode(data["facing"])
            except ValueError:
                return error_response("facing must be 'user' or 'environment'", 400)
        
        engine = get_engine()
        session = engine.get_session(session_id, current_user())
        engine.start_camera(session, facing=facing, device_id=data.get("device_id"))
        
        return success_response(data=_session_payload(session), message="Kamera aktif")
        
    except AttendanceError as e:
        return domain_error_response(e)
    except Exception as e:
        return error_response(f"Camera error: {str(e)}", 500)

@capture_bp.route("/sessions/<session_id>/camera/switch", methods=["POST"])
@jwt_required()
@roles_required(*OPERATOR_ROLES)
def switch_camera(session_id):
    try:
        engine = get_engine()
        session = engine.get_session(session_id, current_user())
        engine.switch_camera(session)
        return success_response(data=_session_payload(session))
        
    except AttendanceError as e:
        return domain_error_response(e)
    except Exception as e:
        return error_response(f"Camera error: {str(e)}", 500)

@capture_bp.route("/sessions/<session_id>/camera/stop", methods=["POST"])
@jwt_required()
@roles_required(*OPERATOR_ROLES)
def stop_camera(session_id):
    try:
        engine = get_engine()
        session = engine.get_session(session_id, current_user())
        engine.stop_camera(session)
        return success_response(data=_session_payload(session), message="Kamera dimatikan")
        
    except AttendanceError as e:
        return domain_error_response(e)
    except Exception as e:
        return error_response(f"Camera error: {str(e)}", 500)

@capture_bp.route("/sessions/<session_id>/capture", methods=["POST"])
@jwt_required()
@roles_required(*OPERATOR_ROLES)
def capture(session_id):
    """Snapshot/scan from the session camera, or accept uploaded evidence.
    
    Body (all optional): ``image`` (JPEG data URL) for selfies, ``code``
    (decoded QR text) for students.
    """
    try:
        data = request.get_json(silent=True) or {}
        
        engine = get_engine()
        user = current_user()
        session = engine.get_session(session_id, user)
        engine.capture(session, user, image=data.get("image"), code=data.get("code"))
        
        message = "Foto berhasil diambil"
        if session.subject and session.subject.category == 'student':
            message = f"QR Code terdeteksi: {session.subject.name}"
        
        return success_response(data=_session_payload(session), message=message)
        
    except AttendanceError as e:
        return domain_error_response(e)
    except Exception as e:
        return error_response(f"Capture error: {str(e)}", 500)

@capture_bp.route("/sessions/<session_id>/location", methods=["POST"])
@jwt_required()
@roles_required(*OPERATOR_ROLES)
def report_location(session_id):
    """Device position fix (or device error code) for the current generation."""
    try:
        data = request.get_json(silent=True)
        
        if not data:
            return error_response("Request body must be JSON", 400)
        
        try:
            generation = int(data["generation"])
        except KeyError:
            return error_response("Missing required field: generation", 400)
        except (TypeError, ValueError):
            return error_response("generation must be an integer", 400)
        
        if data.get("error_code") is not None:
            payload = {"error_code": data["error_code"]}
        else:
            try:
                payload = {
                    "latitude": Validator.coordinate(data, "latitude", 90),
                    "longitude": Validator.coordinate(data, "longitude", 180),
                    "accuracy": Validator.optional_float(data, "accuracy"),
                    "timestamp": data.get("timestamp")
                }
            except ValidationError as e:
                return error_response(str(e), 400)
        
        engine = get_engine()
        session = engine.get_session(session_id, current_user())
        engine.accept_location(session, generation, payload)
        
        return success_response(data=_session_payload(session), message=session.location_message)
        
    except AttendanceError as e:
        return domain_error_response(e)
    except Exception as e:
        return error_response(f"Location error: {str(e)}", 500)

@capture_bp.route("/sessions/<session_id>/submit", methods=["POST"])
@jwt_required()
@roles_required(*OPERATOR_ROLES)
def submit(session_id):
    """Persist the attendance record for the resolved subject."""
    try:
        data = request.get_json(silent=True) or {}
        
        attendance_type = None
        if data.get("type"):
            try:
                attendance_type = AttendanceType(data["type"])
            except ValueError:
                return error_response("Jenis absensi tidak valid", 400)
        
        status = None
        if data.get("status"):
            try:
                status = AttendanceStatus(data["status"])
            except ValueError:
                raise InvalidStatus()
        
        engine = get_engine()
        user = current_user()
        session = engine.get_session(session_id, user)
        record = engine.submit(
            session, user,
            attendance_type=attendance_type,
            status=status,
            note=data.get("note") or ''
        )
        
        return success_response(
            data={
                'record': record.to_dict(),
                'session': _session_payload(session)
            },
            message=engine.success_message(session, record),
            status_code=201
        )
        
    except AttendanceError as e:
        return domain_error_response(e)
    except Exception as e:
        return error_response(f"Submit error: {str(e)}", 500)

@capture_bp.route("/sessions/<session_id>/cancel", methods=["POST"])
@jwt_required()
@roles_required(*OPERATOR_ROLES)
def cancel(session_id):
    try:
        engine = get_engine()
        session = engine.get_session(session_id, current_user())
        engine.cancel(session)
        return success_response(data=_session_payload(session), message="Absensi dibatalkan")
        
    except AttendanceError as e:
        return domain_error_response(e)
    except Exception as e:
        return error_response(f"Cancel error: {str(e)}", 500)

@capture_bp.route("/sessions/<session_id>/reset", methods=["POST"])
@jwt_required()
@roles_required(*OPERATOR_ROLES)
def reset(session_id):
    try:
        engine = get_engine()
        session = engine.get_session(session_id, current_user())
        engine.reset(session)
        return success_response(data=_session_payload(session))
        
    except AttendanceError as e:
        return domain_error_response(e)
    except Exception as e:
        return error_response(f"Reset error: {str(e)}", 500)
