# backend/absensi/services/attendance_service.py
"""Attendance submission engine.

One engine serves every capture flow; a :class:`FlowPolicy` decides the
evidence kind, how the status is chosen and where notifications go.
Each capture is an explicit :class:`CaptureSession` owning its camera,
evidence, resolved subject and location fix, with a single teardown.

States::

    idle -> camera_active -> evidence_captured -> identity_resolved
         -> submitting -> succeeded | failed

``idle`` and ``failed`` are re-entered through reset; ``succeeded`` is
terminal until reset. Cancellation is refused once submitting.
"""
import atexit
import logging
import threading
import time
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, Optional, Tuple

from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from absensi import db
from absensi.models.attendance import AttendanceRecord, AttendanceStatus, AttendanceType
from absensi.models.school import School
from absensi.models.user import User, UserRole
from absensi.services.camera_service import CameraAcquisition, FacingMode, create_media_devices
from absensi.services.capture_service import CaptureEngine, CapturedEvidence, EvidenceKind
from absensi.services.geolocation_service import (
    GeofenceConfig, GeolocationService, LocationOptions, LocationSample, ReportedLocationProvider
)
from absensi.services.identity_service import IdentityResolver, SubjectSnapshot
from absensi.services.notification_service import NotificationDispatcher, TelegramNotifier
from absensi.utils.errors import (
    AccessDenied, AttendanceError, CameraError, CaptureError, DuplicateSubmission, GeolocationError,
    IdentityNotFound, IncompleteData, InvalidStatus, InvalidTransition, OutOfGeofence,
    ScanError, SessionNotFound, StaleLocation, StoreWriteFailure, UnknownFlow
)
from absensi.utils.localtime import SchoolClock, date_key, month_key, time_key, weekday_name

logger = logging.getLogger(__name__)

class SessionState(Enum):
    IDLE = 'idle'
    CAMERA_ACTIVE = 'camera_active'
    EVIDENCE_CAPTURED = 'evidence_captured'
    IDENTITY_RESOLVED = 'identity_resolved'
    SUBMITTING = 'submitting'
    SUCCEEDED = 'succeeded'
    FAILED = 'failed'

class StatusStrategy(Enum):
    TIME_INFERRED = 'time_inferred'
    MANUAL = 'manual'

@dataclass(frozen=True)
class FlowPolicy:
    """Per-flow configuration of the engine."""
    name: str
    evidence_kind: EvidenceKind
    status_strategy: StatusStrategy
    attendance_types: Tuple[AttendanceType, ...]
    manual_statuses: Tuple[AttendanceStatus, ...]
    default_facing: FacingMode
    notify_school: bool  # school chat when True, else the subject's own handle
    roles: Tuple[UserRole, ...]

STAFF_SELFIE = FlowPolicy(
    name='staff_selfie',
    evidence_kind=EvidenceKind.SELFIE,
    status_strategy=StatusStrategy.TIME_INFERRED,
    attendance_types=(AttendanceType.CHECK_IN, AttendanceType.CHECK_OUT),
    manual_statuses=(),
    default_facing=FacingMode.USER,
    notify_school=True,
    roles=(UserRole.ADMIN, UserRole.TEACHER, UserRole.STAFF)
)

STUDENT_QR = FlowPolicy(
    name='student_qr',
    evidence_kind=EvidenceKind.QR,
    status_strategy=StatusStrategy.MANUAL,
    attendance_types=(AttendanceType.NOT_APPLICABLE,),
    manual_statuses=(
        AttendanceStatus.PRESENT, AttendanceStatus.SICK,
        AttendanceStatus.PERMITTED, AttendanceStatus.ABSENT
    ),
    default_facing=FacingMode.ENVIRONMENT,
    notify_school=False,
    roles=(UserRole.ADMIN, UserRole.TEACHER)
)

FLOWS: Dict[str, FlowPolicy] = {p.name: p for p in (STAFF_SELFIE, STUDENT_QR)}

def classify_status(
    policy: FlowPolicy,
    attendance_type: AttendanceType,
    moment: datetime,
    cutoff_hour: int,
    requested: Optional[AttendanceStatus] = None
) -> AttendanceStatus:
    """Decide the status from local time or from the operator's choice."""
    if policy.status_strategy == StatusStrategy.MANUAL:
        return requested or AttendanceStatus.PRESENT
    
    if attendance_type == AttendanceType.CHECK_IN and moment.hour >= cutoff_hour:
        return AttendanceStatus.LATE
    return AttendanceStatus.PRESENT

# States in which a location fix for the current generation is accepted
LOCATION_STATES = (
    SessionState.IDLE, SessionState.CAMERA_ACTIVE,
    SessionState.EVIDENCE_CAPTURED, SessionState.IDENTITY_RESOLVED
)

@dataclass
class CaptureSession:
    """Everything one capture attempt holds, released by ``teardown``."""
    id: str
    flow: FlowPolicy
    school_id: int
    principal_id: int
    geofence: Optional[GeofenceConfig]
    late_cutoff_hour: int
    camera: CameraAcquisition
    
    state: SessionState = SessionState.IDLE
    generation: int = 1
    evidence: Optional[CapturedEvidence] = None
    subject: Optional[SubjectSnapshot] = None
    location: Optional[LocationSample] = None
    location_message: Optional[str] = None
    record_id: Optional[int] = None
    last_activity: float = field(default_factory=time.monotonic)
    lock: threading.RLock = field(default_factory=threading.RLock, repr=False)
    
    def teardown(self) -> None:
        """Release the camera and drop evidence, subject and location."""
        self.camera.release()
        self.evidence = None
        self.subject = None
        self.location = None
        self.location_message = None
    
    def touch(self) -> None:
        self.last_activity = time.monotonic()
    
    def require_state(self, *states: SessionState) -> None:
        if self.state not in states:
            raise InvalidTransition(details={'state': self.state.value})
    
    def to_dict(self) -> Dict:
        return {
            'id': self.id,
            'flow': self.flow.name,
            'state': self.state.value,
            'generation': self.generation,
            'camera': {
                'live': self.camera.is_live,
                'strategy': self.camera.strategy.value,
                'active_device_id': self.camera.active_device_id,
                'devices': [d.to_dict() for d in self.camera.devices],
                'can_switch': len(self.camera.devices) > 1
            },
            'evidence': self.evidence.to_dict() if self.evidence else None,
            'subject': self.subject.to_dict() if self.subject else None,
            'location': self.location.to_dict() if self.location else None,
            'location_message': self.location_message,
            'geofence': self.geofence.to_dict() if self.geofence else None,
            'record_id': self.record_id
        }

class SessionRegistry:
    """In-memory capture sessions keyed by id, expiring after inactivity."""
    
    def __init__(self, ttl_seconds: float = 600):
        self.ttl_seconds = ttl_seconds
        self._sessions: Dict[str, CaptureSession] = {}
        self._lock = threading.Lock()
    
    def add(self, session: CaptureSession) -> CaptureSession:
        self.purge_expired()
        with self._lock:
            self._sessions[session.id] = session
        return session
    
    def get(self, session_id: str, principal_id: int) -> CaptureSession:
        self.purge_expired()
        with self._lock:
            session = self._sessions.get(session_id)
        
        if session is None or session.principal_id != principal_id:
            raise SessionNotFound()
        session.touch()
        return session
    
    def remove(self, session_id: str) -> None:
        with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is not None:
            with session.lock:
                session.teardown()
    
    def purge_expired(self) -> int:
        cutoff = time.monotonic() - self.ttl_seconds
        with self._lock:
            expired = [
                s for s in self._sessions.values()
                if s.last_activity < cutoff and s.state != SessionState.SUBMITTING
            ]
            for session in expired:
                del self._sessions[session.id]
        
        for session in expired:
            with session.lock:
                session.teardown()
            logger.info("Capture session %s expired", session.id)
        return len(expired)

class AttendanceEngine:
    """Coordinates camera, capture, identity, location and persistence."""
    
    def __init__(
        self,
        media_devices,
        camera_config: Dict,
        capture_engine: CaptureEngine,
        dispatcher: NotificationDispatcher,
        clock: SchoolClock,
        default_cutoff_hour: int = 8,
        location_options: Optional[LocationOptions] = None,
        registry: Optional[SessionRegistry] = None,
        sleep: Callable[[float], None] = time.sleep
    ):
        self.media_devices = media_devices
        self.camera_config = camera_config
        self.capture_engine = capture_engine
        self.dispatcher = dispatcher
        self.clock = clock
        self.default_cutoff_hour = default_cutoff_hour
        self.location_options = location_options or LocationOptions()
        self.registry = registry or SessionRegistry()
        self.sleep = sleep
    
    # =================== SESSION LIFECYCLE ===================
    
    def open_session(self, flow_name: str, principal: User) -> CaptureSession:
        flow = FLOWS.get(flow_name)
        if flow is None:
            raise UnknownFlow(details={'allowed': sorted(FLOWS)})
        if principal.role not in flow.roles:
            raise AccessDenied(details={'flow': flow_name})
        
        school = db.session.get(School, principal.school_id)
        if school is None:
            raise IncompleteData("Data sekolah tidak ditemukan")
        
        # geofence is snapshotted once; later edits apply to new sessions only
        session = CaptureSession(
            id=uuid.uuid4().hex,
            flow=flow,
            school_id=school.id,
            principal_id=principal.id,
            geofence=school.geofence(),
            late_cutoff_hour=(
                school.late_cutoff_hour
                if school.late_cutoff_hour is not None
                else self.default_cutoff_hour
            ),
            camera=CameraAcquisition.from_config(self.media_devices, self.camera_config, sleep=self.sleep)
        )
        logger.info("Capture session %s opened (flow=%s, user=%s)", session.id, flow.name, principal.id)
        return self.registry.add(session)
    
    def get_session(self, session_id: str, principal: User) -> CaptureSession:
        return self.registry.get(session_id, principal.id)
    
    def cancel(self, session: CaptureSession) -> CaptureSession:
        """Abort before submitting: camera released, evidence discarded."""
        with session.lock:
            if session.state in (SessionState.SUBMITTING, SessionState.SUCCEEDED, SessionState.FAILED):
                raise InvalidTransition(
                    "Sesi tidak dapat dibatalkan pada tahap ini",
                    details={'state': session.state.value}
                )
            self._restart(session)
            logger.info("Capture session %s cancelled", session.id)
        return session
    
    def reset(self, session: CaptureSession) -> CaptureSession:
        """Return to idle from any state except submitting."""
        with session.lock:
            if session.state == SessionState.SUBMITTING:
                raise InvalidTransition(details={'state': session.state.value})
            self._restart(session)
            session.record_id = None
        return session
    
    def close(self, session: CaptureSession) -> None:
        with session.lock:
            if session.state == SessionState.SUBMITTING:
                raise InvalidTransition(details={'state': session.state.value})
        self.registry.remove(session.id)
    
    # =================== CAMERA ===================
    
    def start_camera(
        self,
        session: CaptureSession,
        facing: Optional[FacingMode] = None,
        device_id: Optional[str] = None
    ) -> CaptureSession:
        with session.lock:
            session.require_state(SessionState.IDLE, SessionState.CAMERA_ACTIVE, SessionState.EVIDENCE_CAPTURED)
            facing = facing or session.flow.default_facing
            
            # recapture discards earlier evidence
            session.evidence = None
            session.subject = None
            
            try:
                session.camera.acquire_stream(facing=facing, device_id=device_id)
                if device_id is None and facing == FacingMode.ENVIRONMENT:
                    preferred = session.camera.preferred_device(facing)
                    if preferred and preferred.device_id != session.camera.active_device_id:
                        session.camera.acquire_stream(facing=facing, device_id=preferred.device_id)
            except CameraError:
                session.camera.release()
                session.state = SessionState.IDLE
                raise
            
            session.state = SessionState.CAMERA_ACTIVE
        return session
    
    def switch_camera(self, session: CaptureSession) -> CaptureSession:
        with session.lock:
            session.require_state(SessionState.CAMERA_ACTIVE)
            try:
                session.camera.switch_camera()
            except CameraError:
                session.camera.release()
                session.state = SessionState.IDLE
                raise
        return session
    
    def stop_camera(self, session: CaptureSession) -> CaptureSession:
        with session.lock:
            session.require_state(SessionState.CAMERA_ACTIVE)
            session.camera.release()
            session.state = SessionState.IDLE
        return session
    
    # =================== EVIDENCE & IDENTITY ===================
    
    def capture(
        self,
        session: CaptureSession,
        principal: User,
        image: Optional[str] = None,
        code: Optional[str] = None
    ) -> CaptureSession:
        """Capture (or accept uploaded) evidence, then resolve the subject."""
        if image is not None or code is not None:
            evidence = self._uploaded_evidence(session, image, code)
        else:
            evidence = self._camera_evidence(session)
        
        with session.lock:
            session.evidence = evidence
            session.state = SessionState.EVIDENCE_CAPTURED
            # the stream is not needed once evidence exists
            session.camera.release()
            
            try:
                session.subject = IdentityResolver.resolve(evidence, principal, session.school_id)
            except IdentityNotFound:
                session.subject = None
                logger.info("No subject for %s evidence in session %s", evidence.kind.value, session.id)
                raise
            
            session.state = SessionState.IDENTITY_RESOLVED
        return session
    
    def _uploaded_evidence(self, session: CaptureSession, image, code) -> CapturedEvidence:
        if session.flow.evidence_kind == EvidenceKind.SELFIE:
            if image is None:
                raise CaptureError("Foto swafoto diperlukan")
            evidence = CapturedEvidence.from_data_url(image)
        else:
            if code is None:
                raise ScanError("Kode QR diperlukan")
            evidence = CapturedEvidence.from_code(code)
        
        with session.lock:
            session.require_state(SessionState.IDLE, SessionState.CAMERA_ACTIVE, SessionState.EVIDENCE_CAPTURED)
        return evidence
    
    def _camera_evidence(self, session: CaptureSession) -> CapturedEvidence:
        with session.lock:
            session.require_state(SessionState.CAMERA_ACTIVE)
            stream = session.camera.stream
            generation = session.generation
        
        def still_scanning() -> bool:
            return session.generation == generation and session.state == SessionState.CAMERA_ACTIVE
        
        # scanning runs outside the lock so cancel can interrupt it
        try:
            if session.flow.evidence_kind == EvidenceKind.SELFIE:
                evidence = self.capture_engine.snapshot(stream)
            else:
                evidence = self.capture_engine.scan(stream, should_continue=still_scanning)
        except CameraError:
            with session.lock:
                if session.generation == generation:
                    session.camera.release()
                    session.state = SessionState.IDLE
            raise
        except CaptureError:
            if not still_scanning():
                raise ScanError("Pemindaian dibatalkan")
            raise
        
        with session.lock:
            if not still_scanning():
                raise ScanError("Pemindaian dibatalkan")
        return evidence
    
    # =================== LOCATION ===================
    
    def accept_location(
        self,
        session: CaptureSession,
        generation: int,
        payload: Dict,
        received_at: Optional[datetime] = None
    ) -> CaptureSession:
        """Accept a device fix unless it belongs to an earlier generation."""
        provider = ReportedLocationProvider(payload, received_at)
        
        with session.lock:
            if generation != session.generation or session.state not in LOCATION_STATES:
                logger.info("Discarding late location fix for session %s (generation %s, current %s, state %s)",
                            session.id, generation, session.generation, session.state.value)
                raise StaleLocation()
            
            try:
                sample = GeolocationService.acquire_location(provider, self.location_options)
            except GeolocationError as e:
                session.location = None
                session.location_message = e.message
                raise
            
            session.location = sample
            session.location_message = GeolocationService.describe(sample, session.geofence)
        return session
    
    # =================== SUBMISSION ===================
    
    def submit(
        self,
        session: CaptureSession,
        principal: User,
        attendance_type: Optional[AttendanceType] = None,
        status: Optional[AttendanceStatus] = None,
        note: str = ''
    ) -> AttendanceRecord:
        with session.lock:
            session.require_state(SessionState.IDENTITY_RESOLVED)
            
            if session.subject is None or session.location is None or session.geofence is None:
                raise IncompleteData()
            
            flow = session.flow
            attendance_type = self._check_type(flow, attendance_type)
            self._check_requested_status(flow, status)
            
            subject = session.subject
            location = session.location
            moment = self.clock.now()
            today = date_key(moment)
            
            # 1. re-validate the geofence with the fix held now
            verdict = GeolocationService.classify(location, session.geofence)
            if not verdict.within_radius:
                raise OutOfGeofence(verdict.distance_meters, session.geofence.radius_meters)
            
            # 2. duplicate pre-check directly before the write
            if AttendanceRecord.find_existing(subject.id, today, attendance_type) is not None:
                raise self._duplicate_error(flow, subject, attendance_type)
            
            # 3. status
            final_status = classify_status(flow, attendance_type, moment, session.late_cutoff_hour, status)
            note = (note or '').strip() if final_status != AttendanceStatus.PRESENT else ''
            
            # 4. persist with a single insert
            session.state = SessionState.SUBMITTING
            record = AttendanceRecord(
                school_id=session.school_id,
                subject_id=subject.id,
                subject_name=subject.name,
                subject_secondary_id=subject.secondary_id,
                subject_class=subject.class_name,
                date=today,
                time=time_key(moment),
                day=weekday_name(moment),
                month=month_key(moment),
                type=attendance_type,
                status=final_status,
                note=note,
                latitude=location.latitude,
                longitude=location.longitude,
                recorded_by=principal.id,
                flow=flow.name
            )
            
            try:
                db.session.add(record)
                db.session.commit()
            except IntegrityError:
                # a concurrent submission landed between the pre-check and the insert
                db.session.rollback()
                session.state = SessionState.IDENTITY_RESOLVED
                logger.warning("Unique constraint rejected duplicate for subject %s on %s", subject.id, today)
                raise self._duplicate_error(flow, subject, attendance_type)
            except SQLAlchemyError as e:
                db.session.rollback()
                session.state = SessionState.FAILED
                logger.error("Error submitting attendance for subject %s: %s", subject.id, e)
                raise StoreWriteFailure()
            
            session.record_id = record.id
            session.state = SessionState.SUCCEEDED
            session.camera.release()
            logger.info("Attendance recorded: subject=%s date=%s type=%s status=%s",
                        subject.id, today, attendance_type.value, final_status.value)
        
        # 5. best effort; the record is already durable
        self._notify(session, subject, attendance_type, final_status, moment, note)
        return record
    
    def success_message(self, session: CaptureSession, record: AttendanceRecord) -> str:
        if record.type == AttendanceType.NOT_APPLICABLE:
            return "Absensi berhasil disimpan"
        direction = 'masuk' if record.type == AttendanceType.CHECK_IN else 'pulang'
        return f"Absensi {direction} berhasil tercatat!"
    
    def _notify(self, session, subject, attendance_type, status, moment, note) -> None:
        try:
            school = db.session.get(School, session.school_id)
            credentials = school.messaging_credentials()
            destination = credentials['chat_id'] if session.flow.notify_school else subject.messaging_handle
            self.dispatcher.notify(subject, attendance_type, status, moment, credentials, destination, note)
        except Exception as e:
            logger.error("Notification dispatch failed for session %s: %s", session.id, e)
    
    @staticmethod
    def _check_type(flow: FlowPolicy, attendance_type: Optional[AttendanceType]) -> AttendanceType:
        if attendance_type is None:
            return flow.attendance_types[0]
        if attendance_type not in flow.attendance_types:
            raise AttendanceError(
                "Jenis absensi tidak valid",
                details={'allowed': [t.value for t in flow.attendance_types]}
            )
        return attendance_type
    
    @staticmethod
    def _check_requested_status(flow: FlowPolicy, status: Optional[AttendanceStatus]) -> None:
        if status is None:
            return
        if flow.status_strategy == StatusStrategy.TIME_INFERRED:
            raise InvalidStatus("Status ditentukan otomatis dari waktu absensi")
        if status not in flow.manual_statuses:
            raise InvalidStatus(details={'allowed': [s.value for s in flow.manual_statuses]})
    
    @staticmethod
    def _duplicate_error(flow: FlowPolicy, subject: SubjectSnapshot, attendance_type: AttendanceType) -> DuplicateSubmission:
        if attendance_type == AttendanceType.NOT_APPLICABLE:
            return DuplicateSubmission(f"Siswa {subject.name} sudah melakukan absensi hari ini")
        direction = 'masuk' if attendance_type == AttendanceType.CHECK_IN else 'pulang'
        return DuplicateSubmission(f"Anda sudah melakukan absensi {direction} hari ini")
    
    @staticmethod
    def _restart(session: CaptureSession) -> None:
        session.teardown()
        session.state = SessionState.IDLE
        session.generation += 1

def init_app(app) -> AttendanceEngine:
    """Build the engine from app config and register it as an extension."""
    config = app.config
    
    executor = None
    if config.get('NOTIFICATION_ASYNC', True):
        executor = ThreadPoolExecutor(
            max_workers=config.get('NOTIFICATION_WORKERS', 2),
            thread_name_prefix='notify'
        )
        # Flush queued sends on interpreter exit
        atexit.register(executor.shutdown, wait=True)
    
    dispatcher = NotificationDispatcher(
        notifier=TelegramNotifier(
            api_base=config.get('TELEGRAM_API_BASE', 'https://api.telegram.org'),
            timeout=config.get('NOTIFICATION_TIMEOUT_SECONDS', 10)
        ),
        executor=executor,
        tz_label=config.get('SCHOOL_TIMEZONE_LABEL', 'WIB')
    )
    
    engine = AttendanceEngine(
        media_devices=create_media_devices(config),
        camera_config=config,
        capture_engine=CaptureEngine.from_config(config),
        dispatcher=dispatcher,
        clock=SchoolClock(config.get('SCHOOL_TIMEZONE', 'Asia/Jakarta')),
        default_cutoff_hour=config.get('LATE_CUTOFF_HOUR', 8),
        location_options=LocationOptions(
            high_accuracy=config.get('GEO_HIGH_ACCURACY', True),
            timeout_ms=config.get('GEO_TIMEOUT_MS', 10000),
            max_cached_age_ms=config.get('GEO_MAX_AGE_MS', 0)
        ),
        registry=SessionRegistry(ttl_seconds=config.get('CAPTURE_SESSION_TTL_MINUTES', 10) * 60)
    )
    
    app.extensions['attendance_engine'] = engine
    return engine

def get_engine() -> AttendanceEngine:
    return current_app.extensions['attendance_engine']
