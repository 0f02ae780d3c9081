"""Error taxonomy for the attendance capture pipeline.

Every failure the pipeline can report carries a short Indonesian message
meant for a toast, an HTTP status and a stable machine code. Camera and
geolocation errors leave the capture session recoverable; business-rule
rejections (geofence, duplicate) never reach the store.
"""
from typing import Dict, List, Optional

class AttendanceError(Exception):
    """Base class for all pipeline errors."""
    
    status_code = 400
    code = 'attendance_error'
    default_message = 'Terjadi kesalahan'
    
    def __init__(self, message: Optional[str] = None, details: Optional[Dict] = None):
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)

# =================== CAMERA ===================

class CameraError(AttendanceError):
    """Camera could not be acquired or read."""
    status_code = 503
    code = 'camera_error'
    default_message = 'Gagal mengakses kamera'

class CameraPermissionDenied(CameraError):
    status_code = 403
    code = 'camera_permission_denied'
    default_message = 'Izin kamera ditolak. Harap berikan izin kamera di pengaturan perangkat Anda'
    
    # Recovery requires leaving the app, so the client renders these as a panel
    REMEDIATION_STEPS: List[str] = [
        'Buka Pengaturan perangkat',
        'Pilih Aplikasi atau Pengelola Aplikasi',
        'Cari dan pilih aplikasi ini',
        'Pilih Izin atau Permissions',
        'Aktifkan izin Kamera'
    ]
    
    def __init__(self, message: Optional[str] = None, details: Optional[Dict] = None):
        details = dict(details or {})
        details.setdefault('remediation', list(self.REMEDIATION_STEPS))
        super().__init__(message, details)

class CameraNotFound(CameraError):
    status_code = 404
    code = 'camera_not_found'
    default_message = 'Tidak menemukan kamera pada perangkat'

class CameraBusy(CameraError):
    status_code = 409
    code = 'camera_busy'
    default_message = 'Kamera sedang digunakan oleh aplikasi lain'

class CameraOverconstrained(CameraError):
    status_code = 422
    code = 'camera_overconstrained'
    default_message = 'Tidak dapat menemukan kamera yang sesuai dengan persyaratan'

class CameraUnknownError(CameraError):
    code = 'camera_unknown'

# =================== CAPTURE ===================

class CaptureError(AttendanceError):
    status_code = 422
    code = 'capture_failed'
    default_message = 'Gagal mengambil gambar'

class ScanError(CaptureError):
    code = 'scan_failed'
    default_message = 'Gagal memindai kode QR'

class ScanTimeout(ScanError):
    status_code = 408
    code = 'scan_timeout'
    default_message = 'Kode QR tidak terdeteksi. Silakan coba lagi'

# =================== GEOLOCATION ===================

class GeolocationError(AttendanceError):
    status_code = 422
    code = 'geo_error'
    default_message = 'Gagal mendapatkan lokasi. Pastikan GPS diaktifkan.'

class GeoPermissionDenied(GeolocationError):
    status_code = 403
    code = 'geo_permission_denied'
    default_message = 'Gagal mendapatkan lokasi. Izin lokasi ditolak. Harap aktifkan izin lokasi di pengaturan.'

class GeoUnavailable(GeolocationError):
    code = 'geo_unavailable'
    default_message = 'Gagal mendapatkan lokasi. Informasi lokasi tidak tersedia.'

class GeoTimeout(GeolocationError):
    status_code = 408
    code = 'geo_timeout'
    default_message = 'Gagal mendapatkan lokasi. Waktu permintaan lokasi habis.'

class StaleLocation(AttendanceError):
    """A location fix arrived for a session that no longer expects it."""
    status_code = 409
    code = 'stale_location'
    default_message = 'Data lokasi sudah kedaluwarsa untuk sesi ini'

# =================== SUBMISSION ===================

class OutOfGeofence(AttendanceError):
    code = 'out_of_geofence'
    
    def __init__(self, distance_meters: float, radius_meters: float):
        self.distance_meters = distance_meters
        self.radius_meters = radius_meters
        super().__init__(
            f'Anda berada di luar area sekolah ({round(distance_meters)} meter)',
            {'distance_meters': round(distance_meters, 2), 'radius_meters': radius_meters}
        )

class DuplicateSubmission(AttendanceError):
    status_code = 409
    code = 'duplicate_submission'
    default_message = 'Absensi sudah tercatat hari ini'

class IdentityNotFound(AttendanceError):
    status_code = 404
    code = 'identity_not_found'
    default_message = 'Siswa tidak ditemukan dalam database'

class IncompleteData(AttendanceError):
    code = 'incomplete_data'
    default_message = 'Data tidak lengkap'

class InvalidTransition(AttendanceError):
    status_code = 409
    code = 'invalid_state'
    default_message = 'Langkah ini tidak tersedia pada tahap sesi saat ini'

class InvalidStatus(AttendanceError):
    code = 'invalid_status'
    default_message = 'Status kehadiran tidak valid'

class SessionNotFound(AttendanceError):
    status_code = 404
    code = 'session_not_found'
    default_message = 'Sesi absensi tidak ditemukan atau sudah kedaluwarsa'

class StoreWriteFailure(AttendanceError):
    status_code = 500
    code = 'store_write_failure'
    default_message = 'Gagal mencatat absensi'

class NotificationFailure(AttendanceError):
    """Raised inside the dispatcher only; always swallowed there."""
    status_code = 502
    code = 'notification_failure'
    default_message = 'Gagal mengirim notifikasi'

class AccessDenied(AttendanceError):
    status_code = 403
    code = 'access_denied'
    default_message = 'Anda tidak memiliki akses ke halaman ini'

class UnknownFlow(AttendanceError):
    code = 'unknown_flow'
    default_message = 'Jenis absensi tidak dikenal'
