# backend/absensi/services/capture_service.py
"""Still-frame snapshot and QR decoding from a live stream."""
import base64
import binascii
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Dict, Optional

import cv2
import numpy as np

from absensi.services.camera_service import MediaDeviceError, MediaStream, translate_camera_error
from absensi.utils.errors import CaptureError, ScanError, ScanTimeout

logger = logging.getLogger(__name__)

class EvidenceKind(Enum):
    SELFIE = 'selfie'
    QR = 'qr'

@dataclass
class CapturedEvidence:
    """Image payload (selfie) or decoded code string (QR)."""
    kind: EvidenceKind
    image: Optional[bytes] = None
    code: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    captured_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    
    @property
    def data_url(self) -> Optional[str]:
        if self.image is None:
            return None
        return "data:image/jpeg;base64," + base64.b64encode(self.image).decode()
    
    @classmethod
    def from_data_url(cls, value: str) -> 'CapturedEvidence':
        """Accept a selfie captured and encoded by the client."""
        if not isinstance(value, str) or not value:
            raise CaptureError("Gambar tidak valid")
        
        payload = value.split(',', 1)[1] if value.startswith('data:') else value
        try:
            raw = base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError):
            raise CaptureError("Gagal mengkonversi gambar")
        
        image = cv2.imdecode(np.frombuffer(raw, dtype=np.uint8), cv2.IMREAD_COLOR)
        if image is None:
            raise CaptureError("Gagal mengkonversi gambar")
        
        height, width = image.shape[:2]
        return cls(kind=EvidenceKind.SELFIE, image=raw, width=width, height=height)
    
    @classmethod
    def from_code(cls, value) -> 'CapturedEvidence':
        """Accept a code decoded by the client scanner."""
        code = str(value or '').strip()
        if not code:
            raise ScanError("Kode QR kosong")
        return cls(kind=EvidenceKind.QR, code=code)
    
    def to_dict(self) -> Dict:
        return {
            'kind': self.kind.value,
            'code': self.code,
            'image': self.data_url,
            'width': self.width,
            'height': self.height,
            'captured_at': self.captured_at.isoformat()
        }

class CaptureEngine:
    """Turns a live stream into evidence."""
    
    def __init__(
        self,
        jpeg_quality: int = 80,
        scan_interval: float = 0.5,
        scan_timeout: float = 30,
        sleep: Callable[[float], None] = time.sleep,
        monotonic: Callable[[], float] = time.monotonic
    ):
        self.jpeg_quality = jpeg_quality
        self.scan_interval = scan_interval
        self.scan_timeout = scan_timeout
        self.sleep = sleep
        self.monotonic = monotonic
    
    @classmethod
    def from_config(cls, config: Dict) -> 'CaptureEngine':
        return cls(
            jpeg_quality=config.get('SELFIE_JPEG_QUALITY', 80),
            scan_interval=config.get('QR_SCAN_INTERVAL_SECONDS', 0.5),
            scan_timeout=config.get('QR_SCAN_TIMEOUT_SECONDS', 30)
        )
    
    def snapshot(self, stream: Optional[MediaStream]) -> CapturedEvidence:
        """Encode the current frame at native resolution as JPEG."""
        frame = self._read_frame(stream)
        
        if frame.ndim < 2 or frame.size == 0:
            raise CaptureError("Tidak dapat membuat konteks gambar")
        
        height, width = frame.shape[:2]
        try:
            ok, buffer = cv2.imencode('.jpg', frame, [cv2.IMWRITE_JPEG_QUALITY, self.jpeg_quality])
        except cv2.error as e:
            logger.error("Error encoding snapshot: %s", e)
            raise CaptureError("Gagal mengambil gambar dari video")
        
        if not ok:
            raise CaptureError("Gagal mengkonversi gambar")
        
        return CapturedEvidence(
            kind=EvidenceKind.SELFIE,
            image=buffer.tobytes(),
            width=width,
            height=height
        )
    
    def scan(
        self,
        stream: Optional[MediaStream],
        should_continue: Optional[Callable[[], bool]] = None
    ) -> CapturedEvidence:
        """Decode frames every ``scan_interval`` until a QR payload appears."""
        detector = cv2.QRCodeDetector()
        deadline = self.monotonic() + self.scan_timeout
        
        while True:
            frame = self._read_frame(stream)
            
            try:
                data, _, _ = detector.detectAndDecode(frame)
            except cv2.error as e:
                # undecodable frame; keep scanning
                logger.debug("QR decode error: %s", e)
                data = ''
            
            if data:
                return CapturedEvidence.from_code(data)
            
            if should_continue is not None and not should_continue():
                raise ScanError("Pemindaian dibatalkan")
            
            if self.monotonic() >= deadline:
                raise ScanTimeout()
            
            self.sleep(self.scan_interval)
    
    @staticmethod
    def _read_frame(stream: Optional[MediaStream]):
        if stream is None or not stream.active:
            raise CaptureError("Perangkat kamera tidak siap")
        
        tracks = [t for t in stream.get_video_tracks() if t.ready_state == 'live']
        if not tracks:
            raise CaptureError("Perangkat kamera tidak siap")
        
        try:
            frame = tracks[0].read_frame()
        except MediaDeviceError as e:
            # device problems surface as camera errors, not capture errors
            raise translate_camera_error(e)
        
        if frame is None:
            raise CaptureError("Gagal mengambil gambar dari video")
        return np.asarray(frame)
