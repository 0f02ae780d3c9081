# backend/absensi/services/camera_service.py
"""Camera acquisition with environment-adaptive fallback strategies.

Acquisition goes through a ``media devices`` backend shaped like the
browser API: ``enumerate_devices()`` and ``get_user_media(constraints)``
returning a :class:`MediaStream` of tracks. Backends report failures as
:class:`MediaDeviceError` carrying a DOMException-style name, which this
layer translates into the pipeline's camera error taxonomy.

Rules:
- ideal constraints first (resolution + facing), then an unconstrained request
- embedded hosts get a bounded number of automatic attempts with backoff
- every attempt, switch, cancel and teardown releases all tracks first
"""
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional

import cv2

from absensi.utils.errors import (
    CameraBusy, CameraError, CameraNotFound, CameraOverconstrained,
    CameraPermissionDenied, CameraUnknownError
)

logger = logging.getLogger(__name__)

class CameraStrategy(Enum):
    """Resolved once by the hosting shell and injected through config."""
    STANDARD = 'standard'
    EMBEDDED_HOST = 'embedded_host'

class FacingMode(Enum):
    USER = 'user'
    ENVIRONMENT = 'environment'

class MediaDeviceError(Exception):
    """Backend failure named like a browser DOMException."""
    
    def __init__(self, name: str, message: str = ''):
        self.name = name
        super().__init__(message or name)

# DOMException names, including legacy aliases still seen on older WebViews
ERROR_NAMES = {
    'NotFoundError': CameraNotFound,
    'DevicesNotFoundError': CameraNotFound,
    'NotAllowedError': CameraPermissionDenied,
    'PermissionDeniedError': CameraPermissionDenied,
    'SecurityError': CameraPermissionDenied,
    'NotReadableError': CameraBusy,
    'TrackStartError': CameraBusy,
    'OverconstrainedError': CameraOverconstrained,
    'ConstraintNotSatisfiedError': CameraOverconstrained,
}

def translate_camera_error(error: Exception) -> CameraError:
    """Map a backend failure to the camera error taxonomy."""
    if isinstance(error, CameraError):
        return error
    
    error_class = ERROR_NAMES.get(getattr(error, 'name', None))
    if error_class:
        return error_class()
    return CameraUnknownError(f"Gagal mengakses kamera: {error}")

@dataclass
class MediaDeviceInfo:
    device_id: str
    label: str
    kind: str = 'videoinput'
    
    def to_dict(self) -> Dict:
        return {'device_id': self.device_id, 'label': self.label, 'kind': self.kind}

@dataclass
class VideoConstraints:
    """Requested video constraints; ``None`` leaves a property unconstrained."""
    width: Optional[int] = None
    height: Optional[int] = None
    facing_mode: Optional[FacingMode] = None
    device_id: Optional[str] = None

class MediaTrack:
    """A single video track; ``ready_state`` is 'live' until stopped."""
    
    kind = 'video'
    
    def __init__(self, device_id: str, label: str = ''):
        self.device_id = device_id
        self.label = label
        self.ready_state = 'live'
    
    def read_frame(self):
        raise NotImplementedError
    
    def stop(self) -> None:
        self.ready_state = 'ended'

class MediaStream:
    """Group of tracks owned by one capture session."""
    
    def __init__(self, tracks: List[MediaTrack]):
        self._tracks = list(tracks)
    
    def get_tracks(self) -> List[MediaTrack]:
        return list(self._tracks)
    
    def get_video_tracks(self) -> List[MediaTrack]:
        return [t for t in self._tracks if t.kind == 'video']
    
    @property
    def active(self) -> bool:
        return any(t.ready_state == 'live' for t in self._tracks)
    
    def stop(self) -> None:
        for track in self._tracks:
            track.stop()

# =================== OPENCV BACKEND ===================

class OpenCVTrack(MediaTrack):
    """Track backed by ``cv2.VideoCapture``."""
    
    def __init__(self, capture, index: int, on_stop: Optional[Callable[[int], None]] = None):
        super().__init__(device_id=str(index), label=f"Camera {index}")
        self._capture = capture
        self._index = index
        self._on_stop = on_stop

    def read_frame(self):
        if self.ready_state != 'live':
            raise MediaDeviceError('InvalidStateError', 'Track has been stopped')
        
        ok, frame = self._capture.read()
        if not ok or frame is None:
            raise MediaDeviceError('NotReadableError', 'Camera returned no frame')
        return frame
    
    def stop(self) -> None:
        if self.ready_state == 'live':
            self._capture.release()
            if self._on_stop:
                self._on_stop(self._index)
        super().stop()

class OpenCVMediaDevices:
    """Cameras attached to the host running the service."""

    def __init__(self, max_devices: int = 4):
        self.max_devices = max_devices
        self._in_use = set()

    def enumerate_devices(self) -> List[MediaDeviceInfo]:
        devices = []
        for index in range(self.max_devices):
            # probing a device this process holds fails on some drivers
            if index in self._in_use:
                devices.append(MediaDeviceInfo(device_id=str(index), label=f"Camera {index}"))
                continue
            capture = cv2.VideoCapture(index)
            try:
                if capture.isOpened():
                    devices.append(MediaDeviceInfo(device_id=str(index), label=f"Camera {index}"))
            finally:
                capture.release()
        return devices
    
    def get_user_media(self, constraints: VideoConstraints) -> MediaStream:
        index = int(constraints.device_id) if constraints.device_id is not None else 0
        
        capture = cv2.VideoCapture(index)
        if not capture.isOpened():
            capture.release()
            raise MediaDeviceError('NotFoundError', f'No camera at index {index}')
        
        if constraints.width:
            capture.set(cv2.CAP_PROP_FRAME_WIDTH, constraints.width)
        if constraints.height:
            capture.set(cv2.CAP_PROP_FRAME_HEIGHT, constraints.height)
        
        # Opening succeeds on some drivers even when another process holds the device
        ok, _ = capture.read()
        if not ok:
            capture.release()
            raise MediaDeviceError('NotReadableError', f'Camera {index} is busy')
        
        self._in_use.add(index)
        return MediaStream([OpenCVTrack(capture, index, on_stop=self._in_use.discard)])

class UnavailableMediaDevices:
    """Backend for hosts without a camera; evidence must be uploaded."""
    
    def enumerate_devices(self) -> List[MediaDeviceInfo]:
        return []
    
    def get_user_media(self, constraints: VideoConstraints) -> MediaStream:
        raise MediaDeviceError('NotFoundError', 'No camera backend configured')

def create_media_devices(config: Dict):
    """Build the media devices backend named by CAMERA_BACKEND."""
    backend = config.get('CAMERA_BACKEND', 'opencv')
    if backend == 'opencv':
        return OpenCVMediaDevices(max_devices=config.get('CAMERA_MAX_DEVICES', 4))
    if backend == 'unavailable':
        return UnavailableMediaDevices()
    raise ValueError(f"Unknown CAMERA_BACKEND: {backend}")

# =================== ACQUISITION ===================

BACK_CAMERA_LABELS = ('back', 'rear', 'belakang', 'environment')

@dataclass
class CameraAcquisition:
    """Owns at most one live stream for a capture session."""
    
    media_devices: object
    strategy: CameraStrategy = CameraStrategy.STANDARD
    width: int = 640
    height: int = 480
    max_attempts: int = 3
    retry_backoff_seconds: float = 1.0
    sleep: Callable[[float], None] = time.sleep
    
    stream: Optional[MediaStream] = field(default=None, init=False)
    devices: List[MediaDeviceInfo] = field(default_factory=list, init=False)
    active_device_id: Optional[str] = field(default=None, init=False)
    facing: FacingMode = field(default=FacingMode.USER, init=False)
    attempts: int = field(default=0, init=False)
    
    @classmethod
    def from_config(cls, media_devices, config: Dict, sleep: Callable[[float], None] = time.sleep) -> 'CameraAcquisition':
        return cls(
            media_devices=media_devices,
            strategy=CameraStrategy(config.get('CAMERA_STRATEGY', 'standard')),
            width=config.get('CAMERA_WIDTH', 640),
            height=config.get('CAMERA_HEIGHT', 480),
            max_attempts=config.get('CAMERA_EMBEDDED_MAX_ATTEMPTS', 3),
            retry_backoff_seconds=config.get('CAMERA_RETRY_BACKOFF_SECONDS', 1.0),
            sleep=sleep
        )
    
    def acquire_stream(self, facing: FacingMode = FacingMode.USER, device_id: Optional[str] = None) -> MediaStream:
        """Acquire a live stream, replacing any stream this session holds."""
        self.release()
        self.facing = facing
        
        if self.strategy == CameraStrategy.EMBEDDED_HOST:
            stream = self._acquire_with_retries(facing, device_id)
        else:
            self.attempts = 1
            stream = self._attempt(facing, device_id)
        
        self.stream = stream
        self._refresh_devices()
        
        tracks = stream.get_video_tracks()
        self.active_device_id = tracks[0].device_id if tracks else device_id
        logger.info("Camera acquired (device=%s, strategy=%s, attempts=%d)",
                    self.active_device_id, self.strategy.value, self.attempts)
        return stream
    
    def switch_camera(self) -> MediaStream:
        """Cycle to the next video input; no-op with a single device."""
        if len(self.devices) <= 1:
            return self.stream
        
        ids = [d.device_id for d in self.devices]
        current = ids.index(self.active_device_id) if self.active_device_id in ids else -1
        next_id = ids[(current + 1) % len(ids)]
        
        # the old stream is fully released inside acquire_stream
        return self.acquire_stream(facing=self.facing, device_id=next_id)
    
    def preferred_device(self, facing: FacingMode) -> Optional[MediaDeviceInfo]:
        """Back camera by label for environment facing, else the first device."""
        if not self.devices:
            return None
        if facing == FacingMode.ENVIRONMENT:
            for device in self.devices:
                if any(word in device.label.lower() for word in BACK_CAMERA_LABELS):
                    return device
        return self.devices[0]
    
    def release(self) -> None:
        """Stop every track of the current stream."""
        if self.stream is not None:
            self.stream.stop()
            self.stream = None
            logger.debug("Camera released (device=%s)", self.active_device_id)
    
    @property
    def is_live(self) -> bool:
        return self.stream is not None and self.stream.active
    
    def _acquire_with_retries(self, facing: FacingMode, device_id: Optional[str]) -> MediaStream:
        last_error = None
        
        for attempt in range(1, self.max_attempts + 1):
            self.attempts = attempt
            try:
                return self._attempt(facing, device_id)
            except CameraNotFound:
                raise
            except CameraError as e:
                last_error = e
                logger.warning("Embedded host camera attempt %d/%d failed: %s",
                               attempt, self.max_attempts, e.message)
                if attempt < self.max_attempts:
                    self.sleep(self.retry_backoff_seconds)
        
        raise last_error
    
    def _attempt(self, facing: FacingMode, device_id: Optional[str]) -> MediaStream:
        ideal = VideoConstraints(
            width=self.width,
            height=self.height,
            facing_mode=facing,
            device_id=device_id
        )
        try:
            return self.media_devices.get_user_media(ideal)
        except Exception as e:
            error = translate_camera_error(e)
            if isinstance(error, CameraPermissionDenied):
                raise error
            logger.warning("Ideal camera constraints failed (%s), retrying unconstrained", e)
        
        # Explicit device selection survives the fallback; resolution and facing do not
        try:
            return self.media_devices.get_user_media(VideoConstraints(device_id=device_id))
        except Exception as e:
            raise translate_camera_error(e)
    
    def _refresh_devices(self) -> None:
        try:
            self.devices = [
                d for d in self.media_devices.enumerate_devices()
                if d.kind == 'videoinput'
            ]
        except Exception as e:
            logger.warning("Could not enumerate cameras: %s", e)
            self.devices = []
