"""Tests for camera acquisition strategies."""
import pytest

from absensi.services.camera_service import (
    CameraAcquisition, CameraStrategy, FacingMode, MediaDeviceError, MediaDeviceInfo,
    translate_camera_error
)
from absensi.utils.errors import (
    CameraBusy, CameraNotFound, CameraOverconstrained, CameraPermissionDenied, CameraUnknownError
)

from conftest import FakeMediaDevices

def make_camera(devices, strategy=CameraStrategy.STANDARD):
    sleeps = []
    camera = CameraAcquisition(
        media_devices=devices,
        strategy=strategy,
        max_attempts=3,
        retry_backoff_seconds=1.0,
        sleep=sleeps.append
    )
    return camera, sleeps

@pytest.mark.parametrize('name, error_class', [
    ('NotFoundError', CameraNotFound),
    ('DevicesNotFoundError', CameraNotFound),
    ('NotAllowedError', CameraPermissionDenied),
    ('PermissionDeniedError', CameraPermissionDenied),
    ('NotReadableError', CameraBusy),
    ('TrackStartError', CameraBusy),
    ('OverconstrainedError', CameraOverconstrained),
    ('ConstraintNotSatisfiedError', CameraOverconstrained),
    ('AbortError', CameraUnknownError),
])
def test_translate_error_names(name, error_class):
    assert isinstance(translate_camera_error(MediaDeviceError(name)), error_class)

def test_permission_denied_carries_remediation():
    error = translate_camera_error(MediaDeviceError('NotAllowedError'))
    assert len(error.details['remediation']) == 5

def test_ideal_constraints_first():
    devices = FakeMediaDevices()
    camera, _ = make_camera(devices)
    
    camera.acquire_stream(FacingMode.USER)
    
    request = devices.requests[0]
    assert (request.width, request.height) == (640, 480)
    assert request.facing_mode == FacingMode.USER
    assert camera.is_live
    assert [d.device_id for d in camera.devices] == ['cam-front', 'cam-back']

def test_fallback_to_unconstrained():
    devices = FakeMediaDevices(failures=['OverconstrainedError'])
    camera, _ = make_camera(devices)
    
    camera.acquire_stream(FacingMode.ENVIRONMENT)
    
    assert len(devices.requests) == 2
    fallback = devices.requests[1]
    assert fallback.width is None and fallback.facing_mode is None
    assert camera.is_live

def test_fallback_keeps_explicit_device():
    devices = FakeMediaDevices(failures=['OverconstrainedError'])
    camera, _ = make_camera(devices)
    
    camera.acquire_stream(FacingMode.USER, device_id='cam-back')
    
    assert devices.requests[1].device_id == 'cam-back'
    assert camera.active_device_id == 'cam-back'

def test_permission_denied_skips_fallback():
    devices = FakeMediaDevices(failures=['NotAllowedError'])
    camera, _ = make_camera(devices)
    
    with pytest.raises(CameraPermissionDenied):
        camera.acquire_stream()
    assert len(devices.requests) == 1

def test_standard_strategy_does_not_retry():
    devices = FakeMediaDevices(failures=['NotReadableError', 'NotReadableError', None])
    camera, sleeps = make_camera(devices)
    
    with pytest.raises(CameraBusy):
        camera.acquire_stream()
    assert camera.attempts == 1
    assert sleeps == []

def test_embedded_host_retries_with_backoff():
    # each attempt is ideal + fallback; both fail twice, then succeed
    devices = FakeMediaDevices(failures=['NotReadableError'] * 4)
    camera, sleeps = make_camera(devices, CameraStrategy.EMBEDDED_HOST)
    
    camera.acquire_stream()
    
    assert camera.attempts == 3
    assert sleeps == [1.0, 1.0]
    assert camera.is_live

def test_embedded_host_gives_up_after_max_attempts():
    devices = FakeMediaDevices(failures=['NotReadableError'] * 6)
    camera, sleeps = make_camera(devices, CameraStrategy.EMBEDDED_HOST)
    
    with pytest.raises(CameraBusy):
        camera.acquire_stream()
    assert camera.attempts == 3
    assert len(sleeps) == 2

def test_embedded_host_not_found_is_not_retried():
    devices = FakeMediaDevices(devices=[])
    camera, sleeps = make_camera(devices, CameraStrategy.EMBEDDED_HOST)
    
    with pytest.raises(CameraNotFound):
        camera.acquire_stream()
    assert camera.attempts == 1
    assert sleeps == []

def test_switch_releases_previous_stream():
    devices = FakeMediaDevices()
    camera, _ = make_camera(devices)
    
    first = camera.acquire_stream()
    camera.switch_camera()
    
    assert not first.active
    assert all(t.ready_state == 'ended' for t in first.get_tracks())
    assert camera.active_device_id == 'cam-back'
    assert sum(1 for s in devices.streams if s.active) == 1

def test_switch_noop_with_single_device():
    devices = FakeMediaDevices(devices=[MediaDeviceInfo(device_id='only', label='Camera')])
    camera, _ = make_camera(devices)
    
    stream = camera.acquire_stream()
    assert camera.switch_camera() is stream
    assert len(devices.requests) == 1

def test_release_ends_all_tracks():
    devices = FakeMediaDevices()
    camera, _ = make_camera(devices)
    stream = camera.acquire_stream()
    
    camera.release()
    
    assert not camera.is_live
    assert all(t.ready_state == 'ended' for t in stream.get_tracks())

def test_reacquire_releases_first():
    devices = FakeMediaDevices()
    camera, _ = make_camera(devices)
    
    first = camera.acquire_stream()
    camera.acquire_stream()
    
    assert not first.active

def test_preferred_device_by_label():
    devices = FakeMediaDevices(devices=[
        MediaDeviceInfo(device_id='a', label='Kamera depan'),
        MediaDeviceInfo(device_id='b', label='Kamera belakang'),
    ])
    camera, _ = make_camera(devices)
    camera.acquire_stream(FacingMode.ENVIRONMENT)
    
    assert camera.preferred_device(FacingMode.ENVIRONMENT).device_id == 'b'
    assert camera.preferred_device(FacingMode.USER).device_id == 'a'
