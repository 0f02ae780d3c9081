"""Shared fixtures for the attendance service tests."""
import io
from datetime import datetime
from zoneinfo import ZoneInfo

import cv2
import numpy as np
import pytest
import qrcode
import requests
from flask_jwt_extended import create_access_token

from absensi import create_app, db
from absensi.models.school import School
from absensi.models.subject import Subject, SubjectCategory
from absensi.models.user import User, UserRole
from absensi.services.camera_service import MediaDeviceError, MediaDeviceInfo, MediaStream, MediaTrack

JAKARTA = ZoneInfo('Asia/Jakarta')
SCHOOL_LAT = -6.200000
SCHOOL_LNG = 106.816666

# ~150 m north of the school at 6371 km earth radius
LAT_150M_NORTH = SCHOOL_LAT + 0.001349

class FakeTrack(MediaTrack):
    def __init__(self, device_id, frame, label=''):
        super().__init__(device_id=device_id, label=label)
        self.frame = frame
    
    def read_frame(self):
        if self.ready_state != 'live':
            raise MediaDeviceError('InvalidStateError')
        return self.frame

class FakeMediaDevices:
    """Scriptable media devices backend.
    
    ``failures`` lists DOMException names raised by successive
    ``get_user_media`` calls (``None`` means succeed).
    """
    
    def __init__(self, devices=None, frame=None, failures=None):
        if devices is None:
            devices = [
                MediaDeviceInfo(device_id='cam-front', label='Front Camera'),
                MediaDeviceInfo(device_id='cam-back', label='Back Camera'),
            ]
        self.devices = devices
        self.frame = frame if frame is not None else np.full((480, 640, 3), 127, dtype=np.uint8)
        self.failures = list(failures or [])
        self.requests = []
        self.streams = []
    
    def enumerate_devices(self):
        return list(self.devices)
    
    def get_user_media(self, constraints):
        self.requests.append(constraints)
        
        if self.failures:
            name = self.failures.pop(0)
            if name:
                raise MediaDeviceError(name)
        
        if not self.devices:
            raise MediaDeviceError('NotFoundError')
        
        device_id = constraints.device_id or self.devices[0].device_id
        stream = MediaStream([FakeTrack(device_id, self.frame)])
        self.streams.append(stream)
        return stream

class FixedClock:
    def __init__(self, moment):
        self.moment = moment
    
    def now(self):
        return self.moment

class FakeTelegram:
    """Records sendMessage calls; ``status_code`` controls the reply."""
    
    def __init__(self):
        self.calls = []
        self.status_code = 200
    
    def post(self, url, json=None, timeout=None):
        self.calls.append({'url': url, 'json': json, 'timeout': timeout})
        response = requests.Response()
        response.status_code = self.status_code
        response.url = url
        return response

def jakarta(hour, minute=0, second=0):
    return datetime(2026, 10, 19, hour, minute, second, tzinfo=JAKARTA)

def location_body(generation, latitude=SCHOOL_LAT, longitude=SCHOOL_LNG):
    return {'generation': generation, 'latitude': latitude, 'longitude': longitude, 'accuracy': 12}

@pytest.fixture
def app():
    """Create test app."""
    app = create_app('testing')
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()

@pytest.fixture
def client(app):
    """Create test client."""
    return app.test_client()

@pytest.fixture
def engine(app):
    return app.extensions['attendance_engine']

@pytest.fixture
def media_devices(engine):
    devices = FakeMediaDevices()
    engine.media_devices = devices
    return devices

@pytest.fixture
def clock(engine):
    clock = FixedClock(jakarta(7, 30))
    engine.clock = clock
    return clock

@pytest.fixture
def telegram(monkeypatch):
    fake = FakeTelegram()
    monkeypatch.setattr('absensi.services.notification_service.requests.post', fake.post)
    return fake

@pytest.fixture
def school(app):
    school = School(
        name='SD Negeri Uji 01',
        npsn='20100099',
        latitude=SCHOOL_LAT,
        longitude=SCHOOL_LNG,
        radius_meters=100,
        telegram_bot_token='123456:test-token',
        telegram_chat_id='-100200300'
    )
    return school.save()

def _principal(school, name, email, role, category, secondary_id):
    subject = Subject(
        school_id=school.id,
        name=name,
        secondary_id=secondary_id,
        category=category
    ).save()
    
    user = User(
        email=email,
        name=name,
        role=role,
        school_id=school.id,
        subject_id=subject.id
    )
    user.set_password('password123')
    return user.save()

@pytest.fixture
def staff_user(school):
    return _principal(school, 'Jane', 'jane@sekolah.test', UserRole.STAFF,
                      SubjectCategory.STAFF, '3171014509900003')

@pytest.fixture
def teacher_user(school):
    return _principal(school, 'Budi Santoso', 'budi@sekolah.test', UserRole.TEACHER,
                      SubjectCategory.TEACHER, '198902032014031002')

@pytest.fixture
def student(school):
    return Subject(
        school_id=school.id,
        name='Ahmad Fauzi',
        secondary_id='0012345678',
        category=SubjectCategory.STUDENT,
        class_name='4A',
        telegram_chat_id='987654'
    ).save()

def headers_for(user):
    token = create_access_token(identity=str(user.id))
    return {'Authorization': f'Bearer {token}'}

@pytest.fixture
def staff_headers(staff_user):
    return headers_for(staff_user)

@pytest.fixture
def teacher_headers(teacher_user):
    return headers_for(teacher_user)

def qr_frame(payload):
    """Render a real QR code and return it as a BGR frame."""
    buffered = io.BytesIO()
    qrcode.make(payload).save(buffered, format="PNG")
    return cv2.imdecode(np.frombuffer(buffered.getvalue(), dtype=np.uint8), cv2.IMREAD_COLOR)
