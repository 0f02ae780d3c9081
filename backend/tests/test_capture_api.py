"""Tests for the capture session endpoints."""
import base64
import json

import cv2
import numpy as np

from absensi.models.attendance import AttendanceRecord

from conftest import LAT_150M_NORTH, headers_for, location_body

def open_session(client, headers, flow='staff_selfie'):
    response = client.post('/api/attendance/sessions', json={'flow': flow}, headers=headers)
    assert response.status_code == 201
    return json.loads(response.data)['data']

def post(client, session_id, action, headers, body=None):
    response = client.post(f'/api/attendance/sessions/{session_id}/{action}', json=body or {}, headers=headers)
    return response, json.loads(response.data)

def selfie_data_url():
    ok, buffer = cv2.imencode('.jpg', np.full((240, 320, 3), 150, dtype=np.uint8))
    assert ok
    return 'data:image/jpeg;base64,' + base64.b64encode(buffer.tobytes()).decode()

def test_requires_token(client):
    response = client.post('/api/attendance/sessions', json={'flow': 'staff_selfie'})
    assert response.status_code == 401
    assert json.loads(response.data)['message'] == 'Authorization token required'

def test_missing_flow(client, staff_headers):
    response = client.post('/api/attendance/sessions', json={}, headers=staff_headers)
    assert response.status_code == 400

def test_staff_selfie_flow(client, media_devices, clock, telegram, staff_headers):
    """Camera, snapshot, location and submit over HTTP."""
    session = open_session(client, staff_headers)
    assert session['state'] == 'idle'
    assert session['geofence']['radius_meters'] == 100
    sid = session['id']
    
    response, data = post(client, sid, 'camera', staff_headers)
    assert response.status_code == 200
    assert data['data']['camera']['live'] is True
    assert len(data['data']['camera']['devices']) == 2
    
    response, data = post(client, sid, 'capture', staff_headers)
    assert response.status_code == 200
    assert data['data']['state'] == 'identity_resolved'
    assert data['data']['subject']['name'] == 'Jane'
    assert data['data']['evidence']['image'].startswith('data:image/jpeg;base64,')
    
    response, data = post(client, sid, 'location', staff_headers, location_body(session['generation']))
    assert response.status_code == 200
    assert data['message'] == 'Lokasi terdeteksi di area sekolah'
    assert data['data']['verdict']['within_radius'] is True
    
    response, data = post(client, sid, 'submit', staff_headers, {'type': 'check_in'})
    assert response.status_code == 201
    assert data['message'] == 'Absensi masuk berhasil tercatat!'
    assert data['data']['record']['status'] == 'present'
    assert data['data']['record']['type'] == 'check_in'
    assert data['data']['session']['state'] == 'succeeded'
    
    assert AttendanceRecord.query.count() == 1
    assert len(telegram.calls) == 1

def test_uploaded_selfie(client, clock, telegram, staff_headers):
    session = open_session(client, staff_headers)
    
    response, data = post(client, session['id'], 'capture', staff_headers, {'image': selfie_data_url()})
    assert response.status_code == 200
    assert data['data']['evidence']['width'] == 320

def test_duplicate_submission(client, clock, telegram, staff_headers):
    for expected in (201, 409):
        session = open_session(client, staff_headers)
        post(client, session['id'], 'capture', staff_headers, {'image': selfie_data_url()})
        post(client, session['id'], 'location', staff_headers, location_body(session['generation']))
        response, data = post(client, session['id'], 'submit', staff_headers, {'type': 'check_in'})
        assert response.status_code == expected
    
    assert data['code'] == 'duplicate_submission'
    assert data['message'] == 'Anda sudah melakukan absensi masuk hari ini'
    assert AttendanceRecord.query.count() == 1

def test_out_of_geofence(client, clock, telegram, staff_headers):
    session = open_session(client, staff_headers)
    post(client, session['id'], 'capture', staff_headers, {'image': selfie_data_url()})
    
    response, data = post(client, session['id'], 'location', staff_headers,
                          location_body(session['generation'], latitude=LAT_150M_NORTH))
    assert response.status_code == 200
    assert data['data']['verdict']['within_radius'] is False
    
    response, data = post(client, session['id'], 'submit', staff_headers, {'type': 'check_in'})
    assert response.status_code == 400
    assert data['code'] == 'out_of_geofence'
    assert '150 meter' in data['message']
    assert AttendanceRecord.query.count() == 0

def test_stale_generation_rejected(client, staff_headers):
    session = open_session(client, staff_headers)
    post(client, session['id'], 'reset', staff_headers)
    
    response, data = post(client, session['id'], 'location', staff_headers, location_body(session['generation']))
    assert response.status_code == 409
    assert data['code'] == 'stale_location'

def test_location_validation(client, staff_headers):
    session = open_session(client, staff_headers)
    
    response, _ = post(client, session['id'], 'location', staff_headers, {'latitude': 1, 'longitude': 1})
    assert response.status_code == 400
    
    response, data = post(client, session['id'], 'location', staff_headers,
                          {'generation': session['generation'], 'latitude': 95, 'longitude': 1})
    assert response.status_code == 400
    assert 'latitude' in data['message']

def test_location_timestamp_out_of_range(client, staff_headers):
    session = open_session(client, staff_headers)
    body = location_body(session['generation'])
    body['timestamp'] = 1e20
    
    response, data = post(client, session['id'], 'location', staff_headers, body)
    assert response.status_code == 422
    assert data['code'] == 'geo_unavailable'

def test_location_error_code(client, staff_headers):
    session = open_session(client, staff_headers)
    
    response, data = post(client, session['id'], 'location', staff_headers,
                          {'generation': session['generation'], 'error_code': 3})
    assert response.status_code == 408
    assert data['code'] == 'geo_timeout'

def test_camera_permission_denied(client, media_devices, staff_headers):
    media_devices.failures = ['NotAllowedError']
    session = open_session(client, staff_headers)
    
    response, data = post(client, session['id'], 'camera', staff_headers)
    assert response.status_code == 403
    assert data['code'] == 'camera_permission_denied'
    assert len(data['details']['remediation']) == 5

def test_cancel(client, media_devices, staff_headers):
    session = open_session(client, staff_headers)
    post(client, session['id'], 'camera', staff_headers)
    
    response, data = post(client, session['id'], 'cancel', staff_headers)
    assert response.status_code == 200
    assert data['data']['state'] == 'idle'
    assert data['data']['camera']['live'] is False
    assert not any(stream.active for stream in media_devices.streams)

def test_student_qr_flow(client, clock, telegram, teacher_headers, student):
    session = open_session(client, teacher_headers, flow='student_qr')
    sid = session['id']
    
    response, data = post(client, sid, 'capture', teacher_headers, {'code': '1234567890'})
    assert response.status_code == 404
    assert data['code'] == 'identity_not_found'
    
    response, data = post(client, sid, 'capture', teacher_headers, {'code': '0012345678'})
    assert response.status_code == 200
    assert data['message'] == 'QR Code terdeteksi: Ahmad Fauzi'
    
    post(client, sid, 'location', teacher_headers, location_body(session['generation']))
    response, data = post(client, sid, 'submit', teacher_headers, {'status': 'permitted', 'note': 'Acara keluarga'})
    
    assert response.status_code == 201
    assert data['message'] == 'Absensi berhasil disimpan'
    assert data['data']['record']['status'] == 'permitted'
    assert data['data']['record']['note'] == 'Acara keluarga'

def test_invalid_status_value(client, clock, teacher_headers, student):
    session = open_session(client, teacher_headers, flow='student_qr')
    post(client, session['id'], 'capture', teacher_headers, {'code': '0012345678'})
    post(client, session['id'], 'location', teacher_headers, location_body(session['generation']))
    
    response, data = post(client, session['id'], 'submit', teacher_headers, {'status': 'bolos'})
    assert response.status_code == 400
    assert data['code'] == 'invalid_status'

def test_staff_cannot_scan_students(client, staff_headers):
    response = client.post('/api/attendance/sessions', json={'flow': 'student_qr'}, headers=staff_headers)
    assert response.status_code == 403

def test_session_owned_by_principal(client, staff_headers, teacher_user):
    session = open_session(client, staff_headers)
    
    response = client.get(f"/api/attendance/sessions/{session['id']}", headers=headers_for(teacher_user))
    assert response.status_code == 404
    
    response = client.get(f"/api/attendance/sessions/{session['id']}", headers=staff_headers)
    assert response.status_code == 200

def test_close_session(client, staff_headers):
    session = open_session(client, staff_headers)
    
    response = client.delete(f"/api/attendance/sessions/{session['id']}", headers=staff_headers)
    assert response.status_code == 200
    
    response = client.get(f"/api/attendance/sessions/{session['id']}", headers=staff_headers)
    assert response.status_code == 404
