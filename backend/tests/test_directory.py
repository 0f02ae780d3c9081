"""Tests for directory lookups."""
import json

from conftest import SCHOOL_LAT, SCHOOL_LNG

def test_geofence(client, staff_headers):
    response = client.get('/api/directory/geofence', headers=staff_headers)
    
    assert response.status_code == 200
    geofence = json.loads(response.data)['data']['geofence']
    assert geofence == {'latitude': SCHOOL_LAT, 'longitude': SCHOOL_LNG, 'radius_meters': 100}

def test_geofence_not_configured(client, school, staff_headers):
    school.latitude = None
    school.save()
    
    response = client.get('/api/directory/geofence', headers=staff_headers)
    assert json.loads(response.data)['data']['geofence'] is None

def test_student_qr_card(client, teacher_headers, student):
    response = client.get(f'/api/directory/students/{student.id}/qr', headers=teacher_headers)
    
    assert response.status_code == 200
    data = json.loads(response.data)['data']
    assert data['nisn'] == '0012345678'
    assert data['qr_code'].startswith('data:image/png;base64,')

def test_qr_card_only_for_students(client, teacher_user, teacher_headers):
    response = client.get(f'/api/directory/students/{teacher_user.subject_id}/qr', headers=teacher_headers)
    
    assert response.status_code == 404

def test_qr_card_requires_teacher(client, staff_headers, student):
    response = client.get(f'/api/directory/students/{student.id}/qr', headers=staff_headers)
    assert response.status_code == 403
