"""Test authentication endpoints."""
import json

from absensi import db
from absensi.models.user import User, UserRole

def test_app_health(client):
    """Health is served once, at the application root."""
    response = client.get('/health')
    assert response.status_code == 200
    assert json.loads(response.data)['status'] == 'healthy'
    
    assert client.get('/api/auth/health').status_code == 404

def test_operator_roles():
    """Students never log in, so there is no student role."""
    assert {role.value for role in UserRole} == {'admin', 'teacher', 'staff'}

def test_login_success(client, staff_user):
    """Test successful login."""
    response = client.post('/api/auth/login',
        json={
            'email': 'jane@sekolah.test',
            'password': 'password123'
        })
    
    assert response.status_code == 200
    data = json.loads(response.data)
    assert data['error'] == False
    assert 'access_token' in data['data']
    assert data['data']['user']['role'] == 'staff'
    assert 'password_hash' not in data['data']['user']

def test_login_invalid_credentials(client, staff_user):
    """Test login with invalid credentials."""
    response = client.post('/api/auth/login',
        json={
            'email': 'jane@sekolah.test',
            'password': 'wrongpassword'
        })
    
    assert response.status_code == 401
    data = json.loads(response.data)
    assert data['error'] == True
    assert db.session.get(User, staff_user.id).failed_login_attempts == 1

def test_login_validation(client):
    response = client.post('/api/auth/login', json={})
    assert response.status_code == 400

def test_me(client, staff_user, staff_headers):
    response = client.get('/api/auth/me', headers=staff_headers)
    
    assert response.status_code == 200
    data = json.loads(response.data)['data']
    assert data['email'] == 'jane@sekolah.test'
    assert data['subject']['category_label'] == 'Tenaga Kependidikan'
    assert data['school']['name'] == 'SD Negeri Uji 01'
    assert 'telegram_bot_token' not in data['school']

def test_me_invalid_token(client):
    response = client.get('/api/auth/me', headers={'Authorization': 'Bearer not-a-token'})
    assert response.status_code == 401
