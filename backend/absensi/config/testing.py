"""Testing configuration."""
from datetime import timedelta

from .base import BaseConfig

class TestingConfig(BaseConfig):
    """Testing configuration class."""
    
    DEBUG = False
    TESTING = True
    SECRET_KEY = 'test-secret-key'
    
    # Database (in-memory SQLite for testing)
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    
    # JWT Configuration
    JWT_SECRET_KEY = 'test-jwt-secret-key-with-enough-length'
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(minutes=5)
    
    # Rate Limiting (disabled for testing)
    RATELIMIT_ENABLED = False
    RATELIMIT_STORAGE_URI = 'memory://'
    
    # No camera attached to the test host
    CAMERA_BACKEND = 'unavailable'
    CAMERA_STRATEGY = 'standard'
    CAMERA_RETRY_BACKOFF_SECONDS = 0
    QR_SCAN_INTERVAL_SECONDS = 0
    QR_SCAN_TIMEOUT_SECONDS = 1
    
    # Notifications run inline so tests can observe them
    NOTIFICATION_ASYNC = False
    TELEGRAM_API_BASE = 'https://telegram.test'
    
    LOG_LEVEL = 'WARNING'
