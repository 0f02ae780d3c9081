"""Base configuration shared by every environment."""
import os
from datetime import timedelta

class BaseConfig:
    """Base configuration."""
    SECRET_KEY = os.getenv('SECRET_KEY')
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ECHO = False
    
    # JWT Configuration
    JWT_SECRET_KEY = os.getenv('JWT_SECRET_KEY')
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(hours=8)
    JWT_REFRESH_TOKEN_EXPIRES = timedelta(days=7)
    JWT_ALGORITHM = 'HS256'
    
    # CORS
    CORS_ORIGINS = ["http://localhost:*", "http://127.0.0.1:*"]
    
    # Rate Limiting
    RATELIMIT_STORAGE_URI = os.getenv('REDIS_URL') or 'memory://'
    RATELIMIT_DEFAULT = "500 per day, 100 per hour"
    
    # School wall clock
    SCHOOL_TIMEZONE = os.getenv('SCHOOL_TIMEZONE', 'Asia/Jakarta')
    SCHOOL_TIMEZONE_LABEL = os.getenv('SCHOOL_TIMEZONE_LABEL', 'WIB')
    LATE_CUTOFF_HOUR = 8  # check-in at or after this hour is late
    
    # Geolocation (mirrors the device API options)
    GEO_HIGH_ACCURACY = True
    GEO_TIMEOUT_MS = 10000
    GEO_MAX_AGE_MS = 0
    
    # Camera
    CAMERA_BACKEND = os.getenv('CAMERA_BACKEND', 'opencv')  # opencv, unavailable
    CAMERA_STRATEGY = os.getenv('CAMERA_STRATEGY', 'standard')  # standard, embedded_host
    CAMERA_WIDTH = 640
    CAMERA_HEIGHT = 480
    CAMERA_MAX_DEVICES = 4
    CAMERA_EMBEDDED_MAX_ATTEMPTS = 3
    CAMERA_RETRY_BACKOFF_SECONDS = 1.0
    
    # Capture
    SELFIE_JPEG_QUALITY = 80
    QR_SCAN_INTERVAL_SECONDS = 0.5
    QR_SCAN_TIMEOUT_SECONDS = 30
    CAPTURE_SESSION_TTL_MINUTES = 10
    
    # Notifications
    TELEGRAM_API_BASE = 'https://api.telegram.org'
    NOTIFICATION_TIMEOUT_SECONDS = 10
    NOTIFICATION_ASYNC = True
    NOTIFICATION_WORKERS = 2
    
    # File Upload
    MAX_CONTENT_LENGTH = 4 * 1024 * 1024  # selfie uploads
    
    # Logging
    LOG_LEVEL = 'INFO'
    LOG_FILE = 'logs/app.log'
