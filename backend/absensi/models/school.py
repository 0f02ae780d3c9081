"""School (tenant) model with geofence and messaging settings."""
from typing import Dict, Optional
from absensi import db
from absensi.models.base import BaseModel
from absensi.services.geolocation_service import GeofenceConfig

class School(BaseModel):
    """Tenant owning every subject and attendance record."""
    
    __tablename__ = 'schools'
    
    name = db.Column(db.String(255), nullable=False)
    npsn = db.Column(db.String(20), unique=True, nullable=True)  # national school number
    
    # Geofence (None until an admin sets the school location)
    latitude = db.Column(db.Float, nullable=True)
    longitude = db.Column(db.Float, nullable=True)
    radius_meters = db.Column(db.Float, nullable=False, default=100)
    
    # Overrides LATE_CUTOFF_HOUR when set
    late_cutoff_hour = db.Column(db.Integer, nullable=True)
    
    # Telegram settings
    telegram_bot_token = db.Column(db.String(255), nullable=True)
    telegram_chat_id = db.Column(db.String(100), nullable=True)  # principal's chat
    
    subjects = db.relationship('Subject', backref='school', lazy='dynamic')
    
    def geofence(self) -> Optional[GeofenceConfig]:
        """Snapshot of the geofence, or None when the location is not set."""
        if self.latitude is None or self.longitude is None:
            return None
        return GeofenceConfig(
            latitude=self.latitude,
            longitude=self.longitude,
            radius_meters=self.radius_meters
        )
    
    def messaging_credentials(self) -> Dict[str, Optional[str]]:
        return {
            'bot_token': self.telegram_bot_token or None,
            'chat_id': self.telegram_chat_id or None
        }
    
    def to_dict(self, exclude: list = None) -> dict:
        """Convert to dictionary excluding credentials."""
        default_exclude = ['telegram_bot_token']
        return super().to_dict(exclude=(exclude or []) + default_exclude)
