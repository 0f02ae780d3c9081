# backend/absensi/services/geolocation_service.py
"""Geolocation validation against a school geofence."""
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Optional

from absensi.utils.errors import (
    GeolocationError, GeoPermissionDenied, GeoTimeout, GeoUnavailable
)

EARTH_RADIUS_METERS = 6371000

@dataclass(frozen=True)
class GeofenceConfig:
    """Circular allowed area around the school."""
    latitude: float
    longitude: float
    radius_meters: float
    
    def to_dict(self) -> Dict:
        return {
            'latitude': self.latitude,
            'longitude': self.longitude,
            'radius_meters': self.radius_meters
        }

@dataclass(frozen=True)
class LocationSample:
    """One position fix from the device."""
    latitude: float
    longitude: float
    acquired_at: datetime
    accuracy: Optional[float] = None
    
    def to_dict(self) -> Dict:
        return {
            'latitude': self.latitude,
            'longitude': self.longitude,
            'accuracy': self.accuracy,
            'acquired_at': self.acquired_at.isoformat()
        }

@dataclass(frozen=True)
class LocationOptions:
    """Same knobs as the browser geolocation API."""
    high_accuracy: bool = True
    timeout_ms: int = 10000
    max_cached_age_ms: int = 0

@dataclass(frozen=True)
class LocationVerdict:
    within_radius: bool
    distance_meters: float
    message: str
    
    def to_dict(self) -> Dict:
        return {
            'within_radius': self.within_radius,
            'distance_meters': round(self.distance_meters, 2),
            'message': self.message
        }

class ReportedLocationProvider:
    """Location fix reported by the client device.
    
    The payload either holds coordinates or a W3C ``PositionError`` code
    (1 permission denied, 2 position unavailable, 3 timeout).
    """
    
    PERMISSION_DENIED = 1
    POSITION_UNAVAILABLE = 2
    TIMEOUT = 3
    
    def __init__(self, payload: Dict, received_at: Optional[datetime] = None):
        self.payload = payload
        self.received_at = received_at or datetime.now(timezone.utc)
    
    def get_current_position(self, options: LocationOptions) -> LocationSample:
        error_code = self.payload.get('error_code')
        if error_code is not None:
            raise GeolocationService.error_for_code(error_code)
        
        if self.payload.get('latitude') is None or self.payload.get('longitude') is None:
            raise GeoUnavailable()
        
        acquired_at = self._parse_timestamp(self.payload.get('timestamp')) or self.received_at
        age_ms = (self.received_at - acquired_at).total_seconds() * 1000
        
        # A fix older than the request window must have come from a cache
        if age_ms > options.max_cached_age_ms + options.timeout_ms:
            raise GeoTimeout()
        
        return LocationSample(
            latitude=float(self.payload['latitude']),
            longitude=float(self.payload['longitude']),
            acquired_at=acquired_at,
            accuracy=self.payload.get('accuracy')
        )
    
    @staticmethod
    def _parse_timestamp(value) -> Optional[datetime]:
        """Accept epoch milliseconds (browser style) or ISO 8601."""
        if value is None:
            return None
        if isinstance(value, (int, float)):
            try:
                return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
            except (OverflowError, OSError, ValueError):
                raise GeoUnavailable("Format waktu lokasi tidak valid")
        try:
            parsed = datetime.fromisoformat(str(value))
        except ValueError:
            raise GeoUnavailable("Format waktu lokasi tidak valid")
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed

class GeolocationService:
    """Service for GPS and geofence verification."""
    
    @staticmethod
    def calculate_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
        """Calculate Haversine distance between two GPS points in meters."""
        lat1_rad = math.radians(lat1)
        lat2_rad = math.radians(lat2)
        delta_lat = math.radians(lat2 - lat1)
        delta_lon = math.radians(lon2 - lon1)
        
        a = (math.sin(delta_lat/2) ** 2 + 
             math.cos(lat1_rad) * math.cos(lat2_rad) * 
             math.sin(delta_lon/2) ** 2)
        c = 2 * math.atan2(math.sqrt(a), math.sqrt(1-a))
        
        return EARTH_RADIUS_METERS * c
    
    @staticmethod
    def acquire_location(provider, options: Optional[LocationOptions] = None) -> LocationSample:
        """Single fire-once acquisition; failures are not retried here."""
        return provider.get_current_position(options or LocationOptions())
    
    @staticmethod
    def classify(sample: LocationSample, geofence: GeofenceConfig) -> LocationVerdict:
        """Inside when distance <= radius."""
        distance = GeolocationService.calculate_distance(
            sample.latitude, sample.longitude,
            geofence.latitude, geofence.longitude
        )
        within = distance <= geofence.radius_meters
        
        if within:
            message = "Lokasi terdeteksi di area sekolah"
        else:
            message = f"Lokasi diluar area sekolah ({round(distance)} meter)"
        
        return LocationVerdict(within_radius=within, distance_meters=distance, message=message)
    
    @staticmethod
    def describe(sample: LocationSample, geofence: Optional[GeofenceConfig]) -> str:
        """User-facing status line for a fresh fix."""
        if geofence is None:
            return "Posisi terdeteksi, tapi lokasi sekolah belum diatur"
        return GeolocationService.classify(sample, geofence).message
    
    @staticmethod
    def error_for_code(code) -> GeolocationError:
        try:
            code = int(code)
        except (TypeError, ValueError):
            return GeolocationError()
        
        return {
            ReportedLocationProvider.PERMISSION_DENIED: GeoPermissionDenied,
            ReportedLocationProvider.POSITION_UNAVAILABLE: GeoUnavailable,
            ReportedLocationProvider.TIMEOUT: GeoTimeout,
        }.get(code, GeolocationError)()
