"""Tests for geofence classification and location acquisition."""
from datetime import datetime, timedelta, timezone

import pytest

from absensi.services.geolocation_service import (
    GeofenceConfig, GeolocationService, LocationOptions, LocationSample, ReportedLocationProvider
)
from absensi.utils.errors import GeolocationError, GeoPermissionDenied, GeoTimeout, GeoUnavailable

from conftest import LAT_150M_NORTH, SCHOOL_LAT, SCHOOL_LNG

GEOFENCE = GeofenceConfig(latitude=SCHOOL_LAT, longitude=SCHOOL_LNG, radius_meters=100)
NOW = datetime(2026, 10, 19, 0, 30, tzinfo=timezone.utc)

def sample(lat, lng):
    return LocationSample(latitude=lat, longitude=lng, acquired_at=NOW)

def test_distance_zero_for_same_point():
    assert GeolocationService.calculate_distance(SCHOOL_LAT, SCHOOL_LNG, SCHOOL_LAT, SCHOOL_LNG) == 0

def test_distance_is_symmetric():
    a = GeolocationService.calculate_distance(-6.2, 106.8, -6.9, 107.6)
    b = GeolocationService.calculate_distance(-6.9, 107.6, -6.2, 106.8)
    assert a == pytest.approx(b)

def test_one_degree_latitude():
    """One degree of latitude is roughly 111.3 km."""
    distance = GeolocationService.calculate_distance(0, 0, 1, 0)
    assert distance == pytest.approx(111320, rel=0.005)

def test_inside_geofence():
    verdict = GeolocationService.classify(sample(SCHOOL_LAT, SCHOOL_LNG), GEOFENCE)
    assert verdict.within_radius
    assert verdict.message == "Lokasi terdeteksi di area sekolah"

def test_boundary_counts_as_inside():
    point = sample(SCHOOL_LAT + 0.0005, SCHOOL_LNG)
    distance = GeolocationService.calculate_distance(point.latitude, point.longitude, SCHOOL_LAT, SCHOOL_LNG)
    
    geofence = GeofenceConfig(latitude=SCHOOL_LAT, longitude=SCHOOL_LNG, radius_meters=distance)
    assert GeolocationService.classify(point, geofence).within_radius

def test_outside_geofence_reports_distance():
    verdict = GeolocationService.classify(sample(LAT_150M_NORTH, SCHOOL_LNG), GEOFENCE)
    assert not verdict.within_radius
    assert round(verdict.distance_meters) == 150
    assert "150 meter" in verdict.message

def test_describe_without_geofence():
    message = GeolocationService.describe(sample(SCHOOL_LAT, SCHOOL_LNG), None)
    assert message == "Posisi terdeteksi, tapi lokasi sekolah belum diatur"

@pytest.mark.parametrize('code, error_class', [
    (1, GeoPermissionDenied),
    (2, GeoUnavailable),
    (3, GeoTimeout),
    (99, GeolocationError),
])
def test_error_codes(code, error_class):
    provider = ReportedLocationProvider({'error_code': code}, received_at=NOW)
    with pytest.raises(error_class):
        GeolocationService.acquire_location(provider)

def test_missing_coordinates_unavailable():
    provider = ReportedLocationProvider({'latitude': SCHOOL_LAT}, received_at=NOW)
    with pytest.raises(GeoUnavailable):
        GeolocationService.acquire_location(provider)

@pytest.mark.parametrize('timestamp', [1e20, -1e20, float('nan')])
def test_out_of_range_epoch_unavailable(timestamp):
    provider = ReportedLocationProvider(
        {'latitude': SCHOOL_LAT, 'longitude': SCHOOL_LNG, 'timestamp': timestamp},
        received_at=NOW
    )
    with pytest.raises(GeoUnavailable, match="Format waktu"):
        GeolocationService.acquire_location(provider)

def test_fresh_fix_accepted():
    timestamp = int((NOW - timedelta(seconds=2)).timestamp() * 1000)
    provider = ReportedLocationProvider(
        {'latitude': SCHOOL_LAT, 'longitude': SCHOOL_LNG, 'accuracy': 8.5, 'timestamp': timestamp},
        received_at=NOW
    )
    fix = GeolocationService.acquire_location(provider, LocationOptions())
    
    assert fix.latitude == SCHOOL_LAT
    assert fix.accuracy == 8.5

def test_cached_fix_rejected():
    """A fix older than max age plus timeout was served from a cache."""
    stale = (NOW - timedelta(seconds=11)).isoformat()
    provider = ReportedLocationProvider(
        {'latitude': SCHOOL_LAT, 'longitude': SCHOOL_LNG, 'timestamp': stale},
        received_at=NOW
    )
    with pytest.raises(GeoTimeout):
        GeolocationService.acquire_location(provider, LocationOptions(timeout_ms=10000, max_cached_age_ms=0))
