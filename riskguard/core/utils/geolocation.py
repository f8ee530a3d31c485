"""
Geographic location enrichment utilities for session tracking.

The geolocation provider is an external HTTP service. Every lookup has
an explicit timeout and any provider failure degrades to an "unknown"
location, so a slow provider can never block session validation.
"""

import ipaddress
import logging
from dataclasses import dataclass, asdict
from math import radians, sin, cos, sqrt, atan2
from typing import Dict, Any, Mapping, Optional

import requests
from django.conf import settings
from django.core.cache import cache

from ..exceptions import GeoLookupTimeoutError


logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0
UNKNOWN_LOCATION = 'Unknown Location'


@dataclass(frozen=True)
class LocationInfo:
    """Geolocated client address; coordinates are None when unknown."""
    ip: str
    country: str = ''
    region: str = ''
    city: str = ''
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    @property
    def display(self) -> str:
        parts = [part for part in [self.city, self.region, self.country] if part]
        return ', '.join(parts) if parts else UNKNOWN_LOCATION

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['location'] = self.display
        return data


class GeolocationService:
    """
    Service for enriching IP addresses with geographic location data.

    Results are cached per IP. Private, loopback and malformed addresses
    are never sent to the provider.
    """

    def __init__(self, timeout: Optional[float] = None, provider_url: Optional[str] = None):
        self.timeout = timeout or getattr(settings, 'GEOLOCATION_TIMEOUT_SECONDS', 5)
        self.provider_url = provider_url or getattr(
            settings, 'GEOLOCATION_PROVIDER_URL', 'http://ip-api.com/json/{ip}'
        )
        self.cache_timeout = getattr(settings, 'GEOLOCATION_CACHE_TIMEOUT', 86400)  # 24 hours

    def get_location_data(self, ip_address: str) -> LocationInfo:
        """
        Get location data for an IP address.

        Never raises: timeouts and provider errors are logged and an
        unknown location is returned.

        Args:
            ip_address: IP address to geolocate

        Returns:
            LocationInfo for the address
        """
        if not ip_address or self._is_private_ip(ip_address):
            return LocationInfo(ip=ip_address or 'unknown')

        cache_key = f"geolocation:{ip_address}"
        cached_data = cache.get(cache_key)
        if cached_data:
            return LocationInfo(**cached_data)

        try:
            location = self._lookup(ip_address)
        except GeoLookupTimeoutError as e:
            logger.warning(f"Geolocation lookup timed out for IP {ip_address}", extra={'details': e.details})
            return LocationInfo(ip=ip_address)
        except (requests.RequestException, ValueError) as e:
            logger.warning(f"Geolocation provider failed for IP {ip_address}: {e}")
            return LocationInfo(ip=ip_address)

        if location.country:
            cache.set(cache_key, asdict(location), self.cache_timeout)
        return location

    def _lookup(self, ip_address: str) -> LocationInfo:
        url = self.provider_url.format(ip=ip_address)
        try:
            response = requests.get(url, timeout=self.timeout)
        except requests.Timeout as e:
            raise GeoLookupTimeoutError(ip_address, self.timeout) from e
        response.raise_for_status()

        data = response.json()
        if data.get('status', 'success') != 'success':
            return LocationInfo(ip=ip_address)

        return LocationInfo(
            ip=ip_address,
            country=data.get('country') or data.get('country_name') or '',
            region=data.get('regionName') or data.get('region') or '',
            city=data.get('city') or '',
            latitude=_as_float(data.get('lat', data.get('latitude'))),
            longitude=_as_float(data.get('lon', data.get('longitude'))),
        )

    def _is_private_ip(self, ip_address: str) -> bool:
        try:
            ip = ipaddress.ip_address(ip_address)
            return ip.is_private or ip.is_loopback or ip.is_link_local
        except ValueError:
            return True  # Invalid IP, treat as private


def get_distance_between_locations(lat1: Optional[float], lon1: Optional[float],
                                   lat2: Optional[float], lon2: Optional[float]) -> Optional[float]:
    """
    Great-circle distance in kilometers (haversine).

    Returns:
        Distance in kilometers or None if any coordinate is missing
    """
    if lat1 is None or lon1 is None or lat2 is None or lon2 is None:
        return None

    phi1, lambda1, phi2, lambda2 = map(radians, (lat1, lon1, lat2, lon2))
    dlat = phi2 - phi1
    dlon = lambda2 - lambda1

    a = sin(dlat / 2) ** 2 + cos(phi1) * cos(phi2) * sin(dlon / 2) ** 2
    c = 2 * atan2(sqrt(a), sqrt(1 - a))
    return EARTH_RADIUS_KM * c


FORWARDED_HEADERS = (
    'X-Forwarded-For',
    'X-Real-IP',
    'CF-Connecting-IP',
)


def get_client_ip(request) -> str:
    """
    Extract client IP address from a request, handling proxies.

    Args:
        request: Django HttpRequest

    Returns:
        Client IP address string, or 'unknown'
    """
    ip = get_client_ip_from_headers(request.headers)
    if ip != 'unknown':
        return ip

    remote_addr = request.META.get('REMOTE_ADDR', '')
    return remote_addr if _is_valid_ip(remote_addr) else 'unknown'


def get_client_ip_from_headers(headers: Mapping[str, str]) -> str:
    """
    Same as get_client_ip but for a plain header mapping.

    Header lookup is case-insensitive.
    """
    normalized = {str(key).lower(): value for key, value in headers.items()}
    for header in FORWARDED_HEADERS:
        value = normalized.get(header.lower())
        if value:
            ip = value.split(',')[0].strip()
            if _is_valid_ip(ip):
                return ip
    return 'unknown'


def _is_valid_ip(ip: str) -> bool:
    try:
        ipaddress.ip_address(ip)
        return True
    except ValueError:
        return False


def _as_float(value) -> Optional[float]:
    try:
        return float(value) if value is not None else None
    except (TypeError, ValueError):
        return None
