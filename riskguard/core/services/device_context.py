"""
Resolves the device and network context of an incoming request.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from django.http import HttpRequest

from ..exceptions import MissingContextError
from ..utils.device_fingerprinting import DeviceFingerprinter, DeviceInfo
from ..utils.geolocation import (
    GeolocationService,
    LocationInfo,
    get_client_ip,
    get_client_ip_from_headers,
)


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeviceContext:
    """Device, location and fingerprint of one request."""
    device: DeviceInfo
    location: LocationInfo
    fingerprint: str
    user_agent: str = ''

    @property
    def ip_address(self) -> Optional[str]:
        ip = self.location.ip
        return None if ip == 'unknown' else ip

    def session_fields(self) -> Dict[str, Any]:
        """Column values for a UserSession created from this context."""
        return {
            'device_fingerprint': self.fingerprint,
            'device_name': self.device.device_name,
            'browser': self.device.browser,
            'os': self.device.os,
            'is_mobile': self.device.is_mobile,
            'user_agent': self.user_agent,
            'ip_address': self.ip_address,
            'location': self.location.display,
            'country': self.location.country,
            'region': self.location.region,
            'city': self.location.city,
            'latitude': self.location.latitude,
            'longitude': self.location.longitude,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            'device': self.device.to_dict(),
            'location': self.location.to_dict(),
            'fingerprint': self.fingerprint,
        }


class DeviceContextResolver:
    """
    Builds a DeviceContext from a Django request or a plain header mapping.

    Geolocation is best effort: the provider is called with a timeout and
    an unreachable provider yields a location without coordinates.
    """

    def __init__(self, geolocation_service: GeolocationService = None,
                 fingerprinter: DeviceFingerprinter = None):
        self.geolocation_service = geolocation_service or GeolocationService()
        self.fingerprinter = fingerprinter or DeviceFingerprinter()

    def resolve(self, request_or_headers) -> DeviceContext:
        """
        Resolve the context of a request.

        Args:
            request_or_headers: HttpRequest, or a mapping of header names to values

        Raises:
            MissingContextError: if neither an HttpRequest nor a mapping was given
        """
        if isinstance(request_or_headers, HttpRequest):
            ip_address = get_client_ip(request_or_headers)
            user_agent = request_or_headers.headers.get('User-Agent', '')
        elif isinstance(request_or_headers, Mapping):
            ip_address = get_client_ip_from_headers(request_or_headers)
            user_agent = _header(request_or_headers, 'User-Agent')
        else:
            raise MissingContextError('request headers')

        device = self.fingerprinter.extract_device_info(user_agent)
        location = self.geolocation_service.get_location_data(ip_address)
        fingerprint = self.fingerprinter.generate_fingerprint(device, ip_address)

        return DeviceContext(
            device=device,
            location=location,
            fingerprint=fingerprint,
            user_agent=user_agent,
        )


def _header(headers: Mapping[str, str], name: str) -> str:
    for key, value in headers.items():
        if str(key).lower() == name.lower():
            return value or ''
    return ''
