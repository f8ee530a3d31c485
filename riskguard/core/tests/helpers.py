"""
Shared builders for session security tests.
"""

from datetime import datetime, timezone as dt_timezone

from django.contrib.auth import get_user_model

from ..services.device_context import DeviceContext
from ..utils.device_fingerprinting import DeviceFingerprinter, DeviceInfo
from ..utils.geolocation import LocationInfo


CHROME_WINDOWS_UA = (
    'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 '
    '(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36'
)
FIREFOX_LINUX_UA = 'Mozilla/5.0 (X11; Linux x86_64; rv:121.0) Gecko/20100101 Firefox/121.0'

PARIS = (48.8566, 2.3522)
LYON = (45.7640, 4.8357)        # ~390 km from Paris
BRUSSELS = (50.8503, 4.3517)    # ~260 km from Paris
NEW_YORK = (40.7128, -74.0060)  # ~5800 km from Paris

FIXED_NOW = datetime(2024, 3, 1, 12, 0, tzinfo=dt_timezone.utc)


def make_context(ip='203.0.113.10', coordinates=PARIS, browser='Chrome', os='Windows',
                 device_name='Computer', city='Paris', country='France') -> DeviceContext:
    """Build a DeviceContext without parsing headers or calling the geolocation provider."""
    device = DeviceInfo(browser=browser, os=os, device_name=device_name, is_mobile=False, is_tablet=False)
    latitude, longitude = coordinates if coordinates else (None, None)
    location = LocationInfo(
        ip=ip,
        country=country if coordinates else '',
        city=city if coordinates else '',
        latitude=latitude,
        longitude=longitude,
    )
    return DeviceContext(
        device=device,
        location=location,
        fingerprint=DeviceFingerprinter().generate_fingerprint(device, ip),
        user_agent=f'{browser} on {os}',
    )


def create_user(username='alice', is_staff=False, **kwargs):
    return get_user_model().objects.create_user(
        username=username,
        email=kwargs.pop('email', f'{username}@example.com'),
        password='testpass123',
        is_staff=is_staff,
        **kwargs
    )


class FakeClock:
    """Callable clock that tests move forward explicitly."""

    def __init__(self, now=FIXED_NOW):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, delta):
        self.now = self.now + delta
        return self.now
