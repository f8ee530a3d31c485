"""
Device fingerprinting utilities for session tracking.

This module parses User-Agent strings into the device description
stored on a session and derives the fingerprint used to bind a
session to the device that created it.
"""

import hashlib
import json
from dataclasses import dataclass, asdict
from typing import Dict, Any

from user_agents import parse as parse_user_agent


FINGERPRINT_LENGTH = 32


@dataclass(frozen=True)
class DeviceInfo:
    """Parsed description of the client device."""
    browser: str
    os: str
    device_name: str
    is_mobile: bool
    is_tablet: bool

    @property
    def is_desktop(self) -> bool:
        return not self.is_mobile and not self.is_tablet

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class DeviceFingerprinter:
    """
    Builds device descriptions and fingerprints from request headers.

    The fingerprint covers browser family, OS family, device name and
    client IP, so a stolen session identifier replayed from another
    browser or network produces a different fingerprint.
    """

    UNKNOWN = 'Unknown'

    def extract_device_info(self, user_agent_string: str) -> DeviceInfo:
        """
        Parse a User-Agent header into a DeviceInfo.

        Args:
            user_agent_string: Raw User-Agent header, may be empty

        Returns:
            DeviceInfo with 'Unknown' for anything that cannot be parsed
        """
        user_agent = parse_user_agent(user_agent_string or '')

        browser = self._family(user_agent.browser.family)
        os_name = self._family(user_agent.os.family)

        return DeviceInfo(
            browser=browser,
            os=os_name,
            device_name=self._device_name(user_agent),
            is_mobile=bool(user_agent.is_mobile),
            is_tablet=bool(user_agent.is_tablet),
        )

    def generate_fingerprint(self, device: DeviceInfo, ip_address: str) -> str:
        """
        Generate a stable fingerprint for a device and client IP.

        Args:
            device: Parsed device information
            ip_address: Client IP address, or 'unknown'

        Returns:
            str: First 32 hex characters of a SHA-256 digest
        """
        fingerprint_data = self._normalize_fingerprint_data({
            'browser': device.browser,
            'os': device.os,
            'device': device.device_name,
            'ip': ip_address or 'unknown',
        })
        fingerprint_string = json.dumps(fingerprint_data, sort_keys=True)
        return hashlib.sha256(fingerprint_string.encode()).hexdigest()[:FINGERPRINT_LENGTH]

    def _normalize_fingerprint_data(self, data: Dict[str, str]) -> Dict[str, str]:
        return {key: str(value).lower().strip() for key, value in data.items()}

    def _family(self, family: str) -> str:
        if not family or family == 'Other':
            return self.UNKNOWN
        return family

    def _device_name(self, user_agent) -> str:
        """
        Human readable device name, e.g. 'iPhone', 'Tablet' or 'Computer'.
        """
        family = user_agent.device.family
        if family and family not in ('Other', 'Generic Smartphone', 'Generic Tablet'):
            if user_agent.device.brand and user_agent.device.brand not in family:
                return f"{user_agent.device.brand} {family}"
            return family

        if user_agent.is_mobile:
            return 'Mobile Phone'
        if user_agent.is_tablet:
            return 'Tablet'
        if user_agent.is_bot:
            return 'Bot'
        return 'Computer'


def generate_device_fingerprint(user_agent_string: str, ip_address: str):
    """
    Convenience function returning (fingerprint, device_info).
    """
    fingerprinter = DeviceFingerprinter()
    device = fingerprinter.extract_device_info(user_agent_string)
    return fingerprinter.generate_fingerprint(device, ip_address), device
