"""
Usage telemetry for autoconfigured Azure components.

Events are posted as Application Insights ``EventData`` envelopes. Sending
is best effort: failures are logged and never reach the caller, and nothing
is sent unless telemetry is allowed by configuration.
"""

import hashlib
import logging
import uuid
from datetime import datetime, timezone
from typing import Dict, Optional

import requests
from django.conf import settings

from . import __version__


logger = logging.getLogger(__name__)

DEFAULT_ENDPOINT = 'https://dc.services.visualstudio.com/v2/track'
# Placeholder key; events are not sent until a real key is configured.
PLACEHOLDER_INSTRUMENTATION_KEY = '00000000-0000-0000-0000-000000000000'


class TelemetryData:
    """Property names shared by all telemetry events."""

    INSTALLATION_ID = 'installationId'
    PROJECT_VERSION = 'version'
    SERVICE_NAME = 'serviceName'

    @staticmethod
    def get_installation_id() -> str:
        """Return the SHA-256 hex digest of the host MAC address."""
        mac = '%012x' % uuid.getnode()
        return hashlib.sha256(mac.encode('utf-8')).hexdigest()


class TelemetryProxy:
    """
    Sends named usage events when telemetry is allowed.

    Args:
        allow_telemetry: When False, ``track_event`` is a no-op
    """

    def __init__(self, allow_telemetry: bool):
        self.is_allowed = bool(allow_telemetry)
        self.endpoint = getattr(settings, 'AZURE_TELEMETRY_ENDPOINT', DEFAULT_ENDPOINT)
        self.instrumentation_key = getattr(
            settings, 'AZURE_TELEMETRY_INSTRUMENTATION_KEY', None
        )
        self.timeout = getattr(settings, 'AZURE_TELEMETRY_TIMEOUT', 5)
        self._common_properties = {
            TelemetryData.INSTALLATION_ID: TelemetryData.get_installation_id(),
            TelemetryData.PROJECT_VERSION: __version__,
        }

    def track_event(self, name: str, properties: Optional[Dict[str, str]] = None) -> bool:
        """
        Send one named event.

        Args:
            name: Event name
            properties: Custom string properties merged over the common ones

        Returns:
            True if the event was accepted by the endpoint, False otherwise
        """
        if not self.is_allowed:
            return False
        if not self.has_instrumentation_key:
            logger.debug(f"No instrumentation key configured, telemetry event '{name}' not sent")
            return False

        merged = dict(self._common_properties)
        merged.update(properties or {})

        try:
            response = requests.post(
                self.endpoint,
                json=self._build_envelope(name, merged),
                timeout=self.timeout,
                headers={'Content-Type': 'application/json'}
            )
            response.raise_for_status()
        except requests.RequestException as e:
            logger.warning(f"Failed to send telemetry event '{name}': {str(e)}")
            return False

        logger.debug(f"Telemetry event '{name}' sent")
        return True

    @property
    def has_instrumentation_key(self):
        return bool(self.instrumentation_key) and self.instrumentation_key != PLACEHOLDER_INSTRUMENTATION_KEY

    def _build_envelope(self, name, properties):
        key = self.instrumentation_key.replace('-', '')
        return {
            'name': f'Microsoft.ApplicationInsights.{key}.Event',
            'time': datetime.now(timezone.utc).isoformat(),
            'iKey': self.instrumentation_key,
            'data': {
                'baseType': 'EventData',
                'baseData': {
                    'ver': 2,
                    'name': name,
                    'properties': properties,
                }
            }
        }
