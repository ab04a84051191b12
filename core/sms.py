"""
SMS delivery backends for phone verification codes.

The backend is chosen with settings.SMS_BACKEND (a dotted class path) and
built once per process by get_sms_backend().
"""

import logging
from functools import lru_cache

from django.conf import settings
from django.utils.module_loading import import_string

logger = logging.getLogger(__name__)


class SmsBackend:
    """Interface for SMS providers."""

    def send(self, phone_number, message):
        """
        Deliver one text message.

        Raises:
            Exception: Any delivery failure
        """
        raise NotImplementedError


class LoggingSmsBackend(SmsBackend):
    """Writes text messages to the log instead of sending them."""

    def send(self, phone_number, message):
        logger.info(f"SMS message. To: ...{phone_number[-4:]}, Length: {len(message)}")


class InMemorySmsBackend(SmsBackend):
    """Collects text messages in a list, for local development and tests."""

    def __init__(self):
        self.sent = []

    def send(self, phone_number, message):
        self.sent.append({'phone_number': phone_number, 'message': message})


@lru_cache()
def get_sms_backend():
    """Return the process-wide SMS backend configured in settings."""
    backend_path = getattr(settings, 'SMS_BACKEND', 'core.sms.LoggingSmsBackend')
    return import_string(backend_path)()
