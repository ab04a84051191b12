"""
Push delivery backends.

The backend is chosen with settings.PUSH_BACKEND (a dotted class path) and
built once per process by get_push_backend().
"""

import logging
from functools import lru_cache

from django.conf import settings
from django.utils.module_loading import import_string

logger = logging.getLogger(__name__)


class PushBackend:
    """Interface for push delivery providers."""

    def send(self, token, title, body, data=None):
        """
        Deliver one push message to a device.

        Args:
            token: Device registration token
            title: Notification title
            body: Notification body
            data: Optional mapping of string keys to string values

        Raises:
            Exception: Any delivery failure; callers treat it as best-effort
        """
        raise NotImplementedError


class LoggingPushBackend(PushBackend):
    """Writes push messages to the log instead of sending them."""

    def send(self, token, title, body, data=None):
        logger.info(
            f"Push message. Token: {token[:12]}..., Title: {title}, Data: {data or {}}"
        )


class InMemoryPushBackend(PushBackend):
    """Collects push messages in a list, for local development and tests."""

    def __init__(self):
        self.sent = []

    def send(self, token, title, body, data=None):
        self.sent.append({'token': token, 'title': title, 'body': body, 'data': data or {}})


@lru_cache()
def get_push_backend():
    """Return the process-wide push backend configured in settings."""
    backend_path = getattr(settings, 'PUSH_BACKEND', 'core.push.LoggingPushBackend')
    return import_string(backend_path)()
