"""
In-app notifications with best-effort push delivery.

The Notification row is written inside the caller's database transaction, so
it commits or rolls back with the state change that caused it. Push delivery
is queued with transaction.on_commit and never affects the caller: failures
are logged and counted under PUSH_FAILURE_CACHE_KEY.
"""

import logging
from functools import partial

from django.db import transaction

from .exceptions import NotFoundException
from .metrics import get_counter, increment_counter
from .models import Notification
from .push import get_push_backend

logger = logging.getLogger(__name__)

PUSH_FAILURE_CACHE_KEY = 'metrics:push_failures'


def record_push_failure():
    """Increment the push failure counter."""
    increment_counter(PUSH_FAILURE_CACHE_KEY)


def get_push_failure_count():
    return get_counter(PUSH_FAILURE_CACHE_KEY)


class NotificationService:
    """
    Creates notifications and dispatches push messages.

    Args:
        push_backend: Object with a send(token, title, body, data) method.
            Defaults to the backend configured in settings.
    """

    def __init__(self, push_backend=None):
        self.push_backend = push_backend or get_push_backend()

    def notify(self, user, notification_type, title, body, data=None):
        """
        Store a notification for a user and queue its push delivery.

        Args:
            user: Recipient
            notification_type: One of Notification.TYPE_*
            title: Short title
            body: Message body
            data: Optional JSON-serializable payload

        Returns:
            Notification: The stored notification
        """
        data = data or {}
        notification = Notification.objects.create(
            user=user,
            title=title,
            body=body,
            notification_type=notification_type,
            data=data,
        )

        if user.enable_push_notifications and user.fcm_token:
            push_data = {key: str(value) for key, value in data.items()}
            push_data['type'] = notification_type
            push_data['notification_id'] = str(notification.id)
            transaction.on_commit(
                partial(self._deliver, user.id, user.fcm_token, title, body, push_data)
            )

        return notification

    def _deliver(self, user_id, token, title, body, data):
        try:
            self.push_backend.send(token, title, body, data)
        except Exception as e:
            record_push_failure()
            logger.warning(
                f"Push delivery failed. User ID: {user_id}, Type: {data.get('type')}, Error: {e}"
            )

    # ------------------------------------------------------------------
    # Inbox
    # ------------------------------------------------------------------

    def list_for_user(self, user, unread_only=False):
        queryset = Notification.objects.filter(user=user)
        if unread_only:
            queryset = queryset.filter(is_read=False)
        return queryset

    def unread_count(self, user):
        return Notification.objects.filter(user=user, is_read=False).count()

    def mark_read(self, user, notification_id):
        """
        Mark one of the user's notifications as read.

        Raises:
            NotFoundException: If the notification does not belong to the user
        """
        notification = Notification.objects.filter(id=notification_id, user=user).first()
        if notification is None:
            raise NotFoundException('Notification not found.')
        if not notification.is_read:
            notification.is_read = True
            notification.save(update_fields=['is_read'])
        return notification

    def mark_all_read(self, user):
        return Notification.objects.filter(user=user, is_read=False).update(is_read=True)
