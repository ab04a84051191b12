"""
Messaging between offer parties, notification inbox and push delivery.
"""

import pytest
from django.urls import reverse
from rest_framework import status

from core.exceptions import NotFoundException, UnauthorizedException, ValidationException
from core.models import Message, Notification
from core.notifications import (
    PUSH_FAILURE_CACHE_KEY,
    NotificationService,
    get_push_failure_count,
    record_push_failure,
)
from core.push import PushBackend
from core.services import MessageService


class FailingPushBackend(PushBackend):
    def send(self, token, title, body, data=None):
        raise ConnectionError('push service unavailable')


@pytest.fixture
def message_service(notifications):
    return MessageService(notifications=notifications)


@pytest.fixture
def buyer_with_device(buyer):
    buyer.fcm_token = 'buyer-device-token'
    buyer.device_platform = 'android'
    buyer.save()
    return buyer


# ============================================================================
# Messages
# ============================================================================

@pytest.mark.django_db
class TestSendMessage:

    def test_provider_messages_buyer(self, message_service, buyer, provider, pending_offer):
        message = message_service.send_message(provider, pending_offer.id, '  Is there parking?  ')

        assert message.sender == provider
        assert message.receiver == buyer
        assert message.content == 'Is there parking?'
        assert message.is_read is False

    def test_receiver_is_notified(self, message_service, buyer, provider, pending_offer):
        message = message_service.send_message(provider, pending_offer.id, 'Is there parking?')

        notification = Notification.objects.get(user=buyer, notification_type=Notification.TYPE_NEW_MESSAGE)
        assert notification.title == 'New message from Mehmet Provider'
        assert notification.body == 'Is there parking?'
        assert notification.data == {'offer_id': pending_offer.id, 'message_id': message.id}

    def test_long_message_preview_is_truncated(self, message_service, buyer, provider, pending_offer):
        message_service.send_message(provider, pending_offer.id, 'x' * 200)

        notification = Notification.objects.get(user=buyer)
        assert len(notification.body) == 80
        assert notification.body.endswith('…')

    def test_buyer_replies_to_provider(self, message_service, buyer, provider, pending_offer):
        message = message_service.send_message(buyer, pending_offer.id, 'Yes, in the back.')

        assert message.receiver == provider

    def test_empty_message_rejected(self, message_service, provider, pending_offer):
        with pytest.raises(ValidationException) as exc_info:
            message_service.send_message(provider, pending_offer.id, '   ')

        assert 'content' in exc_info.value.errors
        assert not Message.objects.exists()

    def test_outsider_cannot_message(self, message_service, stranger, pending_offer):
        with pytest.raises(UnauthorizedException):
            message_service.send_message(stranger, pending_offer.id, 'Hello')

    def test_unknown_offer(self, message_service, provider):
        with pytest.raises(NotFoundException):
            message_service.send_message(provider, 999999, 'Hello')


@pytest.mark.django_db
class TestConversation:

    def test_conversation_is_oldest_first(self, message_service, buyer, provider, pending_offer):
        first = message_service.send_message(provider, pending_offer.id, 'First')
        second = message_service.send_message(buyer, pending_offer.id, 'Second')

        assert list(message_service.conversation(buyer, pending_offer.id)) == [first, second]

    def test_outsider_cannot_read(self, message_service, stranger, provider, pending_offer):
        message_service.send_message(provider, pending_offer.id, 'Private')

        with pytest.raises(UnauthorizedException):
            message_service.conversation(stranger, pending_offer.id)

    def test_mark_read_only_touches_received(self, message_service, buyer, provider, pending_offer):
        message_service.send_message(provider, pending_offer.id, 'One')
        message_service.send_message(provider, pending_offer.id, 'Two')
        mine = message_service.send_message(buyer, pending_offer.id, 'Reply')

        assert message_service.unread_count(buyer) == 2
        assert message_service.mark_conversation_read(buyer, pending_offer.id) == 2
        assert message_service.unread_count(buyer) == 0

        mine.refresh_from_db()
        assert mine.is_read is False
        assert Message.objects.filter(receiver=buyer, read_at__isnull=False).count() == 2


# ============================================================================
# Notifications
# ============================================================================

@pytest.mark.django_db
class TestNotify:

    def test_creates_row(self, notifications, buyer):
        notification = notifications.notify(buyer, Notification.TYPE_SYSTEM, 'Welcome', 'Hello there')

        assert notification.user == buyer
        assert notification.data == {}
        assert notification.is_read is False

    def test_push_sent_after_commit(
        self, notifications, push_backend, buyer_with_device, django_capture_on_commit_callbacks
    ):
        with django_capture_on_commit_callbacks(execute=True):
            notification = notifications.notify(
                buyer_with_device, Notification.TYPE_NEW_OFFER, 'New offer', 'You got an offer', {'offer_id': 7}
            )

        assert len(push_backend.sent) == 1
        sent = push_backend.sent[0]
        assert sent['token'] == 'buyer-device-token'
        assert sent['data'] == {
            'offer_id': '7',
            'type': Notification.TYPE_NEW_OFFER,
            'notification_id': str(notification.id),
        }

    def test_no_push_before_commit(self, notifications, push_backend, buyer_with_device, django_capture_on_commit_callbacks):
        with django_capture_on_commit_callbacks(execute=False) as callbacks:
            notifications.notify(buyer_with_device, Notification.TYPE_SYSTEM, 'Hi', 'Body')

        assert len(callbacks) == 1
        assert push_backend.sent == []

    def test_no_push_without_token(self, notifications, push_backend, buyer, django_capture_on_commit_callbacks):
        with django_capture_on_commit_callbacks(execute=True) as callbacks:
            notifications.notify(buyer, Notification.TYPE_SYSTEM, 'Hi', 'Body')

        assert callbacks == []
        assert push_backend.sent == []
        assert Notification.objects.filter(user=buyer).count() == 1

    def test_no_push_when_disabled(self, notifications, push_backend, buyer_with_device, django_capture_on_commit_callbacks):
        buyer_with_device.enable_push_notifications = False
        buyer_with_device.save()

        with django_capture_on_commit_callbacks(execute=True):
            notifications.notify(buyer_with_device, Notification.TYPE_SYSTEM, 'Hi', 'Body')

        assert push_backend.sent == []

    def test_push_failure_is_counted_not_raised(self, buyer_with_device, django_capture_on_commit_callbacks):
        service = NotificationService(push_backend=FailingPushBackend())

        with django_capture_on_commit_callbacks(execute=True):
            notification = service.notify(buyer_with_device, Notification.TYPE_SYSTEM, 'Hi', 'Body')

        assert Notification.objects.filter(pk=notification.pk).exists()
        assert get_push_failure_count() == 1

    def test_failure_counter_increments(self):
        assert get_push_failure_count() == 0

        record_push_failure()
        record_push_failure()

        assert get_push_failure_count() == 2
        assert PUSH_FAILURE_CACHE_KEY == 'metrics:push_failures'


@pytest.mark.django_db
class TestInbox:

    def test_list_newest_first_and_unread_filter(self, notifications, buyer):
        first = notifications.notify(buyer, Notification.TYPE_SYSTEM, 'First', 'Body')
        second = notifications.notify(buyer, Notification.TYPE_SYSTEM, 'Second', 'Body')
        notifications.mark_read(buyer, first.id)

        assert list(notifications.list_for_user(buyer)) == [second, first]
        assert list(notifications.list_for_user(buyer, unread_only=True)) == [second]
        assert notifications.unread_count(buyer) == 1

    def test_cannot_mark_someone_elses(self, notifications, buyer, provider):
        notification = notifications.notify(provider, Notification.TYPE_SYSTEM, 'Hi', 'Body')

        with pytest.raises(NotFoundException):
            notifications.mark_read(buyer, notification.id)

    def test_mark_all_read(self, notifications, buyer, provider):
        notifications.notify(buyer, Notification.TYPE_SYSTEM, 'One', 'Body')
        notifications.notify(buyer, Notification.TYPE_SYSTEM, 'Two', 'Body')
        notifications.notify(provider, Notification.TYPE_SYSTEM, 'Other', 'Body')

        assert notifications.mark_all_read(buyer) == 2
        assert notifications.unread_count(buyer) == 0
        assert notifications.unread_count(provider) == 1


# ============================================================================
# Endpoints
# ============================================================================

@pytest.mark.django_db
class TestMessageAPI:

    def test_send_and_read_conversation(self, api_client, buyer, provider, pending_offer):
        api_client.force_authenticate(user=provider)
        response = api_client.post(
            reverse('message_send'), {'offer_id': pending_offer.id, 'content': 'When can we start?'}, format='json'
        )
        assert response.status_code == status.HTTP_201_CREATED
        assert response.data['receiver']['id'] == buyer.id

        api_client.force_authenticate(user=buyer)
        response = api_client.get(reverse('message_unread_count'))
        assert response.data == {'unread_count': 1}

        response = api_client.get(reverse('conversation', args=[pending_offer.id]))
        assert response.status_code == status.HTTP_200_OK
        assert response.data['count'] == 1
        assert response.data['results'][0]['content'] == 'When can we start?'

        response = api_client.post(reverse('conversation_read', args=[pending_offer.id]))
        assert response.data == {'updated': 1}

    def test_outsider_gets_403(self, api_client, stranger, pending_offer):
        api_client.force_authenticate(user=stranger)

        response = api_client.get(reverse('conversation', args=[pending_offer.id]))

        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_missing_content(self, api_client, provider, pending_offer):
        api_client.force_authenticate(user=provider)

        response = api_client.post(reverse('message_send'), {'offer_id': pending_offer.id}, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert 'content' in response.data['errors']


@pytest.mark.django_db
class TestNotificationAPI:

    def test_list_and_mark_read(self, api_client, notifications, buyer):
        notification = notifications.notify(buyer, Notification.TYPE_SYSTEM, 'Hello', 'Body')
        api_client.force_authenticate(user=buyer)

        response = api_client.get(reverse('notification_list'))
        assert response.status_code == status.HTTP_200_OK
        assert response.data['count'] == 1
        assert response.data['results'][0]['title'] == 'Hello'

        response = api_client.post(reverse('notification_read', args=[notification.id]))
        assert response.status_code == status.HTTP_200_OK
        assert response.data['is_read'] is True

        response = api_client.get(reverse('notification_unread_count'))
        assert response.data == {'unread_count': 0}

    def test_unread_filter_and_read_all(self, api_client, notifications, buyer):
        notifications.notify(buyer, Notification.TYPE_SYSTEM, 'One', 'Body')
        notifications.notify(buyer, Notification.TYPE_SYSTEM, 'Two', 'Body')
        api_client.force_authenticate(user=buyer)

        response = api_client.get(reverse('notification_list'), {'unread': 'true'})
        assert response.data['count'] == 2

        response = api_client.post(reverse('notification_read_all'))
        assert response.data == {'updated': 2}

    def test_other_users_notification_is_404(self, api_client, notifications, buyer, provider):
        notification = notifications.notify(provider, Notification.TYPE_SYSTEM, 'Hi', 'Body')
        api_client.force_authenticate(user=buyer)

        response = api_client.post(reverse('notification_read', args=[notification.id]))

        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_requires_authentication(self, api_client):
        response = api_client.get(reverse('notification_list'))

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
