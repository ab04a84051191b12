"""
Messaging between the buyer and provider of an offer.
"""

import logging

from django.db import transaction
from django.utils import timezone

from ..exceptions import NotFoundException, UnauthorizedException, ValidationException
from ..models import Message, Notification, Offer
from ..notifications import NotificationService

logger = logging.getLogger(__name__)

PREVIEW_LENGTH = 80


class MessageService:
    """
    Args:
        notifications: NotificationService used for new-message notifications
    """

    def __init__(self, notifications=None):
        self.notifications = notifications or NotificationService()

    def _get_offer_for_party(self, user, offer_id):
        offer = Offer.objects.select_related('need', 'need__user', 'provider').filter(pk=offer_id).first()
        if offer is None:
            raise NotFoundException('Offer not found.')
        if not offer.is_party(user):
            raise UnauthorizedException('Only the buyer and provider of this offer can exchange messages.')
        return offer

    def send_message(self, sender, offer_id, content):
        """
        Send a message to the other party of an offer.

        Returns:
            Message: The stored message

        Raises:
            NotFoundException, UnauthorizedException, ValidationException
        """
        content = (content or '').strip()
        if not content:
            raise ValidationException({'content': ['Message cannot be empty.']})

        offer = self._get_offer_for_party(sender, offer_id)
        receiver = offer.need.user if sender.id == offer.provider_id else offer.provider

        with transaction.atomic():
            message = Message.objects.create(
                offer=offer,
                sender=sender,
                receiver=receiver,
                content=content,
            )
            preview = content if len(content) <= PREVIEW_LENGTH else content[:PREVIEW_LENGTH - 1] + '…'
            self.notifications.notify(
                receiver,
                Notification.TYPE_NEW_MESSAGE,
                f'New message from {sender.display_name}',
                preview,
                {'offer_id': offer.id, 'message_id': message.id},
            )

        logger.info(f"Message sent. Message ID: {message.id}, Offer ID: {offer.id}, Sender: {sender.id}")
        return message

    def conversation(self, user, offer_id):
        """Messages on an offer, oldest first."""
        offer = self._get_offer_for_party(user, offer_id)
        return Message.objects.select_related('sender', 'receiver').filter(offer=offer).order_by('created_at', 'id')

    def mark_conversation_read(self, user, offer_id):
        """
        Mark every message the user received on an offer as read.

        Returns:
            int: Number of messages updated
        """
        offer = self._get_offer_for_party(user, offer_id)
        return Message.objects.filter(offer=offer, receiver=user, is_read=False).update(
            is_read=True,
            read_at=timezone.now(),
        )

    def unread_count(self, user):
        return Message.objects.filter(receiver=user, is_read=False).count()
