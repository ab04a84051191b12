"""
Offer lifecycle.

Offers move from pending to exactly one of accepted, rejected or withdrawn.
Every transition locks the need and then the offer with select_for_update()
so concurrent requests on one need are serialized. A request that loses a
race (the offer was pending when it was read, but not once the lock was
held) gets a ConflictException. A request against an offer that was
already settled gets a ValidationException.
"""

import logging

from django.db import transaction
from django.db.models import Avg, Count, Q
from django.utils import timezone

from ..exceptions import (
    ConflictException,
    NotFoundException,
    UnauthorizedException,
    ValidationException,
)
from ..models import Need, Notification, Offer, OfferImage
from ..notifications import NotificationService

logger = logging.getLogger(__name__)

SORT_FIELDS = {
    'price': 'price',
    'delivery_days': 'delivery_days',
    'status': 'status',
    'created': 'created_at',
}


def validate_price_against_budget(need, price):
    """
    Check an offer price against the need's budget range.

    Raises:
        ValidationException: With errors under 'price' if out of range
    """
    errors = []
    if need.min_budget is not None and price < need.min_budget:
        errors.append(f'Price must be at least {need.min_budget} {need.currency}.')
    if need.max_budget is not None and price > need.max_budget:
        errors.append(f'Price cannot exceed the budget of {need.max_budget} {need.currency}.')
    if errors:
        raise ValidationException({'price': errors})


def save_offer_images(offer, image_urls):
    """Store image URLs for an offer, preserving the order they were given in."""
    OfferImage.objects.bulk_create([
        OfferImage(offer=offer, image_url=url, sort_order=index)
        for index, url in enumerate(image_urls)
    ])


class OfferService:
    """
    Business logic for offers.

    Args:
        notifications: NotificationService used for party notifications
    """

    def __init__(self, notifications=None):
        self.notifications = notifications or NotificationService()

    # ========================================================================
    # Helpers
    # ========================================================================

    def base_queryset(self):
        return (
            Offer.objects
            .select_related('need', 'need__user', 'need__category', 'provider')
            .prefetch_related('images')
        )

    def _lock_offer(self, offer_id):
        """
        Lock an offer and its need for the rest of the current transaction.

        The need row is locked before the offer row. accept_offer also locks
        the competing offers, so every transition on a need takes its locks
        in the order need, then offers.

        Returns:
            tuple: (offer, observed_status) where observed_status is the status
            read before the lock was taken

        Raises:
            NotFoundException: If the offer does not exist
        """
        observed = Offer.objects.filter(pk=offer_id).values_list('status', 'need_id').first()
        if observed is None:
            raise NotFoundException('Offer not found.')
        observed_status, need_id = observed
        need = Need.objects.select_for_update().select_related('user').get(pk=need_id)
        offer = Offer.objects.select_for_update().select_related('provider').filter(pk=offer_id).first()
        if offer is None:
            raise ConflictException('The offer was removed by another request.')
        offer.need = need
        return offer, observed_status

    def _ensure_pending(self, offer, observed_status, action):
        if offer.status == Offer.STATUS_PENDING:
            return
        if observed_status == Offer.STATUS_PENDING:
            logger.warning(
                f"Offer {action} lost a concurrent update. Offer ID: {offer.id}, Status now: {offer.status}"
            )
            raise ConflictException(
                f'The offer was {offer.status} by another request. Please refresh and retry.'
            )
        raise ValidationException(
            {'status': [f'Only pending offers can be {action}. Current status: {offer.status}.']}
        )

    # ========================================================================
    # Create / update / delete
    # ========================================================================

    def can_create_offer(self, provider, need_id):
        """
        Tell whether the provider may bid on the need.

        Returns:
            tuple: (allowed, reason) where reason is '' when allowed
        """
        need = Need.objects.filter(pk=need_id).first()
        if need is None:
            return False, 'Need not found.'
        if need.status != Need.STATUS_ACTIVE:
            return False, 'This need is no longer accepting offers.'
        if need.is_expired:
            return False, 'This need has expired.'
        if need.user_id == provider.id:
            return False, 'You cannot make an offer on your own need.'
        if Offer.objects.filter(need=need, provider=provider, status=Offer.STATUS_PENDING).exists():
            return False, 'You already have a pending offer on this need.'
        return True, ''

    def create_offer(self, provider, data):
        """
        Submit an offer on a need.

        Args:
            provider: User making the offer
            data: Validated fields: need_id, price, currency, description,
                delivery_days and optional image_urls

        Returns:
            Offer: The created pending offer

        Raises:
            NotFoundException: If the need does not exist
            ValidationException: If any business rule rejects the offer
        """
        with transaction.atomic():
            need = Need.objects.select_for_update().select_related('user').filter(pk=data['need_id']).first()
            if need is None:
                raise NotFoundException('Need not found.')

            if need.status != Need.STATUS_ACTIVE:
                raise ValidationException({'need_id': ['This need is no longer accepting offers.']})
            if need.is_expired:
                raise ValidationException({'need_id': ['This need has expired.']})
            if need.user_id == provider.id:
                raise ValidationException({'need_id': ['You cannot make an offer on your own need.']})
            if Offer.objects.filter(need=need, provider=provider, status=Offer.STATUS_PENDING).exists():
                raise ValidationException({'need_id': ['You already have a pending offer on this need.']})

            currency = (data.get('currency') or need.currency).upper()
            if need.currency and currency != need.currency:
                raise ValidationException(
                    {'currency': [f'Offer currency must match the need currency ({need.currency}).']}
                )

            price = data['price']
            validate_price_against_budget(need, price)

            offer = Offer.objects.create(
                need=need,
                provider=provider,
                price=price,
                currency=currency,
                description=data['description'].strip(),
                delivery_days=data['delivery_days'],
            )
            save_offer_images(offer, data.get('image_urls') or [])

            self.notifications.notify(
                need.user,
                Notification.TYPE_NEW_OFFER,
                'New offer received',
                f'You received an offer of {price} {currency} for "{need.title}".',
                {'offer_id': offer.id, 'need_id': need.id},
            )

        logger.info(
            f"Offer created. Offer ID: {offer.id}, Need ID: {need.id}, "
            f"Provider ID: {provider.id}, Price: {price} {currency}"
        )
        return self.base_queryset().get(pk=offer.pk)

    def update_offer(self, provider, offer_id, data):
        """
        Edit a pending offer. The price is re-checked against the budget and
        image URLs, when supplied, replace the existing images.

        Raises:
            NotFoundException, UnauthorizedException, ValidationException, ConflictException
        """
        with transaction.atomic():
            offer, observed_status = self._lock_offer(offer_id)
            if offer.provider_id != provider.id:
                raise UnauthorizedException('You can only edit your own offers.')
            self._ensure_pending(offer, observed_status, 'edited')

            if 'price' in data:
                validate_price_against_budget(offer.need, data['price'])
                offer.price = data['price']
            if 'description' in data:
                offer.description = data['description'].strip()
            if 'delivery_days' in data:
                offer.delivery_days = data['delivery_days']
            offer.save()

            if 'image_urls' in data:
                offer.images.all().delete()
                save_offer_images(offer, data['image_urls'] or [])

        logger.info(f"Offer updated. Offer ID: {offer.id}, Provider ID: {provider.id}")
        return self.base_queryset().get(pk=offer.pk)

    def delete_offer(self, provider, offer_id):
        """
        Delete an offer that was never accepted, with its images and messages.

        Raises:
            NotFoundException, UnauthorizedException, ValidationException
        """
        with transaction.atomic():
            offer, _ = self._lock_offer(offer_id)
            if offer.provider_id != provider.id:
                raise UnauthorizedException('You can only delete your own offers.')
            if offer.status == Offer.STATUS_ACCEPTED:
                raise ValidationException({'status': ['Accepted offers cannot be deleted.']})

            offer.images.all().delete()
            offer.messages.all().delete()
            offer.delete()

        logger.info(f"Offer deleted. Offer ID: {offer_id}, Provider ID: {provider.id}")

    # ========================================================================
    # Transitions
    # ========================================================================

    def accept_offer(self, buyer, offer_id):
        """
        Accept a pending offer on the buyer's active need.

        The need moves to in_progress and every other pending offer on it is
        rejected in the same transaction. The accepted provider and each
        rejected provider are notified.

        Raises:
            NotFoundException, UnauthorizedException, ValidationException, ConflictException
        """
        with transaction.atomic():
            offer, observed_status = self._lock_offer(offer_id)
            need = offer.need
            if need.user_id != buyer.id:
                raise UnauthorizedException('Only the owner of the need can accept offers.')
            self._ensure_pending(offer, observed_status, 'accepted')
            if need.status != Need.STATUS_ACTIVE:
                raise ValidationException({'need': ['Offers can only be accepted on active needs.']})

            offer.status = Offer.STATUS_ACCEPTED
            offer.save(update_fields=['status', 'updated_at'])

            need.status = Need.STATUS_IN_PROGRESS
            need.save(update_fields=['status', 'updated_at'])

            competitors = list(
                Offer.objects.select_for_update()
                .select_related('provider')
                .filter(need=need, status=Offer.STATUS_PENDING)
                .exclude(pk=offer.pk)
                .order_by('pk')
            )
            if competitors:
                Offer.objects.filter(pk__in=[c.pk for c in competitors]).update(
                    status=Offer.STATUS_REJECTED,
                    updated_at=timezone.now(),
                )

            self.notifications.notify(
                offer.provider,
                Notification.TYPE_OFFER_ACCEPTED,
                'Your offer was accepted',
                f'Your offer for "{need.title}" was accepted.',
                {'offer_id': offer.id, 'need_id': need.id},
            )
            for competitor in competitors:
                self.notifications.notify(
                    competitor.provider,
                    Notification.TYPE_OFFER_REJECTED,
                    'Your offer was not selected',
                    f'The buyer chose another offer for "{need.title}".',
                    {'offer_id': competitor.id, 'need_id': need.id},
                )

        logger.info(
            f"Offer accepted. Offer ID: {offer.id}, Need ID: {need.id}, "
            f"Rejected competitors: {len(competitors)}"
        )
        return self.base_queryset().get(pk=offer.pk)

    def reject_offer(self, buyer, offer_id, reason=None):
        """
        Reject a pending offer on the buyer's need.

        Raises:
            NotFoundException, UnauthorizedException, ValidationException, ConflictException
        """
        with transaction.atomic():
            offer, observed_status = self._lock_offer(offer_id)
            if offer.need.user_id != buyer.id:
                raise UnauthorizedException('Only the owner of the need can reject offers.')
            self._ensure_pending(offer, observed_status, 'rejected')

            offer.status = Offer.STATUS_REJECTED
            offer.save(update_fields=['status', 'updated_at'])

            body = f'Your offer for "{offer.need.title}" was rejected.'
            if reason:
                body = f'{body} Reason: {reason}'
            self.notifications.notify(
                offer.provider,
                Notification.TYPE_OFFER_REJECTED,
                'Your offer was rejected',
                body,
                {'offer_id': offer.id, 'need_id': offer.need_id, 'reason': reason or ''},
            )

        logger.info(f"Offer rejected. Offer ID: {offer.id}, Buyer ID: {buyer.id}")
        return self.base_queryset().get(pk=offer.pk)

    def withdraw_offer(self, provider, offer_id):
        """
        Withdraw the provider's own pending offer.

        Raises:
            NotFoundException, UnauthorizedException, ValidationException, ConflictException
        """
        with transaction.atomic():
            offer, observed_status = self._lock_offer(offer_id)
            if offer.provider_id != provider.id:
                raise UnauthorizedException('You can only withdraw your own offers.')
            self._ensure_pending(offer, observed_status, 'withdrawn')

            offer.status = Offer.STATUS_WITHDRAWN
            offer.save(update_fields=['status', 'updated_at'])

            self.notifications.notify(
                offer.need.user,
                Notification.TYPE_OFFER_WITHDRAWN,
                'An offer was withdrawn',
                f'An offer for "{offer.need.title}" was withdrawn by the provider.',
                {'offer_id': offer.id, 'need_id': offer.need_id},
            )

        logger.info(f"Offer withdrawn. Offer ID: {offer.id}, Provider ID: {provider.id}")
        return self.base_queryset().get(pk=offer.pk)

    # ========================================================================
    # Queries
    # ========================================================================

    def get_offer(self, user, offer_id):
        """
        Fetch an offer visible to the user.

        Raises:
            NotFoundException: If the offer does not exist
            UnauthorizedException: If the user is neither provider nor need owner
        """
        offer = self.base_queryset().filter(pk=offer_id).first()
        if offer is None:
            raise NotFoundException('Offer not found.')
        if not offer.is_party(user):
            raise UnauthorizedException('You do not have access to this offer.')
        return offer

    def offers_for_need(self, user, need_id):
        """
        List offers on a need. The need owner sees all of them, anyone else
        only sees their own.
        """
        need = Need.objects.filter(pk=need_id).first()
        if need is None:
            raise NotFoundException('Need not found.')
        queryset = self.base_queryset().filter(need=need)
        if need.user_id != user.id:
            queryset = queryset.filter(provider=user)
        return queryset.order_by('-created_at', '-id')

    def provider_offers(self, provider, status=None):
        queryset = self.base_queryset().filter(provider=provider)
        if status:
            queryset = queryset.filter(status=status)
        return queryset.order_by('-created_at', '-id')

    def received_offers(self, buyer, status=None):
        queryset = self.base_queryset().filter(need__user=buyer)
        if status:
            queryset = queryset.filter(status=status)
        return queryset.order_by('-created_at', '-id')

    def filter_offers(self, user, filters):
        """
        Filter offers the user is a party to.

        Supported filters: need_id, provider_id, min_price, max_price, currency,
        status, created_from, created_to, max_delivery_days, sort_by
        (price, delivery_days, status, created) and sort_desc.

        Returns:
            QuerySet: Matching offers
        """
        queryset = self.base_queryset().filter(Q(provider=user) | Q(need__user=user))

        if filters.get('need_id'):
            queryset = queryset.filter(need_id=filters['need_id'])
        if filters.get('provider_id'):
            queryset = queryset.filter(provider_id=filters['provider_id'])
        if filters.get('min_price') is not None:
            queryset = queryset.filter(price__gte=filters['min_price'])
        if filters.get('max_price') is not None:
            queryset = queryset.filter(price__lte=filters['max_price'])
        if filters.get('currency'):
            queryset = queryset.filter(currency=filters['currency'].upper())
        if filters.get('status'):
            queryset = queryset.filter(status=filters['status'])
        if filters.get('created_from'):
            queryset = queryset.filter(created_at__gte=filters['created_from'])
        if filters.get('created_to'):
            queryset = queryset.filter(created_at__lte=filters['created_to'])
        if filters.get('max_delivery_days'):
            queryset = queryset.filter(delivery_days__lte=filters['max_delivery_days'])

        sort_field = SORT_FIELDS.get(filters.get('sort_by') or 'created', 'created_at')
        if filters.get('sort_desc', True):
            return queryset.order_by(f'-{sort_field}', '-id')
        return queryset.order_by(sort_field, 'id')

    def offer_stats(self, provider):
        """
        Summarize the provider's offers.

        Returns:
            dict: total, pending, accepted, rejected, withdrawn, average_price,
            average_delivery_days
        """
        stats = Offer.objects.filter(provider=provider).aggregate(
            total=Count('id'),
            pending=Count('id', filter=Q(status=Offer.STATUS_PENDING)),
            accepted=Count('id', filter=Q(status=Offer.STATUS_ACCEPTED)),
            rejected=Count('id', filter=Q(status=Offer.STATUS_REJECTED)),
            withdrawn=Count('id', filter=Q(status=Offer.STATUS_WITHDRAWN)),
            average_price=Avg('price'),
            average_delivery_days=Avg('delivery_days'),
        )
        stats['average_price'] = stats['average_price'] or 0
        stats['average_delivery_days'] = stats['average_delivery_days'] or 0
        return stats

    def top_offers(self, user, need_id, limit=5):
        """
        Best pending offers on a need: cheapest first, then fastest delivery,
        then highest rated provider. Only the need owner may see them.
        """
        need = Need.objects.filter(pk=need_id).first()
        if need is None:
            raise NotFoundException('Need not found.')
        if need.user_id != user.id:
            raise UnauthorizedException('Only the owner of the need can compare offers.')
        return list(
            self.base_queryset()
            .filter(need=need, status=Offer.STATUS_PENDING)
            .order_by('price', 'delivery_days', '-provider__rating', 'id')[:limit]
        )
