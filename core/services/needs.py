"""
Need management: posting, editing, expiring and listing buyer requests.
"""

import logging
from datetime import timedelta

from django.conf import settings
from django.db import transaction
from django.db.models import Count, Q
from django.utils import timezone

from ..exceptions import NotFoundException, UnauthorizedException, ValidationException
from ..models import Category, Need, NeedImage, Notification, Offer
from ..notifications import NotificationService

logger = logging.getLogger(__name__)

# Fields a buyer may change through update_need
UPDATABLE_FIELDS = [
    'title', 'description', 'min_budget', 'max_budget', 'currency',
    'latitude', 'longitude', 'address', 'urgency', 'expires_at',
]


def validate_budget_and_location(data, errors):
    """
    Collect cross-field errors for budget range and coordinates.

    Args:
        data: Mapping with optional min_budget, max_budget, latitude, longitude
        errors: Dict that receives error messages keyed by field
    """
    min_budget = data.get('min_budget')
    max_budget = data.get('max_budget')
    if min_budget is not None and max_budget is not None and min_budget > max_budget:
        errors['budget'] = ['Minimum budget cannot be greater than maximum budget.']

    if (data.get('latitude') is None) != (data.get('longitude') is None):
        errors['location'] = ['Latitude and longitude must be provided together.']


def save_need_images(need, image_urls):
    """Store image URLs for a need, preserving the order they were given in."""
    NeedImage.objects.bulk_create([
        NeedImage(need=need, image_url=url, sort_order=index)
        for index, url in enumerate(image_urls)
    ])


class NeedService:
    """
    Business logic for needs.

    Args:
        notifications: NotificationService used for owner notifications
    """

    def __init__(self, notifications=None):
        self.notifications = notifications or NotificationService()

    # ========================================================================
    # Queries
    # ========================================================================

    def base_queryset(self):
        return (
            Need.objects
            .select_related('category', 'user')
            .prefetch_related('images')
            .annotate(offer_count=Count('offers', distinct=True))
        )

    def get_need(self, need_id):
        """
        Fetch a need with its images and offer count.

        Raises:
            NotFoundException: If the need does not exist
        """
        need = self.base_queryset().filter(pk=need_id).first()
        if need is None:
            raise NotFoundException('Need not found.')
        return need

    def list_needs(self, filters=None):
        """
        List needs matching the given filters.

        Supported filters: category_id (includes subcategories), status
        (defaults to active), urgency, user_id, min_budget, max_budget.

        Returns:
            QuerySet: Needs, newest first
        """
        filters = filters or {}
        queryset = self.base_queryset()

        status = filters.get('status') or Need.STATUS_ACTIVE
        queryset = queryset.filter(status=status)

        category_id = filters.get('category_id')
        if category_id:
            category = Category.objects.filter(pk=category_id).first()
            if category is None:
                return queryset.none()
            queryset = queryset.filter(category_id__in=category.descendant_ids())

        if filters.get('urgency'):
            queryset = queryset.filter(urgency=filters['urgency'])

        if filters.get('user_id'):
            queryset = queryset.filter(user_id=filters['user_id'])

        # A need matches when its budget range overlaps the requested range
        if filters.get('min_budget') is not None:
            queryset = queryset.filter(
                Q(max_budget__isnull=True) | Q(max_budget__gte=filters['min_budget'])
            )
        if filters.get('max_budget') is not None:
            queryset = queryset.filter(
                Q(min_budget__isnull=True) | Q(min_budget__lte=filters['max_budget'])
            )

        return queryset.order_by('-created_at', '-id')

    def user_needs(self, user, status=None):
        queryset = self.base_queryset().filter(user=user)
        if status:
            queryset = queryset.filter(status=status)
        return queryset.order_by('-created_at', '-id')

    # ========================================================================
    # Commands
    # ========================================================================

    def create_need(self, user, data):
        """
        Create a need owned by the given user.

        Args:
            user: Buyer posting the need
            data: Validated fields including category_id and optional image_urls

        Returns:
            Need: The created need

        Raises:
            ValidationException: If category, budget or location are invalid
        """
        errors = {}
        category = Category.objects.filter(pk=data.get('category_id'), is_active=True).first()
        if category is None:
            errors['category_id'] = ['Category does not exist.']
        validate_budget_and_location(data, errors)
        if errors:
            raise ValidationException(errors)

        expires_at = data.get('expires_at')
        if expires_at is None:
            expiry_days = getattr(settings, 'NEED_DEFAULT_EXPIRY_DAYS', 30)
            expires_at = timezone.now() + timedelta(days=expiry_days)

        with transaction.atomic():
            need = Need.objects.create(
                user=user,
                category=category,
                title=data['title'].strip(),
                description=data['description'].strip(),
                min_budget=data.get('min_budget'),
                max_budget=data.get('max_budget'),
                currency=(data.get('currency') or getattr(settings, 'DEFAULT_CURRENCY', 'TRY')).upper(),
                latitude=data.get('latitude'),
                longitude=data.get('longitude'),
                address=data.get('address') or '',
                urgency=data.get('urgency') or Need.URGENCY_NORMAL,
                expires_at=expires_at,
            )
            save_need_images(need, data.get('image_urls') or [])

        logger.info(f"Need created. Need ID: {need.id}, User ID: {user.id}, Category: {category.id}")
        return self.get_need(need.id)

    def update_need(self, user, need_id, data):
        """
        Update an active need owned by the user.

        Image URLs, when supplied, replace the existing images.

        Raises:
            NotFoundException: If the need does not exist
            UnauthorizedException: If the user does not own the need
            ValidationException: If the need is not active or data is invalid
        """
        with transaction.atomic():
            need = Need.objects.select_for_update().filter(pk=need_id).first()
            if need is None:
                raise NotFoundException('Need not found.')
            if need.user_id != user.id:
                raise UnauthorizedException('You can only edit your own needs.')
            if need.status != Need.STATUS_ACTIVE:
                raise ValidationException({'status': ['Only active needs can be edited.']})

            if 'category_id' in data:
                category = Category.objects.filter(pk=data['category_id'], is_active=True).first()
                if category is None:
                    raise ValidationException({'category_id': ['Category does not exist.']})
                need.category = category

            for field in UPDATABLE_FIELDS:
                if field in data:
                    setattr(need, field, data[field])
            if 'currency' in data and need.currency:
                need.currency = need.currency.upper()

            errors = {}
            validate_budget_and_location({
                'min_budget': need.min_budget,
                'max_budget': need.max_budget,
                'latitude': need.latitude,
                'longitude': need.longitude,
            }, errors)
            if errors:
                raise ValidationException(errors)

            need.save()

            if 'image_urls' in data:
                need.images.all().delete()
                save_need_images(need, data['image_urls'] or [])

        logger.info(f"Need updated. Need ID: {need.id}, User ID: {user.id}")
        return self.get_need(need.id)

    def delete_need(self, user, need_id):
        """
        Delete a need owned by the user.

        Raises:
            NotFoundException: If the need does not exist
            UnauthorizedException: If the user does not own the need
            ValidationException: If the need has pending or accepted offers
        """
        with transaction.atomic():
            need = Need.objects.select_for_update().filter(pk=need_id).first()
            if need is None:
                raise NotFoundException('Need not found.')
            if need.user_id != user.id:
                raise UnauthorizedException('You can only delete your own needs.')
            if need.offers.filter(status=Offer.STATUS_PENDING).exists():
                raise ValidationException(
                    {'offers': ['Needs with pending offers cannot be deleted.']}
                )
            if need.offers.filter(status=Offer.STATUS_ACCEPTED).exists():
                raise ValidationException(
                    {'offers': ['Needs with an accepted offer cannot be deleted.']}
                )
            need.delete()

        logger.info(f"Need deleted. Need ID: {need_id}, User ID: {user.id}")

    def expire_need(self, user, need_id):
        """
        Mark an active need as expired at the owner's request.

        Raises:
            NotFoundException, UnauthorizedException, ValidationException
        """
        with transaction.atomic():
            need = Need.objects.select_for_update().filter(pk=need_id).first()
            if need is None:
                raise NotFoundException('Need not found.')
            if need.user_id != user.id:
                raise UnauthorizedException('You can only expire your own needs.')
            if need.status != Need.STATUS_ACTIVE:
                raise ValidationException({'status': ['Only active needs can be expired.']})
            need.status = Need.STATUS_EXPIRED
            need.save(update_fields=['status', 'updated_at'])

        logger.info(f"Need expired by owner. Need ID: {need.id}, User ID: {user.id}")
        return self.get_need(need.id)

    def expire_overdue_needs(self, now=None, dry_run=False):
        """
        Expire every active need whose expires_at has passed.

        The overdue rows are locked and re-checked before they change, so a
        need accepted or cancelled while the sweep runs is left alone and its
        owner is not notified.

        Args:
            now: Reference time, defaults to timezone.now()
            dry_run: When True, nothing is changed

        Returns:
            list[Need]: The needs that were (or would be) expired
        """
        now = now or timezone.now()
        overdue = {
            'status': Need.STATUS_ACTIVE,
            'expires_at__isnull': False,
            'expires_at__lte': now,
        }
        if dry_run:
            return list(Need.objects.select_related('user').filter(**overdue))

        with transaction.atomic():
            expired_ids = list(
                Need.objects.select_for_update().filter(**overdue).order_by('pk').values_list('pk', flat=True)
            )
            if not expired_ids:
                return []

            Need.objects.filter(pk__in=expired_ids).update(status=Need.STATUS_EXPIRED, updated_at=now)
            expired = list(Need.objects.select_related('user').filter(pk__in=expired_ids))

            for need in expired:
                self.notifications.notify(
                    need.user,
                    Notification.TYPE_NEED_EXPIRING,
                    'Your need has expired',
                    f'"{need.title}" has expired and no longer accepts offers.',
                    {'need_id': need.id},
                )

        logger.info(f"Expired {len(expired)} overdue needs.")
        return expired


class CategoryService:
    """Read access to the category tree."""

    def list_tree(self):
        """
        Return active top-level categories with their active children prefetched.

        Returns:
            list[Category]: Top-level categories ordered by sort_order, name
        """
        top_level = Category.objects.filter(is_active=True, parent__isnull=True)
        categories = list(top_level.order_by('sort_order', 'name'))
        children = Category.objects.filter(
            is_active=True, parent__in=categories
        ).order_by('sort_order', 'name')

        by_parent = {}
        for child in children:
            by_parent.setdefault(child.parent_id, []).append(child)
        for category in categories:
            category.active_children = by_parent.get(category.id, [])
        return categories

    def get_category(self, category_id):
        category = Category.objects.filter(pk=category_id, is_active=True).first()
        if category is None:
            raise NotFoundException('Category not found.')
        category.active_children = list(
            category.children.filter(is_active=True).order_by('sort_order', 'name')
        )
        return category
