"""
Data model for the local services marketplace.

Buyers post needs, providers bid on them with offers, and accepted offers are
paid through escrow transactions. Reviews, messages, notifications, search
history, behavior tracking and account verification hang off those core
records.
"""

import uuid
from decimal import Decimal

from django.conf import settings
from django.contrib.auth.models import AbstractUser
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator, MaxValueValidator
from django.db import models
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from .validators import (
    validate_currency_code,
    validate_phone_number,
    validate_profile_image,
)


def user_profile_image_upload_path(instance, filename):
    """
    Generate upload path for user profile images.

    Path format: profile_images/{user_id}/{filename}
    If user_id is not yet available (user not saved), uses 'temp' as placeholder.

    Args:
        instance: User model instance
        filename: Original filename

    Returns:
        str: Upload path
    """
    user_id = instance.id if instance.id else 'temp'
    return f'profile_images/{user_id}/{filename}'


def default_currency():
    return getattr(settings, 'DEFAULT_CURRENCY', 'TRY')


def generate_conversation_id():
    return str(uuid.uuid4())


class User(AbstractUser):
    """
    Custom User model extending Django's AbstractUser.

    Additional fields:
    - email: Required, unique email address used for login
    - phone_number: Optional phone number with validation
    - user_type: 'buyer', 'provider' or 'both'
    - profile_image: Optional profile picture
    - rating / review_count: Aggregates of visible reviews received
    - fcm_token / device_platform / enable_push_notifications: Push delivery
    - created_at / updated_at: Timestamps
    """

    USER_TYPE_BUYER = 'buyer'
    USER_TYPE_PROVIDER = 'provider'
    USER_TYPE_BOTH = 'both'

    USER_TYPE_CHOICES = [
        (USER_TYPE_BUYER, 'Buyer'),
        (USER_TYPE_PROVIDER, 'Service Provider'),
        (USER_TYPE_BOTH, 'Buyer and Provider'),
    ]

    DEVICE_PLATFORM_CHOICES = [
        ('ios', 'iOS'),
        ('android', 'Android'),
        ('web', 'Web'),
    ]

    # Override email to make it required and unique
    email = models.EmailField(
        _('email address'),
        unique=True,
        blank=False,
        null=False,
        error_messages={
            'unique': _('A user with that email already exists.'),
        },
        help_text=_('Required. Enter a valid email address.')
    )

    phone_number = models.CharField(
        _('phone number'),
        max_length=20,
        blank=True,
        default='',
        validators=[validate_phone_number],
        help_text=_('Optional. Enter phone number in international format.')
    )

    user_type = models.CharField(
        _('user type'),
        max_length=10,
        choices=USER_TYPE_CHOICES,
        default=USER_TYPE_BUYER,
        help_text=_('Whether the user posts needs, submits offers, or both.')
    )

    profile_image = models.ImageField(
        _('profile image'),
        upload_to=user_profile_image_upload_path,
        blank=True,
        null=True,
        validators=[validate_profile_image],
        help_text=_('Optional. Upload a profile picture (max 5MB, formats: jpg, png, webp).')
    )

    rating = models.DecimalField(
        _('rating'),
        max_digits=3,
        decimal_places=2,
        default=Decimal('0.00'),
        validators=[
            MinValueValidator(Decimal('0.00'), message=_('Rating cannot be negative.')),
            MaxValueValidator(Decimal('5.00'), message=_('Rating cannot exceed 5.00.'))
        ],
        help_text=_('Average of visible reviews received.')
    )

    review_count = models.PositiveIntegerField(
        _('review count'),
        default=0,
        help_text=_('Number of visible reviews received.')
    )

    fcm_token = models.CharField(
        _('push token'),
        max_length=255,
        blank=True,
        default='',
        help_text=_('Device token used for push notifications.')
    )

    device_platform = models.CharField(
        _('device platform'),
        max_length=10,
        choices=DEVICE_PLATFORM_CHOICES,
        blank=True,
        default='',
    )

    enable_push_notifications = models.BooleanField(
        _('push notifications enabled'),
        default=True,
    )

    created_at = models.DateTimeField(
        _('created at'),
        auto_now_add=True,
        help_text=_('Timestamp when the account was created.')
    )

    updated_at = models.DateTimeField(
        _('updated at'),
        auto_now=True,
        help_text=_('Timestamp when the account was last updated.')
    )

    class Meta:
        verbose_name = _('user')
        verbose_name_plural = _('users')
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['email'], name='user_email_idx'),
            models.Index(fields=['user_type'], name='user_type_idx'),
        ]

    def __str__(self):
        """Return email as string representation."""
        return self.email or self.username

    def is_buyer(self):
        """
        Check if user can post needs.

        Returns:
            bool: True if user_type is 'buyer' or 'both'
        """
        return self.user_type in (self.USER_TYPE_BUYER, self.USER_TYPE_BOTH)

    def is_provider(self):
        """
        Check if user can submit offers.

        Returns:
            bool: True if user_type is 'provider' or 'both'
        """
        return self.user_type in (self.USER_TYPE_PROVIDER, self.USER_TYPE_BOTH)

    @property
    def display_name(self):
        full_name = self.get_full_name()
        return full_name or self.email

    def clean(self):
        """
        Validate model fields.

        Ensures:
        - Email is provided and lowercase for case-insensitive uniqueness

        Raises:
            ValidationError: If validation fails
        """
        super().clean()

        if self.email:
            self.email = self.email.lower()

        if not self.email:
            raise ValidationError({
                'email': _('Email address is required.')
            })

    def save(self, *args, **kwargs):
        """
        Override save to normalize email and validate updates.

        For creation, full_clean is skipped so duplicate emails surface as
        database IntegrityError. Profile images on new users are written after
        the first save so the upload path can use the user id.
        """
        if self.email:
            self.email = self.email.lower()

        if self.pk is not None and not kwargs.get('update_fields'):
            self.full_clean()

        if self.profile_image and not self.pk:
            profile_image_temp = self.profile_image
            self.profile_image = None

            super().save(*args, **kwargs)

            self.profile_image = profile_image_temp
            super().save(update_fields=['profile_image'])
        else:
            super().save(*args, **kwargs)


# ============================================================================
# Category Model
# ============================================================================

class Category(models.Model):
    """
    Service category. Categories form a two-level tree via `parent`.
    """

    name = models.CharField(_('name'), max_length=100, unique=True)
    name_tr = models.CharField(_('turkish name'), max_length=100, blank=True, default='')
    description = models.TextField(_('description'), blank=True, default='')
    icon_url = models.URLField(_('icon url'), max_length=500, blank=True, default='')
    parent = models.ForeignKey(
        'self',
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='children',
        help_text=_('Parent category, empty for top-level categories')
    )
    is_active = models.BooleanField(_('active'), default=True)
    sort_order = models.PositiveIntegerField(_('sort order'), default=0)
    created_at = models.DateTimeField(_('created at'), auto_now_add=True)

    class Meta:
        verbose_name = _('category')
        verbose_name_plural = _('categories')
        ordering = ['sort_order', 'name']

    def __str__(self):
        return self.name

    def clean(self):
        super().clean()
        if self.parent_id and self.pk and self.parent_id == self.pk:
            raise ValidationError({
                'parent': _('A category cannot be its own parent.')
            })

    def descendant_ids(self):
        """
        Return the ids of this category and all categories below it.

        Returns:
            list[int]: Category ids, self first
        """
        ids = [self.pk]
        frontier = [self.pk]
        while frontier:
            children = list(
                Category.objects.filter(parent_id__in=frontier).values_list('id', flat=True)
            )
            children = [child for child in children if child not in ids]
            ids.extend(children)
            frontier = children
        return ids


# ============================================================================
# Need Model
# ============================================================================

class Need(models.Model):
    """
    A buyer's posted request for a service.

    Status flow:
    - active -> in_progress (an offer is accepted)
    - active -> expired / cancelled
    - in_progress -> completed (payment released) / cancelled (payment refunded)
    """

    STATUS_ACTIVE = 'active'
    STATUS_IN_PROGRESS = 'in_progress'
    STATUS_COMPLETED = 'completed'
    STATUS_CANCELLED = 'cancelled'
    STATUS_EXPIRED = 'expired'

    STATUS_CHOICES = [
        (STATUS_ACTIVE, 'Active'),
        (STATUS_IN_PROGRESS, 'In Progress'),
        (STATUS_COMPLETED, 'Completed'),
        (STATUS_CANCELLED, 'Cancelled'),
        (STATUS_EXPIRED, 'Expired'),
    ]

    URGENCY_FLEXIBLE = 1
    URGENCY_NORMAL = 2
    URGENCY_URGENT = 3

    URGENCY_CHOICES = [
        (URGENCY_FLEXIBLE, 'Flexible'),
        (URGENCY_NORMAL, 'Normal'),
        (URGENCY_URGENT, 'Urgent'),
    ]

    title = models.CharField(_('title'), max_length=200)
    description = models.TextField(_('description'))
    category = models.ForeignKey(
        Category,
        on_delete=models.PROTECT,
        related_name='needs',
    )
    min_budget = models.DecimalField(
        _('minimum budget'),
        max_digits=12,
        decimal_places=2,
        null=True,
        blank=True,
        validators=[MinValueValidator(Decimal('0.00'), message=_('Budget cannot be negative.'))]
    )
    max_budget = models.DecimalField(
        _('maximum budget'),
        max_digits=12,
        decimal_places=2,
        null=True,
        blank=True,
        validators=[MinValueValidator(Decimal('0.00'), message=_('Budget cannot be negative.'))]
    )
    currency = models.CharField(
        _('currency'),
        max_length=3,
        default=default_currency,
        validators=[validate_currency_code],
    )
    latitude = models.DecimalField(
        _('latitude'),
        max_digits=9,
        decimal_places=6,
        null=True,
        blank=True,
        validators=[MinValueValidator(Decimal('-90')), MaxValueValidator(Decimal('90'))]
    )
    longitude = models.DecimalField(
        _('longitude'),
        max_digits=9,
        decimal_places=6,
        null=True,
        blank=True,
        validators=[MinValueValidator(Decimal('-180')), MaxValueValidator(Decimal('180'))]
    )
    address = models.CharField(_('address'), max_length=500, blank=True, default='')
    urgency = models.PositiveSmallIntegerField(
        _('urgency'),
        choices=URGENCY_CHOICES,
        default=URGENCY_NORMAL,
    )
    status = models.CharField(
        _('status'),
        max_length=20,
        choices=STATUS_CHOICES,
        default=STATUS_ACTIVE,
    )
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='needs',
        help_text=_('Buyer who posted the need')
    )
    created_at = models.DateTimeField(_('created at'), auto_now_add=True)
    updated_at = models.DateTimeField(_('updated at'), auto_now=True)
    expires_at = models.DateTimeField(_('expires at'), null=True, blank=True)

    class Meta:
        verbose_name = _('need')
        verbose_name_plural = _('needs')
        ordering = ['-created_at', '-id']
        indexes = [
            models.Index(fields=['status'], name='need_status_idx'),
            models.Index(fields=['category'], name='need_category_idx'),
            models.Index(fields=['user'], name='need_user_idx'),
            models.Index(fields=['created_at'], name='need_created_idx'),
            models.Index(fields=['expires_at'], name='need_expires_idx'),
        ]

    def __str__(self):
        return f"{self.title} ({self.get_status_display()})"

    def clean(self):
        """
        Validate model fields.

        Ensures:
        - min_budget does not exceed max_budget
        - latitude and longitude are provided together

        Raises:
            ValidationError: If validation fails
        """
        super().clean()

        if self.min_budget is not None and self.max_budget is not None:
            if self.min_budget > self.max_budget:
                raise ValidationError({
                    'max_budget': _('Maximum budget must be greater than or equal to minimum budget.')
                })

        if (self.latitude is None) != (self.longitude is None):
            raise ValidationError({
                'latitude': _('Latitude and longitude must be provided together.')
            })

    def save(self, *args, **kwargs):
        """Run full validation before saving."""
        self.full_clean()
        super().save(*args, **kwargs)

    @property
    def is_expired(self):
        """True when the need has an expiry time that has passed."""
        return self.expires_at is not None and self.expires_at <= timezone.now()

    @property
    def has_budget(self):
        return self.min_budget is not None or self.max_budget is not None

    @property
    def has_location(self):
        return self.latitude is not None and self.longitude is not None


class NeedImage(models.Model):
    """Image attached to a need, ordered by sort_order."""

    need = models.ForeignKey(Need, on_delete=models.CASCADE, related_name='images')
    image_url = models.URLField(_('image url'), max_length=500)
    alt_text = models.CharField(_('alt text'), max_length=200, blank=True, default='')
    sort_order = models.PositiveIntegerField(_('sort order'), default=0)
    created_at = models.DateTimeField(_('created at'), auto_now_add=True)

    class Meta:
        verbose_name = _('need image')
        verbose_name_plural = _('need images')
        ordering = ['sort_order', 'id']

    def __str__(self):
        return f"Image {self.sort_order} for need {self.need_id}"


# ============================================================================
# Offer Model
# ============================================================================

class Offer(models.Model):
    """
    A provider's bid against a need.

    Status flow:
    - pending -> accepted / rejected / withdrawn

    Accepted, rejected and withdrawn are terminal.
    """

    STATUS_PENDING = 'pending'
    STATUS_ACCEPTED = 'accepted'
    STATUS_REJECTED = 'rejected'
    STATUS_WITHDRAWN = 'withdrawn'

    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_ACCEPTED, 'Accepted'),
        (STATUS_REJECTED, 'Rejected'),
        (STATUS_WITHDRAWN, 'Withdrawn'),
    ]

    # Valid state transitions
    VALID_TRANSITIONS = {
        STATUS_PENDING: [STATUS_ACCEPTED, STATUS_REJECTED, STATUS_WITHDRAWN],
        STATUS_ACCEPTED: [],
        STATUS_REJECTED: [],
        STATUS_WITHDRAWN: [],
    }

    need = models.ForeignKey(Need, on_delete=models.CASCADE, related_name='offers')
    provider = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='offers',
        help_text=_('Provider who submitted the offer')
    )
    price = models.DecimalField(
        _('price'),
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.01'), message=_('Price must be greater than zero.'))]
    )
    currency = models.CharField(
        _('currency'),
        max_length=3,
        default=default_currency,
        validators=[validate_currency_code],
    )
    description = models.TextField(_('description'))
    delivery_days = models.PositiveIntegerField(
        _('delivery days'),
        validators=[MinValueValidator(1, message=_('Delivery days must be at least 1.'))]
    )
    status = models.CharField(
        _('status'),
        max_length=20,
        choices=STATUS_CHOICES,
        default=STATUS_PENDING,
    )
    created_at = models.DateTimeField(_('created at'), auto_now_add=True)
    updated_at = models.DateTimeField(_('updated at'), auto_now=True)

    class Meta:
        verbose_name = _('offer')
        verbose_name_plural = _('offers')
        ordering = ['-created_at', '-id']
        indexes = [
            models.Index(fields=['need', 'status'], name='offer_need_status_idx'),
            models.Index(fields=['provider', 'status'], name='offer_provider_status_idx'),
            models.Index(fields=['created_at'], name='offer_created_idx'),
        ]

    def __str__(self):
        return f"Offer {self.pk} on need {self.need_id}: {self.price} {self.currency} ({self.status})"

    def clean(self):
        """
        Validate status transitions on update.

        Raises:
            ValidationError: If the status change is not allowed
        """
        super().clean()

        if self.pk is not None:
            try:
                old_status = Offer.objects.values_list('status', flat=True).get(pk=self.pk)
            except Offer.DoesNotExist:
                old_status = None

            if old_status and old_status != self.status:
                if self.status not in self.VALID_TRANSITIONS.get(old_status, []):
                    raise ValidationError({
                        'status': _(
                            f'Invalid offer status transition from {old_status} to {self.status}.'
                        )
                    })

    def save(self, *args, **kwargs):
        """Run full validation before saving."""
        self.full_clean()
        super().save(*args, **kwargs)

    def can_transition_to(self, new_status):
        """
        Check if transition to new status is valid.

        Args:
            new_status: Target offer status

        Returns:
            bool: True if transition is valid, False otherwise
        """
        return new_status in self.VALID_TRANSITIONS.get(self.status, [])

    @property
    def buyer_id(self):
        return self.need.user_id

    def is_party(self, user):
        """True if user is the provider or the owner of the need."""
        return user is not None and user.pk in (self.provider_id, self.need.user_id)


class OfferImage(models.Model):
    """Image attached to an offer, ordered by sort_order."""

    offer = models.ForeignKey(Offer, on_delete=models.CASCADE, related_name='images')
    image_url = models.URLField(_('image url'), max_length=500)
    alt_text = models.CharField(_('alt text'), max_length=200, blank=True, default='')
    sort_order = models.PositiveIntegerField(_('sort order'), default=0)
    created_at = models.DateTimeField(_('created at'), auto_now_add=True)

    class Meta:
        verbose_name = _('offer image')
        verbose_name_plural = _('offer images')
        ordering = ['sort_order', 'id']

    def __str__(self):
        return f"Image {self.sort_order} for offer {self.offer_id}"


# ============================================================================
# Transaction Model (escrow)
# ============================================================================

class Transaction(models.Model):
    """
    Escrow payment record for an accepted offer.

    Status flow:
    - pending -> processing (3-D Secure started) / failed
    - processing -> completed (funds captured) / failed
    - completed -> released (paid out to provider) / refunded

    Rows are never deleted; status only moves forward.
    """

    STATUS_PENDING = 'pending'
    STATUS_PROCESSING = 'processing'
    STATUS_COMPLETED = 'completed'
    STATUS_RELEASED = 'released'
    STATUS_REFUNDED = 'refunded'
    STATUS_FAILED = 'failed'

    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_PROCESSING, 'Processing'),
        (STATUS_COMPLETED, 'Completed'),
        (STATUS_RELEASED, 'Released'),
        (STATUS_REFUNDED, 'Refunded'),
        (STATUS_FAILED, 'Failed'),
    ]

    # A transaction in one of these blocks a new one for the same offer
    LIVE_STATUSES = [STATUS_PENDING, STATUS_PROCESSING, STATUS_COMPLETED]

    VALID_TRANSITIONS = {
        STATUS_PENDING: [STATUS_PROCESSING, STATUS_FAILED],
        STATUS_PROCESSING: [STATUS_COMPLETED, STATUS_FAILED],
        STATUS_COMPLETED: [STATUS_RELEASED, STATUS_REFUNDED],
        STATUS_RELEASED: [],
        STATUS_REFUNDED: [],
        STATUS_FAILED: [],
    }

    GATEWAY_IYZICO = 'iyzico'
    GATEWAY_MOCK = 'mock'

    GATEWAY_CHOICES = [
        (GATEWAY_IYZICO, 'Iyzico'),
        (GATEWAY_MOCK, 'Mock'),
    ]

    offer = models.ForeignKey(Offer, on_delete=models.PROTECT, related_name='transactions')
    buyer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='payments_made',
    )
    provider = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='payments_received',
    )
    amount = models.DecimalField(
        _('amount'),
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.01'))]
    )
    currency = models.CharField(
        _('currency'),
        max_length=3,
        default=default_currency,
        validators=[validate_currency_code],
    )
    status = models.CharField(
        _('status'),
        max_length=20,
        choices=STATUS_CHOICES,
        default=STATUS_PENDING,
    )
    payment_gateway = models.CharField(
        _('payment gateway'),
        max_length=20,
        choices=GATEWAY_CHOICES,
        default=GATEWAY_IYZICO,
    )
    conversation_id = models.CharField(
        _('conversation id'),
        max_length=64,
        unique=True,
        default=generate_conversation_id,
        help_text=_('Correlation id shared with the payment gateway')
    )
    payment_token = models.CharField(_('payment token'), max_length=255, blank=True, default='')
    gateway_transaction_id = models.CharField(
        _('gateway transaction id'), max_length=255, blank=True, default=''
    )
    three_ds_html_content = models.TextField(_('3-D Secure HTML'), blank=True, default='')
    error_message = models.TextField(_('error message'), blank=True, default='')
    metadata = models.JSONField(_('metadata'), default=dict, blank=True)
    created_at = models.DateTimeField(_('created at'), auto_now_add=True)
    updated_at = models.DateTimeField(_('updated at'), auto_now=True)
    completed_at = models.DateTimeField(_('completed at'), null=True, blank=True)
    released_at = models.DateTimeField(_('released at'), null=True, blank=True)
    refunded_at = models.DateTimeField(_('refunded at'), null=True, blank=True)

    class Meta:
        verbose_name = _('transaction')
        verbose_name_plural = _('transactions')
        ordering = ['-created_at', '-id']
        indexes = [
            models.Index(fields=['offer', 'status'], name='txn_offer_status_idx'),
            models.Index(fields=['buyer'], name='txn_buyer_idx'),
            models.Index(fields=['provider'], name='txn_provider_idx'),
            models.Index(fields=['status'], name='txn_status_idx'),
            models.Index(fields=['created_at'], name='txn_created_idx'),
        ]

    def __str__(self):
        return f"Transaction {self.pk}: {self.amount} {self.currency} ({self.status})"

    def clean(self):
        """
        Validate parties and status transitions.

        Raises:
            ValidationError: If validation fails
        """
        super().clean()

        if self.buyer_id and self.provider_id and self.buyer_id == self.provider_id:
            raise ValidationError({
                'buyer': _('Buyer and provider cannot be the same user.')
            })

        if self.pk is not None:
            try:
                old_status = Transaction.objects.values_list('status', flat=True).get(pk=self.pk)
            except Transaction.DoesNotExist:
                old_status = None

            if old_status and old_status != self.status:
                if self.status not in self.VALID_TRANSITIONS.get(old_status, []):
                    raise ValidationError({
                        'status': _(
                            f'Invalid transaction status transition from {old_status} to {self.status}.'
                        )
                    })

    def save(self, *args, **kwargs):
        """Run full validation before saving."""
        self.full_clean()
        super().save(*args, **kwargs)

    def can_transition_to(self, new_status):
        """
        Check if transition to new status is valid.

        Args:
            new_status: Target transaction status

        Returns:
            bool: True if transition is valid, False otherwise
        """
        return new_status in self.VALID_TRANSITIONS.get(self.status, [])

    def is_party(self, user):
        """True if user is the buyer or the provider on this transaction."""
        return user is not None and user.pk in (self.buyer_id, self.provider_id)


# ============================================================================
# Review Model
# ============================================================================

class Review(models.Model):
    """
    Review left by one party of an accepted offer for the other.

    Fields:
    - reviewer: User writing the review
    - reviewee: User receiving the review
    - offer: Accepted offer the review refers to (optional)
    - rating: Integer rating from 1 to 5
    - comment: Written feedback
    - is_visible: Hidden reviews are excluded from ratings and listings
    """

    reviewer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='reviews_given',
        help_text=_('User writing the review')
    )
    reviewee = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='reviews_received',
        help_text=_('User receiving the review')
    )
    offer = models.ForeignKey(
        Offer,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='reviews',
        help_text=_('Accepted offer being reviewed')
    )
    rating = models.PositiveSmallIntegerField(
        _('rating'),
        validators=[
            MinValueValidator(1, message=_('Rating must be at least 1.')),
            MaxValueValidator(5, message=_('Rating must be at most 5.'))
        ],
        help_text=_('Rating from 1 to 5 stars')
    )
    comment = models.TextField(_('comment'), blank=True, default='')
    is_visible = models.BooleanField(_('visible'), default=True)
    created_at = models.DateTimeField(_('created at'), auto_now_add=True)
    updated_at = models.DateTimeField(_('updated at'), auto_now=True)

    class Meta:
        verbose_name = _('review')
        verbose_name_plural = _('reviews')
        ordering = ['-created_at', '-id']
        constraints = [
            models.UniqueConstraint(
                fields=['reviewer', 'reviewee', 'offer'],
                name='unique_review_per_offer',
            ),
        ]
        indexes = [
            models.Index(fields=['reviewee', 'is_visible'], name='review_reviewee_visible_idx'),
            models.Index(fields=['rating'], name='review_rating_idx'),
        ]

    def __str__(self):
        return f"Review by {self.reviewer_id} for {self.reviewee_id} - {self.rating}★"

    def clean(self):
        """
        Validate model fields.

        Ensures reviewer and reviewee are different users.

        Raises:
            ValidationError: If validation fails
        """
        super().clean()

        if self.reviewer_id and self.reviewee_id and self.reviewer_id == self.reviewee_id:
            raise ValidationError({
                'reviewee': _('Reviewer and reviewee cannot be the same user.')
            })


# ============================================================================
# Messaging & Notifications
# ============================================================================

class Message(models.Model):
    """Direct message between the two parties of an offer."""

    offer = models.ForeignKey(Offer, on_delete=models.CASCADE, related_name='messages')
    sender = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='messages_sent',
    )
    receiver = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='messages_received',
    )
    content = models.TextField(_('content'))
    is_read = models.BooleanField(_('read'), default=False)
    created_at = models.DateTimeField(_('created at'), auto_now_add=True)
    read_at = models.DateTimeField(_('read at'), null=True, blank=True)

    class Meta:
        verbose_name = _('message')
        verbose_name_plural = _('messages')
        ordering = ['created_at', 'id']
        indexes = [
            models.Index(fields=['offer', 'created_at'], name='message_offer_created_idx'),
            models.Index(fields=['receiver', 'is_read'], name='message_receiver_read_idx'),
        ]

    def __str__(self):
        return f"Message {self.pk} on offer {self.offer_id}"


class Notification(models.Model):
    """In-app notification; push delivery is attempted separately."""

    TYPE_NEW_OFFER = 'new_offer'
    TYPE_OFFER_ACCEPTED = 'offer_accepted'
    TYPE_OFFER_REJECTED = 'offer_rejected'
    TYPE_OFFER_WITHDRAWN = 'offer_withdrawn'
    TYPE_NEW_MESSAGE = 'new_message'
    TYPE_NEED_EXPIRING = 'need_expiring'
    TYPE_PAYMENT = 'payment'
    TYPE_SYSTEM = 'system'

    TYPE_CHOICES = [
        (TYPE_NEW_OFFER, 'New Offer'),
        (TYPE_OFFER_ACCEPTED, 'Offer Accepted'),
        (TYPE_OFFER_REJECTED, 'Offer Rejected'),
        (TYPE_OFFER_WITHDRAWN, 'Offer Withdrawn'),
        (TYPE_NEW_MESSAGE, 'New Message'),
        (TYPE_NEED_EXPIRING, 'Need Expiring'),
        (TYPE_PAYMENT, 'Payment'),
        (TYPE_SYSTEM, 'System'),
    ]

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='notifications',
    )
    title = models.CharField(_('title'), max_length=200)
    body = models.TextField(_('body'))
    notification_type = models.CharField(
        _('type'),
        max_length=30,
        choices=TYPE_CHOICES,
        default=TYPE_SYSTEM,
    )
    data = models.JSONField(_('data'), default=dict, blank=True)
    is_read = models.BooleanField(_('read'), default=False)
    created_at = models.DateTimeField(_('created at'), auto_now_add=True)

    class Meta:
        verbose_name = _('notification')
        verbose_name_plural = _('notifications')
        ordering = ['-created_at', '-id']
        indexes = [
            models.Index(fields=['user', 'is_read'], name='notification_user_read_idx'),
        ]

    def __str__(self):
        return f"{self.notification_type} for {self.user_id}: {self.title}"


class SearchHistory(models.Model):
    """Recorded search query, used for suggestions and popular searches."""

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='search_history',
    )
    query = models.CharField(_('query'), max_length=200)
    filters = models.JSONField(_('filters'), default=dict, blank=True)
    result_count = models.PositiveIntegerField(_('result count'), default=0)
    created_at = models.DateTimeField(_('created at'), auto_now_add=True)

    class Meta:
        verbose_name = _('search history entry')
        verbose_name_plural = _('search history')
        ordering = ['-created_at', '-id']
        indexes = [
            models.Index(fields=['query'], name='search_query_idx'),
            models.Index(fields=['created_at'], name='search_created_idx'),
        ]

    def __str__(self):
        return self.query


# ============================================================================
# Behavior Tracking & Verification
# ============================================================================

class UserBehavior(models.Model):
    """
    One user action, recorded for interest profiles and recommendations.
    """

    ACTION_VIEW_NEED = 'view_need'
    ACTION_VIEW_OFFER = 'view_offer'
    ACTION_CREATE_NEED = 'create_need'
    ACTION_CREATE_OFFER = 'create_offer'
    ACTION_SEARCH = 'search'
    ACTION_VIEW_CATEGORY = 'view_category'
    ACTION_CONTACT_PROVIDER = 'contact_provider'
    ACTION_ACCEPT_OFFER = 'accept_offer'
    ACTION_REJECT_OFFER = 'reject_offer'
    ACTION_SHARE_NEED = 'share_need'
    ACTION_SAVE_NEED = 'save_need'
    ACTION_REPORT_CONTENT = 'report_content'

    ACTION_CHOICES = [
        (ACTION_VIEW_NEED, 'View Need'),
        (ACTION_VIEW_OFFER, 'View Offer'),
        (ACTION_CREATE_NEED, 'Create Need'),
        (ACTION_CREATE_OFFER, 'Create Offer'),
        (ACTION_SEARCH, 'Search'),
        (ACTION_VIEW_CATEGORY, 'View Category'),
        (ACTION_CONTACT_PROVIDER, 'Contact Provider'),
        (ACTION_ACCEPT_OFFER, 'Accept Offer'),
        (ACTION_REJECT_OFFER, 'Reject Offer'),
        (ACTION_SHARE_NEED, 'Share Need'),
        (ACTION_SAVE_NEED, 'Save Need'),
        (ACTION_REPORT_CONTENT, 'Report Content'),
    ]

    TARGET_NEED = 'need'
    TARGET_OFFER = 'offer'
    TARGET_CATEGORY = 'category'
    TARGET_USER = 'user'

    TARGET_CHOICES = [
        (TARGET_NEED, 'Need'),
        (TARGET_OFFER, 'Offer'),
        (TARGET_CATEGORY, 'Category'),
        (TARGET_USER, 'User'),
    ]

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='behaviors',
    )
    action_type = models.CharField(_('action type'), max_length=30, choices=ACTION_CHOICES)
    target_id = models.PositiveIntegerField(_('target id'), null=True, blank=True)
    target_type = models.CharField(
        _('target type'),
        max_length=20,
        choices=TARGET_CHOICES,
        blank=True,
        default='',
    )
    metadata = models.JSONField(_('metadata'), default=dict, blank=True)
    ip_address = models.GenericIPAddressField(_('IP address'), null=True, blank=True)
    user_agent = models.CharField(_('user agent'), max_length=500, blank=True, default='')
    created_at = models.DateTimeField(_('created at'), auto_now_add=True)

    class Meta:
        verbose_name = _('user behavior')
        verbose_name_plural = _('user behaviors')
        ordering = ['-created_at', '-id']
        indexes = [
            models.Index(fields=['user', 'created_at'], name='behavior_user_created_idx'),
            models.Index(fields=['action_type'], name='behavior_action_idx'),
        ]

    def __str__(self):
        return f"{self.action_type} by {self.user_id}"


class UserVerification(models.Model):
    """
    Verification of a user's email, phone, identity or business.

    Email and phone are verified with a one-time code; the code is stored
    only as a keyed hash. Identity and business requests carry document URLs
    and are approved or rejected by staff.
    """

    TYPE_EMAIL = 'email'
    TYPE_PHONE = 'phone'
    TYPE_IDENTITY = 'identity'
    TYPE_BUSINESS = 'business'

    TYPE_CHOICES = [
        (TYPE_EMAIL, 'Email'),
        (TYPE_PHONE, 'Phone'),
        (TYPE_IDENTITY, 'Identity'),
        (TYPE_BUSINESS, 'Business'),
    ]

    CODE_TYPES = [TYPE_EMAIL, TYPE_PHONE]
    DOCUMENT_TYPES = [TYPE_IDENTITY, TYPE_BUSINESS]

    STATUS_PENDING = 'pending'
    STATUS_IN_REVIEW = 'in_review'
    STATUS_APPROVED = 'approved'
    STATUS_REJECTED = 'rejected'

    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_IN_REVIEW, 'In Review'),
        (STATUS_APPROVED, 'Approved'),
        (STATUS_REJECTED, 'Rejected'),
    ]

    OPEN_STATUSES = [STATUS_PENDING, STATUS_IN_REVIEW]

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='verifications',
    )
    verification_type = models.CharField(_('type'), max_length=20, choices=TYPE_CHOICES)
    status = models.CharField(
        _('status'),
        max_length=20,
        choices=STATUS_CHOICES,
        default=STATUS_PENDING,
    )
    target = models.CharField(
        _('target'),
        max_length=254,
        blank=True,
        default='',
        help_text=_('Email address or phone number the code was sent to'),
    )
    code_hash = models.CharField(_('code hash'), max_length=128, blank=True, default='')
    code_expires_at = models.DateTimeField(_('code expires at'), null=True, blank=True)
    attempt_count = models.PositiveIntegerField(_('failed attempts'), default=0)
    last_sent_at = models.DateTimeField(_('last code sent at'), null=True, blank=True)
    document_urls = models.JSONField(_('document urls'), default=list, blank=True)
    notes = models.TextField(_('notes'), blank=True, default='')
    review_notes = models.TextField(_('review notes'), blank=True, default='')
    reviewed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+',
    )
    reviewed_at = models.DateTimeField(_('reviewed at'), null=True, blank=True)
    created_at = models.DateTimeField(_('created at'), auto_now_add=True)
    updated_at = models.DateTimeField(_('updated at'), auto_now=True)

    class Meta:
        verbose_name = _('user verification')
        verbose_name_plural = _('user verifications')
        ordering = ['-created_at', '-id']
        indexes = [
            models.Index(fields=['user', 'verification_type'], name='verification_user_type_idx'),
            models.Index(fields=['status'], name='verification_status_idx'),
        ]

    def __str__(self):
        return f"{self.verification_type} verification for {self.user_id} ({self.status})"

    @property
    def is_code_expired(self):
        return self.code_expires_at is None or self.code_expires_at <= timezone.now()
