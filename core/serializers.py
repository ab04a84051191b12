"""
Serializers for authentication, needs, offers, payments, reviews, messaging,
search, verification and recommendations.

Write serializers validate request shape and field ranges only. Rules that
need the database (ownership, status, budget checks) live in core.services.
"""

import os
import re
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.contrib.auth.hashers import make_password
from django.contrib.auth.password_validation import validate_password
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from rest_framework import serializers

from .models import (
    Category,
    Message,
    Need,
    NeedImage,
    Notification,
    Offer,
    OfferImage,
    Review,
    Transaction,
    UserBehavior,
    UserVerification,
)
from .services.search import SORT_OPTIONS
from .services.offers import SORT_FIELDS as OFFER_SORT_FIELDS
from .validators import CURRENCY_CODE_PATTERN, validate_phone_number

User = get_user_model()

MAX_IMAGES = 10


def _validate_phone(value):
    if not value:
        return value
    try:
        validate_phone_number(value)
    except DjangoValidationError as e:
        raise serializers.ValidationError(e.messages)
    return value


def _validate_currency(value):
    if not value:
        return value
    value = value.strip().upper()
    if not CURRENCY_CODE_PATTERN.match(value):
        raise serializers.ValidationError("Currency must be a 3-letter ISO code, e.g. TRY.")
    return value


def _not_blank(value, label):
    if not value or not value.strip():
        raise serializers.ValidationError(f"{label} cannot be empty.")
    return value.strip()


# ============================================================================
# Authentication & profile
# ============================================================================

class UserRegistrationSerializer(serializers.ModelSerializer):
    """
    Serializer for user registration with comprehensive validation.

    Fields:
    - email: Required, unique (case-insensitive)
    - password / confirm_password: Required, must match and pass Django's validators
    - phone_number: Optional, validated format
    - user_type: 'buyer', 'provider' or 'both'
    - first_name / last_name: Optional
    """

    password = serializers.CharField(
        write_only=True,
        required=True,
        style={'input_type': 'password'}
    )
    confirm_password = serializers.CharField(
        write_only=True,
        required=True,
        style={'input_type': 'password'}
    )

    class Meta:
        model = User
        fields = [
            'id', 'email', 'password', 'confirm_password', 'first_name', 'last_name',
            'phone_number', 'user_type', 'created_at'
        ]
        read_only_fields = ['id', 'created_at']
        extra_kwargs = {
            'email': {'required': True},
            'user_type': {'required': True},
        }

    def validate_email(self, value):
        value = value.strip().lower()
        if User.objects.filter(email__iexact=value).exists():
            raise serializers.ValidationError("A user with that email already exists.")
        return value

    def validate_password(self, value):
        try:
            validate_password(value)
        except DjangoValidationError as e:
            raise serializers.ValidationError(list(e.messages))
        return value

    def validate_phone_number(self, value):
        return _validate_phone(value)

    def validate(self, attrs):
        if attrs.get('password') != attrs.get('confirm_password'):
            raise serializers.ValidationError({
                'confirm_password': 'Password confirmation does not match.'
            })
        return attrs

    def create(self, validated_data):
        """
        Create the user with a hashed password. Privilege fields are dropped
        and the username is derived from the email.
        """
        validated_data.pop('confirm_password', None)
        validated_data['password'] = make_password(validated_data.pop('password'))

        for field in ('is_superuser', 'is_staff', 'is_active', 'groups', 'user_permissions'):
            validated_data.pop(field, None)

        email = validated_data.get('email', '')
        base_username = email.split('@')[0][:30] or 'user'
        username = base_username
        suffix = 1
        while User.objects.filter(username=username).exists():
            suffix += 1
            username = f"{base_username[:26]}{suffix}"
        validated_data['username'] = username

        with transaction.atomic():
            user = User.objects.create(**validated_data)
        return user


class LoginSerializer(serializers.Serializer):
    """
    Serializer for user login with email and password.

    Minimal validation to prevent user enumeration attacks.
    Actual authentication happens in the view.
    """
    email = serializers.EmailField(required=True)
    password = serializers.CharField(
        required=True,
        write_only=True,
        style={'input_type': 'password'}
    )


class TokenRefreshSerializer(serializers.Serializer):
    """Refresh token to exchange; signature and blacklist checks are done by simplejwt."""
    refresh = serializers.CharField(required=True)


class PublicUserSerializer(serializers.ModelSerializer):
    """Public view of a user shown next to needs, offers and reviews."""

    display_name = serializers.CharField(read_only=True)

    class Meta:
        model = User
        fields = ['id', 'display_name', 'user_type', 'rating', 'review_count']
        read_only_fields = fields


class UserProfileSerializer(serializers.ModelSerializer):
    """
    Serializer for the authenticated user's own profile.

    Excludes sensitive fields (password, is_staff, is_superuser, etc.) and
    builds an absolute URL for the profile image.
    """

    profile_image_url = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = [
            'id',
            'email',
            'first_name',
            'last_name',
            'phone_number',
            'user_type',
            'rating',
            'review_count',
            'profile_image_url',
            'device_platform',
            'enable_push_notifications',
            'created_at'
        ]
        read_only_fields = fields

    def get_profile_image_url(self, obj):
        if obj.profile_image:
            request = self.context.get('request')
            if request is not None:
                return request.build_absolute_uri(obj.profile_image.url)
            return obj.profile_image.url
        return None


class UserProfileUpdateSerializer(serializers.ModelSerializer):
    """
    Serializer for profile updates (PUT/PATCH).

    Only names, phone number and profile image can change. Restricted fields
    such as email, password and user_type are silently dropped.
    """

    class Meta:
        model = User
        fields = ['first_name', 'last_name', 'phone_number', 'profile_image']
        extra_kwargs = {
            'first_name': {'required': False},
            'last_name': {'required': False},
            'phone_number': {'required': False},
            'profile_image': {'required': False},
        }

    def validate_phone_number(self, value):
        return _validate_phone(value)

    def update(self, instance, validated_data):
        """
        Update the profile, deleting the old image file when it is replaced.
        """
        new_image = validated_data.get('profile_image')
        if instance.profile_image and new_image:
            old_image_path = instance.profile_image.path
            if os.path.exists(old_image_path):
                try:
                    os.remove(old_image_path)
                except OSError:
                    pass

        fields_to_update = []
        for attr, value in validated_data.items():
            setattr(instance, attr, value)
            fields_to_update.append(attr)

        # The serializer already validated; update_fields skips full_clean()
        if fields_to_update:
            instance.save(update_fields=fields_to_update + ['updated_at'])
        return instance


class DeviceTokenSerializer(serializers.ModelSerializer):
    """Push notification registration for the current device."""

    class Meta:
        model = User
        fields = ['fcm_token', 'device_platform', 'enable_push_notifications']
        extra_kwargs = {
            'fcm_token': {'required': False, 'allow_blank': True},
            'device_platform': {'required': False, 'allow_blank': True},
            'enable_push_notifications': {'required': False},
        }

    def validate(self, attrs):
        if attrs.get('fcm_token') and not attrs.get('device_platform') and not self.instance.device_platform:
            raise serializers.ValidationError({
                'device_platform': 'Device platform is required when registering a push token.'
            })
        return attrs

    def update(self, instance, validated_data):
        for attr, value in validated_data.items():
            setattr(instance, attr, value)
        if validated_data:
            instance.save(update_fields=list(validated_data) + ['updated_at'])
        return instance


# ============================================================================
# Categories
# ============================================================================

class CategoryBriefSerializer(serializers.ModelSerializer):
    class Meta:
        model = Category
        fields = ['id', 'name', 'name_tr']
        read_only_fields = fields


class CategorySerializer(serializers.ModelSerializer):
    """
    Category with its active subcategories.

    Expects `active_children` to be set on the instance by CategoryService.
    """

    children = serializers.SerializerMethodField()

    class Meta:
        model = Category
        fields = ['id', 'name', 'name_tr', 'description', 'icon_url', 'parent', 'sort_order', 'children']
        read_only_fields = fields

    def get_children(self, obj):
        children = getattr(obj, 'active_children', [])
        return CategoryBriefSerializer(children, many=True).data


# ============================================================================
# Needs
# ============================================================================

class NeedImageSerializer(serializers.ModelSerializer):
    class Meta:
        model = NeedImage
        fields = ['id', 'image_url', 'alt_text', 'sort_order']
        read_only_fields = fields


class NeedSerializer(serializers.ModelSerializer):
    """
    Read serializer for needs.

    Optimized for querysets built with select_related('category', 'user'),
    prefetch_related('images') and an `offer_count` annotation.
    """

    category = CategoryBriefSerializer(read_only=True)
    user = PublicUserSerializer(read_only=True)
    images = NeedImageSerializer(many=True, read_only=True)
    offer_count = serializers.SerializerMethodField()
    is_expired = serializers.BooleanField(read_only=True)

    class Meta:
        model = Need
        fields = [
            'id',
            'title',
            'description',
            'category',
            'min_budget',
            'max_budget',
            'currency',
            'latitude',
            'longitude',
            'address',
            'urgency',
            'status',
            'user',
            'images',
            'offer_count',
            'is_expired',
            'created_at',
            'updated_at',
            'expires_at'
        ]
        read_only_fields = fields

    def get_offer_count(self, obj):
        count = getattr(obj, 'offer_count', None)
        if count is None:
            count = obj.offers.count()
        return count


class NeedWriteSerializer(serializers.Serializer):
    """
    Input for creating and updating needs.

    Cross-field checks (budget range, coordinate pairs, category) are applied
    by NeedService so their errors are reported under 'budget', 'location'
    and 'category_id'.
    """

    title = serializers.CharField(max_length=200)
    description = serializers.CharField()
    category_id = serializers.IntegerField(min_value=1)
    min_budget = serializers.DecimalField(
        max_digits=12, decimal_places=2, min_value=Decimal('0.00'), required=False, allow_null=True
    )
    max_budget = serializers.DecimalField(
        max_digits=12, decimal_places=2, min_value=Decimal('0.00'), required=False, allow_null=True
    )
    currency = serializers.CharField(max_length=3, required=False, allow_blank=True)
    latitude = serializers.DecimalField(
        max_digits=9, decimal_places=6, min_value=Decimal('-90'), max_value=Decimal('90'),
        required=False, allow_null=True
    )
    longitude = serializers.DecimalField(
        max_digits=9, decimal_places=6, min_value=Decimal('-180'), max_value=Decimal('180'),
        required=False, allow_null=True
    )
    address = serializers.CharField(max_length=500, required=False, allow_blank=True)
    urgency = serializers.ChoiceField(choices=Need.URGENCY_CHOICES, required=False)
    expires_at = serializers.DateTimeField(required=False, allow_null=True)
    image_urls = serializers.ListField(
        child=serializers.URLField(max_length=500),
        required=False,
        max_length=MAX_IMAGES,
    )

    def validate_title(self, value):
        return _not_blank(value, 'Title')

    def validate_description(self, value):
        return _not_blank(value, 'Description')

    def validate_currency(self, value):
        return _validate_currency(value)


class NeedFilterSerializer(serializers.Serializer):
    category_id = serializers.IntegerField(required=False, min_value=1)
    status = serializers.ChoiceField(choices=Need.STATUS_CHOICES, required=False)
    urgency = serializers.ChoiceField(choices=Need.URGENCY_CHOICES, required=False)
    user_id = serializers.IntegerField(required=False, min_value=1)
    min_budget = serializers.DecimalField(max_digits=12, decimal_places=2, required=False)
    max_budget = serializers.DecimalField(max_digits=12, decimal_places=2, required=False)


# ============================================================================
# Offers
# ============================================================================

class OfferImageSerializer(serializers.ModelSerializer):
    class Meta:
        model = OfferImage
        fields = ['id', 'image_url', 'alt_text', 'sort_order']
        read_only_fields = fields


class OfferNeedSerializer(serializers.ModelSerializer):
    class Meta:
        model = Need
        fields = ['id', 'title', 'status', 'user_id', 'currency', 'min_budget', 'max_budget']
        read_only_fields = fields


class OfferSerializer(serializers.ModelSerializer):
    """Read serializer for offers with the need summary and provider."""

    need = OfferNeedSerializer(read_only=True)
    provider = PublicUserSerializer(read_only=True)
    images = OfferImageSerializer(many=True, read_only=True)

    class Meta:
        model = Offer
        fields = [
            'id',
            'need',
            'provider',
            'price',
            'currency',
            'description',
            'delivery_days',
            'status',
            'images',
            'created_at',
            'updated_at'
        ]
        read_only_fields = fields


class OfferCreateSerializer(serializers.Serializer):
    need_id = serializers.IntegerField(min_value=1)
    price = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0.01'))
    currency = serializers.CharField(max_length=3, required=False, allow_blank=True)
    description = serializers.CharField()
    delivery_days = serializers.IntegerField(min_value=1, max_value=365)
    image_urls = serializers.ListField(
        child=serializers.URLField(max_length=500),
        required=False,
        max_length=MAX_IMAGES,
    )

    def validate_description(self, value):
        return _not_blank(value, 'Description')

    def validate_currency(self, value):
        return _validate_currency(value)


class OfferUpdateSerializer(serializers.Serializer):
    price = serializers.DecimalField(
        max_digits=12, decimal_places=2, min_value=Decimal('0.01'), required=False
    )
    description = serializers.CharField(required=False)
    delivery_days = serializers.IntegerField(min_value=1, max_value=365, required=False)
    image_urls = serializers.ListField(
        child=serializers.URLField(max_length=500),
        required=False,
        max_length=MAX_IMAGES,
    )

    def validate_description(self, value):
        return _not_blank(value, 'Description')


class OfferRejectSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=500, required=False, allow_blank=True)


class OfferFilterSerializer(serializers.Serializer):
    """Query parameters for the filtered offer list."""

    need_id = serializers.IntegerField(required=False, min_value=1)
    provider_id = serializers.IntegerField(required=False, min_value=1)
    min_price = serializers.DecimalField(max_digits=12, decimal_places=2, required=False)
    max_price = serializers.DecimalField(max_digits=12, decimal_places=2, required=False)
    currency = serializers.CharField(max_length=3, required=False)
    status = serializers.ChoiceField(choices=Offer.STATUS_CHOICES, required=False)
    created_from = serializers.DateTimeField(required=False)
    created_to = serializers.DateTimeField(required=False)
    max_delivery_days = serializers.IntegerField(required=False, min_value=1)
    sort_by = serializers.ChoiceField(choices=list(OFFER_SORT_FIELDS), default='created')
    sort_order = serializers.ChoiceField(choices=['asc', 'desc'], default='desc')

    def validate(self, attrs):
        min_price = attrs.get('min_price')
        max_price = attrs.get('max_price')
        if min_price is not None and max_price is not None and min_price > max_price:
            raise serializers.ValidationError({'price': 'min_price cannot be greater than max_price.'})
        attrs['sort_desc'] = attrs.pop('sort_order') == 'desc'
        return attrs


# ============================================================================
# Payments
# ============================================================================

class CardSerializer(serializers.Serializer):
    card_holder_name = serializers.CharField(max_length=100)
    card_number = serializers.CharField(max_length=19)
    expire_month = serializers.CharField(max_length=2)
    expire_year = serializers.CharField(max_length=4)
    cvc = serializers.CharField(max_length=4)

    def validate_card_number(self, value):
        digits = re.sub(r'[\s\-]', '', value)
        if not re.match(r'^\d{12,19}$', digits):
            raise serializers.ValidationError("Card number must contain 12-19 digits.")
        return digits

    def validate_expire_month(self, value):
        if not value.isdigit() or not 1 <= int(value) <= 12:
            raise serializers.ValidationError("Expiry month must be between 01 and 12.")
        return value.zfill(2)

    def validate_expire_year(self, value):
        if not value.isdigit() or len(value) not in (2, 4):
            raise serializers.ValidationError("Expiry year must be 2 or 4 digits.")
        return value

    def validate_cvc(self, value):
        if not value.isdigit() or len(value) not in (3, 4):
            raise serializers.ValidationError("CVC must be 3 or 4 digits.")
        return value


class PaymentBuyerSerializer(serializers.Serializer):
    """Billing details forwarded to the gateway."""

    identity_number = serializers.CharField(max_length=20, required=False, allow_blank=True)
    address = serializers.CharField(max_length=500, required=False, allow_blank=True)
    city = serializers.CharField(max_length=100, required=False, allow_blank=True)
    country = serializers.CharField(max_length=100, required=False, allow_blank=True)
    zip_code = serializers.CharField(max_length=20, required=False, allow_blank=True)


class PaymentInitializeSerializer(serializers.Serializer):
    offer_id = serializers.IntegerField(min_value=1)
    card = CardSerializer()
    buyer = PaymentBuyerSerializer(required=False)


class PaymentCallbackSerializer(serializers.Serializer):
    """Form fields posted back by the gateway after 3-D Secure."""

    conversationId = serializers.CharField(max_length=64)
    paymentId = serializers.CharField(max_length=255, required=False, allow_blank=True)
    status = serializers.CharField(max_length=50, required=False, allow_blank=True)


class RefundSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=500, required=False, allow_blank=True)


class TransactionSerializer(serializers.ModelSerializer):
    """Transaction details visible to the buyer and provider."""

    offer_id = serializers.IntegerField(read_only=True)
    buyer = PublicUserSerializer(read_only=True)
    provider = PublicUserSerializer(read_only=True)

    class Meta:
        model = Transaction
        fields = [
            'id',
            'offer_id',
            'buyer',
            'provider',
            'amount',
            'currency',
            'status',
            'payment_gateway',
            'conversation_id',
            'gateway_transaction_id',
            'error_message',
            'created_at',
            'updated_at',
            'completed_at',
            'released_at',
            'refunded_at'
        ]
        read_only_fields = fields


class TransactionFilterSerializer(serializers.Serializer):
    offer_id = serializers.IntegerField(required=False, min_value=1)
    status = serializers.ChoiceField(choices=Transaction.STATUS_CHOICES, required=False)
    payment_gateway = serializers.ChoiceField(choices=Transaction.GATEWAY_CHOICES, required=False)
    created_from = serializers.DateTimeField(required=False)
    created_to = serializers.DateTimeField(required=False)


# ============================================================================
# Reviews
# ============================================================================

class ReviewSerializer(serializers.ModelSerializer):
    reviewer = PublicUserSerializer(read_only=True)
    reviewee = PublicUserSerializer(read_only=True)
    offer_id = serializers.IntegerField(read_only=True, allow_null=True)

    class Meta:
        model = Review
        fields = [
            'id',
            'reviewer',
            'reviewee',
            'offer_id',
            'rating',
            'comment',
            'is_visible',
            'created_at',
            'updated_at'
        ]
        read_only_fields = fields


class ReviewCreateSerializer(serializers.Serializer):
    reviewee_id = serializers.IntegerField(min_value=1)
    offer_id = serializers.IntegerField(min_value=1, required=False, allow_null=True)
    rating = serializers.IntegerField(min_value=1, max_value=5)
    comment = serializers.CharField(max_length=2000, required=False, allow_blank=True)


class ReviewUpdateSerializer(serializers.Serializer):
    rating = serializers.IntegerField(min_value=1, max_value=5, required=False)
    comment = serializers.CharField(max_length=2000, required=False, allow_blank=True)

    def validate(self, attrs):
        if not attrs:
            raise serializers.ValidationError("Provide a rating or a comment to update.")
        return attrs


class ReviewVisibilitySerializer(serializers.Serializer):
    is_visible = serializers.BooleanField()


# ============================================================================
# Messages & notifications
# ============================================================================

class MessageSerializer(serializers.ModelSerializer):
    sender = PublicUserSerializer(read_only=True)
    receiver = PublicUserSerializer(read_only=True)

    class Meta:
        model = Message
        fields = ['id', 'offer_id', 'sender', 'receiver', 'content', 'is_read', 'created_at', 'read_at']
        read_only_fields = fields


class MessageCreateSerializer(serializers.Serializer):
    offer_id = serializers.IntegerField(min_value=1)
    content = serializers.CharField(max_length=5000)


class NotificationSerializer(serializers.ModelSerializer):
    class Meta:
        model = Notification
        fields = ['id', 'title', 'body', 'notification_type', 'data', 'is_read', 'created_at']
        read_only_fields = fields


# ============================================================================
# Search
# ============================================================================

class SearchQuerySerializer(serializers.Serializer):
    """
    Query parameters for need search.

    category_ids is a comma separated list. sort_order becomes the boolean
    sort_desc expected by SearchService.
    """

    query = serializers.CharField(max_length=200, required=False, allow_blank=True, default='')
    category_ids = serializers.CharField(required=False, allow_blank=True)
    include_expired = serializers.BooleanField(required=False, default=False)
    min_budget = serializers.DecimalField(max_digits=12, decimal_places=2, required=False)
    max_budget = serializers.DecimalField(max_digits=12, decimal_places=2, required=False)
    currency = serializers.CharField(max_length=3, required=False)
    urgency = serializers.ChoiceField(choices=Need.URGENCY_CHOICES, required=False)
    created_from = serializers.DateTimeField(required=False)
    created_to = serializers.DateTimeField(required=False)
    latitude = serializers.FloatField(min_value=-90, max_value=90, required=False)
    longitude = serializers.FloatField(min_value=-180, max_value=180, required=False)
    radius_km = serializers.FloatField(min_value=0.1, max_value=500, required=False)
    sort_by = serializers.ChoiceField(choices=list(SORT_OPTIONS), default='relevance')
    sort_order = serializers.ChoiceField(choices=['asc', 'desc'], default='desc')
    page = serializers.IntegerField(min_value=1, default=1)
    page_size = serializers.IntegerField(min_value=1, max_value=100, default=20)

    def validate_category_ids(self, value):
        if not value:
            return []
        try:
            return [int(part) for part in value.split(',') if part.strip()]
        except ValueError:
            raise serializers.ValidationError("category_ids must be a comma separated list of integers.")

    def validate_currency(self, value):
        return _validate_currency(value)

    def validate(self, attrs):
        errors = {}
        if (attrs.get('latitude') is None) != (attrs.get('longitude') is None):
            errors['location'] = 'Latitude and longitude must be provided together.'
        if attrs.get('radius_km') is not None and attrs.get('latitude') is None:
            errors['radius_km'] = 'A radius requires latitude and longitude.'
        min_budget = attrs.get('min_budget')
        max_budget = attrs.get('max_budget')
        if min_budget is not None and max_budget is not None and min_budget > max_budget:
            errors['budget'] = 'Minimum budget cannot be greater than maximum budget.'
        if errors:
            raise serializers.ValidationError(errors)

        attrs['sort_desc'] = attrs.pop('sort_order') == 'desc'
        return attrs


class SearchResultSerializer(serializers.Serializer):
    need = NeedSerializer(read_only=True)
    score = serializers.IntegerField(read_only=True)
    distance_km = serializers.FloatField(read_only=True, allow_null=True)


# ============================================================================
# Verification
# ============================================================================

class UserVerificationSerializer(serializers.ModelSerializer):
    class Meta:
        model = UserVerification
        fields = [
            'id', 'verification_type', 'status', 'target', 'code_expires_at',
            'attempt_count', 'document_urls', 'notes', 'review_notes',
            'reviewed_at', 'created_at', 'updated_at',
        ]
        read_only_fields = fields


class VerificationCodeRequestSerializer(serializers.Serializer):
    verification_type = serializers.ChoiceField(choices=UserVerification.CODE_TYPES)


class VerificationCodeSerializer(serializers.Serializer):
    verification_type = serializers.ChoiceField(choices=UserVerification.CODE_TYPES)
    code = serializers.RegexField(
        r'^\d{6}$',
        error_messages={'invalid': 'Verification codes are six digits.'},
    )


class VerificationSubmitSerializer(serializers.Serializer):
    verification_type = serializers.ChoiceField(choices=UserVerification.DOCUMENT_TYPES)
    document_urls = serializers.ListField(
        child=serializers.URLField(max_length=500),
        min_length=1,
        max_length=MAX_IMAGES,
    )
    notes = serializers.CharField(max_length=2000, required=False, allow_blank=True, default='')


class VerificationReviewSerializer(serializers.Serializer):
    approve = serializers.BooleanField()
    review_notes = serializers.CharField(max_length=2000, required=False, allow_blank=True, default='')


# ============================================================================
# Recommendations
# ============================================================================

class LocationRecommendationSerializer(serializers.Serializer):
    latitude = serializers.FloatField(min_value=-90, max_value=90)
    longitude = serializers.FloatField(min_value=-180, max_value=180)
    radius_km = serializers.FloatField(min_value=0.1, max_value=500, default=25)
    limit = serializers.IntegerField(min_value=1, max_value=50, default=20)


class LocationResultSerializer(serializers.Serializer):
    need = NeedSerializer(read_only=True)
    distance_km = serializers.FloatField(read_only=True)


class BehaviorTrackSerializer(serializers.Serializer):
    action_type = serializers.ChoiceField(choices=UserBehavior.ACTION_CHOICES)
    target_id = serializers.IntegerField(min_value=1, required=False, allow_null=True)
    target_type = serializers.ChoiceField(
        choices=UserBehavior.TARGET_CHOICES, required=False, allow_blank=True, default=''
    )
    metadata = serializers.DictField(required=False, default=dict)

    def validate(self, attrs):
        if attrs.get('target_id') and not attrs.get('target_type'):
            raise serializers.ValidationError({'target_type': 'A target id requires a target type.'})
        return attrs
