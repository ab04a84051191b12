"""
Django admin configuration for the marketplace models.
"""

from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from django.utils.translation import gettext_lazy as _

from .models import (
    Category,
    Message,
    Need,
    NeedImage,
    Notification,
    Offer,
    OfferImage,
    Review,
    SearchHistory,
    Transaction,
    User,
    UserBehavior,
    UserVerification,
)


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    """
    Custom admin interface for User model.

    Extends Django's UserAdmin with marketplace fields.
    """

    list_display = [
        'email',
        'username',
        'user_type',
        'rating',
        'review_count',
        'is_staff',
        'is_active',
        'created_at',
    ]

    list_filter = [
        'user_type',
        'is_staff',
        'is_superuser',
        'is_active',
        'created_at',
    ]

    search_fields = [
        'email',
        'username',
        'first_name',
        'last_name',
        'phone_number',
    ]

    ordering = ['-created_at']

    fieldsets = (
        (None, {
            'fields': ('username', 'password')
        }),
        (_('Personal Info'), {
            'fields': (
                'first_name',
                'last_name',
                'email',
                'phone_number',
                'profile_image',
            )
        }),
        (_('Marketplace'), {
            'fields': ('user_type', 'rating', 'review_count')
        }),
        (_('Push Notifications'), {
            'fields': ('fcm_token', 'device_platform', 'enable_push_notifications'),
            'classes': ('collapse',),
        }),
        (_('Permissions'), {
            'fields': (
                'is_active',
                'is_staff',
                'is_superuser',
                'groups',
                'user_permissions',
            ),
            'classes': ('collapse',),
        }),
        (_('Important Dates'), {
            'fields': ('last_login', 'date_joined', 'created_at', 'updated_at'),
            'classes': ('collapse',),
        }),
    )

    add_fieldsets = (
        (None, {
            'classes': ('wide',),
            'fields': (
                'username',
                'email',
                'password1',
                'password2',
                'user_type',
            ),
        }),
    )

    # rating and review_count are maintained by review signals
    readonly_fields = ['rating', 'review_count', 'created_at', 'updated_at', 'last_login', 'date_joined']

    date_hierarchy = 'created_at'

    list_per_page = 25

    def get_readonly_fields(self, request, obj=None):
        if obj:
            return self.readonly_fields
        return []


@admin.register(Category)
class CategoryAdmin(admin.ModelAdmin):
    list_display = ['name', 'name_tr', 'parent', 'is_active', 'sort_order']
    list_filter = ['is_active', 'parent']
    search_fields = ['name', 'name_tr']
    ordering = ['sort_order', 'name']


# ============================================================================
# Needs & Offers
# ============================================================================

class NeedImageInline(admin.TabularInline):
    model = NeedImage
    extra = 0
    fields = ['image_url', 'alt_text', 'sort_order']
    ordering = ['sort_order']


@admin.register(Need)
class NeedAdmin(admin.ModelAdmin):
    """Admin interface for Need model."""

    list_display = [
        'title',
        'user',
        'category',
        'min_budget',
        'max_budget',
        'currency',
        'urgency',
        'status',
        'created_at',
        'expires_at',
    ]

    list_filter = [
        'status',
        'urgency',
        'category',
        'created_at',
    ]

    search_fields = [
        'title',
        'description',
        'address',
        'user__email',
    ]

    readonly_fields = ['created_at', 'updated_at']

    ordering = ['-created_at']

    date_hierarchy = 'created_at'

    list_per_page = 25

    inlines = [NeedImageInline]

    fieldsets = (
        (None, {
            'fields': ('user', 'title', 'description', 'category')
        }),
        (_('Budget'), {
            'fields': ('min_budget', 'max_budget', 'currency')
        }),
        (_('Location'), {
            'fields': ('latitude', 'longitude', 'address')
        }),
        (_('Status'), {
            'fields': ('urgency', 'status', 'expires_at')
        }),
        (_('Timestamps'), {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',),
        }),
    )


class OfferImageInline(admin.TabularInline):
    model = OfferImage
    extra = 0
    fields = ['image_url', 'alt_text', 'sort_order']
    ordering = ['sort_order']


@admin.register(Offer)
class OfferAdmin(admin.ModelAdmin):
    """Admin interface for Offer model."""

    list_display = [
        'id',
        'need',
        'provider',
        'price',
        'currency',
        'delivery_days',
        'status',
        'created_at',
    ]

    list_filter = [
        'status',
        'currency',
        'created_at',
    ]

    search_fields = [
        'need__title',
        'provider__email',
        'description',
    ]

    readonly_fields = ['created_at', 'updated_at']

    ordering = ['-created_at']

    list_per_page = 25

    inlines = [OfferImageInline]


# ============================================================================
# Payments
# ============================================================================

@admin.register(Transaction)
class TransactionAdmin(admin.ModelAdmin):
    """
    Admin interface for escrow transactions.

    Status and gateway fields are read-only; state changes go through
    PaymentService so locking and notifications apply.
    """

    list_display = [
        'id',
        'offer',
        'buyer',
        'provider',
        'amount',
        'currency',
        'status',
        'payment_gateway',
        'created_at',
    ]

    list_filter = [
        'status',
        'payment_gateway',
        'created_at',
    ]

    search_fields = [
        'conversation_id',
        'gateway_transaction_id',
        'buyer__email',
        'provider__email',
    ]

    readonly_fields = [
        'status',
        'conversation_id',
        'payment_token',
        'gateway_transaction_id',
        'error_message',
        'metadata',
        'created_at',
        'updated_at',
        'completed_at',
        'released_at',
        'refunded_at',
    ]

    exclude = ['three_ds_html_content']

    ordering = ['-created_at']

    date_hierarchy = 'created_at'

    list_per_page = 25


# ============================================================================
# Reviews, Messages, Notifications
# ============================================================================

@admin.register(Review)
class ReviewAdmin(admin.ModelAdmin):
    """Admin interface for Review model."""

    list_display = [
        'id',
        'reviewer',
        'reviewee',
        'offer',
        'rating',
        'is_visible',
        'created_at',
    ]

    list_filter = [
        'rating',
        'is_visible',
        'created_at',
    ]

    search_fields = [
        'reviewer__email',
        'reviewee__email',
        'comment',
    ]

    list_editable = ['is_visible']

    readonly_fields = ['created_at', 'updated_at']

    ordering = ['-created_at']

    date_hierarchy = 'created_at'

    list_per_page = 25

    fieldsets = (
        (None, {
            'fields': ('reviewer', 'reviewee', 'offer')
        }),
        (_('Review Content'), {
            'fields': ('rating', 'comment', 'is_visible')
        }),
        (_('Timestamps'), {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',),
        }),
    )


@admin.register(Message)
class MessageAdmin(admin.ModelAdmin):
    list_display = ['id', 'offer', 'sender', 'receiver', 'is_read', 'created_at']
    list_filter = ['is_read', 'created_at']
    search_fields = ['content', 'sender__email', 'receiver__email']
    ordering = ['-created_at']


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ['id', 'user', 'notification_type', 'title', 'is_read', 'created_at']
    list_filter = ['notification_type', 'is_read', 'created_at']
    search_fields = ['title', 'body', 'user__email']
    ordering = ['-created_at']


@admin.register(SearchHistory)
class SearchHistoryAdmin(admin.ModelAdmin):
    list_display = ['query', 'user', 'result_count', 'created_at']
    search_fields = ['query']
    ordering = ['-created_at']


@admin.register(UserBehavior)
class UserBehaviorAdmin(admin.ModelAdmin):
    list_display = ['id', 'user', 'action_type', 'target_type', 'target_id', 'created_at']
    list_filter = ['action_type', 'target_type', 'created_at']
    search_fields = ['user__email']
    readonly_fields = ['metadata', 'ip_address', 'user_agent', 'created_at']
    ordering = ['-created_at']


@admin.register(UserVerification)
class UserVerificationAdmin(admin.ModelAdmin):
    """
    Staff review identity and business requests here or through the API.
    Code hashes are never shown.
    """

    list_display = ['id', 'user', 'verification_type', 'status', 'reviewed_by', 'created_at']
    list_filter = ['verification_type', 'status', 'created_at']
    search_fields = ['user__email', 'user__username', 'target']
    readonly_fields = ['code_expires_at', 'attempt_count', 'last_sent_at', 'created_at', 'updated_at']
    ordering = ['-created_at']

    fieldsets = (
        (None, {
            'fields': ('user', 'verification_type', 'status', 'target')
        }),
        (_('Documents'), {
            'fields': ('document_urls', 'notes')
        }),
        (_('Review'), {
            'fields': ('reviewed_by', 'reviewed_at', 'review_notes')
        }),
        (_('Code'), {
            'fields': ('code_expires_at', 'attempt_count', 'last_sent_at'),
            'classes': ('collapse',),
        }),
        (_('Timestamps'), {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',),
        }),
    )
