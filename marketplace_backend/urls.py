"""
URL configuration for the marketplace_backend project.
"""
from django.conf import settings
from django.conf.urls.static import static
from django.contrib import admin
from django.urls import path
from rest_framework_simplejwt.views import TokenBlacklistView, TokenVerifyView

from core import views

urlpatterns = [
    path('admin/', admin.site.urls),

    # Authentication endpoints
    path('api/auth/register/', views.UserRegistrationView.as_view(), name='user_register'),
    path('api/auth/login/', views.LoginView.as_view(), name='user_login'),
    path('api/auth/refresh/', views.CustomTokenRefreshView.as_view(), name='token_refresh'),
    path('api/auth/logout/', TokenBlacklistView.as_view(), name='user_logout'),
    path('api/auth/profile/', views.UserProfileView.as_view(), name='user_profile'),
    path('api/auth/device-token/', views.DeviceTokenView.as_view(), name='device_token'),
    path('api/auth/stats/', views.UserStatisticsView.as_view(), name='user_stats'),
    path('api/token/verify/', TokenVerifyView.as_view(), name='token_verify'),
    path('api/user/<int:user_id>/stats/', views.PublicUserStatisticsView.as_view(), name='user_public_stats'),

    # Verification endpoints
    path('api/verification/', views.VerificationListView.as_view(), name='verification_list'),
    path('api/verification/send-code/', views.VerificationSendCodeView.as_view(), name='verification_send_code'),
    path('api/verification/verify-code/', views.VerificationVerifyCodeView.as_view(), name='verification_verify_code'),
    path('api/verification/submit/', views.VerificationSubmitView.as_view(), name='verification_submit'),
    path('api/verification/can-request/<str:verification_type>/', views.VerificationCanRequestView.as_view(),
         name='verification_can_request'),
    path('api/verification/<int:pk>/', views.VerificationDetailView.as_view(), name='verification_detail'),
    path('api/verification/<int:pk>/review/', views.VerificationReviewView.as_view(), name='verification_review'),

    # Category endpoints
    path('api/category/', views.CategoryListView.as_view(), name='category_list'),
    path('api/category/<int:pk>/', views.CategoryDetailView.as_view(), name='category_detail'),

    # Need endpoints
    path('api/need/', views.NeedListCreateView.as_view(), name='need_list_create'),
    path('api/need/my-needs/', views.MyNeedsView.as_view(), name='my_needs'),
    path('api/need/trending/', views.TrendingNeedsView.as_view(), name='need_trending'),
    path('api/need/<int:pk>/', views.NeedDetailView.as_view(), name='need_detail'),
    path('api/need/<int:pk>/images/', views.NeedImagesView.as_view(), name='need_images'),
    path('api/need/<int:pk>/expire/', views.NeedExpireView.as_view(), name='need_expire'),

    # Offer endpoints
    path('api/offer/', views.OfferListCreateView.as_view(), name='offer_list_create'),
    path('api/offer/my-offers/', views.MyOffersView.as_view(), name='my_offers'),
    path('api/offer/received/', views.ReceivedOffersView.as_view(), name='received_offers'),
    path('api/offer/stats/', views.OfferStatsView.as_view(), name='offer_stats'),
    path('api/offer/need/<int:need_id>/', views.NeedOffersView.as_view(), name='need_offers'),
    path('api/offer/need/<int:need_id>/top/', views.NeedTopOffersView.as_view(), name='need_top_offers'),
    path('api/offer/need/<int:need_id>/can-create/', views.CanCreateOfferView.as_view(), name='offer_can_create'),
    path('api/offer/<int:pk>/', views.OfferDetailView.as_view(), name='offer_detail'),
    path('api/offer/<int:pk>/accept/', views.OfferAcceptView.as_view(), name='offer_accept'),
    path('api/offer/<int:pk>/reject/', views.OfferRejectView.as_view(), name='offer_reject'),
    path('api/offer/<int:pk>/withdraw/', views.OfferWithdrawView.as_view(), name='offer_withdraw'),

    # Payment endpoints
    path('api/payment/initialize/', views.PaymentInitializeView.as_view(), name='payment_initialize'),
    path('api/payment/callback/', views.PaymentCallbackView.as_view(), name='payment_callback'),
    path('api/payment/release/<int:pk>/', views.PaymentReleaseView.as_view(), name='payment_release'),
    path('api/payment/refund/<int:pk>/', views.PaymentRefundView.as_view(), name='payment_refund'),
    path('api/payment/my-transactions/', views.MyTransactionsView.as_view(), name='my_transactions'),
    path('api/payment/stats/', views.PaymentStatsView.as_view(), name='payment_stats'),
    path('api/payment/offer/<int:offer_id>/', views.OfferTransactionView.as_view(), name='offer_transaction'),
    path('api/payment/<int:pk>/', views.TransactionDetailView.as_view(), name='transaction_detail'),

    # Review endpoints
    path('api/review/', views.ReviewCreateView.as_view(), name='review_create'),
    path('api/review/<int:pk>/', views.ReviewDetailView.as_view(), name='review_detail'),
    path('api/review/<int:pk>/visibility/', views.ReviewVisibilityView.as_view(), name='review_visibility'),
    path('api/review/user/<int:user_id>/', views.UserReviewsView.as_view(), name='user_reviews'),

    # Message endpoints
    path('api/message/', views.MessageSendView.as_view(), name='message_send'),
    path('api/message/unread-count/', views.MessageUnreadCountView.as_view(), name='message_unread_count'),
    path('api/message/offer/<int:offer_id>/', views.ConversationView.as_view(), name='conversation'),
    path('api/message/offer/<int:offer_id>/read/', views.ConversationReadView.as_view(), name='conversation_read'),

    # Notification endpoints
    path('api/notification/', views.NotificationListView.as_view(), name='notification_list'),
    path('api/notification/read-all/', views.NotificationReadAllView.as_view(), name='notification_read_all'),
    path('api/notification/unread-count/', views.NotificationUnreadCountView.as_view(), name='notification_unread_count'),
    path('api/notification/<int:pk>/read/', views.NotificationReadView.as_view(), name='notification_read'),

    # Search & recommendation endpoints
    path('api/search/', views.SearchView.as_view(), name='search'),
    path('api/search/suggestions/', views.SearchSuggestionsView.as_view(), name='search_suggestions'),
    path('api/search/popular/', views.PopularSearchesView.as_view(), name='search_popular'),
    path('api/search/stats/', views.SearchStatsView.as_view(), name='search_stats'),
    path('api/recommendation/popular/', views.PopularNeedsView.as_view(), name='recommendation_popular'),
    path('api/recommendation/for-me/', views.RecommendedNeedsView.as_view(), name='recommendation_for_me'),
    path('api/recommendation/location-based/', views.LocationRecommendationsView.as_view(),
         name='recommendation_location'),
    path('api/recommendation/track-behavior/', views.TrackBehaviorView.as_view(), name='track_behavior'),
    path('api/recommendation/user-profile/', views.UserInterestProfileView.as_view(), name='user_interest_profile'),
]

if settings.DEBUG:
    urlpatterns += static(settings.MEDIA_URL, document_root=settings.MEDIA_ROOT)
