"""
API views for the local services marketplace.

Views validate input with serializers and delegate to core.services. Domain
exceptions raised by the services are turned into responses by
core.exceptions.api_exception_handler, so views never build error bodies for
business rule failures themselves.
"""

import logging

from django.conf import settings
from django.contrib.auth import authenticate, get_user_model
from rest_framework import generics, status
from rest_framework.generics import ListAPIView
from rest_framework.pagination import PageNumberPagination
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView
from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.tokens import RefreshToken

from .exceptions import ValidationException
from .models import UserBehavior, UserVerification
from .notifications import NotificationService
from .permissions import IsBuyer, IsProvider, IsStaffUser
from .serializers import (
    BehaviorTrackSerializer,
    CategorySerializer,
    DeviceTokenSerializer,
    LocationRecommendationSerializer,
    LocationResultSerializer,
    LoginSerializer,
    MessageCreateSerializer,
    MessageSerializer,
    NeedFilterSerializer,
    NeedSerializer,
    NeedWriteSerializer,
    NotificationSerializer,
    OfferCreateSerializer,
    OfferFilterSerializer,
    OfferRejectSerializer,
    OfferSerializer,
    OfferUpdateSerializer,
    PaymentCallbackSerializer,
    PaymentInitializeSerializer,
    RefundSerializer,
    ReviewCreateSerializer,
    ReviewSerializer,
    ReviewUpdateSerializer,
    ReviewVisibilitySerializer,
    SearchQuerySerializer,
    SearchResultSerializer,
    TokenRefreshSerializer,
    TransactionFilterSerializer,
    TransactionSerializer,
    UserProfileSerializer,
    UserProfileUpdateSerializer,
    UserRegistrationSerializer,
    UserVerificationSerializer,
    VerificationCodeRequestSerializer,
    VerificationCodeSerializer,
    VerificationReviewSerializer,
    VerificationSubmitSerializer,
)
from .services import (
    CategoryService,
    MessageService,
    NeedService,
    OfferService,
    PaymentService,
    RecommendationService,
    ReviewService,
    SearchService,
    UserService,
    VerificationService,
)
from .services.recommendations import POPULAR_WINDOW_DAYS

User = get_user_model()
logger = logging.getLogger(__name__)


def get_client_ip(request):
    """
    Get client IP address from request.
    Handles proxy headers for accurate IP detection.
    """
    x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
    if x_forwarded_for:
        return x_forwarded_for.split(',')[0].strip()
    return request.META.get('REMOTE_ADDR')


def _limit_param(request, default=10, maximum=50):
    try:
        limit = int(request.query_params.get('limit', default))
    except (TypeError, ValueError):
        raise ValidationException({'limit': ['limit must be an integer.']})
    return max(1, min(limit, maximum))


def _days_param(request, default=POPULAR_WINDOW_DAYS, maximum=365):
    try:
        days = int(request.query_params.get('days_back', default))
    except (TypeError, ValueError):
        raise ValidationException({'days_back': ['days_back must be an integer.']})
    if days < 1 or days > maximum:
        raise ValidationException({'days_back': [f'days_back must be between 1 and {maximum}.']})
    return days


def track(request, action_type, target_id=None, target_type='', metadata=None):
    """Record an action by the requesting user once the request's writes commit."""
    RecommendationService().track_behavior(
        request.user,
        action_type,
        target_id=target_id,
        target_type=target_type,
        metadata=metadata,
        ip_address=get_client_ip(request),
        user_agent=request.META.get('HTTP_USER_AGENT', ''),
    )


class StandardPagination(PageNumberPagination):
    page_size_query_param = 'page_size'
    max_page_size = 100


# ============================================================================
# Authentication & profile
# ============================================================================

class UserRegistrationView(generics.CreateAPIView):
    """
    API endpoint for user registration.

    POST /api/auth/register/
    Returns the created user (without password) on success.
    """
    serializer_class = UserRegistrationSerializer
    permission_classes = [AllowAny]

    def perform_create(self, serializer):
        user = serializer.save()
        logger.info(
            f"User registered. User ID: {user.id}, Type: {user.user_type}, "
            f"IP: {get_client_ip(self.request)}"
        )


class LoginView(APIView):
    """
    API endpoint for user login with JWT token generation.

    Security features:
    - Rate limiting through the 'login' throttle scope
    - Generic error messages to prevent user enumeration
    - Failed login attempt logging with the client IP

    POST /api/auth/login/
    Request body: {"email": "user@example.com", "password": "password123"}

    Success response (200):
    {
        "access": "<jwt_access_token>",
        "refresh": "<jwt_refresh_token>",
        "user": {"id": 1, "email": "user@example.com", "user_type": "buyer", ...}
    }

    Error response (401): {"message": "Invalid credentials"}
    """
    permission_classes = [AllowAny]
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = 'login'

    def post(self, request, *args, **kwargs):
        serializer = LoginSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        email = serializer.validated_data['email'].lower().strip()
        password = serializer.validated_data['password']
        client_ip = get_client_ip(request)

        user = authenticate(request, email=email, password=password)
        if user is None:
            logger.warning(f"Failed login attempt. Email: {email}, IP: {client_ip}")
            return Response({'message': 'Invalid credentials'}, status=status.HTTP_401_UNAUTHORIZED)

        refresh = RefreshToken.for_user(user)
        logger.info(f"Successful login. User ID: {user.id}, IP: {client_ip}")

        return Response({
            'access': str(refresh.access_token),
            'refresh': str(refresh),
            'user': UserProfileSerializer(user, context={'request': request}).data,
        }, status=status.HTTP_200_OK)


class CustomTokenRefreshView(APIView):
    """
    API endpoint for refreshing JWT access tokens.

    The refresh token is checked for signature, expiry, type and blacklist
    status. With ROTATE_REFRESH_TOKENS the old token is blacklisted and a new
    one is returned.

    POST /api/auth/refresh/
    Request body: {"refresh": "<jwt_refresh_token>"}
    """
    permission_classes = [AllowAny]
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = 'refresh'

    def post(self, request, *args, **kwargs):
        serializer = TokenRefreshSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        client_ip = get_client_ip(request)

        try:
            refresh_token = RefreshToken(serializer.validated_data['refresh'])
        except TokenError as e:
            logger.warning(f"Failed token refresh attempt. Error: {e}, IP: {client_ip}")
            return Response({'message': str(e)}, status=status.HTTP_401_UNAUTHORIZED)

        user = User.objects.filter(id=refresh_token.get('user_id'), is_active=True).first()
        if user is None:
            logger.warning(f"Token refresh for missing or inactive user. IP: {client_ip}")
            return Response({'message': 'User not found or inactive.'}, status=status.HTTP_401_UNAUTHORIZED)

        response_data = {'access': str(refresh_token.access_token)}

        jwt_settings = getattr(settings, 'SIMPLE_JWT', {})
        if jwt_settings.get('ROTATE_REFRESH_TOKENS', False):
            if jwt_settings.get('BLACKLIST_AFTER_ROTATION', False):
                refresh_token.blacklist()
            response_data['refresh'] = str(RefreshToken.for_user(user))

        logger.info(f"Successful token refresh. User ID: {user.id}, IP: {client_ip}")
        return Response(response_data, status=status.HTTP_200_OK)


class UserProfileView(APIView):
    """
    Retrieve and update the authenticated user's profile.

    GET /api/auth/profile/
    PUT/PATCH /api/auth/profile/  (first_name, last_name, phone_number, profile_image)
    """

    def get(self, request, *args, **kwargs):
        serializer = UserProfileSerializer(request.user, context={'request': request})
        return Response(serializer.data, status=status.HTTP_200_OK)

    def put(self, request, *args, **kwargs):
        return self._update_profile(request, partial=False)

    def patch(self, request, *args, **kwargs):
        return self._update_profile(request, partial=True)

    def _update_profile(self, request, partial=False):
        serializer = UserProfileUpdateSerializer(
            request.user,
            data=request.data,
            partial=partial,
            context={'request': request}
        )
        serializer.is_valid(raise_exception=True)
        user = serializer.save()

        logger.info(f"Profile updated. User ID: {user.id}, Partial: {partial}")
        return Response(
            UserProfileSerializer(user, context={'request': request}).data,
            status=status.HTTP_200_OK
        )


class DeviceTokenView(APIView):
    """
    Register or clear the push notification token for the current device.

    PUT /api/auth/device-token/  {"fcm_token", "device_platform", "enable_push_notifications"}
    DELETE /api/auth/device-token/
    """

    def put(self, request, *args, **kwargs):
        serializer = DeviceTokenSerializer(request.user, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        user = serializer.save()
        logger.info(f"Device token updated. User ID: {user.id}, Platform: {user.device_platform}")
        return Response(DeviceTokenSerializer(user).data, status=status.HTTP_200_OK)

    def delete(self, request, *args, **kwargs):
        user = request.user
        user.fcm_token = ''
        user.device_platform = ''
        user.save(update_fields=['fcm_token', 'device_platform', 'updated_at'])
        logger.info(f"Device token cleared. User ID: {user.id}")
        return Response(status=status.HTTP_204_NO_CONTENT)


class UserStatisticsView(APIView):
    """
    GET /api/auth/stats/ - the caller's activity, ratings and earnings.

    Cached for five minutes.
    """

    def get(self, request, *args, **kwargs):
        return Response(UserService().statistics(request.user))


class PublicUserStatisticsView(APIView):
    """GET /api/user/<user_id>/stats/ - public profile figures for any active user."""
    permission_classes = [AllowAny]

    def get(self, request, user_id, *args, **kwargs):
        return Response(UserService().public_statistics(user_id))


# ============================================================================
# Verification
# ============================================================================

class VerificationListView(APIView):
    """
    GET /api/verification/

    Response:
    {"badges": ["email"], "verifications": [{...}, ...]}
    """

    def get(self, request, *args, **kwargs):
        result = VerificationService().user_verifications(request.user)
        return Response({
            'badges': result['badges'],
            'verifications': UserVerificationSerializer(result['verifications'], many=True).data,
        })


class VerificationSendCodeView(APIView):
    """POST /api/verification/send-code/  {"verification_type": "email"}"""

    def post(self, request, *args, **kwargs):
        serializer = VerificationCodeRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        verification = VerificationService().send_code(
            request.user, serializer.validated_data['verification_type']
        )
        return Response(UserVerificationSerializer(verification).data, status=status.HTTP_201_CREATED)


class VerificationVerifyCodeView(APIView):
    """POST /api/verification/verify-code/  {"verification_type": "email", "code": "123456"}"""

    def post(self, request, *args, **kwargs):
        serializer = VerificationCodeSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        verification = VerificationService().verify_code(
            request.user,
            serializer.validated_data['verification_type'],
            serializer.validated_data['code'],
        )
        return Response(UserVerificationSerializer(verification).data)


class VerificationSubmitView(APIView):
    """
    POST /api/verification/submit/

    Request body:
    {
        "verification_type": "identity",
        "document_urls": ["https://..."],
        "notes": "..."
    }
    """

    def post(self, request, *args, **kwargs):
        serializer = VerificationSubmitSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        verification = VerificationService().submit_request(
            request.user,
            serializer.validated_data['verification_type'],
            serializer.validated_data['document_urls'],
            serializer.validated_data.get('notes', ''),
        )
        return Response(UserVerificationSerializer(verification).data, status=status.HTTP_201_CREATED)


class VerificationDetailView(APIView):
    """GET /api/verification/<id>/ - one of the caller's verification records."""

    def get(self, request, pk, *args, **kwargs):
        verification = VerificationService().get_verification(request.user, pk)
        return Response(UserVerificationSerializer(verification).data)


class VerificationCanRequestView(APIView):
    """GET /api/verification/can-request/<verification_type>/"""

    def get(self, request, verification_type, *args, **kwargs):
        if verification_type not in dict(UserVerification.TYPE_CHOICES):
            raise ValidationException({'verification_type': [f'Unknown verification type: {verification_type}.']})
        allowed = VerificationService().can_request(request.user, verification_type)
        return Response({'verification_type': verification_type, 'can_request': allowed})


class VerificationReviewView(APIView):
    """POST /api/verification/<id>/review/  {"approve": true, "review_notes": "..."} - staff only."""
    permission_classes = [IsAuthenticated, IsStaffUser]

    def post(self, request, pk, *args, **kwargs):
        serializer = VerificationReviewSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        verification = VerificationService().review_request(
            request.user,
            pk,
            serializer.validated_data['approve'],
            serializer.validated_data.get('review_notes', ''),
        )
        return Response(UserVerificationSerializer(verification).data)


# ============================================================================
# Categories
# ============================================================================

class CategoryListView(APIView):
    """GET /api/category/ - active categories as a two-level tree."""
    permission_classes = [AllowAny]

    def get(self, request, *args, **kwargs):
        categories = CategoryService().list_tree()
        return Response(CategorySerializer(categories, many=True).data)


class CategoryDetailView(APIView):
    permission_classes = [AllowAny]

    def get(self, request, pk, *args, **kwargs):
        category = CategoryService().get_category(pk)
        return Response(CategorySerializer(category).data)


# ============================================================================
# Needs
# ============================================================================

class NeedListCreateView(ListAPIView):
    """
    List needs or post a new one.

    GET /api/need/?category_id=&status=&urgency=&user_id=&min_budget=&max_budget=
    POST /api/need/  (buyer accounts)

    Request body for POST:
    {
        "title": "Move a 2-bedroom flat",
        "description": "...",
        "category_id": 3,
        "min_budget": "20000.00",
        "max_budget": "25000.00",
        "currency": "TRY",
        "latitude": "41.008200",
        "longitude": "28.978400",
        "urgency": 3,
        "image_urls": ["https://...", "https://..."]
    }
    """
    permission_classes = [IsAuthenticated, IsBuyer]
    pagination_class = StandardPagination
    serializer_class = NeedSerializer

    def get_permissions(self):
        if self.request.method == 'GET':
            return [AllowAny()]
        return super().get_permissions()

    def get_queryset(self):
        filters = NeedFilterSerializer(data=self.request.query_params)
        filters.is_valid(raise_exception=True)
        return NeedService().list_needs(filters.validated_data)

    def post(self, request, *args, **kwargs):
        serializer = NeedWriteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        need = NeedService().create_need(request.user, serializer.validated_data)
        track(request, UserBehavior.ACTION_CREATE_NEED, need.id, UserBehavior.TARGET_NEED)
        return Response(NeedSerializer(need).data, status=status.HTTP_201_CREATED)


class NeedDetailView(APIView):
    """
    GET /api/need/<id>/
    PUT/PATCH /api/need/<id>/  (owner, active needs only)
    DELETE /api/need/<id>/     (owner, no pending offers)
    """

    def get_permissions(self):
        if self.request.method == 'GET':
            return [AllowAny()]
        return [IsAuthenticated()]

    def get(self, request, pk, *args, **kwargs):
        need = NeedService().get_need(pk)
        track(request, UserBehavior.ACTION_VIEW_NEED, need.id, UserBehavior.TARGET_NEED)
        return Response(NeedSerializer(need).data)

    def put(self, request, pk, *args, **kwargs):
        return self._update(request, pk, partial=False)

    def patch(self, request, pk, *args, **kwargs):
        return self._update(request, pk, partial=True)

    def _update(self, request, pk, partial):
        serializer = NeedWriteSerializer(data=request.data, partial=partial)
        serializer.is_valid(raise_exception=True)
        need = NeedService().update_need(request.user, pk, serializer.validated_data)
        return Response(NeedSerializer(need).data)

    def delete(self, request, pk, *args, **kwargs):
        NeedService().delete_need(request.user, pk)
        return Response(status=status.HTTP_204_NO_CONTENT)


class NeedImagesView(APIView):
    """PUT /api/need/<id>/images/ - replace a need's images, keeping the given order."""

    def put(self, request, pk, *args, **kwargs):
        serializer = NeedWriteSerializer(data={'image_urls': request.data.get('image_urls', [])}, partial=True)
        serializer.is_valid(raise_exception=True)
        need = NeedService().update_need(
            request.user, pk, {'image_urls': serializer.validated_data.get('image_urls', [])}
        )
        return Response(NeedSerializer(need).data)


class NeedExpireView(APIView):
    """POST /api/need/<id>/expire/ - owner closes an active need early."""

    def post(self, request, pk, *args, **kwargs):
        need = NeedService().expire_need(request.user, pk)
        return Response(NeedSerializer(need).data)


class MyNeedsView(ListAPIView):
    """GET /api/need/my-needs/?status= - needs posted by the caller."""
    pagination_class = StandardPagination
    serializer_class = NeedSerializer

    def get_queryset(self):
        return NeedService().user_needs(self.request.user, self.request.query_params.get('status'))


class TrendingNeedsView(APIView):
    """GET /api/need/trending/?limit= - needs from the last week with the most offers."""
    permission_classes = [AllowAny]

    def get(self, request, *args, **kwargs):
        needs = RecommendationService().trending_needs(limit=_limit_param(request))
        return Response(NeedSerializer(needs, many=True).data)


# ============================================================================
# Offers
# ============================================================================

class OfferListCreateView(ListAPIView):
    """
    GET /api/offer/   - offers the caller is a party to, filtered and sorted
    POST /api/offer/  - submit an offer on a need (provider accounts)

    Query parameters for GET: need_id, provider_id, min_price, max_price,
    currency, status, created_from, created_to, max_delivery_days,
    sort_by (price, delivery_days, status, created), sort_order (asc, desc).
    """
    permission_classes = [IsAuthenticated, IsProvider]
    pagination_class = StandardPagination
    serializer_class = OfferSerializer

    def get_queryset(self):
        filters = OfferFilterSerializer(data=self.request.query_params)
        filters.is_valid(raise_exception=True)
        return OfferService().filter_offers(self.request.user, filters.validated_data)

    def post(self, request, *args, **kwargs):
        serializer = OfferCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        offer = OfferService().create_offer(request.user, serializer.validated_data)
        track(request, UserBehavior.ACTION_CREATE_OFFER, offer.need_id, UserBehavior.TARGET_NEED)
        return Response(OfferSerializer(offer).data, status=status.HTTP_201_CREATED)


class OfferDetailView(APIView):
    """
    GET /api/offer/<id>/        - buyer or provider
    PUT/PATCH /api/offer/<id>/  - provider, pending offers only
    DELETE /api/offer/<id>/     - provider, never once accepted
    """

    def get(self, request, pk, *args, **kwargs):
        return Response(OfferSerializer(OfferService().get_offer(request.user, pk)).data)

    def put(self, request, pk, *args, **kwargs):
        return self._update(request, pk)

    def patch(self, request, pk, *args, **kwargs):
        return self._update(request, pk)

    def _update(self, request, pk):
        serializer = OfferUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        offer = OfferService().update_offer(request.user, pk, serializer.validated_data)
        return Response(OfferSerializer(offer).data)

    def delete(self, request, pk, *args, **kwargs):
        OfferService().delete_offer(request.user, pk)
        return Response(status=status.HTTP_204_NO_CONTENT)


class OfferAcceptView(APIView):
    """
    POST /api/offer/<id>/accept/

    The need owner accepts a pending offer. Every other pending offer on the
    need is rejected and the need moves to in_progress.
    """

    def post(self, request, pk, *args, **kwargs):
        offer = OfferService().accept_offer(request.user, pk)
        track(request, UserBehavior.ACTION_ACCEPT_OFFER, offer.need_id, UserBehavior.TARGET_NEED)
        return Response(OfferSerializer(offer).data)


class OfferRejectView(APIView):
    """POST /api/offer/<id>/reject/  {"reason": "..."}"""

    def post(self, request, pk, *args, **kwargs):
        serializer = OfferRejectSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        offer = OfferService().reject_offer(request.user, pk, serializer.validated_data.get('reason'))
        return Response(OfferSerializer(offer).data)


class OfferWithdrawView(APIView):
    """POST /api/offer/<id>/withdraw/"""

    def post(self, request, pk, *args, **kwargs):
        offer = OfferService().withdraw_offer(request.user, pk)
        return Response(OfferSerializer(offer).data)


class NeedOffersView(ListAPIView):
    """GET /api/offer/need/<need_id>/ - the owner sees every offer, others only their own."""
    pagination_class = StandardPagination
    serializer_class = OfferSerializer

    def get_queryset(self):
        return OfferService().offers_for_need(self.request.user, self.kwargs['need_id'])


class NeedTopOffersView(APIView):
    """GET /api/offer/need/<need_id>/top/?limit= - cheapest, fastest, best rated pending offers."""

    def get(self, request, need_id, *args, **kwargs):
        offers = OfferService().top_offers(request.user, need_id, limit=_limit_param(request, default=5))
        return Response(OfferSerializer(offers, many=True).data)


class CanCreateOfferView(APIView):
    """GET /api/offer/need/<need_id>/can-create/"""

    def get(self, request, need_id, *args, **kwargs):
        allowed, reason = OfferService().can_create_offer(request.user, need_id)
        return Response({'can_create': allowed, 'reason': reason})


class MyOffersView(ListAPIView):
    """GET /api/offer/my-offers/?status= - offers the caller submitted."""
    pagination_class = StandardPagination
    serializer_class = OfferSerializer

    def get_queryset(self):
        return OfferService().provider_offers(self.request.user, self.request.query_params.get('status'))


class ReceivedOffersView(ListAPIView):
    """GET /api/offer/received/?status= - offers on the caller's needs."""
    pagination_class = StandardPagination
    serializer_class = OfferSerializer

    def get_queryset(self):
        return OfferService().received_offers(self.request.user, self.request.query_params.get('status'))


class OfferStatsView(APIView):
    """GET /api/offer/stats/"""

    def get(self, request, *args, **kwargs):
        return Response(OfferService().offer_stats(request.user))


# ============================================================================
# Payments
# ============================================================================

class PaymentInitializeView(APIView):
    """
    Start a 3-D Secure escrow payment for an accepted offer.

    POST /api/payment/initialize/
    Request body:
    {
        "offer_id": 12,
        "card": {
            "card_holder_name": "John Doe",
            "card_number": "5528790000000008",
            "expire_month": "12",
            "expire_year": "2030",
            "cvc": "123"
        },
        "buyer": {"identity_number": "...", "address": "...", "city": "...", "country": "..."}
    }

    Success response (200):
    {
        "transaction_id": 5,
        "status": "processing",
        "three_ds_html_content": "<html>...</html>",
        "success": true,
        "message": "3-D Secure verification started."
    }

    A declined card returns 200 with success=false and status "failed".
    """

    def post(self, request, *args, **kwargs):
        serializer = PaymentInitializeSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = PaymentService().initialize_payment(
            request.user,
            serializer.validated_data,
            client_ip=get_client_ip(request),
        )
        return Response(result, status=status.HTTP_200_OK)


class PaymentCallbackView(APIView):
    """
    POST /api/payment/callback/

    Posted by the gateway (form-encoded) after the 3-D Secure step. The result
    is confirmed with the gateway rather than trusted from the form data.
    """
    permission_classes = [AllowAny]
    authentication_classes = []

    def post(self, request, *args, **kwargs):
        serializer = PaymentCallbackSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        payment = PaymentService().handle_callback(
            serializer.validated_data['conversationId'],
            serializer.validated_data.get('paymentId') or None,
        )
        logger.info(
            f"Payment callback handled. Transaction ID: {payment.id}, Status: {payment.status}, "
            f"IP: {get_client_ip(request)}"
        )
        track(
            request,
            UserBehavior.ACTION_SEARCH,
            metadata={'query': result['query'], 'total': result['total']},
        )
        return Response({
            'transaction_id': payment.id,
            'status': payment.status,
            'success': payment.status == payment.STATUS_COMPLETED,
        })


class PaymentReleaseView(APIView):
    """POST /api/payment/release/<id>/ - the buyer releases escrowed funds to the provider."""

    def post(self, request, pk, *args, **kwargs):
        payment = PaymentService().release_payment(request.user, pk)
        return Response(TransactionSerializer(payment).data)


class PaymentRefundView(APIView):
    """POST /api/payment/refund/<id>/  {"reason": "..."}"""

    def post(self, request, pk, *args, **kwargs):
        serializer = RefundSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        payment = PaymentService().refund_payment(
            request.user, pk, serializer.validated_data.get('reason', '')
        )
        return Response(TransactionSerializer(payment).data)


class TransactionDetailView(APIView):
    """GET /api/payment/<id>/"""

    def get(self, request, pk, *args, **kwargs):
        payment = PaymentService().get_transaction(request.user, pk)
        return Response(TransactionSerializer(payment).data)


class OfferTransactionView(APIView):
    """GET /api/payment/offer/<offer_id>/ - latest transaction for an offer."""

    def get(self, request, offer_id, *args, **kwargs):
        payment = PaymentService().get_transaction_for_offer(request.user, offer_id)
        return Response(TransactionSerializer(payment).data)


class MyTransactionsView(ListAPIView):
    """GET /api/payment/my-transactions/?offer_id=&status=&payment_gateway=&created_from=&created_to="""
    pagination_class = StandardPagination
    serializer_class = TransactionSerializer

    def get_queryset(self):
        filters = TransactionFilterSerializer(data=self.request.query_params)
        filters.is_valid(raise_exception=True)
        return PaymentService().user_transactions(self.request.user, filters.validated_data)


class PaymentStatsView(APIView):
    """GET /api/payment/stats/"""

    def get(self, request, *args, **kwargs):
        return Response(PaymentService().payment_stats(request.user))


# ============================================================================
# Reviews
# ============================================================================

class ReviewCreateView(APIView):
    """
    POST /api/review/
    {"reviewee_id": 4, "offer_id": 12, "rating": 5, "comment": "..."}
    """

    def post(self, request, *args, **kwargs):
        serializer = ReviewCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        review = ReviewService().create_review(request.user, serializer.validated_data)
        return Response(ReviewSerializer(review).data, status=status.HTTP_201_CREATED)


class ReviewDetailView(APIView):
    """PUT/PATCH/DELETE /api/review/<id>/ - the reviewer edits or removes a review."""

    def put(self, request, pk, *args, **kwargs):
        return self._update(request, pk)

    def patch(self, request, pk, *args, **kwargs):
        return self._update(request, pk)

    def _update(self, request, pk):
        serializer = ReviewUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        review = ReviewService().update_review(request.user, pk, serializer.validated_data)
        return Response(ReviewSerializer(review).data)

    def delete(self, request, pk, *args, **kwargs):
        ReviewService().delete_review(request.user, pk)
        return Response(status=status.HTTP_204_NO_CONTENT)


class ReviewVisibilityView(APIView):
    """POST /api/review/<id>/visibility/  {"is_visible": false} - staff moderation."""
    permission_classes = [IsAuthenticated, IsStaffUser]

    def post(self, request, pk, *args, **kwargs):
        serializer = ReviewVisibilitySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        review = ReviewService().set_visibility(request.user, pk, serializer.validated_data['is_visible'])
        return Response(ReviewSerializer(review).data)


class UserReviewsView(ListAPIView):
    """
    GET /api/review/user/<user_id>/

    Visible reviews a user received, newest first, with a summary:
    {"summary": {"average_rating": 4.5, "total_reviews": 2,
                 "rating_distribution": {"1": 0, ..., "5": 1}},
     "count": 2, "next": null, "previous": null, "results": [...]}
    """
    permission_classes = [AllowAny]
    pagination_class = StandardPagination
    serializer_class = ReviewSerializer

    def get_queryset(self):
        queryset, self.summary = ReviewService().reviews_for_user(self.kwargs['user_id'])
        return queryset

    def list(self, request, *args, **kwargs):
        response = super().list(request, *args, **kwargs)
        response.data['summary'] = self.summary
        return response


# ============================================================================
# Messages & notifications
# ============================================================================

class MessageSendView(APIView):
    """POST /api/message/  {"offer_id": 12, "content": "..."}"""

    def post(self, request, *args, **kwargs):
        serializer = MessageCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        message = MessageService().send_message(
            request.user,
            serializer.validated_data['offer_id'],
            serializer.validated_data['content'],
        )
        return Response(MessageSerializer(message).data, status=status.HTTP_201_CREATED)


class ConversationView(ListAPIView):
    """GET /api/message/offer/<offer_id>/ - messages on an offer, oldest first."""
    pagination_class = StandardPagination
    serializer_class = MessageSerializer

    def get_queryset(self):
        return MessageService().conversation(self.request.user, self.kwargs['offer_id'])


class ConversationReadView(APIView):
    """POST /api/message/offer/<offer_id>/read/"""

    def post(self, request, offer_id, *args, **kwargs):
        updated = MessageService().mark_conversation_read(request.user, offer_id)
        return Response({'updated': updated})


class MessageUnreadCountView(APIView):
    def get(self, request, *args, **kwargs):
        return Response({'unread_count': MessageService().unread_count(request.user)})


class NotificationListView(ListAPIView):
    """GET /api/notification/?unread=true"""
    pagination_class = StandardPagination
    serializer_class = NotificationSerializer

    def get_queryset(self):
        unread_only = self.request.query_params.get('unread', '').lower() == 'true'
        return NotificationService().list_for_user(self.request.user, unread_only=unread_only)


class NotificationReadView(APIView):
    """POST /api/notification/<id>/read/"""

    def post(self, request, pk, *args, **kwargs):
        notification = NotificationService().mark_read(request.user, pk)
        return Response(NotificationSerializer(notification).data)


class NotificationReadAllView(APIView):
    def post(self, request, *args, **kwargs):
        updated = NotificationService().mark_all_read(request.user)
        return Response({'updated': updated})


class NotificationUnreadCountView(APIView):
    def get(self, request, *args, **kwargs):
        return Response({'unread_count': NotificationService().unread_count(request.user)})


# ============================================================================
# Search & recommendations
# ============================================================================

class SearchView(APIView):
    """
    GET /api/search/

    Query parameters: query, category_ids (comma separated), include_expired,
    min_budget, max_budget, currency, urgency, created_from, created_to,
    latitude, longitude, radius_km, sort_by, sort_order, page, page_size.

    Response:
    {
        "query": "house cleaning",
        "total": 42,
        "truncated": false,
        "page": 1,
        "page_size": 20,
        "results": [{"need": {...}, "score": 87, "distance_km": 3.2}, ...],
        "stats": {"category_breakdown": {...}, "urgency_breakdown": {...}}
    }
    """
    permission_classes = [AllowAny]

    def get(self, request, *args, **kwargs):
        serializer = SearchQuerySerializer(data=request.query_params)
        serializer.is_valid(raise_exception=True)

        result = SearchService().search(request.user, serializer.validated_data)
        logger.info(
            f"Search executed. Query: '{result['query']}', Results: {result['total']}, "
            f"IP: {get_client_ip(request)}"
        )
        return Response({
            'query': result['query'],
            'total': result['total'],
            'truncated': result['truncated'],
            'page': result['page'],
            'page_size': result['page_size'],
            'results': SearchResultSerializer(result['results'], many=True).data,
            'stats': result['stats'],
        })


class SearchSuggestionsView(APIView):
    """GET /api/search/suggestions/?q=cle"""
    permission_classes = [AllowAny]

    def get(self, request, *args, **kwargs):
        suggestions = SearchService().suggestions(
            request.query_params.get('q', ''), limit=_limit_param(request)
        )
        return Response({'suggestions': suggestions})


class PopularSearchesView(APIView):
    """GET /api/search/popular/?limit="""
    permission_classes = [AllowAny]

    def get(self, request, *args, **kwargs):
        return Response({'popular': SearchService().popular_searches(limit=_limit_param(request))})


class SearchStatsView(APIView):
    """GET /api/search/stats/ - staff only."""
    permission_classes = [IsAuthenticated, IsStaffUser]

    def get(self, request, *args, **kwargs):
        return Response(SearchService().search_stats())


class PopularNeedsView(APIView):
    """
    GET /api/recommendation/popular/?limit=&days_back=

    Active needs posted in the last days_back days (default 7), by activity score.
    """
    permission_classes = [AllowAny]

    def get(self, request, *args, **kwargs):
        needs = RecommendationService().popular_needs(
            limit=_limit_param(request), days_back=_days_param(request)
        )
        return Response(NeedSerializer(needs, many=True).data)


class RecommendedNeedsView(APIView):
    """GET /api/recommendation/for-me/?limit= - needs matching the caller's bidding history."""

    def get(self, request, *args, **kwargs):
        needs = RecommendationService().recommended_for(request.user, limit=_limit_param(request))
        return Response(NeedSerializer(needs, many=True).data)


class LocationRecommendationsView(APIView):
    """
    GET /api/recommendation/location-based/?latitude=&longitude=&radius_km=25&limit=20

    Response:
    {
        "center": {"latitude": 41.0082, "longitude": 28.9784},
        "radius_km": 25.0,
        "results": [{"need": {...}, "distance_km": 1.4}, ...],
        "distance_breakdown": {"within_1km": 0, "1_5km": 1, "5_10km": 0,
                               "10_25km": 0, "over_25km": 0}
    }
    """
    permission_classes = [AllowAny]

    def get(self, request, *args, **kwargs):
        serializer = LocationRecommendationSerializer(data=request.query_params)
        serializer.is_valid(raise_exception=True)
        params = serializer.validated_data

        result = RecommendationService().location_based(
            params['latitude'], params['longitude'],
            radius_km=params['radius_km'], limit=params['limit'],
        )
        return Response({
            'center': result['center'],
            'radius_km': result['radius_km'],
            'results': LocationResultSerializer(result['results'], many=True).data,
            'distance_breakdown': result['distance_breakdown'],
        })


class TrackBehaviorView(APIView):
    """
    POST /api/recommendation/track-behavior/

    Request body:
    {"action_type": "save_need", "target_id": 12, "target_type": "need", "metadata": {}}

    The action is stored after the response's transaction commits, so the
    response is always 202 Accepted.
    """

    def post(self, request, *args, **kwargs):
        serializer = BehaviorTrackSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        track(
            request,
            data['action_type'],
            target_id=data.get('target_id'),
            target_type=data.get('target_type', ''),
            metadata=data.get('metadata'),
        )
        return Response({'tracked': True}, status=status.HTTP_202_ACCEPTED)


class UserInterestProfileView(APIView):
    """GET /api/recommendation/user-profile/ - the caller's interests over the last 30 days."""

    def get(self, request, *args, **kwargs):
        return Response(RecommendationService().interest_profile(request.user))
