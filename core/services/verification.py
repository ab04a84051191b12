"""
Account verification: one-time codes for email and phone, staff-reviewed
document requests for identity and business.

Codes are six digits, valid for ten minutes and stored only as a keyed hash.
A user may ask for at most three codes or requests of one type in a five
minute window; the window is counted in Django's cache.
"""

import logging
import string
from datetime import timedelta

from django.contrib.auth import get_user_model
from django.core.cache import cache
from django.core.mail import send_mail
from django.db import transaction
from django.utils import timezone
from django.utils.crypto import constant_time_compare, get_random_string, salted_hmac

from ..exceptions import (
    NotFoundException,
    RateLimitException,
    UnauthorizedException,
    ValidationException,
)
from ..metrics import increment_counter
from ..models import Notification, UserVerification
from ..notifications import NotificationService
from ..sms import get_sms_backend

logger = logging.getLogger(__name__)

User = get_user_model()

CODE_LENGTH = 6
CODE_TTL = timedelta(minutes=10)
MAX_CODE_ATTEMPTS = 5
MAX_REQUESTS_PER_WINDOW = 3
RATE_LIMIT_WINDOW = timedelta(minutes=5)

DELIVERY_FAILURE_CACHE_KEY = 'metrics:verification_delivery_failures'


def generate_code():
    """Six random digits; the first is never 0."""
    return get_random_string(1, allowed_chars='123456789') + get_random_string(
        CODE_LENGTH - 1, allowed_chars=string.digits
    )


def hash_code(code):
    return salted_hmac('core.verification.code', code, algorithm='sha256').hexdigest()


def _rate_limit_key(user_id, verification_type):
    return f'verification:requests:{user_id}:{verification_type}'


class VerificationService:
    """
    Issues and checks verification codes and reviews document requests.

    Args:
        sms_backend: Object with a send(phone_number, message) method.
            Defaults to the backend configured in settings.
        notifications: NotificationService used to tell users about reviews
    """

    def __init__(self, sms_backend=None, notifications=None):
        self.sms_backend = sms_backend or get_sms_backend()
        self.notifications = notifications or NotificationService()

    # ========================================================================
    # Helpers
    # ========================================================================

    def _contact(self, user, verification_type):
        if verification_type == UserVerification.TYPE_EMAIL:
            return user.email or ''
        return user.phone_number or ''

    def can_request(self, user, verification_type):
        """True while the user is under the request limit for this type."""
        return cache.get(_rate_limit_key(user.id, verification_type), 0) < MAX_REQUESTS_PER_WINDOW

    def _register_request(self, user, verification_type):
        key = _rate_limit_key(user.id, verification_type)
        window = int(RATE_LIMIT_WINDOW.total_seconds())
        if cache.add(key, 1, timeout=window):
            return
        try:
            cache.incr(key)
        except ValueError:
            cache.set(key, 1, timeout=window)

    def _check_rate_limit(self, user, verification_type):
        if not self.can_request(user, verification_type):
            logger.warning(
                f"Verification rate limit exceeded. User ID: {user.id}, Type: {verification_type}"
            )
            raise RateLimitException(
                f'Too many verification requests. Please wait '
                f'{int(RATE_LIMIT_WINDOW.total_seconds() // 60)} minutes before trying again.'
            )
        self._register_request(user, verification_type)

    def _deliver(self, user, verification_type, target, code):
        message = (
            f'Your verification code is {code}. '
            f'It expires in {int(CODE_TTL.total_seconds() // 60)} minutes.'
        )
        try:
            if verification_type == UserVerification.TYPE_EMAIL:
                send_mail('Your verification code', message, None, [target], fail_silently=False)
            else:
                self.sms_backend.send(target, message)
        except Exception as e:
            increment_counter(DELIVERY_FAILURE_CACHE_KEY)
            logger.error(
                f"Verification code delivery failed. User ID: {user.id}, "
                f"Type: {verification_type}, Error: {e}",
                exc_info=True
            )

    # ========================================================================
    # Email and phone codes
    # ========================================================================

    def send_code(self, user, verification_type):
        """
        Send a fresh verification code to the user's email or phone.

        A new code replaces the previous one and resets the failed attempt
        count. Delivery failures are logged and counted, not raised.

        Args:
            user: User to verify
            verification_type: 'email' or 'phone'

        Returns:
            UserVerification: The record holding the new code

        Raises:
            ValidationException: If the type takes no code, the contact is
                missing or already verified
            RateLimitException: If too many codes were requested recently
        """
        if verification_type not in UserVerification.CODE_TYPES:
            raise ValidationException({'verification_type': ['Codes are only sent for email and phone.']})

        target = self._contact(user, verification_type)
        if not target:
            raise ValidationException({'verification_type': [f'No {verification_type} is registered.']})

        self._check_rate_limit(user, verification_type)
        code = generate_code()
        now = timezone.now()

        with transaction.atomic():
            verification = (
                UserVerification.objects.select_for_update()
                .filter(user=user, verification_type=verification_type)
                .first()
            )
            if verification is None:
                verification = UserVerification(user=user, verification_type=verification_type)
            elif verification.status == UserVerification.STATUS_APPROVED and verification.target == target:
                raise ValidationException({'verification_type': [f'Your {verification_type} is already verified.']})

            verification.status = UserVerification.STATUS_PENDING
            verification.target = target
            verification.code_hash = hash_code(code)
            verification.code_expires_at = now + CODE_TTL
            verification.attempt_count = 0
            verification.last_sent_at = now
            verification.reviewed_at = None
            verification.save()

        self._deliver(user, verification_type, target, code)
        logger.info(
            f"Verification code sent. User ID: {user.id}, Type: {verification_type}, "
            f"Verification ID: {verification.id}"
        )
        return verification

    def verify_code(self, user, verification_type, code):
        """
        Check a code sent by send_code().

        Every wrong code counts as a failed attempt; after five the code is
        dead and a new one must be requested.

        Returns:
            UserVerification: The approved record

        Raises:
            ValidationException: If no code is outstanding, the code expired,
                the contact changed since it was sent, too many attempts were
                made or the code is wrong
        """
        if verification_type not in UserVerification.CODE_TYPES:
            raise ValidationException({'verification_type': ['Codes are only sent for email and phone.']})

        wrong_code = False
        with transaction.atomic():
            verification = (
                UserVerification.objects.select_for_update()
                .filter(user=user, verification_type=verification_type)
                .first()
            )
            if verification is None or not verification.code_hash:
                raise ValidationException({'code': ['No verification code was requested.']})
            if verification.target != self._contact(user, verification_type):
                raise ValidationException({'code': ['Your contact details changed. Request a new code.']})
            if verification.is_code_expired:
                raise ValidationException({'code': ['The verification code has expired.']})
            if verification.attempt_count >= MAX_CODE_ATTEMPTS:
                raise ValidationException({'code': ['Too many failed attempts. Request a new code.']})

            if constant_time_compare(verification.code_hash, hash_code(code)):
                verification.status = UserVerification.STATUS_APPROVED
                verification.code_hash = ''
                verification.code_expires_at = None
                verification.reviewed_at = timezone.now()
                verification.save(update_fields=[
                    'status', 'code_hash', 'code_expires_at', 'reviewed_at', 'updated_at'
                ])
            else:
                verification.attempt_count += 1
                verification.save(update_fields=['attempt_count', 'updated_at'])
                wrong_code = True

        if wrong_code:
            logger.warning(
                f"Wrong verification code. User ID: {user.id}, Type: {verification_type}, "
                f"Attempts: {verification.attempt_count}"
            )
            raise ValidationException({'code': ['Invalid verification code.']})

        logger.info(f"Verification approved. User ID: {user.id}, Type: {verification_type}")
        return verification

    # ========================================================================
    # Identity and business documents
    # ========================================================================

    def submit_request(self, user, verification_type, document_urls, notes=''):
        """
        Submit identity or business documents for staff review.

        Returns:
            UserVerification: The new request, in review

        Raises:
            ValidationException: If the type is not document based, no
                documents are given, or a request is already open or approved
            RateLimitException: If too many requests were made recently
        """
        if verification_type not in UserVerification.DOCUMENT_TYPES:
            raise ValidationException(
                {'verification_type': ['Only identity and business verification take documents.']}
            )
        if not document_urls:
            raise ValidationException({'document_urls': ['At least one document is required.']})

        self._check_rate_limit(user, verification_type)

        with transaction.atomic():
            # Serializes submissions per user
            User.objects.select_for_update().get(pk=user.pk)
            existing = UserVerification.objects.filter(user=user, verification_type=verification_type)
            if existing.filter(status__in=UserVerification.OPEN_STATUSES).exists():
                raise ValidationException(
                    {'verification_type': [f'You already have an open {verification_type} verification request.']}
                )
            if existing.filter(status=UserVerification.STATUS_APPROVED).exists():
                raise ValidationException({'verification_type': [f'Your {verification_type} is already verified.']})

            verification = UserVerification.objects.create(
                user=user,
                verification_type=verification_type,
                status=UserVerification.STATUS_IN_REVIEW,
                document_urls=list(document_urls),
                notes=notes or '',
            )

        logger.info(
            f"Verification request submitted. User ID: {user.id}, Type: {verification_type}, "
            f"Verification ID: {verification.id}"
        )
        return verification

    def review_request(self, reviewer, verification_id, approve, review_notes=''):
        """
        Approve or reject a document request and notify its owner.

        Raises:
            UnauthorizedException: If the reviewer is not staff
            NotFoundException: If the request does not exist
            ValidationException: If the request is not in review
        """
        if not reviewer.is_staff:
            raise UnauthorizedException('Only staff can review verification requests.')

        with transaction.atomic():
            verification = (
                UserVerification.objects.select_for_update()
                .select_related('user')
                .filter(pk=verification_id)
                .first()
            )
            if verification is None:
                raise NotFoundException('Verification request not found.')
            if verification.status != UserVerification.STATUS_IN_REVIEW:
                raise ValidationException(
                    {'status': [f'Only requests in review can be reviewed. Current status: {verification.status}.']}
                )

            verification.status = (
                UserVerification.STATUS_APPROVED if approve else UserVerification.STATUS_REJECTED
            )
            verification.reviewed_by = reviewer
            verification.reviewed_at = timezone.now()
            verification.review_notes = review_notes or ''
            verification.save(update_fields=[
                'status', 'reviewed_by', 'reviewed_at', 'review_notes', 'updated_at'
            ])

            outcome = 'approved' if approve else 'rejected'
            self.notifications.notify(
                verification.user,
                Notification.TYPE_SYSTEM,
                f'Verification {outcome}',
                f'Your {verification.verification_type} verification was {outcome}.',
                {'verification_id': verification.id, 'status': verification.status},
            )

        logger.info(
            f"Verification reviewed. Verification ID: {verification.id}, Status: {verification.status}, "
            f"Reviewer ID: {reviewer.id}"
        )
        return verification

    # ========================================================================
    # Queries
    # ========================================================================

    def badges(self, user):
        """
        Verification types the user currently holds, in a fixed order.

        An email or phone badge only counts while the approved address or
        number is still the one on the account.
        """
        held = set()
        approved = UserVerification.objects.filter(user=user, status=UserVerification.STATUS_APPROVED)
        for verification in approved:
            if verification.verification_type in UserVerification.CODE_TYPES:
                if verification.target != self._contact(user, verification.verification_type):
                    continue
            held.add(verification.verification_type)
        return [value for value, _ in UserVerification.TYPE_CHOICES if value in held]

    def user_verifications(self, user):
        """
        Returns:
            dict: badges and the user's verification records, newest first
        """
        return {
            'badges': self.badges(user),
            'verifications': list(UserVerification.objects.filter(user=user)),
        }

    def get_verification(self, user, verification_id):
        verification = UserVerification.objects.filter(pk=verification_id, user=user).first()
        if verification is None:
            raise NotFoundException('Verification request not found.')
        return verification
