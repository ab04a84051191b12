"""
Escrow payment lifecycle.

A buyer pays for an accepted offer through the gateway's 3-D Secure flow:

    pending -> processing -> completed -> released | refunded
    pending | processing -> failed

At most one transaction per offer may be live (pending, processing or
completed). The live check and the insert run under a lock on the offer row,
and every later transition locks the transaction row.
"""

import logging
from decimal import Decimal

from django.conf import settings
from django.db import transaction
from django.db.models import Count, Q, Sum
from django.utils import timezone

from ..exceptions import (
    ConflictException,
    NotFoundException,
    UnauthorizedException,
    ValidationException,
)
from ..gateways import ThreeDSRequest, get_gateway
from ..models import Need, Notification, Offer, Transaction
from ..notifications import NotificationService

logger = logging.getLogger(__name__)


class PaymentService:
    """
    Business logic for escrow payments.

    Args:
        gateway: PaymentGateway used for 3-D Secure calls. Defaults to the
            gateway configured in settings.
        notifications: NotificationService used for party notifications
    """

    def __init__(self, gateway=None, notifications=None):
        self.gateway = gateway or get_gateway()
        self.notifications = notifications or NotificationService()

    # ========================================================================
    # Helpers
    # ========================================================================

    def _lock_transaction(self, transaction_id):
        """
        Lock a transaction row for the rest of the current database transaction.

        Returns:
            tuple: (payment, observed_status) where observed_status is the
            status read before the lock was taken
        """
        observed_status = (
            Transaction.objects.filter(pk=transaction_id).values_list('status', flat=True).first()
        )
        if observed_status is None:
            raise NotFoundException('Transaction not found.')
        payment = (
            Transaction.objects.select_for_update()
            .select_related('buyer', 'provider', 'offer')
            .get(pk=transaction_id)
        )
        return payment, observed_status

    def _ensure_status(self, payment, observed_status, required, action):
        if payment.status == required:
            return
        if observed_status == required:
            logger.warning(
                f"Payment {action} lost a concurrent update. "
                f"Transaction ID: {payment.id}, Status now: {payment.status}"
            )
            raise ConflictException(
                f'The transaction was updated by another request (now {payment.status}). '
                f'Please refresh and retry.'
            )
        raise ValidationException(
            {'status': [f'Only {required} transactions can be {action}. Current status: {payment.status}.']}
        )

    def _set_need_status(self, need_id, status):
        need = Need.objects.select_for_update().get(pk=need_id)
        need.status = status
        need.save(update_fields=['status', 'updated_at'])
        return need

    def _build_buyer(self, buyer, extra, client_ip):
        details = {
            'id': buyer.id,
            'name': buyer.first_name or buyer.username,
            'surname': buyer.last_name or buyer.username,
            'email': buyer.email,
            'phone': buyer.phone_number,
            'ip': client_ip or '',
        }
        details.update({key: value for key, value in (extra or {}).items() if value})
        return details

    # ========================================================================
    # Initialize & callback
    # ========================================================================

    def initialize_payment(self, buyer, data, client_ip=None):
        """
        Start a 3-D Secure payment for an accepted offer.

        Args:
            buyer: Authenticated user paying for the offer
            data: Validated fields: offer_id, card (dict) and optional buyer
                details (dict: address, city, country, identity_number)
            client_ip: Caller IP forwarded to the gateway

        Returns:
            dict: transaction_id, status, three_ds_html_content, success, message

        Raises:
            NotFoundException: If the offer does not exist
            ValidationException: If the offer is not accepted or a live
                transaction already exists
            UnauthorizedException: If the user does not own the need
            ConflictException: If a concurrent request created the transaction first
        """
        offer_id = data['offer_id']
        live_before = Transaction.objects.filter(
            offer_id=offer_id, status__in=Transaction.LIVE_STATUSES
        ).exists()

        with transaction.atomic():
            offer = (
                Offer.objects.select_for_update()
                .select_related('need', 'provider')
                .filter(pk=offer_id)
                .first()
            )
            if offer is None:
                raise NotFoundException('Offer not found.')
            if offer.status != Offer.STATUS_ACCEPTED:
                raise ValidationException({'offer_id': ['Payment can only be made for accepted offers.']})
            if offer.need.user_id != buyer.id:
                raise UnauthorizedException('Only the buyer of this offer can pay for it.')

            live = Transaction.objects.filter(offer=offer, status__in=Transaction.LIVE_STATUSES)
            if live.exists():
                if not live_before:
                    raise ConflictException('A payment for this offer was started by another request.')
                raise ValidationException({'offer_id': ['A payment for this offer already exists.']})

            payment = Transaction.objects.create(
                offer=offer,
                buyer=buyer,
                provider=offer.provider,
                amount=offer.price,
                currency=offer.currency,
                status=Transaction.STATUS_PENDING,
                payment_gateway=self.gateway.name,
            )

        # The pending row is committed before the gateway call so it blocks
        # other initializations while no lock is held.
        request = ThreeDSRequest(
            conversation_id=payment.conversation_id,
            amount=payment.amount,
            currency=payment.currency,
            callback_url=getattr(settings, 'PAYMENT_CALLBACK_URL', ''),
            basket_id=str(offer.id),
            item_name=offer.need.title,
            card=data.get('card') or {},
            buyer=self._build_buyer(buyer, data.get('buyer'), client_ip),
        )
        try:
            result = self.gateway.initialize_3ds(request)
        except Exception as e:
            payment.status = Transaction.STATUS_FAILED
            payment.error_message = 'Payment gateway error.'
            payment.save(update_fields=['status', 'error_message', 'updated_at'])
            logger.error(
                f"Gateway raised during 3DS initialize. Transaction ID: {payment.id}, Error: {e}",
                exc_info=True
            )
            raise

        if result.success and result.html_content:
            payment.status = Transaction.STATUS_PROCESSING
            payment.payment_token = result.payment_id or ''
            payment.three_ds_html_content = result.html_content
            payment.save(update_fields=[
                'status', 'payment_token', 'three_ds_html_content', 'updated_at'
            ])
            logger.info(
                f"Payment initialized. Transaction ID: {payment.id}, Offer ID: {offer.id}, "
                f"Amount: {payment.amount} {payment.currency}"
            )
            message = '3-D Secure verification started.'
        else:
            payment.status = Transaction.STATUS_FAILED
            payment.error_message = result.error_message or 'Payment initialization failed.'
            payment.save(update_fields=['status', 'error_message', 'updated_at'])
            logger.warning(
                f"Payment initialization rejected. Transaction ID: {payment.id}, "
                f"Error: {payment.error_message}"
            )
            message = payment.error_message

        return {
            'transaction_id': payment.id,
            'status': payment.status,
            'three_ds_html_content': payment.three_ds_html_content,
            'success': payment.status == Transaction.STATUS_PROCESSING,
            'message': message,
        }

    def handle_callback(self, conversation_id, payment_id=None):
        """
        Finish a payment after the gateway's 3-D Secure redirect.

        The gateway is queried again for the final state; the callback payload
        itself is not trusted. Callbacks for transactions that are no longer
        processing are ignored, so repeated callbacks are harmless.

        Returns:
            Transaction: The updated transaction

        Raises:
            NotFoundException: If no transaction has this conversation id
        """
        payment = Transaction.objects.filter(conversation_id=conversation_id).first()
        if payment is None:
            raise NotFoundException('Transaction not found.')
        if payment.status != Transaction.STATUS_PROCESSING:
            logger.info(
                f"Ignoring callback for transaction in status {payment.status}. "
                f"Transaction ID: {payment.id}"
            )
            return payment

        result = self.gateway.retrieve_payment(conversation_id, payment_id or payment.payment_token)

        with transaction.atomic():
            payment, _ = self._lock_transaction(payment.id)
            if payment.status != Transaction.STATUS_PROCESSING:
                return payment

            if result.success:
                payment.status = Transaction.STATUS_COMPLETED
                payment.gateway_transaction_id = result.payment_id or ''
                payment.completed_at = timezone.now()
                payment.save(update_fields=[
                    'status', 'gateway_transaction_id', 'completed_at', 'updated_at'
                ])
                self.notifications.notify(
                    payment.buyer,
                    Notification.TYPE_PAYMENT,
                    'Payment received',
                    f'Your payment of {payment.amount} {payment.currency} is held in escrow.',
                    {'transaction_id': payment.id, 'offer_id': payment.offer_id},
                )
                self.notifications.notify(
                    payment.provider,
                    Notification.TYPE_PAYMENT,
                    'Payment secured',
                    f'The buyer paid {payment.amount} {payment.currency} into escrow. You can start the job.',
                    {'transaction_id': payment.id, 'offer_id': payment.offer_id},
                )
                logger.info(f"Payment completed. Transaction ID: {payment.id}")
            else:
                payment.status = Transaction.STATUS_FAILED
                payment.error_message = result.error_message or 'Payment failed.'
                payment.save(update_fields=['status', 'error_message', 'updated_at'])
                logger.warning(
                    f"Payment failed at callback. Transaction ID: {payment.id}, "
                    f"Error: {payment.error_message}"
                )

        return payment

    # ========================================================================
    # Release & refund
    # ========================================================================

    def release_payment(self, user, transaction_id):
        """
        Release escrowed funds to the provider.

        Raises:
            NotFoundException: If the transaction does not exist
            UnauthorizedException: If the caller is not the buyer
            ValidationException: If the transaction is not completed
            ConflictException: If a concurrent request changed it first
        """
        with transaction.atomic():
            payment, observed_status = self._lock_transaction(transaction_id)
            if payment.buyer_id != user.id:
                raise UnauthorizedException('Only the buyer can release this payment.')
            self._ensure_status(payment, observed_status, Transaction.STATUS_COMPLETED, 'released')

            payment.status = Transaction.STATUS_RELEASED
            payment.released_at = timezone.now()
            payment.save(update_fields=['status', 'released_at', 'updated_at'])

            need = self._set_need_status(payment.offer.need_id, Need.STATUS_COMPLETED)

            self.notifications.notify(
                payment.provider,
                Notification.TYPE_PAYMENT,
                'Payment released',
                f'{payment.amount} {payment.currency} for "{need.title}" has been released to you.',
                {'transaction_id': payment.id, 'offer_id': payment.offer_id},
            )

        logger.info(f"Payment released. Transaction ID: {payment.id}, Buyer ID: {user.id}")
        return payment

    def refund_payment(self, user, transaction_id, reason=''):
        """
        Refund escrowed funds to the buyer.

        Only the local record changes; no reversal is sent to the gateway, so
        every refund is logged for manual reconciliation.

        Raises:
            NotFoundException: If the transaction does not exist
            UnauthorizedException: If the caller is neither buyer nor provider
            ValidationException: If the transaction is not completed
            ConflictException: If a concurrent request changed it first
        """
        with transaction.atomic():
            payment, observed_status = self._lock_transaction(transaction_id)
            if not payment.is_party(user):
                raise UnauthorizedException('Only the buyer or provider can refund this payment.')
            self._ensure_status(payment, observed_status, Transaction.STATUS_COMPLETED, 'refunded')

            payment.status = Transaction.STATUS_REFUNDED
            payment.refunded_at = timezone.now()
            payment.metadata = {
                **(payment.metadata or {}),
                'refund_reason': reason or '',
                'refunded_by': user.id,
            }
            payment.save(update_fields=['status', 'refunded_at', 'metadata', 'updated_at'])

            need = self._set_need_status(payment.offer.need_id, Need.STATUS_CANCELLED)

            for party in (payment.buyer, payment.provider):
                self.notifications.notify(
                    party,
                    Notification.TYPE_PAYMENT,
                    'Payment refunded',
                    f'The payment of {payment.amount} {payment.currency} for "{need.title}" was refunded.',
                    {'transaction_id': payment.id, 'offer_id': payment.offer_id, 'reason': reason or ''},
                )

        logger.warning(
            f"Payment refunded locally; gateway reversal must be reconciled manually. "
            f"Transaction ID: {payment.id}, Gateway payment: {payment.gateway_transaction_id}, "
            f"Amount: {payment.amount} {payment.currency}, By user: {user.id}"
        )
        return payment

    # ========================================================================
    # Queries
    # ========================================================================

    def get_transaction(self, user, transaction_id):
        payment = (
            Transaction.objects.select_related('buyer', 'provider', 'offer')
            .filter(pk=transaction_id)
            .first()
        )
        if payment is None:
            raise NotFoundException('Transaction not found.')
        if not payment.is_party(user):
            raise UnauthorizedException('You do not have access to this transaction.')
        return payment

    def get_transaction_for_offer(self, user, offer_id):
        """
        Return the most recent transaction for an offer.

        Raises:
            NotFoundException: If the offer or its transaction does not exist
            UnauthorizedException: If the user is not a party to the offer
        """
        offer = Offer.objects.select_related('need').filter(pk=offer_id).first()
        if offer is None:
            raise NotFoundException('Offer not found.')
        if not offer.is_party(user):
            raise UnauthorizedException('You do not have access to this offer.')
        payment = (
            Transaction.objects.select_related('buyer', 'provider', 'offer')
            .filter(offer=offer)
            .order_by('-created_at', '-id')
            .first()
        )
        if payment is None:
            raise NotFoundException('No transaction exists for this offer.')
        return payment

    def user_transactions(self, user, filters=None):
        """
        Transactions where the user is buyer or provider, newest first.

        Supported filters: offer_id, status, payment_gateway, created_from, created_to.
        """
        filters = filters or {}
        queryset = (
            Transaction.objects.select_related('buyer', 'provider', 'offer')
            .filter(Q(buyer=user) | Q(provider=user))
        )
        if filters.get('offer_id'):
            queryset = queryset.filter(offer_id=filters['offer_id'])
        if filters.get('status'):
            queryset = queryset.filter(status=filters['status'])
        if filters.get('payment_gateway'):
            queryset = queryset.filter(payment_gateway=filters['payment_gateway'])
        if filters.get('created_from'):
            queryset = queryset.filter(created_at__gte=filters['created_from'])
        if filters.get('created_to'):
            queryset = queryset.filter(created_at__lte=filters['created_to'])
        return queryset.order_by('-created_at', '-id')

    def payment_stats(self, user):
        """
        Summarize the user's payments.

        Returns:
            dict: total, completed (released), pending (pending, processing or
            completed), refunded, total_spent, total_earned, currency
        """
        involved = Transaction.objects.filter(Q(buyer=user) | Q(provider=user))
        counts = involved.aggregate(
            total=Count('id'),
            completed=Count('id', filter=Q(status=Transaction.STATUS_RELEASED)),
            pending=Count('id', filter=Q(status__in=Transaction.LIVE_STATUSES)),
            refunded=Count('id', filter=Q(status=Transaction.STATUS_REFUNDED)),
        )
        spent = (
            Transaction.objects.filter(buyer=user)
            .exclude(status__in=[Transaction.STATUS_REFUNDED, Transaction.STATUS_FAILED])
            .aggregate(total=Sum('amount'))['total']
        )
        earned = (
            Transaction.objects.filter(provider=user, status=Transaction.STATUS_RELEASED)
            .aggregate(total=Sum('amount'))['total']
        )
        return {
            **counts,
            'total_spent': spent or Decimal('0.00'),
            'total_earned': earned or Decimal('0.00'),
            'currency': getattr(settings, 'DEFAULT_CURRENCY', 'TRY'),
        }
