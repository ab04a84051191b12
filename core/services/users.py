"""
Per-user statistics: a private view for the account owner and a public one
shown on profiles. Both are cached for five minutes.
"""

import logging
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.core.cache import cache
from django.db.models import Avg, Count, Q, Sum

from ..exceptions import NotFoundException
from ..models import Need, Offer, Review, Transaction
from .verification import VerificationService

logger = logging.getLogger(__name__)

User = get_user_model()

STATISTICS_CACHE_SECONDS = 5 * 60


def _rating_summary(user):
    summary = Review.objects.filter(reviewee=user, is_visible=True).aggregate(
        average=Avg('rating'),
        count=Count('id'),
    )
    return round(float(summary['average'] or 0), 2), summary['count']


def _completed_transactions(user):
    return Transaction.objects.filter(
        Q(buyer=user) | Q(provider=user),
        status=Transaction.STATUS_RELEASED,
    ).count()


class UserService:
    """Statistics about a user's activity on the marketplace."""

    def __init__(self, verification=None):
        self.verification = verification or VerificationService()

    def statistics(self, user):
        """
        Full statistics for the account owner, including money figures.

        Only released transactions count as completed, spent or earned.

        Returns:
            dict: needs_count, offers_given_count, offers_received_count,
            completed_transactions_count, total_spent, total_earned,
            average_rating, review_count, verification_badges, member_since
        """
        cache_key = f'user_stats:{user.id}'
        stats = cache.get(cache_key)
        if stats is not None:
            return stats

        released = Transaction.objects.filter(status=Transaction.STATUS_RELEASED)
        total_spent = released.filter(buyer=user).aggregate(total=Sum('amount'))['total']
        total_earned = released.filter(provider=user).aggregate(total=Sum('amount'))['total']
        average_rating, review_count = _rating_summary(user)
        stats = {
            'needs_count': Need.objects.filter(user=user).count(),
            'offers_given_count': Offer.objects.filter(provider=user).count(),
            'offers_received_count': Offer.objects.filter(need__user=user).count(),
            'completed_transactions_count': _completed_transactions(user),
            'total_spent': total_spent or Decimal('0.00'),
            'total_earned': total_earned or Decimal('0.00'),
            'average_rating': average_rating,
            'review_count': review_count,
            'verification_badges': self.verification.badges(user),
            'member_since': user.created_at,
        }
        cache.set(cache_key, stats, timeout=STATISTICS_CACHE_SECONDS)
        logger.info(f"User statistics calculated. User ID: {user.id}")
        return stats

    def public_statistics(self, user_id):
        """
        Statistics anyone may see: no counts of needs or offers, no money.

        Raises:
            NotFoundException: If the user does not exist or is inactive
        """
        cache_key = f'user_public_stats:{user_id}'
        stats = cache.get(cache_key)
        if stats is not None:
            return stats

        user = User.objects.filter(pk=user_id, is_active=True).first()
        if user is None:
            raise NotFoundException('User not found.')

        average_rating, review_count = _rating_summary(user)
        stats = {
            'user_id': user.id,
            'user_type': user.user_type,
            'completed_transactions_count': _completed_transactions(user),
            'average_rating': average_rating,
            'review_count': review_count,
            'verification_badges': self.verification.badges(user),
            'member_since': user.created_at,
        }
        cache.set(cache_key, stats, timeout=STATISTICS_CACHE_SECONDS)
        return stats
