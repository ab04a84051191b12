"""
Django signals for automatic rating recalculation.

This module contains signal receivers that keep a user's rating and
review_count in sync with the visible reviews they have received.
"""

import logging
from decimal import Decimal

from django.db import transaction
from django.db.models import Avg, Count
from django.db.models.signals import post_delete, post_save
from django.dispatch import receiver

from .models import Review, User

logger = logging.getLogger(__name__)


def recalculate_user_rating(user_id):
    """
    Recompute rating and review_count for a user from visible reviews.

    The user row is locked while the aggregate is written so concurrent
    review changes cannot interleave.

    Args:
        user_id: Primary key of the reviewee

    Returns:
        User: The updated user, or None if the user no longer exists
    """
    with transaction.atomic():
        user = User.objects.select_for_update().filter(pk=user_id).first()
        if user is None:
            return None

        stats = Review.objects.filter(reviewee_id=user_id, is_visible=True).aggregate(
            avg=Avg('rating'),
            total=Count('id'),
        )
        avg_rating = stats['avg']
        user.rating = (
            Decimal(str(avg_rating)).quantize(Decimal('0.01')) if avg_rating else Decimal('0.00')
        )
        user.review_count = stats['total'] or 0
        user.save(update_fields=['rating', 'review_count'])
        return user


@receiver(post_save, sender=Review)
def update_rating_on_review_save(sender, instance, created, **kwargs):
    """
    Signal receiver to update the reviewee's rating when a review is created,
    edited or has its visibility changed.

    Runs in the same transaction as Review.save(); if the recalculation fails
    the review change is rolled back too.
    """
    try:
        user = recalculate_user_rating(instance.reviewee_id)
        action = "created" if created else "updated"
        if user is not None:
            logger.info(
                f"Updated rating for review {instance.id} ({action}): "
                f"reviewee={user.email}, rating={user.rating}, count={user.review_count}"
            )
    except Exception as e:
        logger.error(
            f"Error updating rating for review {instance.id}: {e}",
            exc_info=True
        )
        raise


@receiver(post_delete, sender=Review)
def update_rating_on_review_delete(sender, instance, **kwargs):
    """
    Signal receiver to update the reviewee's rating when a review is deleted.
    A user with no visible reviews left goes back to 0.00.
    """
    try:
        user = recalculate_user_rating(instance.reviewee_id)
        if user is not None:
            logger.info(
                f"Updated rating after deleting review {instance.id}: "
                f"reviewee={user.email}, rating={user.rating}"
            )
    except Exception as e:
        logger.error(
            f"Error updating rating after deleting review {instance.id}: {e}",
            exc_info=True
        )
        raise
