"""
Reviews between the two parties of an accepted offer.
"""

import logging

from django.contrib.auth import get_user_model
from django.db import IntegrityError, transaction
from django.db.models import Avg, Count, Q

from ..exceptions import NotFoundException, UnauthorizedException, ValidationException
from ..models import Offer, Review

logger = logging.getLogger(__name__)

User = get_user_model()


class ReviewService:
    """Business logic for creating, editing and moderating reviews."""

    def base_queryset(self):
        return Review.objects.select_related('reviewer', 'reviewee', 'offer')

    def _shares_accepted_offer(self, first, second):
        return Offer.objects.filter(status=Offer.STATUS_ACCEPTED).filter(
            Q(provider=first, need__user=second) | Q(provider=second, need__user=first)
        ).exists()

    def create_review(self, reviewer, data):
        """
        Review another user.

        With an offer_id the reviewer and reviewee must be the buyer and the
        provider of that accepted offer. Without one, the two users must share
        at least one accepted offer.

        Args:
            reviewer: User writing the review
            data: Validated fields: reviewee_id, rating, comment, optional offer_id

        Returns:
            Review: The created review

        Raises:
            NotFoundException: If the reviewee or offer does not exist
            UnauthorizedException: If the reviewer is not a party to the offer
            ValidationException: For self reviews, unaccepted offers and duplicates
        """
        reviewee = User.objects.filter(pk=data['reviewee_id']).first()
        if reviewee is None:
            raise NotFoundException('User not found.')
        if reviewee.id == reviewer.id:
            raise ValidationException({'reviewee_id': ['You cannot review yourself.']})

        offer = None
        offer_id = data.get('offer_id')
        if offer_id:
            offer = Offer.objects.select_related('need').filter(pk=offer_id).first()
            if offer is None:
                raise NotFoundException('Offer not found.')
            parties = {offer.provider_id, offer.need.user_id}
            if reviewer.id not in parties:
                raise UnauthorizedException('Only the parties to an offer can review it.')
            if reviewee.id not in parties:
                raise ValidationException({'reviewee_id': ['The reviewee must be the other party to this offer.']})
            if offer.status != Offer.STATUS_ACCEPTED:
                raise ValidationException({'offer_id': ['Only accepted offers can be reviewed.']})
        elif not self._shares_accepted_offer(reviewer, reviewee):
            raise UnauthorizedException('You can only review users you have worked with.')

        if Review.objects.filter(reviewer=reviewer, reviewee=reviewee, offer=offer).exists():
            raise ValidationException({'non_field_errors': ['You have already reviewed this user for this offer.']})

        try:
            with transaction.atomic():
                review = Review.objects.create(
                    reviewer=reviewer,
                    reviewee=reviewee,
                    offer=offer,
                    rating=data['rating'],
                    comment=(data.get('comment') or '').strip(),
                )
        except IntegrityError:
            # A concurrent request created the same review
            raise ValidationException({'non_field_errors': ['You have already reviewed this user for this offer.']})

        logger.info(
            f"Review created. Review ID: {review.id}, Reviewer: {reviewer.id}, "
            f"Reviewee: {reviewee.id}, Rating: {review.rating}"
        )
        return review

    def update_review(self, reviewer, review_id, data):
        """
        Change the rating or comment of one's own review.

        Raises:
            NotFoundException, UnauthorizedException
        """
        review = self.base_queryset().filter(pk=review_id).first()
        if review is None:
            raise NotFoundException('Review not found.')
        if review.reviewer_id != reviewer.id:
            raise UnauthorizedException('You can only edit your own reviews.')

        if 'rating' in data:
            review.rating = data['rating']
        if 'comment' in data:
            review.comment = (data['comment'] or '').strip()
        review.full_clean()
        review.save()

        logger.info(f"Review updated. Review ID: {review.id}, Reviewer: {reviewer.id}")
        return review

    def delete_review(self, reviewer, review_id):
        review = Review.objects.filter(pk=review_id).first()
        if review is None:
            raise NotFoundException('Review not found.')
        if review.reviewer_id != reviewer.id and not reviewer.is_staff:
            raise UnauthorizedException('You can only delete your own reviews.')
        review.delete()
        logger.info(f"Review deleted. Review ID: {review_id}, By user: {reviewer.id}")

    def set_visibility(self, moderator, review_id, is_visible):
        """
        Show or hide a review. Staff only.

        Raises:
            NotFoundException, UnauthorizedException
        """
        if not moderator.is_staff:
            raise UnauthorizedException('Only staff can moderate reviews.')
        review = self.base_queryset().filter(pk=review_id).first()
        if review is None:
            raise NotFoundException('Review not found.')
        review.is_visible = is_visible
        review.save(update_fields=['is_visible', 'updated_at'])
        logger.info(
            f"Review visibility changed. Review ID: {review.id}, Visible: {is_visible}, "
            f"Moderator: {moderator.id}"
        )
        return review

    def reviews_for_user(self, user_id):
        """
        Visible reviews a user has received, with summary statistics.

        Returns:
            tuple: (queryset, summary) where summary holds average_rating,
            total_reviews and rating_distribution ({1: n, ..., 5: n})

        Raises:
            NotFoundException: If the user does not exist
        """
        if not User.objects.filter(pk=user_id).exists():
            raise NotFoundException('User not found.')

        queryset = (
            self.base_queryset()
            .filter(reviewee_id=user_id, is_visible=True)
            .order_by('-created_at', '-id')
        )
        aggregates = queryset.aggregate(average=Avg('rating'), total=Count('id'))
        distribution = {rating: 0 for rating in range(1, 6)}
        for row in queryset.order_by().values('rating').annotate(count=Count('id')):
            distribution[row['rating']] = row['count']

        summary = {
            'average_rating': round(aggregates['average'], 2) if aggregates['average'] else 0,
            'total_reviews': aggregates['total'],
            'rating_distribution': distribution,
        }
        return queryset, summary
