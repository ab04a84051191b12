"""
Need recommendations based on offer activity, location and the caller's
history, plus the behavior tracking that feeds interest profiles.
"""

import logging
from datetime import timedelta
from functools import partial

from django.db import DatabaseError, transaction
from django.db.models import Count
from django.utils import timezone

from ..metrics import increment_counter
from ..models import Need, Offer, UserBehavior
from ..search import haversine_km, normalize_query

logger = logging.getLogger(__name__)

TRENDING_WINDOW_DAYS = 7
POPULAR_WINDOW_DAYS = 7
PROFILE_WINDOW_DAYS = 30
MAX_PROFILE_KEYWORDS = 20
DEFAULT_RADIUS_KM = 25
KM_PER_DEGREE_LATITUDE = 111.0

BEHAVIOR_FAILURE_CACHE_KEY = 'metrics:behavior_tracking_failures'

ACTION_WEIGHTS = {
    UserBehavior.ACTION_VIEW_NEED: 1.0,
    UserBehavior.ACTION_CREATE_OFFER: 5.0,
    UserBehavior.ACTION_CONTACT_PROVIDER: 3.0,
    UserBehavior.ACTION_ACCEPT_OFFER: 10.0,
    UserBehavior.ACTION_SAVE_NEED: 2.0,
    UserBehavior.ACTION_SHARE_NEED: 2.0,
    UserBehavior.ACTION_SEARCH: 0.5,
}

# Upper bound (km, inclusive) and label of each distance band
DISTANCE_BANDS = [
    (1, 'within_1km'),
    (5, '1_5km'),
    (10, '5_10km'),
    (25, '10_25km'),
    (None, 'over_25km'),
]


def distance_band(distance_km):
    for upper, label in DISTANCE_BANDS:
        if upper is None or distance_km <= upper:
            return label


def activity_score(need, now=None):
    """
    Score how active a need is.

    Args:
        need: Need instance with `offer_count` annotated
        now: Reference time for the age boost

    Returns:
        int: offer_count plus boosts for urgency, budget, location and age
    """
    now = now or timezone.now()
    score = getattr(need, 'offer_count', 0) or 0

    if need.urgency == Need.URGENCY_URGENT:
        score += 20
    if need.has_budget:
        score += 5
    if need.has_location:
        score += 3

    age = now - need.created_at
    if age <= timedelta(days=1):
        score += 15
    elif age <= timedelta(days=3):
        score += 10
    elif age <= timedelta(days=7):
        score += 5

    return score


class RecommendationService:

    def _active_needs(self):
        return (
            Need.objects.filter(status=Need.STATUS_ACTIVE)
            .select_related('category', 'user')
            .prefetch_related('images')
            .annotate(offer_count=Count('offers', distinct=True))
        )

    def _rank(self, needs, limit):
        now = timezone.now()
        ranked = sorted(
            needs,
            key=lambda need: (activity_score(need, now), need.created_at, need.pk),
            reverse=True,
        )
        return ranked[:limit]

    def popular_needs(self, limit=10, days_back=POPULAR_WINDOW_DAYS):
        """
        Active needs posted in the last `days_back` days, ordered by activity
        score, best first. A days_back of None means no age limit.
        """
        needs = self._active_needs()
        if days_back is not None:
            needs = needs.filter(created_at__gte=timezone.now() - timedelta(days=days_back))
        return self._rank(needs, limit)

    def trending_needs(self, limit=10):
        """Active needs from the last week with the most offers."""
        since = timezone.now() - timedelta(days=TRENDING_WINDOW_DAYS)
        return list(
            self._active_needs()
            .filter(created_at__gte=since)
            .order_by('-offer_count', '-created_at', '-id')[:limit]
        )

    def recommended_for(self, user, limit=10):
        """
        Needs in categories the user has bid in, excluding their own needs and
        needs they already bid on. Users without a bidding history get popular
        needs instead.

        Returns:
            list[Need]: Recommended needs, best first
        """
        category_ids = set(
            Offer.objects.filter(provider=user).values_list('need__category_id', flat=True)
        )
        bid_need_ids = Offer.objects.filter(provider=user).values_list('need_id', flat=True)

        candidates = self._active_needs().exclude(user=user).exclude(pk__in=bid_need_ids)
        if not category_ids:
            logger.info(f"No bidding history for user {user.id}; recommending popular needs")
            return self._rank(candidates, limit)

        recommended = self._rank(candidates.filter(category_id__in=category_ids), limit)
        return recommended or self._rank(candidates, limit)

    # ========================================================================
    # Location
    # ========================================================================

    def location_based(self, latitude, longitude, radius_km=DEFAULT_RADIUS_KM, limit=20):
        """
        Active needs within radius_km of a point, nearest first.

        A latitude band is filtered in the database; the exact great-circle
        distance is checked in memory.

        Returns:
            dict: results (need, distance_km), center, radius_km and a
            distance_breakdown counting every need inside the radius
        """
        band = radius_km / KM_PER_DEGREE_LATITUDE
        candidates = self._active_needs().filter(
            latitude__isnull=False,
            longitude__isnull=False,
            latitude__gte=latitude - band,
            latitude__lte=latitude + band,
        )

        nearby = []
        for need in candidates:
            distance = round(haversine_km(latitude, longitude, need.latitude, need.longitude), 2)
            if distance <= radius_km:
                nearby.append((distance, -need.created_at.timestamp(), -need.pk, need))
        nearby.sort(key=lambda item: item[:3])

        breakdown = {label: 0 for _, label in DISTANCE_BANDS}
        for distance, _, _, _ in nearby:
            breakdown[distance_band(distance)] += 1

        return {
            'results': [{'need': need, 'distance_km': distance} for distance, _, _, need in nearby[:limit]],
            'center': {'latitude': latitude, 'longitude': longitude},
            'radius_km': radius_km,
            'distance_breakdown': breakdown,
        }

    # ========================================================================
    # Behavior tracking & interest profile
    # ========================================================================

    def track_behavior(self, user, action_type, target_id=None, target_type='', metadata=None,
                       ip_address=None, user_agent=''):
        """
        Record a user action after the current transaction commits.

        Tracking never affects the caller: failures are logged and counted
        under BEHAVIOR_FAILURE_CACHE_KEY.
        """
        if user is None or not user.is_authenticated:
            return
        transaction.on_commit(partial(
            self.save_behavior,
            user.id,
            action_type,
            target_id,
            target_type or '',
            metadata or {},
            ip_address,
            (user_agent or '')[:500],
        ))

    def save_behavior(self, user_id, action_type, target_id, target_type, metadata, ip_address, user_agent):
        try:
            with transaction.atomic():
                UserBehavior.objects.create(
                    user_id=user_id,
                    action_type=action_type,
                    target_id=target_id,
                    target_type=target_type,
                    metadata=metadata,
                    ip_address=ip_address,
                    user_agent=user_agent,
                )
        except DatabaseError as e:
            increment_counter(BEHAVIOR_FAILURE_CACHE_KEY)
            logger.warning(
                f"Could not record behavior. User ID: {user_id}, Action: {action_type}, Error: {e}"
            )

    def interest_profile(self, user, days=PROFILE_WINDOW_DAYS):
        """
        Summarize what a user has been interested in recently.

        Category interest is the weighted sum of the user's actions on needs
        in that category. Keyword interest counts the words (longer than two
        characters) of the user's searches.

        Returns:
            dict: category_interests (best first), keyword_interests (most
            frequent first), action_counts and period_days
        """
        since = timezone.now() - timedelta(days=days)
        behaviors = list(UserBehavior.objects.filter(user=user, created_at__gte=since))

        need_ids = {
            behavior.target_id for behavior in behaviors
            if behavior.target_type == UserBehavior.TARGET_NEED and behavior.target_id
        }
        categories = {
            need.id: need.category
            for need in Need.objects.filter(pk__in=need_ids).select_related('category')
        }

        category_scores = {}
        keyword_counts = {}
        action_counts = {}
        for behavior in behaviors:
            action_counts[behavior.action_type] = action_counts.get(behavior.action_type, 0) + 1

            category = None
            if behavior.target_type == UserBehavior.TARGET_NEED:
                category = categories.get(behavior.target_id)
            if category is not None:
                weight = ACTION_WEIGHTS.get(behavior.action_type, 1.0)
                entry = category_scores.setdefault(category.id, {'category': category, 'score': 0.0})
                entry['score'] += weight

            if behavior.action_type == UserBehavior.ACTION_SEARCH:
                query = normalize_query((behavior.metadata or {}).get('query'))
                for word in query.split(' '):
                    if len(word) > 2:
                        keyword_counts[word] = keyword_counts.get(word, 0) + 1

        category_interests = sorted(
            (
                {'category_id': entry['category'].id, 'category_name': entry['category'].name,
                 'score': round(entry['score'], 2)}
                for entry in category_scores.values()
            ),
            key=lambda item: (-item['score'], item['category_name']),
        )
        keyword_interests = sorted(
            ({'keyword': word, 'count': count} for word, count in keyword_counts.items()),
            key=lambda item: (-item['count'], item['keyword']),
        )
        return {
            'category_interests': category_interests,
            'keyword_interests': keyword_interests[:MAX_PROFILE_KEYWORDS],
            'action_counts': action_counts,
            'period_days': days,
        }
