"""
Popular, trending, location based and personalised need recommendations,
plus behavior tracking and interest profiles.
"""

from datetime import timedelta
from decimal import Decimal
from unittest import mock

import pytest
from django.db import DatabaseError
from django.urls import reverse
from django.utils import timezone
from rest_framework import status

from core.metrics import get_counter
from core.models import Category, Need, Offer, UserBehavior
from core.services import RecommendationService
from core.services.recommendations import BEHAVIOR_FAILURE_CACHE_KEY, activity_score, distance_band


@pytest.fixture
def recommendations():
    return RecommendationService()


@pytest.fixture
def cleaning(db):
    return Category.objects.create(name='Cleaning')


def post_need(user, category, title, **kwargs):
    return Need.objects.create(user=user, category=category, title=title, description='Details inside.', **kwargs)


def bid(need, provider, price='1000.00'):
    return Offer.objects.create(
        need=need, provider=provider, price=Decimal(price), description='Can do it', delivery_days=2,
    )


def age(need, days):
    Need.objects.filter(pk=need.pk).update(created_at=timezone.now() - timedelta(days=days))


class TestActivityScore:

    def test_all_signals(self):
        now = timezone.now()
        need = Need(
            urgency=Need.URGENCY_URGENT,
            max_budget=Decimal('500.00'),
            latitude=Decimal('41.0'),
            longitude=Decimal('29.0'),
        )
        need.created_at = now - timedelta(hours=3)
        need.offer_count = 4

        # offers 4, urgent 20, budget 5, location 3, fresh 15
        assert activity_score(need, now) == 47

    @pytest.mark.parametrize('days,expected', [(2, 10), (5, 5), (10, 0)])
    def test_age_boost(self, days, expected):
        now = timezone.now()
        need = Need(urgency=Need.URGENCY_NORMAL)
        need.created_at = now - timedelta(days=days)

        assert activity_score(need, now) == expected


@pytest.mark.django_db
class TestPopularAndTrending:

    def test_popular_orders_by_activity(self, recommendations, buyer, category):
        calm = post_need(buyer, category, 'Calm need')
        urgent = post_need(buyer, category, 'Urgent need', urgency=Need.URGENCY_URGENT)
        closed = post_need(buyer, category, 'Closed need', urgency=Need.URGENCY_URGENT)
        closed.status = Need.STATUS_CANCELLED
        closed.save()

        assert recommendations.popular_needs() == [urgent, calm]

    def test_popular_limit(self, recommendations, buyer, category):
        for index in range(3):
            post_need(buyer, category, f'Need {index}')

        assert len(recommendations.popular_needs(limit=2)) == 2

    def test_trending_by_offer_count_within_a_week(self, recommendations, buyer, category, provider, other_provider):
        quiet = post_need(buyer, category, 'Quiet')
        busy = post_need(buyer, category, 'Busy')
        old_busy = post_need(buyer, category, 'Old but busy')
        bid(busy, provider)
        bid(busy, other_provider)
        for offer_provider in (provider, other_provider):
            bid(old_busy, offer_provider)
        age(old_busy, 10)

        trending = recommendations.trending_needs()

        assert trending == [busy, quiet]
        assert trending[0].offer_count == 2


@pytest.mark.django_db
class TestRecommendedFor:

    def test_matches_bidding_categories(self, recommendations, buyer, provider, category, cleaning):
        bid_on = post_need(buyer, category, 'Already bid')
        bid(bid_on, provider)
        fresh_move = post_need(buyer, category, 'Another move')
        post_need(buyer, cleaning, 'Clean the flat')
        post_need(provider, category, 'Provider own need')

        assert recommendations.recommended_for(provider) == [fresh_move]

    def test_no_history_falls_back_to_popular(self, recommendations, buyer, provider, category, cleaning):
        move = post_need(buyer, category, 'Move', urgency=Need.URGENCY_URGENT)
        clean = post_need(buyer, cleaning, 'Clean')

        assert recommendations.recommended_for(provider) == [move, clean]

    def test_exhausted_categories_fall_back_to_popular(self, recommendations, buyer, provider, category, cleaning):
        bid(post_need(buyer, category, 'Only move'), provider)
        clean = post_need(buyer, cleaning, 'Clean')

        assert recommendations.recommended_for(provider) == [clean]


@pytest.mark.django_db
class TestRecommendationAPI:

    def test_popular_is_public(self, api_client, need):
        response = api_client.get(reverse('recommendation_popular'))

        assert response.status_code == status.HTTP_200_OK
        assert [item['id'] for item in response.data] == [need.id]
        assert response.data[0]['offer_count'] == 0

    def test_for_me_requires_auth(self, api_client):
        response = api_client.get(reverse('recommendation_for_me'))

        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_for_me(self, api_client, provider, need):
        api_client.force_authenticate(user=provider)

        response = api_client.get(reverse('recommendation_for_me'), {'limit': 5})

        assert response.status_code == status.HTTP_200_OK
        assert [item['id'] for item in response.data] == [need.id]

    def test_invalid_limit(self, api_client):
        response = api_client.get(reverse('recommendation_popular'), {'limit': 'many'})

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert 'limit' in response.data['errors']

    def test_popular_days_back(self, api_client, buyer, category):
        fresh = post_need(buyer, category, 'Fresh')
        old = post_need(buyer, category, 'Three weeks old')
        age(old, 21)

        default = api_client.get(reverse('recommendation_popular'))
        wide = api_client.get(reverse('recommendation_popular'), {'days_back': 30})

        assert [item['id'] for item in default.data] == [fresh.id]
        assert [item['id'] for item in wide.data] == [fresh.id, old.id]

    @pytest.mark.parametrize('days_back', ['soon', '0', '400'])
    def test_invalid_days_back(self, api_client, days_back):
        response = api_client.get(reverse('recommendation_popular'), {'days_back': days_back})

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert 'days_back' in response.data['errors']


@pytest.mark.django_db
class TestPopularWindow:

    def test_default_window_is_a_week(self, recommendations, buyer, category):
        fresh = post_need(buyer, category, 'Fresh')
        age(post_need(buyer, category, 'Old'), 10)

        assert recommendations.popular_needs() == [fresh]

    def test_no_window(self, recommendations, buyer, category):
        fresh = post_need(buyer, category, 'Fresh')
        old = post_need(buyer, category, 'Old')
        age(old, 100)

        assert recommendations.popular_needs(days_back=None) == [fresh, old]


CENTER = (41.0082, 28.9784)


def post_located_need(user, category, title, latitude, longitude, **kwargs):
    return post_need(
        user, category, title,
        latitude=Decimal(str(latitude)), longitude=Decimal(str(longitude)),
        **kwargs
    )


@pytest.mark.parametrize('distance,label', [
    (0.4, 'within_1km'),
    (1.0, 'within_1km'),
    (3.2, '1_5km'),
    (7.5, '5_10km'),
    (25.0, '10_25km'),
    (40.0, 'over_25km'),
])
def test_distance_band(distance, label):
    assert distance_band(distance) == label


@pytest.mark.django_db
class TestLocationBased:

    def test_nearest_first_within_radius(self, recommendations, buyer, category):
        near = post_located_need(buyer, category, 'Next door', 41.0090, 28.9784)
        close = post_located_need(buyer, category, 'Three km north', 41.0352, 28.9784)
        # Inside the latitude band but about 42 km east
        post_located_need(buyer, category, 'East', 41.0082, 29.4784)
        post_located_need(buyer, category, 'Far north', 41.5082, 28.9784)
        post_need(buyer, category, 'Nowhere')

        result = recommendations.location_based(*CENTER, radius_km=25)

        assert [item['need'] for item in result['results']] == [near, close]
        assert result['results'][0]['distance_km'] < 1
        assert 2.5 < result['results'][1]['distance_km'] < 3.5
        assert result['center'] == {'latitude': CENTER[0], 'longitude': CENTER[1]}
        assert result['distance_breakdown'] == {
            'within_1km': 1, '1_5km': 1, '5_10km': 0, '10_25km': 0, 'over_25km': 0,
        }

    def test_only_active_needs(self, recommendations, buyer, category):
        closed = post_located_need(buyer, category, 'Closed', *CENTER)
        closed.status = Need.STATUS_CANCELLED
        closed.save()

        assert recommendations.location_based(*CENTER)['results'] == []

    def test_limit_keeps_full_breakdown(self, recommendations, buyer, category):
        for index in range(3):
            post_located_need(buyer, category, f'Spot {index}', *CENTER)

        result = recommendations.location_based(*CENTER, limit=2)

        assert len(result['results']) == 2
        assert result['distance_breakdown']['within_1km'] == 3

    def test_same_distance_newest_first(self, recommendations, buyer, category):
        older = post_located_need(buyer, category, 'Older', *CENTER)
        age(older, 2)
        newer = post_located_need(buyer, category, 'Newer', *CENTER)

        result = recommendations.location_based(*CENTER)

        assert [item['need'] for item in result['results']] == [newer, older]

    def test_api(self, api_client, buyer, category):
        need = post_located_need(buyer, category, 'Next door', 41.0090, 28.9784)

        response = api_client.get(reverse('recommendation_location'), {
            'latitude': CENTER[0], 'longitude': CENTER[1], 'radius_km': 5,
        })

        assert response.status_code == status.HTTP_200_OK
        assert response.data['radius_km'] == 5
        assert response.data['results'][0]['need']['id'] == need.id
        assert response.data['distance_breakdown']['within_1km'] == 1

    def test_api_requires_both_coordinates(self, api_client):
        response = api_client.get(reverse('recommendation_location'), {'latitude': CENTER[0]})

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert 'longitude' in response.data['errors']


@pytest.mark.django_db
class TestBehaviorTracking:

    def test_saved_after_commit(self, recommendations, buyer, need, django_capture_on_commit_callbacks):
        with django_capture_on_commit_callbacks() as callbacks:
            recommendations.track_behavior(
                buyer, UserBehavior.ACTION_SAVE_NEED, need.id, UserBehavior.TARGET_NEED,
                ip_address='10.0.0.1', user_agent='pytest',
            )
            assert not UserBehavior.objects.exists()

        assert len(callbacks) == 1
        callbacks[0]()

        behavior = UserBehavior.objects.get()
        assert behavior.user == buyer
        assert behavior.action_type == UserBehavior.ACTION_SAVE_NEED
        assert behavior.target_id == need.id
        assert behavior.ip_address == '10.0.0.1'
        assert behavior.metadata == {}

    def test_anonymous_not_tracked(self, recommendations, django_capture_on_commit_callbacks):
        from django.contrib.auth.models import AnonymousUser

        with django_capture_on_commit_callbacks() as callbacks:
            recommendations.track_behavior(AnonymousUser(), UserBehavior.ACTION_SEARCH)

        assert callbacks == []

    def test_failure_is_counted(self, recommendations, buyer, django_capture_on_commit_callbacks):
        with mock.patch.object(UserBehavior.objects, 'create', side_effect=DatabaseError('disk full')):
            with django_capture_on_commit_callbacks(execute=True):
                recommendations.track_behavior(buyer, UserBehavior.ACTION_SEARCH, metadata={'query': 'x'})

        assert not UserBehavior.objects.exists()
        assert get_counter(BEHAVIOR_FAILURE_CACHE_KEY) == 1

    def test_api_accepts(self, api_client, buyer, need, django_capture_on_commit_callbacks):
        api_client.force_authenticate(user=buyer)

        with django_capture_on_commit_callbacks(execute=True):
            response = api_client.post(reverse('track_behavior'), {
                'action_type': 'share_need', 'target_id': need.id, 'target_type': 'need',
                'metadata': {'channel': 'whatsapp'},
            }, format='json')

        assert response.status_code == status.HTTP_202_ACCEPTED
        behavior = UserBehavior.objects.get()
        assert behavior.action_type == UserBehavior.ACTION_SHARE_NEED
        assert behavior.metadata == {'channel': 'whatsapp'}

    def test_api_target_id_needs_type(self, api_client, buyer, need):
        api_client.force_authenticate(user=buyer)

        response = api_client.post(reverse('track_behavior'), {
            'action_type': 'save_need', 'target_id': need.id,
        }, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert 'target_type' in response.data['errors']

    def test_api_requires_auth(self, api_client):
        response = api_client.post(reverse('track_behavior'), {'action_type': 'search'}, format='json')

        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_need_view_is_tracked(self, api_client, provider, need, django_capture_on_commit_callbacks):
        api_client.force_authenticate(user=provider)

        with django_capture_on_commit_callbacks(execute=True):
            api_client.get(reverse('need_detail', args=[need.id]))

        behavior = UserBehavior.objects.get()
        assert behavior.user == provider
        assert behavior.action_type == UserBehavior.ACTION_VIEW_NEED
        assert behavior.target_id == need.id

    def test_anonymous_need_view_is_not_tracked(self, api_client, need, django_capture_on_commit_callbacks):
        with django_capture_on_commit_callbacks(execute=True):
            response = api_client.get(reverse('need_detail', args=[need.id]))

        assert response.status_code == status.HTTP_200_OK
        assert not UserBehavior.objects.exists()


def record(user, action_type, target=None, **metadata):
    return UserBehavior.objects.create(
        user=user,
        action_type=action_type,
        target_id=target.id if target else None,
        target_type=UserBehavior.TARGET_NEED if target else '',
        metadata=metadata,
    )


@pytest.mark.django_db
class TestInterestProfile:

    def test_weighted_categories_and_keywords(self, recommendations, provider, buyer, need, cleaning):
        clean = post_need(buyer, cleaning, 'Clean the flat')
        record(provider, UserBehavior.ACTION_VIEW_NEED, need)
        record(provider, UserBehavior.ACTION_CREATE_OFFER, need)
        record(provider, UserBehavior.ACTION_SAVE_NEED, clean)
        record(provider, UserBehavior.ACTION_SEARCH, query='Piano moving')
        record(provider, UserBehavior.ACTION_SEARCH, query='piano  MOVING')
        record(provider, UserBehavior.ACTION_SEARCH, query='a piano')

        profile = recommendations.interest_profile(provider)

        assert profile['category_interests'] == [
            {'category_id': need.category_id, 'category_name': 'Moving', 'score': 6.0},
            {'category_id': cleaning.id, 'category_name': 'Cleaning', 'score': 2.0},
        ]
        assert profile['keyword_interests'] == [
            {'keyword': 'piano', 'count': 3},
            {'keyword': 'moving', 'count': 2},
        ]
        assert profile['action_counts'] == {'view_need': 1, 'create_offer': 1, 'save_need': 1, 'search': 3}
        assert profile['period_days'] == 30

    def test_old_and_foreign_behavior_ignored(self, recommendations, provider, other_provider, need):
        old = record(provider, UserBehavior.ACTION_ACCEPT_OFFER, need)
        UserBehavior.objects.filter(pk=old.pk).update(created_at=timezone.now() - timedelta(days=40))
        record(other_provider, UserBehavior.ACTION_VIEW_NEED, need)

        profile = recommendations.interest_profile(provider)

        assert profile['category_interests'] == []
        assert profile['action_counts'] == {}

    def test_api(self, api_client, provider, need):
        record(provider, UserBehavior.ACTION_VIEW_NEED, need)
        api_client.force_authenticate(user=provider)

        response = api_client.get(reverse('user_interest_profile'))

        assert response.status_code == status.HTTP_200_OK
        assert response.data['category_interests'][0]['category_name'] == 'Moving'
