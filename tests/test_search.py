"""
Need search tests: relevance scoring, filters, sorting, history and suggestions.
"""

from datetime import timedelta
from decimal import Decimal
from unittest import mock

import pytest
from django.core.cache import cache
from django.db import DatabaseError
from django.urls import reverse
from django.utils import timezone
from rest_framework import status

from core.models import Category, Need, Offer, SearchHistory
from core.search import (
    boost_score,
    haversine_km,
    normalize_query,
    rank_needs,
    relevance_score,
    split_terms,
    text_score,
)
from core.services import SearchService
from core.services.search import HISTORY_FAILURE_CACHE_KEY

KADIKOY = (Decimal('40.990900'), Decimal('29.030300'))
ANKARA = (Decimal('39.933400'), Decimal('32.859700'))
EMINONU = (41.0082, 28.9784)


def make_need(pk=1, title='', description='', address='', category_name='Other', created_at=None, **kwargs):
    """Unsaved need for the pure scoring functions."""
    need = Need(
        pk=pk,
        title=title,
        description=description,
        address=address,
        category=Category(name=category_name),
        urgency=kwargs.pop('urgency', Need.URGENCY_FLEXIBLE),
        **kwargs
    )
    need.created_at = created_at or timezone.now() - timedelta(days=30)
    return need


# ============================================================================
# Scoring functions
# ============================================================================

class TestQueryHelpers:

    def test_normalize_query(self):
        assert normalize_query('  House   CLEANING ') == 'house cleaning'
        assert normalize_query(None) == ''

    def test_split_terms_drops_single_characters(self):
        assert split_terms('a Garden x tidy') == ['garden', 'tidy']

    def test_haversine(self):
        assert haversine_km(*EMINONU, *EMINONU) == 0
        assert haversine_km(*EMINONU, *ANKARA) == pytest.approx(351, rel=0.02)


class TestTextScore:

    def test_exact_title(self):
        need = make_need(title='Garden')

        assert text_score(need, 'garden', ['garden']) == 50 + 15 + 5

    def test_title_contains_query(self):
        need = make_need(title='Garden work')

        assert text_score(need, 'garden', ['garden']) == 30 + 15 + 5

    def test_term_inside_title_not_prefix(self):
        need = make_need(title='Tidy my gardens')

        # 'garden' is inside 'gardens' but not a whole word
        assert text_score(need, 'garden', ['garden']) == 30 + 10

    def test_description(self):
        need = make_need(title='Help', description='need a garden tidy')

        assert text_score(need, 'garden', ['garden']) == 20 + 3 + 2

    def test_category_name(self):
        need = make_need(title='Help', category_name='Gardening')

        assert text_score(need, 'garden', ['garden']) == 8

    def test_address(self):
        need = make_need(title='Help', address='Garden Street 4')

        assert text_score(need, 'garden', ['garden']) == 2

    def test_no_match(self):
        need = make_need(title='Help', description='Anything')

        assert text_score(need, 'piano', ['piano']) == 0


class TestBoostScore:

    def test_all_boosts(self):
        now = timezone.now()
        need = make_need(
            urgency=Need.URGENCY_URGENT,
            created_at=now - timedelta(days=2),
            min_budget=Decimal('100.00'),
            latitude=KADIKOY[0],
            longitude=KADIKOY[1],
        )
        need.offer_count = 7

        # urgency 10, age 5, offers capped at 10, budget 3, location 2
        assert boost_score(need, now) == 30

    def test_minimal(self):
        now = timezone.now()
        need = make_need(urgency=Need.URGENCY_FLEXIBLE, created_at=now - timedelta(days=10))

        assert boost_score(need, now) == 2

    @pytest.mark.parametrize('age,expected', [
        (timedelta(hours=2), 5 + 8),
        (timedelta(days=3), 5 + 5),
        (timedelta(days=6), 5 + 3),
        (timedelta(days=8), 5),
    ])
    def test_age_bands(self, age, expected):
        now = timezone.now()
        need = make_need(urgency=Need.URGENCY_NORMAL, created_at=now - age)

        assert boost_score(need, now) == expected


class TestRelevance:

    def test_query_without_match_keeps_boosts(self):
        need = make_need(title='Help', urgency=Need.URGENCY_URGENT)

        assert text_score(need, 'piano', ['piano']) == 0
        assert relevance_score(need, 'piano') == boost_score(need)

    def test_empty_query_scores_boosts_only(self):
        now = timezone.now()
        need = make_need(title='Help', urgency=Need.URGENCY_URGENT, created_at=now - timedelta(days=10))

        assert relevance_score(need, '', now=now) == 10

    def test_rank_orders_by_score_then_newest_then_id(self):
        now = timezone.now()
        old = now - timedelta(days=20)
        best = make_need(pk=1, title='Piano', created_at=old)
        older = make_need(pk=2, title='Move a piano', created_at=old - timedelta(hours=1))
        same_time_low_id = make_need(pk=3, title='Move a piano', created_at=old)
        same_time_high_id = make_need(pk=4, title='Move a piano', created_at=old)
        unrelated = make_need(pk=5, title='Paint a wall', created_at=old)

        ranked = rank_needs([older, unrelated, same_time_low_id, best, same_time_high_id], 'piano', now)

        # the unrelated need keeps its boosts and ranks last
        assert [need.pk for need, _ in ranked] == [1, 4, 3, 2, 5]
        assert ranked[0][1] > ranked[1][1]


# ============================================================================
# SearchService
# ============================================================================

@pytest.fixture
def search_service():
    return SearchService()


@pytest.fixture
def cleaning(db):
    return Category.objects.create(name='Cleaning', name_tr='Temizlik')


@pytest.fixture
def on_commit(django_capture_on_commit_callbacks):
    return django_capture_on_commit_callbacks


@pytest.fixture
def catalog(buyer, category, cleaning):
    """Piano move in Kadikoy, cleaning in Ankara, and an unlocated piano lesson."""
    piano_move = Need.objects.create(
        user=buyer, category=category, title='Piano move',
        description='Upright piano, second floor.',
        min_budget=Decimal('3000.00'), max_budget=Decimal('5000.00'),
        latitude=KADIKOY[0], longitude=KADIKOY[1], address='Kadikoy, Istanbul',
    )
    house_cleaning = Need.objects.create(
        user=buyer, category=cleaning, title='House cleaning',
        description='Three rooms after moving out.',
        max_budget=Decimal('1500.00'),
        latitude=ANKARA[0], longitude=ANKARA[1], address='Cankaya, Ankara',
        urgency=Need.URGENCY_URGENT,
    )
    piano_lessons = Need.objects.create(
        user=buyer, category=category, title='Carry piano to storage',
        description='No budget yet.',
    )
    return {'piano_move': piano_move, 'house_cleaning': house_cleaning, 'piano_lessons': piano_lessons}


def search_params(**overrides):
    params = {'query': '', 'sort_by': 'relevance', 'sort_desc': True, 'page': 1, 'page_size': 20}
    params.update(overrides)
    return params


def result_ids(result):
    return [item['need'].id for item in result['results']]


@pytest.mark.django_db
class TestSearchService:

    def test_query_matches_text(self, search_service, catalog):
        result = search_service.search(None, search_params(query='Piano'))

        assert result['query'] == 'piano'
        # the query reorders the active needs; it does not filter them
        assert result['total'] == 3
        assert result['truncated'] is False
        assert result_ids(result) == [
            catalog['piano_move'].id, catalog['piano_lessons'].id, catalog['house_cleaning'].id,
        ]

    def test_strong_old_match_survives_result_cap(self, search_service, buyer, category, settings):
        settings.SEARCH_MAX_RESULTS = 3
        piano = Need.objects.create(
            user=buyer, category=category, title='Piano moving', description='Grand piano',
        )
        Need.objects.filter(pk=piano.pk).update(created_at=timezone.now() - timedelta(days=10))
        for index in range(3):
            Need.objects.create(
                user=buyer, category=category, title=f'Paint wall {index}', description='Two coats',
            )

        result = search_service.search(None, search_params(query='piano'))

        assert result_ids(result)[0] == piano.id
        assert result['total'] == 4
        assert result['truncated'] is True
        assert len(result['results']) == 3

    def test_pages_stop_at_result_cap(self, search_service, catalog, settings):
        settings.SEARCH_MAX_RESULTS = 2

        result = search_service.search(None, search_params(sort_by='created', page=2, page_size=2))

        assert result['total'] == 3
        assert result['truncated'] is True
        assert result['results'] == []

    def test_empty_query_returns_all_active(self, search_service, catalog):
        catalog['house_cleaning'].status = Need.STATUS_EXPIRED
        catalog['house_cleaning'].save()

        result = search_service.search(None, search_params())

        assert result['total'] == 2

    def test_include_expired(self, search_service, catalog):
        catalog['house_cleaning'].status = Need.STATUS_EXPIRED
        catalog['house_cleaning'].save()

        result = search_service.search(None, search_params(include_expired=True))

        assert result['total'] == 3

    def test_category_filter_includes_subcategories(self, search_service, buyer, catalog, cleaning):
        deep = Category.objects.create(name='Deep Cleaning', parent=cleaning)
        Need.objects.create(user=buyer, category=deep, title='Oven degreasing', description='Kitchen')

        result = search_service.search(None, search_params(category_ids=[cleaning.id]))

        assert result['total'] == 2

    def test_budget_filter_overlaps(self, search_service, catalog):
        result = search_service.search(None, search_params(min_budget=Decimal('4000.00')))

        # piano move overlaps; cleaning tops out at 1500; no-budget need has open ends
        assert set(result_ids(result)) == {catalog['piano_move'].id, catalog['piano_lessons'].id}

    def test_radius_filter_and_distance(self, search_service, catalog):
        result = search_service.search(None, search_params(
            latitude=EMINONU[0], longitude=EMINONU[1], radius_km=10,
        ))

        assert result_ids(result) == [catalog['piano_move'].id]
        assert result['results'][0]['distance_km'] == pytest.approx(4.7, abs=1)

    def test_distance_without_radius(self, search_service, catalog):
        result = search_service.search(None, search_params(
            latitude=EMINONU[0], longitude=EMINONU[1], sort_by='distance', sort_desc=False,
        ))

        ids = result_ids(result)
        assert ids[:2] == [catalog['piano_move'].id, catalog['house_cleaning'].id]
        assert result['results'][2]['distance_km'] is None

    def test_sort_by_budget_puts_unbudgeted_last(self, search_service, catalog):
        result = search_service.search(None, search_params(sort_by='budget', sort_desc=True))

        assert result_ids(result) == [
            catalog['piano_move'].id, catalog['house_cleaning'].id, catalog['piano_lessons'].id,
        ]

    def test_sort_by_offer_count(self, search_service, catalog, provider):
        Offer.objects.create(
            need=catalog['piano_lessons'], provider=provider, price=Decimal('800.00'),
            description='Two people', delivery_days=1,
        )

        result = search_service.search(None, search_params(sort_by='offer_count'))

        assert result_ids(result)[0] == catalog['piano_lessons'].id

    def test_pagination(self, search_service, catalog):
        result = search_service.search(None, search_params(sort_by='created', page=2, page_size=2))

        assert result['total'] == 3
        assert result['page'] == 2
        assert len(result['results']) == 1

    def test_stats(self, search_service, catalog):
        result = search_service.search(None, search_params())

        assert result['stats']['category_breakdown'] == {'Moving': 2, 'Cleaning': 1}
        assert result['stats']['urgency_breakdown'] == {'Normal': 2, 'Urgent': 1}


@pytest.mark.django_db
class TestSearchHistory:

    def test_authenticated_search_is_recorded(self, search_service, buyer, catalog, on_commit):
        with on_commit(execute=True):
            search_service.search(buyer, search_params(query='Piano', sort_by='budget'))

        entry = SearchHistory.objects.get()
        assert entry.user == buyer
        assert entry.query == 'piano'
        assert entry.result_count == 3
        assert entry.filters['sort_by'] == 'budget'

    def test_history_waits_for_commit(self, search_service, buyer, catalog, on_commit):
        with on_commit() as callbacks:
            search_service.search(buyer, search_params(query='piano'))

        assert len(callbacks) == 1
        assert not SearchHistory.objects.exists()

    def test_anonymous_search_is_not_recorded(self, search_service, catalog, on_commit):
        with on_commit(execute=True) as callbacks:
            search_service.search(None, search_params(query='piano'))

        assert callbacks == []
        assert not SearchHistory.objects.exists()

    def test_empty_query_is_not_recorded(self, search_service, buyer, catalog, on_commit):
        with on_commit(execute=True):
            search_service.search(buyer, search_params())

        assert not SearchHistory.objects.exists()

    def test_history_failure_does_not_break_search(self, search_service, buyer, catalog, on_commit):
        with mock.patch.object(SearchHistory.objects, 'create', side_effect=DatabaseError('disk full')):
            with on_commit(execute=True):
                result = search_service.search(buyer, search_params(query='piano'))

        assert result['total'] == 3
        assert cache.get(HISTORY_FAILURE_CACHE_KEY) == 1

    def test_history_failures_accumulate(self, search_service, buyer):
        with mock.patch.object(SearchHistory.objects, 'create', side_effect=DatabaseError('disk full')):
            search_service.save_history(buyer.id, 'piano', {}, 0)
            search_service.save_history(buyer.id, 'piano', {}, 0)

        assert cache.get(HISTORY_FAILURE_CACHE_KEY) == 2


@pytest.mark.django_db
class TestSuggestionsAndStats:

    def test_suggestions_from_categories_and_history(self, search_service, buyer, cleaning):
        SearchHistory.objects.create(user=buyer, query='clean oven', result_count=1)
        SearchHistory.objects.create(user=buyer, query='clean oven', result_count=1)
        SearchHistory.objects.create(user=buyer, query='clean windows', result_count=0)
        SearchHistory.objects.create(user=buyer, query='cleaning', result_count=3)

        suggestions = search_service.suggestions('Clean')

        assert suggestions[0] == {'text': 'Cleaning', 'type': 'category', 'category_id': cleaning.id}
        assert suggestions[1:] == [
            {'text': 'clean oven', 'type': 'history', 'count': 2},
            {'text': 'clean windows', 'type': 'history', 'count': 1},
        ]

    def test_suggestions_match_turkish_name(self, search_service, cleaning):
        assert search_service.suggestions('temiz')[0]['category_id'] == cleaning.id

    def test_short_prefix(self, search_service, cleaning):
        assert search_service.suggestions('c') == []

    def test_popular_searches(self, search_service, buyer):
        for query in ['piano', 'piano', 'piano', 'cleaning', 'cleaning', 'garden']:
            SearchHistory.objects.create(user=buyer, query=query, result_count=1)

        assert search_service.popular_searches(limit=2) == [
            {'query': 'piano', 'count': 3},
            {'query': 'cleaning', 'count': 2},
        ]

    def test_old_searches_are_excluded(self, search_service, buyer):
        entry = SearchHistory.objects.create(user=buyer, query='piano', result_count=1)
        SearchHistory.objects.filter(pk=entry.pk).update(created_at=timezone.now() - timedelta(days=45))

        assert search_service.popular_searches() == []

    def test_search_stats(self, search_service, buyer):
        SearchHistory.objects.create(user=buyer, query='piano', result_count=4)
        SearchHistory.objects.create(user=buyer, query='piano', result_count=2)
        SearchHistory.objects.create(user=buyer, query='garden', result_count=0)

        stats = search_service.search_stats()

        assert stats['total_searches'] == 3
        assert stats['unique_queries'] == 2
        assert stats['average_results'] == 2
        assert stats['zero_result_searches'] == 1
        assert stats['top_queries'][0] == {'query': 'piano', 'count': 2}


@pytest.mark.django_db
class TestSearchAPI:

    def test_anonymous_search(self, api_client, catalog):
        response = api_client.get(reverse('search'), {'query': 'cleaning'})

        assert response.status_code == status.HTTP_200_OK
        assert response.data['total'] == 3
        assert response.data['truncated'] is False
        result = response.data['results'][0]
        assert result['need']['title'] == 'House cleaning'
        assert result['score'] > 0
        assert result['distance_km'] is None

    def test_category_ids_parameter(self, api_client, catalog, cleaning):
        response = api_client.get(reverse('search'), {'category_ids': f'{cleaning.id}'})

        assert response.data['total'] == 1

    def test_latitude_requires_longitude(self, api_client):
        response = api_client.get(reverse('search'), {'latitude': '41.0'})

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert 'location' in response.data['errors']

    def test_invalid_category_ids(self, api_client):
        response = api_client.get(reverse('search'), {'category_ids': '1,abc'})

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert 'category_ids' in response.data['errors']

    def test_invalid_sort(self, api_client):
        response = api_client.get(reverse('search'), {'sort_by': 'price'})

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_suggestions_endpoint(self, api_client, cleaning):
        response = api_client.get(reverse('search_suggestions'), {'q': 'clea'})

        assert response.status_code == status.HTTP_200_OK
        assert response.data['suggestions'][0]['text'] == 'Cleaning'

    def test_popular_endpoint(self, api_client, buyer):
        SearchHistory.objects.create(user=buyer, query='piano', result_count=1)

        response = api_client.get(reverse('search_popular'), {'limit': 5})

        assert response.data == {'popular': [{'query': 'piano', 'count': 1}]}

    def test_stats_is_staff_only(self, api_client, buyer, staff_user):
        api_client.force_authenticate(user=buyer)
        assert api_client.get(reverse('search_stats')).status_code == status.HTTP_403_FORBIDDEN

        api_client.force_authenticate(user=staff_user)
        response = api_client.get(reverse('search_stats'))
        assert response.status_code == status.HTTP_200_OK
        assert response.data['total_searches'] == 0
