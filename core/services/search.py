"""
Need search: filtering in the database, relevance ranking in memory.
"""

import logging
from datetime import timedelta
from functools import partial

from django.conf import settings
from django.db import DatabaseError, transaction
from django.db.models import Avg, Count, Max, Q, prefetch_related_objects
from django.utils import timezone

from ..metrics import increment_counter
from ..models import Category, Need, SearchHistory
from ..search import haversine_km, normalize_query, rank_needs

logger = logging.getLogger(__name__)

HISTORY_FAILURE_CACHE_KEY = 'metrics:search_history_failures'

SORT_OPTIONS = ('relevance', 'created', 'updated', 'budget', 'distance', 'urgency', 'offer_count')

URGENCY_LABELS = dict(Need.URGENCY_CHOICES)


def _budget_value(need):
    if need.max_budget is not None:
        return need.max_budget
    return need.min_budget


class SearchService:
    """Free-text search over needs with filters, sorting and suggestions."""

    def candidate_queryset(self, params):
        """
        Build the filtered candidate set for a search.

        Args:
            params: Validated search parameters

        Returns:
            QuerySet: Needs matching every non-text filter
        """
        queryset = (
            Need.objects
            .select_related('category', 'user')
            .annotate(offer_count=Count('offers', distinct=True))
        )

        if params.get('include_expired'):
            queryset = queryset.exclude(status=Need.STATUS_CANCELLED)
        else:
            queryset = queryset.filter(status=Need.STATUS_ACTIVE)

        category_ids = params.get('category_ids') or []
        if category_ids:
            expanded = set()
            for category in Category.objects.filter(pk__in=category_ids):
                expanded.update(category.descendant_ids())
            queryset = queryset.filter(category_id__in=expanded)

        min_budget = params.get('min_budget')
        max_budget = params.get('max_budget')
        if min_budget is not None or max_budget is not None:
            currency = (params.get('currency') or getattr(settings, 'DEFAULT_CURRENCY', 'TRY')).upper()
            queryset = queryset.filter(currency=currency)
            # Ranges overlap; an open end on the need side always overlaps
            if min_budget is not None:
                queryset = queryset.filter(Q(max_budget__isnull=True) | Q(max_budget__gte=min_budget))
            if max_budget is not None:
                queryset = queryset.filter(Q(min_budget__isnull=True) | Q(min_budget__lte=max_budget))

        if params.get('urgency'):
            queryset = queryset.filter(urgency=params['urgency'])
        if params.get('created_from'):
            queryset = queryset.filter(created_at__gte=params['created_from'])
        if params.get('created_to'):
            queryset = queryset.filter(created_at__lte=params['created_to'])

        if params.get('radius_km') is not None and params.get('latitude') is not None:
            queryset = queryset.filter(latitude__isnull=False, longitude__isnull=False)

        return queryset.order_by('-created_at', '-id')

    def search(self, user, params):
        """
        Run a search.

        Args:
            user: Caller, or None for anonymous searches
            params: Validated parameters: query, category_ids, include_expired,
                min_budget, max_budget, currency, urgency, created_from,
                created_to, latitude, longitude, radius_km, sort_by,
                sort_desc, page, page_size

        Every candidate is scored before anything is cut, so a strong match
        is never lost behind newer weak ones. At most SEARCH_MAX_RESULTS
        ranked results are paged through; `total` still counts every match
        and `truncated` reports when the cap was hit.

        Returns:
            dict: results (need, score, distance_km), total, truncated, page,
            page_size, query and stats
        """
        query = normalize_query(params.get('query'))
        max_results = getattr(settings, 'SEARCH_MAX_RESULTS', 2000)
        candidates = self.candidate_queryset(params).iterator(chunk_size=500)
        now = timezone.now()

        latitude = params.get('latitude')
        longitude = params.get('longitude')
        radius_km = params.get('radius_km')

        results = []
        for need, score in rank_needs(candidates, query, now):
            distance = None
            if latitude is not None and longitude is not None and need.has_location:
                distance = round(haversine_km(latitude, longitude, need.latitude, need.longitude), 2)
            if radius_km is not None and (distance is None or distance > radius_km):
                continue
            results.append({'need': need, 'score': score, 'distance_km': distance})

        results = self.sort_results(results, params.get('sort_by') or 'relevance', params.get('sort_desc', True))

        total = len(results)
        truncated = total > max_results
        if truncated:
            logger.info(f"Search results capped. Query: '{query}', Matches: {total}, Cap: {max_results}")

        page = params.get('page') or 1
        page_size = params.get('page_size') or 20
        start = (page - 1) * page_size
        page_results = results[:max_results][start:start + page_size]
        prefetch_related_objects([item['need'] for item in page_results], 'images')

        if query and user is not None and user.is_authenticated:
            self.record_search(user, query, params, total)

        return {
            'results': page_results,
            'total': total,
            'truncated': truncated,
            'page': page,
            'page_size': page_size,
            'query': query,
            'stats': self.build_stats(results),
        }

    def sort_results(self, results, sort_by, descending=True):
        """
        Order scored results. Every ordering ends with created_at and id so
        equal keys always come back in the same order.
        """
        if sort_by not in SORT_OPTIONS:
            sort_by = 'relevance'

        def tie_break(item):
            need = item['need']
            return (need.created_at.timestamp(), need.pk)

        if sort_by == 'relevance':
            key = lambda item: (item['score'],) + tie_break(item)
        elif sort_by == 'created':
            key = tie_break
        elif sort_by == 'updated':
            key = lambda item: (item['need'].updated_at.timestamp(),) + tie_break(item)
        elif sort_by == 'urgency':
            key = lambda item: (item['need'].urgency,) + tie_break(item)
        elif sort_by == 'offer_count':
            key = lambda item: (getattr(item['need'], 'offer_count', 0),) + tie_break(item)
        elif sort_by == 'budget':
            with_budget = [item for item in results if _budget_value(item['need']) is not None]
            without_budget = [item for item in results if _budget_value(item['need']) is None]
            with_budget.sort(
                key=lambda item: (_budget_value(item['need']),) + tie_break(item),
                reverse=descending,
            )
            return with_budget + without_budget
        else:
            # distance: results without a distance always go last
            located = [item for item in results if item['distance_km'] is not None]
            unlocated = [item for item in results if item['distance_km'] is None]
            located.sort(key=lambda item: (item['distance_km'],) + tie_break(item), reverse=descending)
            return located + unlocated

        return sorted(results, key=key, reverse=descending)

    def build_stats(self, results):
        category_breakdown = {}
        urgency_breakdown = {}
        for item in results:
            need = item['need']
            category_name = need.category.name
            category_breakdown[category_name] = category_breakdown.get(category_name, 0) + 1
            urgency_label = URGENCY_LABELS.get(need.urgency, str(need.urgency))
            urgency_breakdown[urgency_label] = urgency_breakdown.get(urgency_label, 0) + 1
        return {
            'category_breakdown': category_breakdown,
            'urgency_breakdown': urgency_breakdown,
        }

    # ========================================================================
    # History, suggestions, popular searches
    # ========================================================================

    def record_search(self, user, query, params, result_count):
        """
        Queue a search history entry for after the current transaction commits.
        """
        filters = {
            key: str(value) for key, value in params.items()
            if key not in ('query', 'page', 'page_size') and value not in (None, '', [])
        }
        transaction.on_commit(partial(self.save_history, user.id, query, filters, result_count))

    def save_history(self, user_id, query, filters, result_count):
        """
        Save a search to history. Failures are logged and counted, never raised.
        """
        try:
            with transaction.atomic():
                SearchHistory.objects.create(
                    user_id=user_id,
                    query=query[:200],
                    filters=filters,
                    result_count=result_count,
                )
        except DatabaseError as e:
            increment_counter(HISTORY_FAILURE_CACHE_KEY)
            logger.warning(f"Could not save search history. Query: {query}, Error: {e}")

    def suggestions(self, prefix, limit=10):
        """
        Suggest category names and past queries for a prefix.

        Returns:
            list[dict]: Items with text, type ('category' or 'history') and
            either category_id or count
        """
        prefix = normalize_query(prefix)
        if len(prefix) < 2:
            return []

        suggestions = []
        seen = set()

        categories = Category.objects.filter(
            Q(name__icontains=prefix) | Q(name_tr__icontains=prefix),
            is_active=True,
        ).order_by('sort_order', 'name')[:limit]
        for category in categories:
            seen.add(category.name.lower())
            suggestions.append({'text': category.name, 'type': 'category', 'category_id': category.id})

        history = (
            SearchHistory.objects.filter(query__istartswith=prefix)
            .values('query')
            .annotate(count=Count('id'))
            .order_by('-count', 'query')[:limit]
        )
        for row in history:
            if row['query'].lower() in seen:
                continue
            seen.add(row['query'].lower())
            suggestions.append({'text': row['query'], 'type': 'history', 'count': row['count']})

        return suggestions[:limit]

    def search_stats(self, days=30):
        """
        Usage figures for recorded searches.

        Returns:
            dict: total_searches, unique_queries, average_results,
            zero_result_searches and top_queries over the last `days` days
        """
        since = timezone.now() - timedelta(days=days)
        recent = SearchHistory.objects.filter(created_at__gte=since)
        totals = recent.aggregate(
            total=Count('id'),
            unique=Count('query', distinct=True),
            average=Avg('result_count'),
            zero=Count('id', filter=Q(result_count=0)),
        )
        return {
            'days': days,
            'total_searches': totals['total'],
            'unique_queries': totals['unique'],
            'average_results': round(totals['average'] or 0, 2),
            'zero_result_searches': totals['zero'],
            'top_queries': self.popular_searches(limit=5, days=days),
        }

    def popular_searches(self, limit=10, days=30):
        """Most frequent queries in the last `days` days."""
        since = timezone.now() - timedelta(days=days)
        rows = (
            SearchHistory.objects.filter(created_at__gte=since)
            .values('query')
            .annotate(count=Count('id'), last_searched=Max('created_at'))
            .order_by('-count', '-last_searched')[:limit]
        )
        return [{'query': row['query'], 'count': row['count']} for row in rows]
