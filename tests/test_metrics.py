"""
Failure counters kept in the cache.
"""

from unittest import mock

from django.core.cache import cache

from core.metrics import get_counter, increment_counter


class TestFailureCounters:

    def test_missing_counter_reads_zero(self):
        assert get_counter('metrics:unknown') == 0

    def test_increment_creates_then_counts(self):
        increment_counter('metrics:example')
        increment_counter('metrics:example')
        increment_counter('metrics:example')

        assert get_counter('metrics:example') == 3

    def test_counter_evicted_between_add_and_incr(self):
        with mock.patch('core.metrics.cache') as fake_cache:
            fake_cache.add.return_value = False
            fake_cache.incr.side_effect = ValueError('Key not found')

            increment_counter('metrics:example')

        fake_cache.set.assert_called_once_with('metrics:example', 1, timeout=None)

    def test_counters_are_independent(self):
        increment_counter('metrics:one')

        assert cache.get('metrics:one') == 1
        assert get_counter('metrics:two') == 0
