"""
Failure counters for best-effort side effects, kept in Django's cache.
"""

from django.core.cache import cache


def increment_counter(key):
    """Increment a counter, creating it at 1 when missing."""
    if cache.add(key, 1, timeout=None):
        return
    try:
        cache.incr(key)
    except ValueError:
        # Key was evicted between add() and incr()
        cache.set(key, 1, timeout=None)


def get_counter(key):
    return cache.get(key, 0)
