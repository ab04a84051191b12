"""
Relevance scoring for need search.

Pure functions with no database access: the caller loads candidate needs
(with `offer_count` annotated and `category` selected) and passes them in.
"""

import math
from datetime import timedelta

from django.utils import timezone

EARTH_RADIUS_KM = 6371

URGENCY_BOOST = {
    3: 10,  # urgent
    2: 5,   # normal
    1: 2,   # flexible
}


def normalize_query(query):
    """Lowercase and trim a query, collapsing inner whitespace."""
    return ' '.join((query or '').lower().split())


def split_terms(query):
    """Split a normalized query into terms, ignoring single characters."""
    return [term for term in normalize_query(query).split(' ') if len(term) > 1]


def haversine_km(lat1, lon1, lat2, lon2):
    """
    Great-circle distance between two points.

    Returns:
        float: Distance in kilometres
    """
    lat1, lon1, lat2, lon2 = (math.radians(float(value)) for value in (lat1, lon1, lat2, lon2))
    d_lat = lat2 - lat1
    d_lon = lon2 - lon1
    a = math.sin(d_lat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(d_lon / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(a))


def text_score(need, query, terms):
    """
    Score how well a need's text matches the query.

    Weights, highest first: full query in the title (+50 exact, +30 contained),
    full query in the description (+20), then per term: title (+15 prefix,
    +10 otherwise, +5 whole word), category name (+8), description (+3,
    +2 whole word) and address (+2).

    Args:
        need: Need instance
        query: Normalized full query
        terms: Terms from split_terms()

    Returns:
        int: Text score, 0 when nothing matches
    """
    score = 0
    title = (need.title or '').lower()
    description = (need.description or '').lower()
    address = (need.address or '').lower()
    category = getattr(need, 'category', None)
    category_name = (getattr(category, 'name', '') or '').lower()
    category_name_tr = (getattr(category, 'name_tr', '') or '').lower()

    if query:
        if query in title:
            score += 50 if title == query else 30
        if query in description:
            score += 20

    title_words = title.split()
    description_words = description.split()
    for term in terms:
        if term in title:
            score += 15 if title.startswith(term) else 10
            if term in title_words:
                score += 5
        if term in category_name or term in category_name_tr:
            score += 8
        if term in description:
            score += 3
            if term in description_words:
                score += 2
        if term in address:
            score += 2

    return score


def boost_score(need, now=None):
    """
    Score signals that do not depend on the query: urgency, age, offer
    activity, and whether a budget and location were given.
    """
    now = now or timezone.now()
    score = URGENCY_BOOST.get(need.urgency, 0)

    age = now - need.created_at
    if age <= timedelta(days=1):
        score += 8
    elif age <= timedelta(days=3):
        score += 5
    elif age <= timedelta(days=7):
        score += 3

    offer_count = getattr(need, 'offer_count', 0) or 0
    if offer_count > 0:
        score += min(offer_count * 2, 10)

    if need.min_budget is not None or need.max_budget is not None:
        score += 3

    if need.latitude is not None and need.longitude is not None:
        score += 2

    return score


def relevance_score(need, query, terms=None, now=None):
    """
    Total relevance of a need for a query: the text score plus boosts.

    A need with no text match still carries its boosts, so a query reorders
    the filtered candidates without removing any.
    """
    query = normalize_query(query)
    if terms is None:
        terms = split_terms(query)
    return text_score(need, query, terms) + boost_score(need, now)


def sort_key(scored):
    """
    Sort key for (need, score) pairs: score desc, created_at desc, id desc.
    """
    need, score = scored
    return (-score, -need.created_at.timestamp(), -need.pk)


def rank_needs(needs, query, now=None):
    """
    Score and order candidate needs.

    Needs that score 0 are dropped, which never happens for a need with a
    valid urgency. Ties are broken by newest first, then by highest id, so
    the order never depends on how candidates were loaded.

    Args:
        needs: Iterable of Need instances
        query: Raw query string; empty matches every need
        now: Reference time for recency boosts

    Returns:
        list[tuple]: (need, score) pairs, best first
    """
    now = now or timezone.now()
    normalized = normalize_query(query)
    terms = split_terms(normalized)
    scored = []
    for need in needs:
        score = relevance_score(need, normalized, terms, now)
        if score > 0:
            scored.append((need, score))
    scored.sort(key=sort_key)
    return scored
