"""
Shared pytest fixtures for the marketplace test suites.
"""

from datetime import timedelta
from decimal import Decimal

import pytest
from django.contrib.auth import get_user_model
from django.core.cache import cache
from django.utils import timezone
from rest_framework.test import APIClient

from core.gateways import MockGateway
from core.models import Category, Need, Offer
from core.notifications import NotificationService
from core.push import InMemoryPushBackend
from core.sms import InMemorySmsBackend

User = get_user_model()


@pytest.fixture(autouse=True)
def clear_cache():
    """Clear Django cache before each test to reset throttles and failure counters."""
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def buyer(db):
    return User.objects.create_user(
        username='buyer',
        email='buyer@test.com',
        password='TestPass123!',
        first_name='Ayse',
        last_name='Buyer',
        user_type='buyer',
    )


@pytest.fixture
def provider(db):
    return User.objects.create_user(
        username='provider',
        email='provider@test.com',
        password='TestPass123!',
        first_name='Mehmet',
        last_name='Provider',
        user_type='provider',
    )


@pytest.fixture
def other_provider(db):
    return User.objects.create_user(
        username='provider2',
        email='provider2@test.com',
        password='TestPass123!',
        user_type='provider',
    )


@pytest.fixture
def stranger(db):
    return User.objects.create_user(
        username='stranger',
        email='stranger@test.com',
        password='TestPass123!',
        user_type='both',
    )


@pytest.fixture
def staff_user(db):
    return User.objects.create_user(
        username='staff',
        email='staff@test.com',
        password='TestPass123!',
        user_type='both',
        is_staff=True,
    )


@pytest.fixture
def category(db):
    return Category.objects.create(name='Moving', name_tr='Nakliyat')


@pytest.fixture
def need(buyer, category):
    """Active need with a 20000-25000 TRY budget."""
    return Need.objects.create(
        user=buyer,
        category=category,
        title='Move a two bedroom flat',
        description='Moving from Kadikoy to Besiktas, third floor, no elevator.',
        min_budget=Decimal('20000.00'),
        max_budget=Decimal('25000.00'),
        currency='TRY',
        urgency=Need.URGENCY_NORMAL,
        expires_at=timezone.now() + timedelta(days=30),
    )


@pytest.fixture
def pending_offer(need, provider):
    return Offer.objects.create(
        need=need,
        provider=provider,
        price=Decimal('22000.00'),
        currency='TRY',
        description='Two movers and a van.',
        delivery_days=3,
    )


@pytest.fixture
def accepted_offer(need, pending_offer):
    pending_offer.status = Offer.STATUS_ACCEPTED
    pending_offer.save()
    need.status = Need.STATUS_IN_PROGRESS
    need.save()
    return pending_offer


@pytest.fixture
def push_backend():
    return InMemoryPushBackend()


@pytest.fixture
def notifications(push_backend):
    return NotificationService(push_backend=push_backend)


@pytest.fixture
def sms_backend():
    return InMemorySmsBackend()


@pytest.fixture
def gateway():
    return MockGateway()


@pytest.fixture
def card():
    return {
        'card_holder_name': 'Ayse Buyer',
        'card_number': '5528790000000008',
        'expire_month': '12',
        'expire_year': '2030',
        'cvc': '123',
    }
