"""
Private and public user statistics.
"""

from decimal import Decimal

import pytest
from django.urls import reverse
from rest_framework import status

from core.exceptions import NotFoundException
from core.models import Need, Review, Transaction, UserVerification
from core.services import UserService


@pytest.fixture
def user_service():
    return UserService()


@pytest.fixture
def history(buyer, provider, stranger, accepted_offer):
    """One released and one held transaction, plus two visible reviews and a hidden one."""
    for payment_status in (Transaction.STATUS_RELEASED, Transaction.STATUS_COMPLETED):
        Transaction.objects.create(
            offer=accepted_offer,
            buyer=buyer,
            provider=provider,
            amount=accepted_offer.price,
            payment_gateway='mock',
            status=payment_status,
        )
    Review.objects.create(reviewer=buyer, reviewee=provider, offer=accepted_offer, rating=4)
    Review.objects.create(reviewer=stranger, reviewee=provider, rating=5)
    Review.objects.create(reviewer=stranger, reviewee=provider, rating=1, is_visible=False)


@pytest.mark.django_db
class TestPrivateStatistics:

    def test_provider(self, user_service, provider, history):
        stats = user_service.statistics(provider)

        assert stats['needs_count'] == 0
        assert stats['offers_given_count'] == 1
        assert stats['offers_received_count'] == 0
        assert stats['completed_transactions_count'] == 1
        assert stats['total_spent'] == Decimal('0.00')
        assert stats['total_earned'] == Decimal('22000.00')
        assert stats['average_rating'] == 4.5
        assert stats['review_count'] == 2
        assert stats['member_since'] == provider.created_at

    def test_buyer(self, user_service, buyer, history):
        stats = user_service.statistics(buyer)

        assert stats['needs_count'] == 1
        assert stats['offers_received_count'] == 1
        assert stats['completed_transactions_count'] == 1
        assert stats['total_spent'] == Decimal('22000.00')
        assert stats['total_earned'] == Decimal('0.00')
        assert stats['average_rating'] == 0
        assert stats['review_count'] == 0

    def test_cached(self, user_service, buyer, category):
        assert user_service.statistics(buyer)['needs_count'] == 0

        Need.objects.create(user=buyer, category=category, title='Paint the hall', description='Two coats.')

        assert user_service.statistics(buyer)['needs_count'] == 0

    def test_badges(self, user_service, buyer):
        UserVerification.objects.create(
            user=buyer,
            verification_type=UserVerification.TYPE_EMAIL,
            status=UserVerification.STATUS_APPROVED,
            target=buyer.email,
        )

        assert user_service.statistics(buyer)['verification_badges'] == ['email']


@pytest.mark.django_db
class TestPublicStatistics:

    def test_hides_money_and_counts(self, user_service, provider, history):
        stats = user_service.public_statistics(provider.id)

        assert stats == {
            'user_id': provider.id,
            'user_type': 'provider',
            'completed_transactions_count': 1,
            'average_rating': 4.5,
            'review_count': 2,
            'verification_badges': [],
            'member_since': provider.created_at,
        }

    def test_inactive_user(self, user_service, stranger):
        stranger.is_active = False
        stranger.save()

        with pytest.raises(NotFoundException):
            user_service.public_statistics(stranger.id)

    def test_unknown_user(self, user_service, db):
        with pytest.raises(NotFoundException):
            user_service.public_statistics(999999)


@pytest.mark.django_db
class TestStatisticsAPI:

    def test_own_statistics(self, api_client, provider, history):
        api_client.force_authenticate(user=provider)

        response = api_client.get(reverse('user_stats'))

        assert response.status_code == status.HTTP_200_OK
        assert response.data['total_earned'] == Decimal('22000.00')

    def test_own_statistics_require_auth(self, api_client):
        response = api_client.get(reverse('user_stats'))

        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_public_statistics_are_public(self, api_client, provider, history):
        response = api_client.get(reverse('user_public_stats', args=[provider.id]))

        assert response.status_code == status.HTTP_200_OK
        assert response.data['review_count'] == 2
        assert 'total_earned' not in response.data

    def test_public_statistics_unknown_user(self, api_client, db):
        response = api_client.get(reverse('user_public_stats', args=[999999]))

        assert response.status_code == status.HTTP_404_NOT_FOUND
