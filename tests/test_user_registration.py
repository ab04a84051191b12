"""
Test suite for the user registration endpoint.

Tests cover:
- Valid registration for buyers, providers and dual accounts
- Email validation (format, case-insensitive uniqueness)
- Password validation (strength, confirmation)
- Field validation (user_type, phone number)
- Privilege escalation attempts
"""

import pytest
from django.contrib.auth import get_user_model
from django.urls import reverse
from rest_framework import status

User = get_user_model()


@pytest.fixture
def valid_buyer_data():
    return {
        'email': 'Buyer@Example.com',
        'password': 'SecurePass123!',
        'confirm_password': 'SecurePass123!',
        'first_name': 'Ayse',
        'last_name': 'Yilmaz',
        'phone_number': '+905321234567',
        'user_type': 'buyer',
    }


@pytest.mark.django_db
class TestValidRegistration:

    def test_register_buyer_success(self, api_client, valid_buyer_data):
        response = api_client.post(reverse('user_register'), valid_buyer_data, format='json')

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data['email'] == 'buyer@example.com'
        assert response.data['user_type'] == 'buyer'
        assert 'password' not in response.data
        assert 'confirm_password' not in response.data

        user = User.objects.get(email='buyer@example.com')
        assert user.check_password('SecurePass123!')
        assert user.rating == 0
        assert user.review_count == 0

    @pytest.mark.parametrize('user_type', ['provider', 'both'])
    def test_register_other_user_types(self, api_client, valid_buyer_data, user_type):
        data = {**valid_buyer_data, 'email': f'{user_type}@example.com', 'user_type': user_type}
        response = api_client.post(reverse('user_register'), data, format='json')

        assert response.status_code == status.HTTP_201_CREATED
        assert User.objects.get(email=f'{user_type}@example.com').user_type == user_type

    def test_password_is_hashed(self, api_client, valid_buyer_data):
        api_client.post(reverse('user_register'), valid_buyer_data, format='json')

        user = User.objects.get(email='buyer@example.com')
        assert user.password != 'SecurePass123!'
        assert user.password.startswith('pbkdf2_sha256$')

    def test_username_generated_from_email(self, api_client, valid_buyer_data):
        User.objects.create_user(username='buyer', email='someone@else.com', password='TestPass123!')

        api_client.post(reverse('user_register'), valid_buyer_data, format='json')

        user = User.objects.get(email='buyer@example.com')
        assert user.username.startswith('buyer')
        assert user.username != 'buyer'


@pytest.mark.django_db
class TestRegistrationValidation:

    @pytest.mark.parametrize('invalid_email', ['notanemail', 'missing@domain', '@nodomain.com', ''])
    def test_invalid_email_format(self, api_client, valid_buyer_data, invalid_email):
        data = {**valid_buyer_data, 'email': invalid_email}
        response = api_client.post(reverse('user_register'), data, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert 'email' in response.data['errors']

    def test_duplicate_email_case_insensitive(self, api_client, valid_buyer_data):
        User.objects.create_user(username='existing', email='buyer@example.com', password='TestPass123!')

        response = api_client.post(reverse('user_register'), valid_buyer_data, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert 'email' in response.data['errors']
        assert User.objects.filter(email__iexact='buyer@example.com').count() == 1

    def test_password_mismatch(self, api_client, valid_buyer_data):
        data = {**valid_buyer_data, 'confirm_password': 'Different123!'}
        response = api_client.post(reverse('user_register'), data, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert 'confirm_password' in response.data['errors']

    @pytest.mark.parametrize('weak_password', ['short', '12345678', 'password'])
    def test_weak_password_rejected(self, api_client, valid_buyer_data, weak_password):
        data = {**valid_buyer_data, 'password': weak_password, 'confirm_password': weak_password}
        response = api_client.post(reverse('user_register'), data, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert 'password' in response.data['errors']

    def test_invalid_user_type(self, api_client, valid_buyer_data):
        data = {**valid_buyer_data, 'user_type': 'student'}
        response = api_client.post(reverse('user_register'), data, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert 'user_type' in response.data['errors']

    @pytest.mark.parametrize('phone', ['123', '+1111111111', 'abcdefghijk'])
    def test_invalid_phone_number(self, api_client, valid_buyer_data, phone):
        data = {**valid_buyer_data, 'phone_number': phone}
        response = api_client.post(reverse('user_register'), data, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert 'phone_number' in response.data['errors']

    def test_error_body_has_message(self, api_client):
        response = api_client.post(reverse('user_register'), {}, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data['message']
        assert 'email' in response.data['errors']
        assert 'password' in response.data['errors']


@pytest.mark.django_db
class TestRegistrationSecurity:

    def test_cannot_register_as_staff(self, api_client, valid_buyer_data):
        data = {**valid_buyer_data, 'is_staff': True, 'is_superuser': True}
        response = api_client.post(reverse('user_register'), data, format='json')

        assert response.status_code == status.HTTP_201_CREATED
        user = User.objects.get(email='buyer@example.com')
        assert user.is_staff is False
        assert user.is_superuser is False

    def test_cannot_set_rating_on_registration(self, api_client, valid_buyer_data):
        data = {**valid_buyer_data, 'rating': '5.00', 'review_count': 100}
        api_client.post(reverse('user_register'), data, format='json')

        user = User.objects.get(email='buyer@example.com')
        assert user.rating == 0
        assert user.review_count == 0
