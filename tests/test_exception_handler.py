"""
Error body mapping done by core.exceptions.api_exception_handler.
"""

from unittest import mock

from django.contrib.auth.models import AnonymousUser
from django.core.exceptions import ValidationError as DjangoValidationError
from django.http import Http404
from rest_framework import exceptions as drf_exceptions
from rest_framework import status

from core.exceptions import (
    ConflictException,
    NotFoundException,
    UnauthorizedException,
    ValidationException,
    api_exception_handler,
)


def context(authenticated=True):
    user = mock.Mock(is_authenticated=True) if authenticated else AnonymousUser()
    return {'request': mock.Mock(user=user), 'view': None}


class TestDomainExceptions:

    def test_validation_exception(self):
        response = api_exception_handler(ValidationException({'price': 'Too high.'}), context())

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data == {
            'message': 'One or more validation errors occurred.',
            'errors': {'price': ['Too high.']},
        }

    def test_validation_exception_from_string(self):
        response = api_exception_handler(ValidationException('Need is not active.'), context())

        assert response.data['errors'] == {'non_field_errors': ['Need is not active.']}

    def test_not_found(self):
        response = api_exception_handler(NotFoundException('Offer not found.'), context())

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.data == {'message': 'Offer not found.'}

    def test_unauthorized_for_authenticated_user(self):
        response = api_exception_handler(UnauthorizedException(), context())

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.data['message'] == 'You are not authorized to perform this action.'

    def test_unauthorized_for_anonymous_user(self):
        response = api_exception_handler(UnauthorizedException(), context(authenticated=False))

        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_conflict(self):
        response = api_exception_handler(ConflictException(), context())

        assert response.status_code == status.HTTP_409_CONFLICT


class TestFrameworkExceptions:

    def test_django_validation_error_with_fields(self):
        exc = DjangoValidationError({'status': ['Invalid transition.']})

        response = api_exception_handler(exc, context())

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data['errors'] == {'status': ['Invalid transition.']}

    def test_django_validation_error_plain(self):
        response = api_exception_handler(DjangoValidationError('Broken.'), context())

        assert response.data['errors'] == {'non_field_errors': ['Broken.']}

    def test_drf_validation_error(self):
        exc = drf_exceptions.ValidationError({'email': ['Enter a valid email address.']})

        response = api_exception_handler(exc, context())

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data == {
            'message': 'One or more validation errors occurred.',
            'errors': {'email': ['Enter a valid email address.']},
        }

    def test_permission_denied(self):
        response = api_exception_handler(drf_exceptions.PermissionDenied('Only buyers.'), context())

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.data == {'message': 'Only buyers.'}

    def test_http_404(self):
        response = api_exception_handler(Http404(), context())

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.data == {'message': 'The requested resource was not found.'}

    def test_unexpected_error(self):
        response = api_exception_handler(RuntimeError('boom'), context())

        assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
        assert 'boom' not in response.data['message']
