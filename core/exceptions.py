"""
Domain exceptions and the DRF exception handler that maps them to responses.

Services raise these exceptions; views never catch them. The handler turns
every error into a JSON body of the form {"message": ..., "errors": {...}}.
"""

import logging

from django.core.exceptions import ValidationError as DjangoValidationError
from django.http import Http404
from rest_framework import exceptions as drf_exceptions
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


class MarketplaceException(Exception):
    """Base class for errors raised by the service layer."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_message = 'Request could not be processed.'

    def __init__(self, message=None, errors=None):
        self.message = message or self.default_message
        self.errors = errors
        super().__init__(self.message)


class ValidationException(MarketplaceException):
    """
    Input or state validation failure.

    Args:
        errors: Mapping of field name to a list of messages, or a single message
        message: Optional summary message
    """

    status_code = status.HTTP_400_BAD_REQUEST
    default_message = 'One or more validation errors occurred.'

    def __init__(self, errors=None, message=None):
        if isinstance(errors, str):
            errors = {'non_field_errors': [errors]}
        elif errors:
            errors = {
                field: messages if isinstance(messages, (list, tuple)) else [messages]
                for field, messages in errors.items()
            }
        super().__init__(message=message, errors=errors or None)


class NotFoundException(MarketplaceException):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = 'The requested resource was not found.'


class UnauthorizedException(MarketplaceException):
    """Caller is authenticated but not allowed to act on the resource."""

    status_code = status.HTTP_403_FORBIDDEN
    default_message = 'You are not authorized to perform this action.'


class ConflictException(MarketplaceException):
    """Concurrent modification lost a race; the request can be retried."""

    status_code = status.HTTP_409_CONFLICT
    default_message = 'The resource was modified concurrently. Please retry.'


class RateLimitException(MarketplaceException):
    """Caller asked for something too often; retry after the window passes."""

    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    default_message = 'Too many requests. Please wait and try again.'


def _flatten_drf_detail(detail):
    """
    Convert DRF error detail into (message, errors) for the response body.
    """
    if isinstance(detail, dict):
        errors = {
            field: [str(item) for item in value] if isinstance(value, list) else [str(value)]
            for field, value in detail.items()
        }
        return 'One or more validation errors occurred.', errors
    if isinstance(detail, list):
        return ' '.join(str(item) for item in detail), None
    return str(detail), None


def api_exception_handler(exc, context):
    """
    Central exception handler registered in REST_FRAMEWORK settings.

    Mapping:
    - ValidationException / Django ValidationError -> 400 with field errors
    - NotFoundException / Http404 -> 404
    - UnauthorizedException -> 403, or 401 when the caller is anonymous
    - ConflictException -> 409
    - RateLimitException -> 429
    - DRF APIException subclasses -> their own status code
    - Anything else -> 500 with a generic message

    Args:
        exc: Raised exception
        context: DRF context containing the view and request

    Returns:
        Response: JSON error response
    """
    request = context.get('request')
    view = context.get('view')
    view_name = view.__class__.__name__ if view is not None else 'unknown'

    if isinstance(exc, MarketplaceException):
        status_code = exc.status_code
        if isinstance(exc, UnauthorizedException):
            user = getattr(request, 'user', None)
            if user is None or not user.is_authenticated:
                status_code = status.HTTP_401_UNAUTHORIZED

        body = {'message': exc.message}
        if exc.errors:
            body['errors'] = exc.errors

        logger.info(
            f"{exc.__class__.__name__} in {view_name}: {exc.message}"
        )
        return Response(body, status=status_code)

    if isinstance(exc, DjangoValidationError):
        if hasattr(exc, 'error_dict'):
            errors = {field: [str(m) for m in messages] for field, messages in exc.message_dict.items()}
        else:
            errors = {'non_field_errors': [str(m) for m in exc.messages]}
        return Response(
            {'message': 'One or more validation errors occurred.', 'errors': errors},
            status=status.HTTP_400_BAD_REQUEST
        )

    response = exception_handler(exc, context)
    if response is not None:
        if isinstance(exc, drf_exceptions.APIException):
            detail = exc.detail
        else:
            detail = response.data.get('detail', response.data)
        message, errors = _flatten_drf_detail(detail)
        if isinstance(exc, Http404):
            message = NotFoundException.default_message
        body = {'message': message}
        if errors:
            body['errors'] = errors
        response.data = body
        return response

    logger.error(
        f"Unhandled exception in {view_name}: {exc}",
        exc_info=(type(exc), exc, exc.__traceback__)
    )
    return Response(
        {'message': 'An unexpected error occurred. Please try again later.'},
        status=status.HTTP_500_INTERNAL_SERVER_ERROR
    )
