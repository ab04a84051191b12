from functools import lru_cache

from django.conf import settings
from django.utils.module_loading import import_string

from .base import PaymentGateway, PaymentResult, ThreeDSInitResult, ThreeDSRequest
from .mock import MockGateway

GATEWAYS = {
    'mock': 'core.gateways.mock.MockGateway',
    'iyzico': 'core.gateways.iyzico.IyzicoGateway',
}


@lru_cache()
def get_gateway() -> PaymentGateway:
    """Return the process-wide gateway selected by settings.PAYMENT_GATEWAY."""
    name = getattr(settings, 'PAYMENT_GATEWAY', 'mock').lower()
    if name not in GATEWAYS:
        raise ValueError(f"unknown payment gateway: {name}")
    return import_string(GATEWAYS[name])()


__all__ = [
    'PaymentGateway',
    'PaymentResult',
    'ThreeDSInitResult',
    'ThreeDSRequest',
    'MockGateway',
    'get_gateway',
]
