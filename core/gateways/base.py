"""
Payment gateway interface used by the payment service.

Gateways are plain objects passed into PaymentService, so tests can hand in a
fake and production code gets the configured client from get_gateway().
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Optional


@dataclass
class ThreeDSRequest:
    """Everything a gateway needs to start a 3-D Secure payment."""

    conversation_id: str
    amount: Decimal
    currency: str
    callback_url: str
    basket_id: str
    item_name: str
    card: Dict[str, Any] = field(default_factory=dict)
    buyer: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ThreeDSInitResult:
    success: bool
    html_content: str = ''
    payment_id: str = ''
    error_message: str = ''
    raw: Dict[str, Any] = field(default_factory=dict)


@dataclass
class PaymentResult:
    success: bool
    payment_id: str = ''
    error_message: str = ''
    raw: Dict[str, Any] = field(default_factory=dict)


class PaymentGateway(ABC):
    """Abstract 3-D Secure payment gateway."""

    name = 'base'

    @abstractmethod
    def initialize_3ds(self, request: ThreeDSRequest) -> ThreeDSInitResult:
        """Start a 3-D Secure payment and return the HTML the client must render."""

    @abstractmethod
    def retrieve_payment(self, conversation_id: str, payment_id: Optional[str] = None) -> PaymentResult:
        """Query the gateway for the final state of a payment."""
