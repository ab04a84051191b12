import base64
import uuid
from typing import Optional

from .base import PaymentGateway, PaymentResult, ThreeDSInitResult, ThreeDSRequest

# Card numbers the mock gateway declines, mirroring common sandbox test cards
DECLINED_CARD_NUMBERS = {'4111111111111129', '5406670000000009'}


class MockGateway(PaymentGateway):
    """
    In-process gateway for local development and tests.

    Payments succeed unless the card number is in DECLINED_CARD_NUMBERS or the
    instance was created with approve=False.
    """

    name = 'mock'

    def __init__(self, approve=True):
        self.approve = approve
        self.initialized = {}

    def initialize_3ds(self, request: ThreeDSRequest) -> ThreeDSInitResult:
        card_number = str(request.card.get('card_number', '')).replace(' ', '')
        if not self.approve or card_number in DECLINED_CARD_NUMBERS:
            return ThreeDSInitResult(success=False, error_message='Card declined by issuer.')

        payment_id = f"mock-{uuid.uuid4().hex[:12]}"
        self.initialized[request.conversation_id] = payment_id
        html = (
            f"<html><body><form action='{request.callback_url}' method='post'>"
            f"<input type='hidden' name='conversationId' value='{request.conversation_id}'/>"
            f"<input type='hidden' name='paymentId' value='{payment_id}'/>"
            f"</form></body></html>"
        )
        return ThreeDSInitResult(
            success=True,
            html_content=html,
            payment_id=payment_id,
            raw={'threeDSHtmlContent': base64.b64encode(html.encode()).decode()},
        )

    def retrieve_payment(self, conversation_id: str, payment_id: Optional[str] = None) -> PaymentResult:
        known_id = self.initialized.get(conversation_id)
        if not self.approve or known_id is None:
            return PaymentResult(success=False, error_message='Payment not found or not approved.')
        return PaymentResult(success=True, payment_id=payment_id or known_id)
