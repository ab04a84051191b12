"""
Iyzico REST client for 3-D Secure payments.

Talks to the gateway over HTTPS with requests and signs every call with the
IYZWSv2 scheme: HMAC-SHA256 over random key + URI path + JSON body.
"""

import base64
import hashlib
import hmac
import json
import logging
import secrets
from decimal import Decimal
from typing import Optional

import requests
from django.conf import settings

from .base import PaymentGateway, PaymentResult, ThreeDSInitResult, ThreeDSRequest

logger = logging.getLogger(__name__)

INITIALIZE_PATH = '/payment/3dsecure/initialize'
RETRIEVE_PATH = '/payment/detail'


def format_price(amount):
    """Iyzico expects prices as plain decimal strings, e.g. '22000.00'."""
    return f"{Decimal(amount):.2f}"


class IyzicoGateway(PaymentGateway):
    """
    Payment gateway backed by the Iyzico REST API.

    Args:
        api_key: Merchant API key (defaults to settings.IYZICO_API_KEY)
        secret_key: Merchant secret (defaults to settings.IYZICO_SECRET_KEY)
        base_url: API root (defaults to settings.IYZICO_BASE_URL)
        timeout: Request timeout in seconds
        session: Optional requests.Session, mainly for tests
    """

    name = 'iyzico'

    def __init__(self, api_key=None, secret_key=None, base_url=None, timeout=None, session=None):
        self.api_key = api_key if api_key is not None else getattr(settings, 'IYZICO_API_KEY', '')
        self.secret_key = secret_key if secret_key is not None else getattr(settings, 'IYZICO_SECRET_KEY', '')
        self.base_url = (base_url or getattr(settings, 'IYZICO_BASE_URL', 'https://sandbox-api.iyzipay.com')).rstrip('/')
        self.timeout = timeout or getattr(settings, 'PAYMENT_GATEWAY_TIMEOUT', 15)
        self.session = session or requests.Session()

    # ------------------------------------------------------------------
    # Signing
    # ------------------------------------------------------------------

    def build_authorization(self, uri_path, body, random_key):
        """
        Build the IYZWSv2 Authorization header value.

        Args:
            uri_path: Request path, e.g. '/payment/detail'
            body: Serialized JSON body exactly as it will be sent
            random_key: Per-request random string, also sent as x-iyzi-rnd

        Returns:
            str: Header value starting with 'IYZWSv2 '
        """
        payload = f"{random_key}{uri_path}{body}"
        signature = hmac.new(
            self.secret_key.encode('utf-8'),
            payload.encode('utf-8'),
            hashlib.sha256,
        ).hexdigest()
        auth_string = f"apiKey:{self.api_key}&randomKey:{random_key}&signature:{signature}"
        return 'IYZWSv2 ' + base64.b64encode(auth_string.encode('utf-8')).decode('ascii')

    def _post(self, uri_path, payload):
        body = json.dumps(payload, separators=(',', ':'))
        random_key = secrets.token_hex(8)
        headers = {
            'Accept': 'application/json',
            'Content-Type': 'application/json',
            'Authorization': self.build_authorization(uri_path, body, random_key),
            'x-iyzi-rnd': random_key,
        }
        response = self.session.post(
            f"{self.base_url}{uri_path}",
            data=body,
            headers=headers,
            timeout=self.timeout,
        )
        response.raise_for_status()
        return response.json()

    # ------------------------------------------------------------------
    # PaymentGateway
    # ------------------------------------------------------------------

    def initialize_3ds(self, request: ThreeDSRequest) -> ThreeDSInitResult:
        card = request.card
        buyer = request.buyer
        price = format_price(request.amount)
        address = {
            'contactName': buyer.get('name', ''),
            'city': buyer.get('city', ''),
            'country': buyer.get('country', 'Turkey'),
            'address': buyer.get('address', ''),
        }
        payload = {
            'locale': 'tr',
            'conversationId': request.conversation_id,
            'price': price,
            'paidPrice': price,
            'currency': request.currency,
            'installment': 1,
            'basketId': request.basket_id,
            'paymentChannel': 'WEB',
            'paymentGroup': 'PRODUCT',
            'callbackUrl': request.callback_url,
            'paymentCard': {
                'cardHolderName': card.get('card_holder_name', ''),
                'cardNumber': card.get('card_number', ''),
                'expireMonth': card.get('expire_month', ''),
                'expireYear': card.get('expire_year', ''),
                'cvc': card.get('cvc', ''),
                'registerCard': 0,
            },
            'buyer': {
                'id': str(buyer.get('id', '')),
                'name': buyer.get('name', ''),
                'surname': buyer.get('surname', ''),
                'gsmNumber': buyer.get('phone', ''),
                'email': buyer.get('email', ''),
                'identityNumber': buyer.get('identity_number', '11111111111'),
                'registrationAddress': buyer.get('address', ''),
                'ip': buyer.get('ip', ''),
                'city': buyer.get('city', ''),
                'country': buyer.get('country', 'Turkey'),
            },
            'shippingAddress': address,
            'billingAddress': address,
            'basketItems': [
                {
                    'id': request.basket_id,
                    'name': request.item_name[:100],
                    'category1': 'Service',
                    'itemType': 'VIRTUAL',
                    'price': price,
                }
            ],
        }

        try:
            data = self._post(INITIALIZE_PATH, payload)
        except (requests.RequestException, ValueError) as e:
            logger.error(
                f"Iyzico 3DS initialize failed. Conversation: {request.conversation_id}, Error: {e}",
                exc_info=True
            )
            return ThreeDSInitResult(success=False, error_message='Payment gateway is unavailable.')

        if data.get('status') != 'success' or not data.get('threeDSHtmlContent'):
            return ThreeDSInitResult(
                success=False,
                error_message=data.get('errorMessage') or 'Payment initialization was rejected.',
                raw=data,
            )

        html = base64.b64decode(data['threeDSHtmlContent']).decode('utf-8')
        return ThreeDSInitResult(
            success=True,
            html_content=html,
            payment_id=str(data.get('paymentId') or ''),
            raw=data,
        )

    def retrieve_payment(self, conversation_id: str, payment_id: Optional[str] = None) -> PaymentResult:
        payload = {
            'locale': 'tr',
            'conversationId': conversation_id,
            'paymentConversationId': conversation_id,
        }
        if payment_id:
            payload['paymentId'] = payment_id

        try:
            data = self._post(RETRIEVE_PATH, payload)
        except (requests.RequestException, ValueError) as e:
            logger.error(
                f"Iyzico payment retrieve failed. Conversation: {conversation_id}, Error: {e}",
                exc_info=True
            )
            return PaymentResult(success=False, error_message='Payment gateway is unavailable.')

        payment_status = data.get('paymentStatus')
        if data.get('status') == 'success' and payment_status in (None, 'SUCCESS'):
            return PaymentResult(success=True, payment_id=str(data.get('paymentId') or payment_id or ''), raw=data)

        return PaymentResult(
            success=False,
            error_message=data.get('errorMessage') or 'Payment was not completed.',
            raw=data,
        )
