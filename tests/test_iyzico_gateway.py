"""
Iyzico client tests. HTTP is replaced by a mocked requests session.
"""

import base64
import hashlib
import hmac
import json
from decimal import Decimal
from unittest import mock

import pytest
import requests

from core.gateways import MockGateway, ThreeDSRequest, get_gateway
from core.gateways.iyzico import INITIALIZE_PATH, RETRIEVE_PATH, IyzicoGateway, format_price


def fake_session(payload=None, error=None):
    session = mock.Mock()
    if error is not None:
        session.post.side_effect = error
    else:
        response = mock.Mock()
        response.json.return_value = payload
        response.raise_for_status.return_value = None
        session.post.return_value = response
    return session


@pytest.fixture
def three_ds_request(card):
    return ThreeDSRequest(
        conversation_id='conv-123',
        amount=Decimal('22000'),
        currency='TRY',
        callback_url='http://testserver/api/payment/callback/',
        basket_id='offer-7',
        item_name='Move a two bedroom flat',
        card=card,
        buyer={'id': 3, 'name': 'Ayse', 'surname': 'Buyer', 'email': 'buyer@test.com', 'city': 'Istanbul'},
    )


def make_gateway(session):
    return IyzicoGateway(
        api_key='api-key',
        secret_key='secret-key',
        base_url='https://sandbox.example.com/',
        timeout=5,
        session=session,
    )


class TestSigning:

    def test_authorization_header(self):
        gateway = make_gateway(fake_session({}))
        body = '{"locale":"tr"}'

        header = gateway.build_authorization('/payment/detail', body, 'abc123')

        assert header.startswith('IYZWSv2 ')
        decoded = base64.b64decode(header[len('IYZWSv2 '):]).decode('utf-8')
        expected_signature = hmac.new(
            b'secret-key', ('abc123/payment/detail' + body).encode('utf-8'), hashlib.sha256
        ).hexdigest()
        assert decoded == f'apiKey:api-key&randomKey:abc123&signature:{expected_signature}'

    def test_format_price(self):
        assert format_price(Decimal('22000')) == '22000.00'
        assert format_price('19.5') == '19.50'


class TestInitialize:

    def test_success_decodes_html(self, three_ds_request):
        html = '<html><body>3DS</body></html>'
        session = fake_session({
            'status': 'success',
            'paymentId': 98765,
            'threeDSHtmlContent': base64.b64encode(html.encode('utf-8')).decode('ascii'),
        })

        result = make_gateway(session).initialize_3ds(three_ds_request)

        assert result.success is True
        assert result.html_content == html
        assert result.payment_id == '98765'

    def test_request_shape(self, three_ds_request):
        session = fake_session({'status': 'failure', 'errorMessage': 'Card declined'})

        make_gateway(session).initialize_3ds(three_ds_request)

        args, kwargs = session.post.call_args
        assert args[0] == f'https://sandbox.example.com{INITIALIZE_PATH}'
        assert kwargs['timeout'] == 5
        headers = kwargs['headers']
        assert headers['Authorization'].startswith('IYZWSv2 ')
        assert headers['x-iyzi-rnd']
        body = json.loads(kwargs['data'])
        assert body['conversationId'] == 'conv-123'
        assert body['price'] == '22000.00'
        assert body['paidPrice'] == '22000.00'
        assert body['paymentCard']['cardNumber'] == '5528790000000008'
        assert body['buyer']['id'] == '3'
        assert body['basketItems'][0]['id'] == 'offer-7'

    def test_signature_matches_sent_body(self, three_ds_request):
        session = fake_session({'status': 'failure'})
        gateway = make_gateway(session)

        gateway.initialize_3ds(three_ds_request)

        kwargs = session.post.call_args.kwargs
        expected = gateway.build_authorization(INITIALIZE_PATH, kwargs['data'], kwargs['headers']['x-iyzi-rnd'])
        assert kwargs['headers']['Authorization'] == expected

    def test_rejection(self, three_ds_request):
        session = fake_session({'status': 'failure', 'errorMessage': 'Card declined'})

        result = make_gateway(session).initialize_3ds(three_ds_request)

        assert result.success is False
        assert result.error_message == 'Card declined'

    def test_network_error(self, three_ds_request):
        session = fake_session(error=requests.ConnectionError('timeout'))

        result = make_gateway(session).initialize_3ds(three_ds_request)

        assert result.success is False
        assert result.error_message == 'Payment gateway is unavailable.'


class TestRetrieve:

    def test_success(self):
        session = fake_session({'status': 'success', 'paymentStatus': 'SUCCESS', 'paymentId': '555'})

        result = make_gateway(session).retrieve_payment('conv-123', '555')

        assert result.success is True
        assert result.payment_id == '555'
        body = json.loads(session.post.call_args.kwargs['data'])
        assert session.post.call_args.args[0].endswith(RETRIEVE_PATH)
        assert body == {
            'locale': 'tr',
            'conversationId': 'conv-123',
            'paymentConversationId': 'conv-123',
            'paymentId': '555',
        }

    def test_failed_payment(self):
        session = fake_session({'status': 'success', 'paymentStatus': 'FAILURE'})

        result = make_gateway(session).retrieve_payment('conv-123')

        assert result.success is False
        assert result.error_message == 'Payment was not completed.'

    def test_http_error(self):
        session = fake_session({})
        session.post.return_value.raise_for_status.side_effect = requests.HTTPError('502')

        result = make_gateway(session).retrieve_payment('conv-123')

        assert result.success is False


class TestGatewaySelection:

    def test_default_is_mock(self, settings):
        get_gateway.cache_clear()
        settings.PAYMENT_GATEWAY = 'mock'
        try:
            assert isinstance(get_gateway(), MockGateway)
        finally:
            get_gateway.cache_clear()

    def test_unknown_gateway(self, settings):
        get_gateway.cache_clear()
        settings.PAYMENT_GATEWAY = 'paypal'
        try:
            with pytest.raises(ValueError):
                get_gateway()
        finally:
            get_gateway.cache_clear()
