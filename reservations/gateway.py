"""Razorpay REST client: orders, refunds and checkout signatures"""

import hashlib
import hmac
import logging

import requests
from django.conf import settings

from .exceptions import GatewayUnavailable

log = logging.getLogger(__name__)


class RazorpayGateway:
    def __init__(self, key_id, key_secret, api_url='https://api.razorpay.com/v1', timeout=10, session=None):
        self.key_id = key_id
        self._key_secret = key_secret
        self.api_url = api_url.rstrip('/')
        self.timeout = timeout
        self.session = session or requests.Session()

    @classmethod
    def from_settings(cls):
        return cls(
            key_id=settings.RAZORPAY_KEY_ID,
            key_secret=settings.RAZORPAY_KEY_SECRET,
            api_url=settings.RAZORPAY_API_URL,
            timeout=settings.PAYMENT_GATEWAY_TIMEOUT,
        )

    def _post(self, path, payload):
        url = f'{self.api_url}{path}'
        try:
            res = self.session.post(
                url,
                json=payload,
                auth=(self.key_id, self._key_secret),
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            log.error('Razorpay request to %s failed: %s', path, exc)
            raise GatewayUnavailable(diagnostics=str(exc)) from exc

        if not res.ok:
            try:
                body = res.json()
            except ValueError:
                body = res.text
            log.error('Razorpay %s answered %s: %s', path, res.status_code, body)
            raise GatewayUnavailable(diagnostics={'status': res.status_code, 'body': body})

        return res.json()

    def create_order(self, amount, currency, receipt, notes=None):
        """`amount` is in minor units (paise)."""
        order = self._post(
            '/orders',
            {'amount': amount, 'currency': currency, 'receipt': receipt, 'notes': notes or {}},
        )
        log.info('Razorpay order %s opened for receipt %s', order.get('id'), receipt)
        return order

    def refund(self, payment_id, amount, notes=None):
        refund = self._post(
            f'/payments/{payment_id}/refund',
            {'amount': amount, 'speed': 'normal', 'notes': notes or {}},
        )
        log.info('Razorpay refund %s initiated for payment %s', refund.get('id'), payment_id)
        return refund

    def expected_signature(self, order_id, payment_id):
        message = f'{order_id}|{payment_id}'.encode()
        return hmac.new(self._key_secret.encode(), message, hashlib.sha256).hexdigest()

    def verify_signature(self, order_id, payment_id, signature):
        if not (order_id and payment_id and signature):
            return False
        expected = self.expected_signature(order_id, payment_id).encode()
        return hmac.compare_digest(expected, str(signature).encode())
