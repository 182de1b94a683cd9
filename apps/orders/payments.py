from __future__ import annotations

import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

import razorpay
import requests
from django.apps import apps
from django.conf import settings
from razorpay.errors import BadRequestError, ServerError, SignatureVerificationError
from razorpay.errors import GatewayError as RazorpayGatewayError

log = logging.getLogger(__name__)


class GatewayError(Exception):
    pass


def to_minor_units(amount: Decimal) -> int:
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class PaymentGateway:
    def __init__(self, *, key_id: str, key_secret: str, webhook_secret: str = "", currency: str = "INR", client=None):
        self.key_id = key_id
        self._webhook_secret = webhook_secret
        self.currency = currency
        self.client = client or razorpay.Client(auth=(key_id, key_secret))

    @classmethod
    def from_settings(cls) -> Optional["PaymentGateway"]:
        key_id = getattr(settings, "RAZORPAY_KEY_ID", "")
        key_secret = getattr(settings, "RAZORPAY_KEY_SECRET", "")
        if not (key_id and key_secret):
            return None
        return cls(
            key_id=key_id,
            key_secret=key_secret,
            webhook_secret=getattr(settings, "RAZORPAY_WEBHOOK_SECRET", ""),
            currency=getattr(settings, "PAYMENT_CURRENCY", "INR"),
        )

    def create_order(self, *, amount: Decimal, receipt: str) -> dict:
        data = {
            "amount": to_minor_units(amount),
            "currency": self.currency,
            "receipt": receipt,
            "payment_capture": 1,
        }
        try:
            return self.client.order.create(data=data)
        except (
            BadRequestError,
            RazorpayGatewayError,
            ServerError,
            requests.RequestException,
        ) as e:
            log.error("[payments] order creation failed for %s: %s", receipt, e)
            raise GatewayError(str(e)) from e

    def verify_payment_signature(self, gateway_order_id: str, gateway_payment_id: str, signature: str) -> bool:
        params = {
            "razorpay_order_id": gateway_order_id,
            "razorpay_payment_id": gateway_payment_id,
            "razorpay_signature": str(signature or ""),
        }
        try:
            return bool(self.client.utility.verify_payment_signature(params))
        except SignatureVerificationError:
            return False

    @property
    def has_webhook_secret(self) -> bool:
        return bool(self._webhook_secret)

    def verify_webhook_signature(self, body: bytes, signature: str) -> bool:
        if not self._webhook_secret:
            return False
        try:
            payload = body.decode("utf-8")
            return bool(self.client.utility.verify_webhook_signature(payload, str(signature or ""), self._webhook_secret))
        except (SignatureVerificationError, UnicodeDecodeError):
            return False


def get_gateway() -> Optional[PaymentGateway]:
    return apps.get_app_config("orders").gateway
