"""Payment gateway abstractions for the hiring flow."""

from functools import lru_cache

from django.conf import settings
from django.utils.module_loading import import_string

from .base import (
    STATUS_FAILED,
    STATUS_PROCESSING,
    STATUS_SUCCEEDED,
    PaymentGateway,
    PaymentGatewayError,
    PaymentIntent,
    PaymentResult,
)
from .mock import MockPaymentGateway


@lru_cache(maxsize=None)
def get_payment_gateway():
    """Instantiate the gateway named by settings.PAYMENT_GATEWAY."""
    gateway_class = import_string(settings.PAYMENT_GATEWAY)
    return gateway_class()


__all__ = [
    "STATUS_FAILED",
    "STATUS_PROCESSING",
    "STATUS_SUCCEEDED",
    "PaymentGateway",
    "PaymentGatewayError",
    "PaymentIntent",
    "PaymentResult",
    "MockPaymentGateway",
    "get_payment_gateway",
]
