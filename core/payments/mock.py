"""Mock payment gateway for development and tests."""

from __future__ import annotations

import secrets
import threading
import time
from decimal import Decimal

from .base import (
    STATUS_FAILED,
    STATUS_PROCESSING,
    STATUS_SUCCEEDED,
    PaymentGatewayError,
    PaymentIntent,
    PaymentResult,
)


REFERENCE_PREFIX = 'pi_mock_'


class MockPaymentGateway:
    """
    Gateway that settles every intent it issued as succeeded unless told otherwise.

    References that carry the mock prefix but were issued by another process
    are also reported as succeeded, so a multi-worker dev server behaves the
    same as a single one.
    """

    provider_name = 'mock'

    def __init__(self):
        self._lock = threading.Lock()
        self._intents: dict[str, PaymentIntent] = {}
        self._outcomes: dict[str, str] = {}

    def create_intent(
        self,
        *,
        amount: Decimal,
        currency: str,
        metadata: dict | None = None,
    ) -> PaymentIntent:
        reference = f"{REFERENCE_PREFIX}{int(time.time())}_{secrets.token_hex(6)}"
        intent = PaymentIntent(
            provider=self.provider_name,
            reference=reference,
            client_secret=f"{reference}_secret_{secrets.token_hex(8)}",
            amount=Decimal(str(amount)),
            currency=str(currency).strip().lower(),
            metadata=dict(metadata or {}),
        )
        with self._lock:
            self._intents[reference] = intent
        return intent

    def retrieve(self, reference: str) -> PaymentResult:
        reference = str(reference or '').strip()
        if not reference.startswith(REFERENCE_PREFIX):
            raise PaymentGatewayError(f"Unknown payment reference: {reference!r}")

        with self._lock:
            intent = self._intents.get(reference)
            outcome = self._outcomes.get(reference, STATUS_SUCCEEDED)

        return PaymentResult(
            reference=reference,
            status=outcome,
            amount=intent.amount if intent else None,
            currency=intent.currency if intent else None,
        )

    # Test helpers

    def fail(self, reference: str) -> None:
        with self._lock:
            self._outcomes[reference] = STATUS_FAILED

    def hold(self, reference: str) -> None:
        """Leave the intent unsettled (the user abandoned checkout)."""
        with self._lock:
            self._outcomes[reference] = STATUS_PROCESSING
