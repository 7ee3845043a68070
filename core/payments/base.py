"""Base contracts for payment gateways."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Protocol


STATUS_SUCCEEDED = 'succeeded'
STATUS_FAILED = 'failed'
STATUS_PROCESSING = 'processing'


@dataclass(frozen=True)
class PaymentIntent:
    """Normalized payment intent returned to the checkout page."""

    provider: str
    reference: str
    client_secret: str
    amount: Decimal
    currency: str
    metadata: dict = field(default_factory=dict)


@dataclass(frozen=True)
class PaymentResult:
    """Outcome reported by the gateway for one intent reference."""

    reference: str
    status: str
    amount: Decimal | None = None
    currency: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == STATUS_SUCCEEDED

    @property
    def failed(self) -> bool:
        return self.status == STATUS_FAILED


class PaymentGatewayError(Exception):
    """Raised when the gateway cannot be reached or rejects a request."""


class PaymentGateway(Protocol):
    """Gateway interface used by the hiring flow."""

    provider_name: str

    def create_intent(
        self,
        *,
        amount: Decimal,
        currency: str,
        metadata: dict | None = None,
    ) -> PaymentIntent:
        """Create an intent the client confirms with the gateway."""

    def retrieve(self, reference: str) -> PaymentResult:
        """Report the current outcome for an intent reference."""
