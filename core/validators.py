"""
Custom field validators for the marketplace models.
"""

from decimal import Decimal, InvalidOperation
from urllib.parse import urlparse

from django.core.exceptions import ValidationError


def validate_positive_amount(value):
    """
    Validate a money amount is strictly positive.

    Args:
        value: Decimal (or number-like) amount

    Raises:
        ValidationError: If the amount is zero, negative or not a number
    """
    if value is None:
        return

    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError('Amount must be a number.', code='invalid_amount')

    if amount <= 0:
        raise ValidationError(
            'Amount must be greater than 0.',
            code='amount_not_positive'
        )


def validate_photo_url(value):
    """
    Validate an avatar URL from the external image host.

    Photos are opaque to the marketplace; only the scheme is checked so that
    clients never receive a javascript: or data: URL.
    """
    if not value:  # Empty string is allowed (optional field)
        return

    scheme = urlparse(value).scheme.lower()
    if scheme not in ('http', 'https'):
        raise ValidationError(
            'Photo URL must use http or https.',
            code='invalid_photo_url_scheme'
        )
