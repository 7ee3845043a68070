"""
Django signals emitted by the hiring lifecycle.

`application_hired` is sent inside the confirm-payment transaction, after the
application has been approved. Receivers run synchronously in that same
transaction; an exception raised by a receiver rolls back the whole hire, so
receivers must not swallow errors. A receiver may return the object it
provisioned (the messaging app returns the conversation).

Review saves and deletes recompute the tutor's denormalized rating.
"""

import logging
from decimal import Decimal

from django.db import transaction
from django.db.models import Avg, Count
from django.db.models.signals import post_delete, post_save
from django.dispatch import Signal, receiver

from .models import Payment, Review, User

logger = logging.getLogger(__name__)


# Sent with: application (Application instance), payment (Payment instance)
application_hired = Signal()


@receiver(post_save, sender=Payment)
def log_payment_saved(sender, instance, created, **kwargs):
    """Audit trail for ledger writes."""
    action = "recorded" if created else "updated"
    logger.info(
        f"Payment {action}. "
        f"Payment ID: {instance.id}, "
        f"Application ID: {instance.application_id}, "
        f"Transaction: {instance.transaction_id}, "
        f"Amount: {instance.amount} {instance.currency}, "
        f"Status: {instance.status}"
    )


def recalculate_tutor_rating(tutor_id):
    """
    Recompute average_rating and review_count of a tutor from Review rows.

    Locks the tutor row so concurrent reviews cannot interleave.

    Returns:
        User: the updated tutor, or None if the user no longer exists
    """
    with transaction.atomic():
        tutor = User.objects.select_for_update().filter(pk=tutor_id).first()
        if tutor is None:
            return None

        stats = Review.objects.filter(tutor_id=tutor_id).aggregate(
            avg=Avg('rating'), total=Count('id')
        )
        raw_avg = stats['avg']
        tutor.average_rating = (
            Decimal('0.00') if raw_avg is None
            else Decimal(str(raw_avg)).quantize(Decimal('0.01'))
        )
        tutor.review_count = stats['total'] or 0
        tutor.save(update_fields=['average_rating', 'review_count'])

    return tutor


@receiver(post_save, sender=Review)
def update_rating_on_review_save(sender, instance, created, **kwargs):
    tutor = recalculate_tutor_rating(instance.tutor_id)
    action = "created" if created else "updated"
    logger.info(
        f"Updated rating for review {instance.id} ({action}): "
        f"tutor={tutor.email}, rating={instance.rating}, average={tutor.average_rating}"
    )


@receiver(post_delete, sender=Review)
def update_rating_on_review_delete(sender, instance, **kwargs):
    tutor = recalculate_tutor_rating(instance.tutor_id)
    if tutor is not None:
        logger.info(
            f"Updated rating after review {instance.id} was deleted: "
            f"tutor={tutor.email}, average={tutor.average_rating}"
        )
