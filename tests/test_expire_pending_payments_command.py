"""
Tests for the expire_pending_payments management command and the engine
operation behind it.
"""

from datetime import timedelta
from io import StringIO

import pytest
from django.core.management import CommandError, call_command
from django.utils import timezone

from core.models import Application, Payment


def _age(payment, minutes):
    Payment.objects.filter(pk=payment.pk).update(
        created_at=timezone.now() - timedelta(minutes=minutes)
    )


@pytest.mark.django_db
class TestExpirePendingPayments:

    def test_stale_abandoned_payment_is_failed(self, engine, application, student):
        checkout = engine.initiate_hire(student, application.id)
        engine.gateway.hold(checkout.intent.reference)
        _age(checkout.payment, 45)

        expired, settled = engine.expire_pending_payments()

        assert [p.pk for p in expired] == [checkout.payment.pk]
        assert settled == []
        checkout.payment.refresh_from_db()
        application.refresh_from_db()
        assert checkout.payment.status == Payment.STATUS_FAILED
        assert application.status == Application.STATUS_PENDING

    def test_recent_payment_is_kept(self, engine, application, student):
        checkout = engine.initiate_hire(student, application.id)
        engine.gateway.hold(checkout.intent.reference)
        _age(checkout.payment, 5)

        expired, _settled = engine.expire_pending_payments()

        assert expired == []
        checkout.payment.refresh_from_db()
        assert checkout.payment.status == Payment.STATUS_PENDING

    def test_payment_that_succeeded_at_gateway_is_left_for_confirmation(
        self, engine, application, student
    ):
        checkout = engine.initiate_hire(student, application.id)
        _age(checkout.payment, 45)

        expired, settled = engine.expire_pending_payments()

        assert expired == []
        assert [p.pk for p in settled] == [checkout.payment.pk]
        outcome = engine.confirm_payment(
            application.id, engine.gateway.retrieve(checkout.intent.reference)
        )
        assert outcome.payment.pk == checkout.payment.pk

    def test_succeeded_payment_for_filled_tuition_is_failed(
        self, engine, hire, application, second_application, student
    ):
        checkout = engine.initiate_hire(student, application.id)
        hire(second_application)
        _age(checkout.payment, 45)

        expired, settled = engine.expire_pending_payments()

        assert settled == []
        assert [p.pk for p in expired] == [checkout.payment.pk]
        checkout.payment.refresh_from_db()
        application.refresh_from_db()
        assert checkout.payment.status == Payment.STATUS_FAILED
        assert application.status == Application.STATUS_PENDING
        assert not Payment.objects.filter(status=Payment.STATUS_PENDING).exists()

    def test_succeeded_payment_for_rejected_application_is_failed(
        self, engine, application, student
    ):
        checkout = engine.initiate_hire(student, application.id)
        engine.reject_application(student, application.id)
        _age(checkout.payment, 45)

        expired, settled = engine.expire_pending_payments()

        assert settled == []
        assert [p.pk for p in expired] == [checkout.payment.pk]

    def test_no_verify_fails_without_asking_gateway(self, engine, application, student):
        checkout = engine.initiate_hire(student, application.id)
        _age(checkout.payment, 45)

        expired, _settled = engine.expire_pending_payments(verify_with_gateway=False)

        assert len(expired) == 1

    def test_application_can_be_hired_after_expiry(self, engine, hire, application, student):
        checkout = engine.initiate_hire(student, application.id)
        engine.gateway.hold(checkout.intent.reference)
        _age(checkout.payment, 60)
        engine.expire_pending_payments()

        outcome = hire(application)

        assert outcome.application.status == Application.STATUS_APPROVED


@pytest.mark.django_db
class TestExpireCommand:

    def test_command_expires_and_reports(self, engine, application, student):
        checkout = engine.initiate_hire(student, application.id)
        engine.gateway.hold(checkout.intent.reference)
        _age(checkout.payment, 31)

        out = StringIO()
        call_command('expire_pending_payments', stdout=out)

        assert 'Expired 1 pending payment(s)' in out.getvalue()
        checkout.payment.refresh_from_db()
        assert checkout.payment.status == Payment.STATUS_FAILED

    def test_dry_run_changes_nothing(self, engine, application, student):
        checkout = engine.initiate_hire(student, application.id)
        _age(checkout.payment, 90)

        out = StringIO()
        call_command('expire_pending_payments', '--dry-run', stdout=out)

        assert '[DRY-RUN]' in out.getvalue()
        checkout.payment.refresh_from_db()
        assert checkout.payment.status == Payment.STATUS_PENDING

    def test_custom_window(self, engine, application, student):
        checkout = engine.initiate_hire(student, application.id)
        engine.gateway.hold(checkout.intent.reference)
        _age(checkout.payment, 10)

        call_command('expire_pending_payments', '--minutes', '5', stdout=StringIO())

        checkout.payment.refresh_from_db()
        assert checkout.payment.status == Payment.STATUS_FAILED

    def test_invalid_window(self):
        with pytest.raises(CommandError):
            call_command('expire_pending_payments', '--minutes', '0', stdout=StringIO())
