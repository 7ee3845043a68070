"""
Concurrency tests for the hire commit and conversation provisioning.

Each test runs its workers on separate threads with their own database
connections, so the row locks (IMMEDIATE transactions on SQLite) and the
unique constraints are exercised for real.
"""

import threading
from concurrent.futures import ThreadPoolExecutor, as_completed

import pytest
from django.db import connection
from rest_framework import status
from rest_framework.test import APIRequestFactory, force_authenticate

from core import errors
from core.lifecycle import LifecycleEngine
from core.models import Application, Payment
from core.views import PaymentListCreateView
from messaging.gateway import get_messaging_gateway
from messaging.models import Conversation


def _run_concurrently(worker, arguments):
    """Start every worker at once; return (results, domain errors)."""
    barrier = threading.Barrier(len(arguments))

    def run(argument):
        try:
            barrier.wait()
            return worker(argument), None
        except errors.DomainError as e:
            return None, e
        finally:
            connection.close()

    with ThreadPoolExecutor(max_workers=len(arguments)) as executor:
        futures = [executor.submit(run, argument) for argument in arguments]
        outcomes = [future.result() for future in as_completed(futures)]

    results = [result for result, error in outcomes if error is None]
    failures = [error for result, error in outcomes if error is not None]
    return results, failures


@pytest.mark.django_db(transaction=True)
class TestConcurrentHires:
    """Two checkouts for one tuition confirmed at the same moment."""

    def test_only_one_confirmation_wins(self, payment_gateway, application, second_application, student):
        engine = LifecycleEngine(gateway=payment_gateway)
        checkouts = {
            app.id: engine.initiate_hire(student, app.id)
            for app in (application, second_application)
        }

        def confirm(application_id):
            reference = checkouts[application_id].intent.reference
            return LifecycleEngine(gateway=payment_gateway).confirm_payment(
                application_id, payment_gateway.retrieve(reference)
            )

        results, failures = _run_concurrently(confirm, list(checkouts))

        assert len(results) == 1, f"Expected one hire, got {len(results)}. Errors: {failures}"
        assert len(failures) == 1
        assert isinstance(failures[0], errors.TuitionAlreadyHired)

        winner = results[0].application
        loser_id = next(pk for pk in checkouts if pk != winner.id)
        assert Application.objects.filter(status=Application.STATUS_APPROVED).count() == 1
        assert Application.objects.get(pk=loser_id).status == Application.STATUS_PENDING
        assert Payment.objects.get(
            transaction_id=checkouts[loser_id].intent.reference
        ).status == Payment.STATUS_FAILED
        assert Payment.objects.filter(status=Payment.STATUS_SUCCESS).count() == 1
        assert Conversation.objects.count() == 1

    def test_concurrent_payment_posts(self, payment_gateway, application, second_application, student):
        """Same race through the payments endpoint: one 201, one 409."""
        engine = LifecycleEngine(gateway=payment_gateway)
        references = {
            app.id: engine.initiate_hire(student, app.id).intent.reference
            for app in (application, second_application)
        }
        factory = APIRequestFactory()

        def post_payment(application_id):
            request = factory.post('/api/payments/', {
                'application': application_id,
                'transaction_id': references[application_id],
                'status': 'success',
            }, format='json')
            force_authenticate(request, user=student)
            return PaymentListCreateView.as_view()(request)

        responses, failures = _run_concurrently(post_payment, list(references))

        assert failures == []
        codes = sorted(r.status_code for r in responses)
        assert codes == [status.HTTP_201_CREATED, status.HTTP_409_CONFLICT], codes
        assert Application.objects.filter(status=Application.STATUS_APPROVED).count() == 1

    def test_repeated_confirmation_is_idempotent(self, payment_gateway, application, student):
        engine = LifecycleEngine(gateway=payment_gateway)
        reference = engine.initiate_hire(student, application.id).intent.reference
        result = payment_gateway.retrieve(reference)

        def confirm(_attempt):
            return LifecycleEngine(gateway=payment_gateway).confirm_payment(application.id, result)

        results, failures = _run_concurrently(confirm, range(4))

        assert failures == []
        assert sum(1 for outcome in results if outcome.newly_hired) == 1
        assert len({outcome.payment.pk for outcome in results}) == 1
        assert Payment.objects.filter(status=Payment.STATUS_SUCCESS).count() == 1
        assert Conversation.objects.count() == 1


@pytest.mark.django_db(transaction=True)
class TestConcurrentConversations:

    def test_open_conversation_creates_one_row(self, student, tutor, approved_tuition):
        def open_conversation(swap):
            participants = (tutor, student) if swap else (student, tutor)
            return get_messaging_gateway().open_conversation(*participants, approved_tuition.id)

        results, failures = _run_concurrently(open_conversation, [False, True, False, True, False])

        assert failures == []
        assert len({conversation.pk for conversation in results}) == 1
        assert Conversation.objects.count() == 1
