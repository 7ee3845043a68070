"""
Tests for the hiring signals: application_hired and the payment audit log.

Uses TestCase with real signal dispatch; receivers run inside the
confirm-payment transaction, so a failing receiver must roll the hire back.
"""

from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import TestCase

from core.lifecycle import LifecycleEngine
from core.models import Application, Payment, Tuition
from core.payments import MockPaymentGateway
from core.signals import application_hired
from messaging.models import Conversation

User = get_user_model()


class HireSignalTests(TestCase):

    def setUp(self):
        self.student = User.objects.create_user(
            username='student1',
            email='student1@test.com',
            password='testpass123',
            role=User.ROLE_STUDENT,
        )
        self.tutor = User.objects.create_user(
            username='tutor1',
            email='tutor1@test.com',
            password='testpass123',
            role=User.ROLE_TUTOR,
        )
        self.admin = User.objects.create_user(
            username='admin1',
            email='admin1@test.com',
            password='testpass123',
            role=User.ROLE_ADMIN,
        )

        self.engine = LifecycleEngine(gateway=MockPaymentGateway())
        tuition = self.engine.create_tuition(
            self.student, subject='Chemistry', location='Uttara', salary='4000'
        )
        self.tuition = self.engine.review_tuition(self.admin, tuition.id, 'approve')
        self.application = self.engine.submit_application(
            self.tutor, self.tuition.id, qualifications='BSc Chemistry', expected_salary='4000'
        )

        self.received = []
        application_hired.connect(self._record, dispatch_uid='test.record_hire')
        self.addCleanup(application_hired.disconnect, dispatch_uid='test.record_hire')

    def _record(self, sender, application, payment, **kwargs):
        self.received.append((application.id, payment.id))

    def _result(self):
        checkout = self.engine.initiate_hire(self.student, self.application.id)
        return self.engine.gateway.retrieve(checkout.intent.reference)

    def test_hire_sends_signal_once(self):
        """
        Confirming a payment sends application_hired with the approved
        application and its successful payment; repeating it does not.
        """
        result = self._result()

        outcome = self.engine.confirm_payment(self.application.id, result)
        self.engine.confirm_payment(self.application.id, result)

        self.assertEqual(self.received, [(self.application.id, outcome.payment.id)])
        self.assertEqual(outcome.application.status, Application.STATUS_APPROVED)

    def test_messaging_receiver_returns_conversation(self):
        outcome = self.engine.confirm_payment(self.application.id, self._result())

        self.assertIsNotNone(outcome.conversation)
        self.assertEqual(outcome.conversation, Conversation.objects.get(tuition=self.tuition))

    def test_failing_receiver_rolls_back_hire(self):
        def explode(sender, **kwargs):
            raise RuntimeError('provisioning failed')

        application_hired.connect(explode, dispatch_uid='test.explode')
        self.addCleanup(application_hired.disconnect, dispatch_uid='test.explode')
        result = self._result()

        with self.assertRaises(RuntimeError):
            self.engine.confirm_payment(self.application.id, result)

        self.application.refresh_from_db()
        self.assertEqual(self.application.status, Application.STATUS_PENDING)
        self.assertFalse(Payment.objects.filter(status=Payment.STATUS_SUCCESS).exists())
        self.assertEqual(
            Payment.objects.get(transaction_id=result.reference).status, Payment.STATUS_PENDING
        )
        self.assertEqual(Tuition.objects.get(pk=self.tuition.pk).status, Tuition.STATUS_APPROVED)


class PaymentAuditLogTests(TestCase):

    def test_payment_writes_are_logged(self):
        student = User.objects.create_user(
            username='student2', email='student2@test.com', password='testpass123',
        )
        tutor = User.objects.create_user(
            username='tutor2', email='tutor2@test.com', password='testpass123',
            role=User.ROLE_TUTOR,
        )
        admin = User.objects.create_user(
            username='admin2', email='admin2@test.com', password='testpass123',
            role=User.ROLE_ADMIN,
        )
        engine = LifecycleEngine(gateway=MockPaymentGateway())
        tuition = engine.create_tuition(student, subject='Biology', location='Banani', salary='3500')
        engine.review_tuition(admin, tuition.id, 'approve')
        application = engine.submit_application(
            tutor, tuition.id, qualifications='MBBS', expected_salary=Decimal('3500')
        )

        with self.assertLogs('core.signals', level='INFO') as logs:
            checkout = engine.initiate_hire(student, application.id)

        self.assertTrue(any('Payment recorded.' in line for line in logs.output))
        self.assertTrue(any(checkout.intent.reference in line for line in logs.output))
