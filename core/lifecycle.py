"""
Lifecycle engine for the tuition -> application -> hire -> payment -> session flow.

All status transitions for Tuition, Application, Payment and Session go
through LifecycleEngine. Every mutating operation runs in
transaction.atomic() and locks the row it serializes on with
select_for_update():

- Tuition row: review, edit/delete, application submission, hiring
  (initiate_hire, confirm_payment). Two concurrent hires for one tuition
  are therefore serialized and the second one observes TuitionAlreadyHired.
- Application row: rejection.
- Session row: status changes and deletion.

Operations return model instances (or small result objects) and raise
core.errors.DomainError subclasses on failure.
"""

import logging
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal, InvalidOperation

from django.conf import settings
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import IntegrityError, transaction
from django.db.models import Count, Q, Sum
from django.utils import timezone

from . import errors
from .models import Application, Payment, Review, Session, Tuition, User
from .payments import PaymentGatewayError, get_payment_gateway
from .signals import application_hired

logger = logging.getLogger(__name__)


TUITION_DECISIONS = {
    'approve': Tuition.STATUS_APPROVED,
    'approved': Tuition.STATUS_APPROVED,
    'reject': Tuition.STATUS_REJECTED,
    'rejected': Tuition.STATUS_REJECTED,
}

TUITION_EDITABLE_FIELDS = ('subject', 'location', 'salary', 'description')

PROFILE_EDITABLE_FIELDS = ('display_name', 'photo_url', 'bio', 'subjects')

SESSION_FINAL_STATUSES = (Session.STATUS_COMPLETED, Session.STATUS_CANCELLED)


@dataclass(frozen=True)
class HireCheckout:
    """Returned by initiate_hire: the gateway intent and the pending ledger row."""

    intent: object
    payment: Payment


@dataclass(frozen=True)
class HireOutcome:
    """Returned by confirm_payment."""

    application: Application
    payment: Payment
    conversation: object
    newly_hired: bool


def parse_amount(value, field):
    """Parse a positive money amount or raise ValidationError."""
    if value is None or value == '':
        raise errors.ValidationError(f'{field} is required.', field=field)
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise errors.ValidationError(f'{field} must be a number.', field=field)
    if not amount.is_finite() or amount <= 0:
        raise errors.ValidationError(f'{field} must be greater than 0.', field=field)
    return amount.quantize(Decimal('0.01'))


def require_text(value, field):
    """Return stripped text or raise ValidationError when blank."""
    text = '' if value is None else str(value).strip()
    if not text:
        raise errors.ValidationError(f'{field} cannot be empty.', field=field)
    return text


class LifecycleEngine:
    """Owns every status transition of the hiring lifecycle."""

    def __init__(self, gateway=None, clock=None):
        self._gateway = gateway
        self._clock = clock or timezone.now

    @property
    def gateway(self):
        if self._gateway is None:
            self._gateway = get_payment_gateway()
        return self._gateway

    # ------------------------------------------------------------------
    # Lookups and guards
    # ------------------------------------------------------------------

    @staticmethod
    def _get(queryset, pk, label):
        try:
            return queryset.get(pk=pk)
        except (queryset.model.DoesNotExist, ValueError, TypeError):
            raise errors.NotFound(label, pk)

    @staticmethod
    def _require_admin(user):
        if not user.is_admin():
            raise errors.Unauthorized('Admin privileges required.')

    @staticmethod
    def _require_owner(tuition, user):
        if tuition.student_id != user.pk:
            raise errors.Unauthorized('Only the student who posted this tuition can do this.')

    @staticmethod
    def _require_party(application, user):
        if not application.involves(user):
            raise errors.Unauthorized('Only the student or the hired tutor can do this.')

    @staticmethod
    def _transition(instance, new_status):
        is_valid, error_message = instance.can_transition_to(new_status)
        if not is_valid:
            raise errors.InvalidTransition(instance.status, new_status, error_message)
        old_status = instance.status
        instance.status = new_status
        instance.save(update_fields=['status', 'updated_at'])
        return old_status

    def _lock_tuition(self, tuition_id):
        return self._get(Tuition.objects.select_for_update(), tuition_id, 'Tuition')

    def _lock_tuition_for_application(self, application_id):
        """Lock the tuition an application belongs to, then the application."""
        try:
            tuition_id = (
                Application.objects.filter(pk=application_id)
                .values_list('tuition_id', flat=True)
                .first()
            )
        except (ValueError, TypeError):
            tuition_id = None
        if tuition_id is None:
            raise errors.NotFound('Application', application_id)
        tuition = self._lock_tuition(tuition_id)
        application = self._get(
            Application.objects.select_for_update().select_related('tutor', 'tuition__student'),
            application_id,
            'Application',
        )
        return tuition, application

    # ------------------------------------------------------------------
    # Tuitions
    # ------------------------------------------------------------------

    def create_tuition(self, owner, subject=None, location=None, salary=None, description=''):
        """
        Post a new tuition. It starts as pending until an admin reviews it.

        Raises:
            Unauthorized: If the owner is not a student.
            ValidationError: If subject, location or salary is missing/invalid.
        """
        if not owner.is_student():
            raise errors.Unauthorized('Only students can post tuitions.')

        tuition = Tuition.objects.create(
            student=owner,
            subject=require_text(subject, 'subject'),
            location=require_text(location, 'location'),
            salary=parse_amount(salary, 'salary'),
            description=(description or '').strip(),
            status=Tuition.STATUS_PENDING,
        )

        logger.info(
            f"Tuition created. Tuition ID: {tuition.id}, "
            f"Subject: {tuition.subject}, Student: {owner.email}"
        )
        return tuition

    def review_tuition(self, admin, tuition_id, decision):
        """
        Approve or reject a pending tuition.

        Re-reviewing a tuition that is already approved or rejected raises
        InvalidTransition rather than being accepted silently.
        """
        self._require_admin(admin)

        new_status = TUITION_DECISIONS.get(str(decision or '').strip().lower())
        if new_status is None:
            raise errors.ValidationError(
                "Decision must be 'approve' or 'reject'.", field='status'
            )

        with transaction.atomic():
            tuition = self._lock_tuition(tuition_id)
            old_status = self._transition(tuition, new_status)

        logger.info(
            f"Tuition reviewed. Tuition ID: {tuition.id}, "
            f"Old Status: {old_status}, New Status: {new_status}, Admin: {admin.email}"
        )
        return tuition

    def update_tuition(self, owner, tuition_id, **fields):
        """Edit a tuition. Allowed while pending or while nobody has applied."""
        unknown = set(fields) - set(TUITION_EDITABLE_FIELDS)
        if unknown:
            raise errors.ValidationError(
                f"Cannot edit: {', '.join(sorted(unknown))}.", field=sorted(unknown)[0]
            )

        with transaction.atomic():
            tuition = self._lock_tuition(tuition_id)
            self._require_owner(tuition, owner)
            self._require_editable(tuition)

            if 'subject' in fields:
                tuition.subject = require_text(fields['subject'], 'subject')
            if 'location' in fields:
                tuition.location = require_text(fields['location'], 'location')
            if 'salary' in fields:
                tuition.salary = parse_amount(fields['salary'], 'salary')
            if 'description' in fields:
                tuition.description = (fields['description'] or '').strip()
            tuition.save()

        logger.info(f"Tuition updated. Tuition ID: {tuition.id}, Fields: {sorted(fields)}")
        return tuition

    def delete_tuition(self, owner, tuition_id):
        """Delete a tuition. Allowed while pending or while nobody has applied."""
        with transaction.atomic():
            tuition = self._lock_tuition(tuition_id)
            self._require_owner(tuition, owner)
            self._require_editable(tuition)
            tuition.delete()

        logger.info(f"Tuition deleted. Tuition ID: {tuition_id}, Student: {owner.email}")

    @staticmethod
    def _require_editable(tuition):
        if tuition.status != Tuition.STATUS_PENDING and tuition.applications.exists():
            raise errors.PreconditionFailed(
                'This tuition already has applications and can no longer be changed.'
            )

    # ------------------------------------------------------------------
    # Applications
    # ------------------------------------------------------------------

    def submit_application(self, tutor, tuition_id, qualifications=None,
                           experience='', expected_salary=None):
        """
        Apply to an approved tuition.

        Raises:
            Unauthorized: Caller is not a tutor.
            PreconditionFailed: Tuition is not approved.
            DuplicateApplication: Tutor already applied to this tuition.
            ValidationError: Missing qualifications or expected salary.
        """
        if not tutor.is_tutor():
            raise errors.Unauthorized('Only tutors can apply to tuitions.')

        qualifications = require_text(qualifications, 'qualifications')
        expected_salary = parse_amount(expected_salary, 'expected_salary')

        with transaction.atomic():
            tuition = self._lock_tuition(tuition_id)

            if tuition.student_id == tutor.pk:
                raise errors.Unauthorized('You cannot apply to your own tuition.')

            if tuition.status != Tuition.STATUS_APPROVED:
                raise errors.PreconditionFailed('This tuition is not open for applications.')

            if tuition.applications.filter(tutor=tutor).exists():
                raise errors.DuplicateApplication()

            try:
                with transaction.atomic():
                    application = Application.objects.create(
                        tuition=tuition,
                        tutor=tutor,
                        qualifications=qualifications,
                        experience=(experience or '').strip(),
                        expected_salary=expected_salary,
                        status=Application.STATUS_PENDING,
                    )
            except IntegrityError:
                raise errors.DuplicateApplication()

        logger.info(
            f"Application submitted. Application ID: {application.id}, "
            f"Tuition ID: {tuition.id}, Tutor: {tutor.email}"
        )
        return application

    def reject_application(self, student, application_id):
        """
        Reject a pending application. Only the tuition owner may do this.

        Rejecting is allowed even after another application has been hired.
        """
        with transaction.atomic():
            application = self._get(
                Application.objects.select_for_update().select_related('tuition', 'tutor'),
                application_id,
                'Application',
            )
            self._require_owner(application.tuition, student)
            old_status = self._transition(application, Application.STATUS_REJECTED)

        logger.info(
            f"Application rejected. Application ID: {application.id}, "
            f"Old Status: {old_status}, Student: {student.email}"
        )
        return application

    # ------------------------------------------------------------------
    # Hiring and payments
    # ------------------------------------------------------------------

    def initiate_hire(self, student, application_id):
        """
        Start checkout for an application.

        Creates a gateway intent for the tutor's expected salary and records a
        pending Payment with the intent reference. The application stays
        pending until confirm_payment() records a successful payment.
        """
        with transaction.atomic():
            tuition, application = self._lock_tuition_for_application(application_id)
            self._require_owner(tuition, student)

            if application.status != Application.STATUS_PENDING:
                raise errors.PreconditionFailed(
                    f'This application is {application.status} and cannot be hired.'
                )
            if tuition.applications.filter(status=Application.STATUS_APPROVED).exists():
                raise errors.TuitionAlreadyHired()

        # The gateway call is made outside the transaction so no row lock is
        # held across a network round trip.
        intent = self.gateway.create_intent(
            amount=application.expected_salary,
            currency=settings.PAYMENT_CURRENCY,
            metadata={
                'application_id': application.id,
                'tuition_id': tuition.id,
                'student_email': student.email,
                'tutor_email': application.tutor.email,
            },
        )

        payment = Payment.objects.create(
            application=application,
            student=student,
            tutor=application.tutor,
            amount=application.expected_salary,
            currency=intent.currency,
            transaction_id=intent.reference,
            status=Payment.STATUS_PENDING,
        )

        logger.info(
            f"Hire initiated. Application ID: {application.id}, "
            f"Payment ID: {payment.id}, Reference: {intent.reference}, "
            f"Amount: {payment.amount} {payment.currency}"
        )
        return HireCheckout(intent=intent, payment=payment)

    def confirm_payment(self, application_id, result=None, caller=None):
        """
        Commit a hire after the gateway reported success.

        Steps, in one transaction serialized on the tuition row:
        1. Record the successful Payment (reusing the pending row for the
           same reference).
        2. Approve the application.
        3. Leave other pending applications untouched.
        4. Provision the conversation between student and tutor.

        The application id is the idempotency key: calling again after a
        successful commit returns the same payment and conversation without
        creating anything. With result=None the call only re-runs steps 2-4
        and requires a successful payment to be on record already; it never
        charges.

        When the application can no longer be hired (rejected, or another
        tutor won the race) the pending payment for result.reference is
        marked failed and logged for refund before the error is raised.

        Raises:
            NotFound, Unauthorized, PreconditionFailed, InvalidTransition,
            TuitionAlreadyHired, ValidationError
        """
        if result is not None and not result.succeeded:
            raise errors.PreconditionFailed('The payment has not succeeded.')

        try:
            application, payment, conversation, newly_hired = self._commit_hire(
                application_id, result, caller
            )
        except (errors.TuitionAlreadyHired, errors.InvalidTransition):
            # A charge that can no longer buy a hire must not stay pending.
            if result is not None:
                self._void_pending_payment(application_id, result.reference)
            raise

        if newly_hired:
            logger.info(
                f"Tutor hired. Application ID: {application.id}, "
                f"Tuition ID: {application.tuition_id}, "
                f"Tutor: {application.tutor.email}, Payment ID: {payment.id}"
            )
        else:
            logger.info(f"Hire already committed, nothing to do. Application ID: {application.id}")

        return HireOutcome(
            application=application,
            payment=payment,
            conversation=conversation,
            newly_hired=newly_hired,
        )

    def _commit_hire(self, application_id, result, caller):
        with transaction.atomic():
            tuition, application = self._lock_tuition_for_application(application_id)

            if caller is not None and not (caller.pk == tuition.student_id or caller.is_admin()):
                raise errors.Unauthorized('Only the student who posted this tuition can hire.')

            newly_hired = application.status == Application.STATUS_PENDING

            if application.status == Application.STATUS_REJECTED:
                raise errors.InvalidTransition(
                    application.status,
                    Application.STATUS_APPROVED,
                    'This application was rejected and cannot be hired.',
                )

            if newly_hired:
                hired = (
                    tuition.applications
                    .filter(status=Application.STATUS_APPROVED)
                    .exclude(pk=application.pk)
                    .first()
                )
                if hired is not None:
                    logger.warning(
                        f"Hire rejected, tuition already filled. Tuition ID: {tuition.id}, "
                        f"Hired Application ID: {hired.id}, "
                        f"Attempted Application ID: {application.id}"
                    )
                    raise errors.TuitionAlreadyHired()

            payment = self._record_successful_payment(application, result)

            if newly_hired:
                self._transition(application, Application.STATUS_APPROVED)

            conversation = self._provision_conversation(application, payment)

        return application, payment, conversation, newly_hired

    def _void_pending_payment(self, application_id, reference):
        """
        Fail a pending payment whose application can no longer be hired.

        The gateway may have captured the money, so the payment is logged
        for manual refund.
        """
        with transaction.atomic():
            payment = (
                Payment.objects.select_for_update()
                .filter(
                    transaction_id=reference,
                    application_id=application_id,
                    status=Payment.STATUS_PENDING,
                )
                .first()
            )
            if payment is None:
                return None
            self._transition(payment, Payment.STATUS_FAILED)

        logger.warning(
            f"Payment voided, application can no longer be hired; refund required. "
            f"Payment ID: {payment.id}, Application ID: {application_id}, Reference: {reference}"
        )
        return payment

    @staticmethod
    def _can_still_hire(application):
        if application.status != Application.STATUS_PENDING:
            return False
        return not application.tuition.applications.filter(
            status=Application.STATUS_APPROVED
        ).exists()

    def _record_successful_payment(self, application, result):
        existing = application.payments.filter(status=Payment.STATUS_SUCCESS).first()
        if existing is not None:
            if result is not None and result.reference != existing.transaction_id:
                logger.warning(
                    f"Second successful charge reported for a paid application. "
                    f"Application ID: {application.id}, "
                    f"Recorded: {existing.transaction_id}, Reported: {result.reference}"
                )
            return existing

        if result is None:
            raise errors.PreconditionFailed(
                'No successful payment has been recorded for this application.'
            )

        if result.amount is not None and Decimal(str(result.amount)) != application.expected_salary:
            raise errors.ValidationError(
                'Paid amount does not match the expected salary.', field='amount'
            )

        payment = (
            Payment.objects.select_for_update()
            .filter(transaction_id=result.reference)
            .first()
        )

        if payment is None:
            return Payment.objects.create(
                application=application,
                student=application.tuition.student,
                tutor=application.tutor,
                amount=application.expected_salary,
                currency=(result.currency or settings.PAYMENT_CURRENCY).lower(),
                transaction_id=result.reference,
                status=Payment.STATUS_SUCCESS,
            )

        if payment.application_id != application.pk:
            raise errors.ValidationError(
                'This payment reference belongs to another application.', field='transaction_id'
            )
        if payment.status == Payment.STATUS_FAILED:
            raise errors.PreconditionFailed(
                'This payment was already marked as failed and needs manual reconciliation.'
            )

        self._transition(payment, Payment.STATUS_SUCCESS)
        return payment

    @staticmethod
    def _provision_conversation(application, payment):
        responses = application_hired.send(
            sender=Application, application=application, payment=payment
        )
        for _receiver, conversation in responses:
            if conversation is not None:
                return conversation
        return None

    def record_payment_failure(self, application_id, reference, caller=None):
        """Mark a pending payment failed. The application stays pending."""
        with transaction.atomic():
            payment = (
                Payment.objects.select_for_update()
                .select_related('application')
                .filter(transaction_id=reference, application_id=application_id)
                .first()
            )
            if payment is None:
                raise errors.NotFound('Payment', reference)
            if caller is not None and not (caller.pk == payment.student_id or caller.is_admin()):
                raise errors.Unauthorized()
            if payment.status == Payment.STATUS_FAILED:
                return payment
            self._transition(payment, Payment.STATUS_FAILED)

        logger.info(
            f"Payment failed. Payment ID: {payment.id}, "
            f"Application ID: {application_id}, Reference: {reference}"
        )
        return payment

    def expire_pending_payments(self, older_than=None, verify_with_gateway=True):
        """
        Fail pending payments that have outlived the reconciliation window.

        Payments the gateway reports as succeeded are left pending so the
        hire can still be confirmed, unless their application can no longer
        be hired. Those are failed too and logged for refund.

        Returns:
            tuple: (expired payments, payments left for confirmation)
        """
        if older_than is None:
            older_than = timedelta(minutes=settings.PAYMENT_PENDING_TIMEOUT_MINUTES)
        cutoff = self._clock() - older_than

        expired = []
        settled = []

        stale_ids = list(
            Payment.objects.filter(status=Payment.STATUS_PENDING, created_at__lt=cutoff)
            .order_by('created_at')
            .values_list('id', flat=True)
        )

        for payment_id in stale_ids:
            with transaction.atomic():
                payment = (
                    Payment.objects.select_for_update()
                    .select_related('application__tuition')
                    .filter(pk=payment_id)
                    .first()
                )
                if payment is None or payment.status != Payment.STATUS_PENDING:
                    continue

                if verify_with_gateway:
                    try:
                        outcome = self.gateway.retrieve(payment.transaction_id)
                    except PaymentGatewayError as e:
                        logger.warning(
                            f"Could not verify payment {payment.transaction_id} "
                            f"with the gateway: {e}"
                        )
                        outcome = None
                    if outcome is not None and outcome.succeeded:
                        if self._can_still_hire(payment.application):
                            settled.append(payment)
                            continue
                        logger.warning(
                            f"Payment succeeded at the gateway but its application can no "
                            f"longer be hired; refund required. Payment ID: {payment.id}, "
                            f"Application ID: {payment.application_id}, "
                            f"Reference: {payment.transaction_id}"
                        )

                self._transition(payment, Payment.STATUS_FAILED)
                expired.append(payment)

        if expired:
            logger.info(f"Expired {len(expired)} pending payment(s) older than {cutoff.isoformat()}")
        return expired, settled

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def schedule_session(self, caller, application_id, start=None, end=None,
                         location='', notes=''):
        """
        Schedule a single teaching session for a hired application.

        Raises:
            PreconditionFailed: Application is not approved.
            InvalidRange: end <= start.
            InThePast: start is before now.
        """
        if start is None:
            raise errors.ValidationError('start_time is required.', field='start_time')
        if end is None:
            raise errors.ValidationError('end_time is required.', field='end_time')
        if timezone.is_naive(start):
            start = timezone.make_aware(start)
        if timezone.is_naive(end):
            end = timezone.make_aware(end)

        application = self._get(
            Application.objects.select_related('tuition', 'tutor'), application_id, 'Application'
        )
        self._require_party(application, caller)

        if application.status != Application.STATUS_APPROVED:
            raise errors.PreconditionFailed('Sessions can only be scheduled for hired tutors.')

        if end <= start:
            raise errors.InvalidRange()

        if start < self._clock():
            raise errors.InThePast()

        session = Session.objects.create(
            application=application,
            tuition=application.tuition,
            created_by=caller,
            start_time=start,
            end_time=end,
            location=(location or '').strip(),
            notes=(notes or '').strip(),
            status=Session.STATUS_SCHEDULED,
        )

        logger.info(
            f"Session scheduled. Session ID: {session.id}, "
            f"Application ID: {application.id}, Start: {start.isoformat()}, "
            f"By: {caller.email}"
        )
        return session

    def update_session_status(self, caller, session_id, new_status):
        """Mark a scheduled session completed or cancelled (both terminal)."""
        if new_status not in SESSION_FINAL_STATUSES:
            raise errors.ValidationError(
                f"Status must be one of: {', '.join(SESSION_FINAL_STATUSES)}.", field='status'
            )

        with transaction.atomic():
            session = self._get(
                Session.objects.select_for_update().select_related('application__tuition'),
                session_id,
                'Session',
            )
            self._require_party(session.application, caller)
            old_status = self._transition(session, new_status)

        logger.info(
            f"Session status updated. Session ID: {session.id}, "
            f"Old Status: {old_status}, New Status: {new_status}, By: {caller.email}"
        )
        return session

    def delete_session(self, caller, session_id):
        """Delete a session that is still scheduled."""
        with transaction.atomic():
            session = self._get(
                Session.objects.select_for_update().select_related('application__tuition'),
                session_id,
                'Session',
            )
            self._require_party(session.application, caller)
            if session.status != Session.STATUS_SCHEDULED:
                raise errors.PreconditionFailed(
                    f'Cannot delete a {session.status} session.'
                )
            session.delete()

        logger.info(f"Session deleted. Session ID: {session_id}, By: {caller.email}")

    # ------------------------------------------------------------------
    # Reviews
    # ------------------------------------------------------------------

    def submit_review(self, student, tuition_id, rating=None, comment=None):
        """
        Rate the tutor hired for one of the student's tuitions.

        The tutor must have been hired and paid for that tuition. A student
        reviews a given tutor once.

        Raises:
            NotFound, Unauthorized, PreconditionFailed, ValidationError,
            DuplicateReview
        """
        try:
            rating = int(rating)
        except (TypeError, ValueError):
            raise errors.ValidationError('rating must be a whole number.', field='rating')
        if not 1 <= rating <= 5:
            raise errors.ValidationError('rating must be between 1 and 5.', field='rating')
        comment = require_text(comment, 'comment')

        with transaction.atomic():
            tuition = self._lock_tuition(tuition_id)
            self._require_owner(tuition, student)

            hired = tuition.hired_application()
            if hired is None or not hired.payments.filter(status=Payment.STATUS_SUCCESS).exists():
                raise errors.PreconditionFailed(
                    'You can review a tutor once you have hired and paid them.'
                )

            if Review.objects.filter(student=student, tutor_id=hired.tutor_id).exists():
                raise errors.DuplicateReview()

            try:
                with transaction.atomic():
                    review = Review.objects.create(
                        student=student,
                        tutor_id=hired.tutor_id,
                        tuition=tuition,
                        rating=rating,
                        comment=comment,
                    )
            except (IntegrityError, DjangoValidationError):
                raise errors.DuplicateReview()

        logger.info(
            f"Review submitted. Review ID: {review.id}, Tuition ID: {tuition.id}, "
            f"Tutor ID: {hired.tutor_id}, Rating: {rating}, Student: {student.email}"
        )
        return review

    @staticmethod
    def tutors(search=None):
        """Active tutors, best rated first. search matches name, email or subjects."""
        queryset = User.objects.filter(role=User.ROLE_TUTOR, is_active=True)
        if search:
            queryset = queryset.filter(
                Q(display_name__icontains=search)
                | Q(first_name__icontains=search)
                | Q(last_name__icontains=search)
                | Q(email__icontains=search)
                | Q(subjects__icontains=search)
            )
        return queryset.order_by('-average_rating', '-review_count', 'id')

    def tutor_profile(self, tutor_id):
        return self._get(self.tutors(), tutor_id, 'Tutor')

    @staticmethod
    def reviews_for(tutor):
        return Review.objects.select_related('student', 'tuition').filter(tutor=tutor)

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def update_profile(self, caller, email, **fields):
        """
        Edit a user's public profile. Users edit their own; admins edit anyone's.

        Editable: display_name, photo_url, bio, subjects.
        """
        unknown = set(fields) - set(PROFILE_EDITABLE_FIELDS)
        if unknown:
            raise errors.ValidationError(
                f"Cannot edit: {', '.join(sorted(unknown))}.", field=sorted(unknown)[0]
            )

        email = str(email or '').strip().lower()
        if email != caller.email and not caller.is_admin():
            raise errors.Unauthorized('You can only edit your own profile.')

        user = User.objects.filter(email=email).first()
        if user is None:
            raise errors.NotFound('User', email)

        for field, value in fields.items():
            setattr(user, field, (value or '').strip())

        try:
            user.full_clean(exclude=['password'])
        except DjangoValidationError as e:
            field, messages = next(iter(e.message_dict.items()))
            raise errors.ValidationError(messages[0], field=field)
        user.save(update_fields=[*fields, 'updated_at'])

        logger.info(
            f"Profile updated. User: {user.email}, Fields: {sorted(fields)}, By: {caller.email}"
        )
        return user

    def change_role(self, admin, user_id, role):
        self._require_admin(admin)
        valid_roles = [choice for choice, _label in User.ROLE_CHOICES]
        if role not in valid_roles:
            raise errors.ValidationError(
                f"Invalid role. Must be one of: {', '.join(valid_roles)}.", field='role'
            )
        user = self._get(User.objects.all(), user_id, 'User')
        old_role = user.role
        user.role = role
        user.save(update_fields=['role', 'updated_at'])
        logger.info(
            f"User role changed. User: {user.email}, Old Role: {old_role}, "
            f"New Role: {role}, Admin: {admin.email}"
        )
        return user

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    @staticmethod
    def open_tuitions():
        return Tuition.objects.filter(status=Tuition.STATUS_APPROVED).select_related('student')

    @staticmethod
    def tuitions_for(user):
        queryset = Tuition.objects.select_related('student').annotate(
            application_count=Count('applications')
        )
        if user.is_admin():
            return queryset
        return queryset.filter(student=user)

    @staticmethod
    def applications_for(user):
        queryset = Application.objects.select_related('tuition__student', 'tutor')
        if user.is_admin():
            return queryset
        if user.is_tutor():
            return queryset.filter(tutor=user)
        return queryset.filter(tuition__student=user)

    @staticmethod
    def ongoing_tuitions(tutor):
        return Application.objects.select_related('tuition__student', 'tutor').filter(
            tutor=tutor, status=Application.STATUS_APPROVED
        )

    @staticmethod
    def sessions_for(user):
        queryset = Session.objects.select_related('tuition', 'application__tutor', 'tuition__student')
        if user.is_admin():
            return queryset
        return queryset.filter(Q(application__tutor=user) | Q(tuition__student=user))

    @staticmethod
    def payments_for(user):
        queryset = Payment.objects.select_related('application__tuition', 'student', 'tutor')
        if user.is_admin():
            return queryset
        return queryset.filter(Q(student=user) | Q(tutor=user))

    def payment_report(self, admin):
        """Platform earnings: totals from successful payments and counts by status."""
        self._require_admin(admin)
        by_status = {
            row['status']: row['count']
            for row in Payment.objects.values('status').annotate(count=Count('id'))
        }
        total = Payment.objects.filter(status=Payment.STATUS_SUCCESS).aggregate(
            total=Sum('amount')
        )['total']
        return {
            'total_earnings': total or Decimal('0.00'),
            'successful_payments': by_status.get(Payment.STATUS_SUCCESS, 0),
            'pending_payments': by_status.get(Payment.STATUS_PENDING, 0),
            'failed_payments': by_status.get(Payment.STATUS_FAILED, 0),
        }
