"""
Models for the tuition marketplace hiring lifecycle.

Tuition, Application, Payment and Session each carry an explicit status
field; the allowed transitions are declared on the model and enforced both
here (on save) and by the lifecycle engine (core/lifecycle.py).
"""

from decimal import Decimal

from django.contrib.auth.models import AbstractUser
from django.core.exceptions import ValidationError
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.utils.translation import gettext_lazy as _

from .validators import validate_positive_amount, validate_photo_url


class User(AbstractUser):
    """
    Custom User model extending Django's AbstractUser.

    Additional fields:
    - email: Required, unique email address (stored lower-case)
    - role: 'student', 'tutor' or 'admin'
    - display_name: Name shown to the other party
    - photo_url: Avatar URL hosted by an external image service
    - bio / subjects: Public tutor profile
    - average_rating / review_count: Denormalized from Review rows
    - created_at / updated_at: Timestamps
    """

    ROLE_STUDENT = 'student'
    ROLE_TUTOR = 'tutor'
    ROLE_ADMIN = 'admin'

    ROLE_CHOICES = [
        (ROLE_STUDENT, 'Student'),
        (ROLE_TUTOR, 'Tutor'),
        (ROLE_ADMIN, 'Admin'),
    ]

    email = models.EmailField(
        _('email address'),
        unique=True,
        blank=False,
        null=False,
        error_messages={
            'unique': _('A user with that email already exists.'),
        },
        help_text=_('Required. Enter a valid email address.')
    )

    role = models.CharField(
        _('role'),
        max_length=10,
        choices=ROLE_CHOICES,
        default=ROLE_STUDENT,
        help_text=_('Marketplace role of the user.')
    )

    display_name = models.CharField(
        _('display name'),
        max_length=150,
        blank=True,
        default='',
    )

    photo_url = models.URLField(
        _('photo URL'),
        max_length=500,
        blank=True,
        default='',
        validators=[validate_photo_url],
        help_text=_('Avatar URL hosted by the external image service.')
    )

    bio = models.TextField(_('bio'), blank=True, default='')

    subjects = models.CharField(
        _('subjects'),
        max_length=300,
        blank=True,
        default='',
        help_text=_('Comma-separated subjects the tutor teaches.')
    )

    average_rating = models.DecimalField(
        _('average rating'),
        max_digits=3,
        decimal_places=2,
        default=Decimal('0.00'),
        validators=[MinValueValidator(0), MaxValueValidator(5)],
    )

    review_count = models.PositiveIntegerField(_('review count'), default=0)

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)
    updated_at = models.DateTimeField(_('updated at'), auto_now=True)

    class Meta:
        verbose_name = _('user')
        verbose_name_plural = _('users')
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['email'], name='core_user_email_7c4a2b_idx'),
            models.Index(fields=['role'], name='core_user_role_3d9e1f_idx'),
        ]

    def __str__(self):
        """Return email as string representation."""
        return self.email or self.username

    @property
    def name(self):
        return self.display_name or self.get_full_name() or self.email

    @property
    def subject_list(self):
        return [s.strip() for s in self.subjects.split(',') if s.strip()]

    def is_student(self):
        return self.role == self.ROLE_STUDENT

    def is_tutor(self):
        return self.role == self.ROLE_TUTOR

    def is_admin(self):
        """Staff users are admins regardless of their marketplace role."""
        return self.role == self.ROLE_ADMIN or self.is_staff

    def save(self, *args, **kwargs):
        # Normalize email to lowercase for case-insensitive uniqueness
        if self.email:
            self.email = self.email.lower()
        super().save(*args, **kwargs)


class StatusMachineMixin:
    """
    Declarative status machine for models with a `status` field.

    Subclasses define TRANSITIONS as {current_status: {allowed next statuses}}.
    Statuses without an entry are terminal.
    """

    TRANSITIONS = {}
    entity_label = 'record'

    def can_transition_to(self, new_status):
        """
        Validate if the instance can move to new_status.

        Returns:
            tuple: (is_valid: bool, error_message: str or None)
        """
        current_status = self.status

        if current_status == new_status:
            return False, f'This {self.entity_label} is already {current_status}.'

        allowed = self.TRANSITIONS.get(current_status)
        if not allowed:
            return False, f'Cannot modify a {current_status} {self.entity_label}.'

        if new_status not in allowed:
            return False, f'Invalid status transition from {current_status} to {new_status}.'

        return True, None

    def is_terminal(self):
        return not self.TRANSITIONS.get(self.status)

    def _validate_status_change(self):
        """Reject saves that skip the state machine."""
        if self.pk is None:
            return
        previous = type(self).objects.filter(pk=self.pk).values_list('status', flat=True).first()
        if previous is None or previous == self.status:
            return
        snapshot = self.status
        self.status = previous
        try:
            is_valid, error_message = self.can_transition_to(snapshot)
        finally:
            self.status = snapshot
        if not is_valid:
            raise ValidationError({'status': error_message})


class Tuition(StatusMachineMixin, models.Model):
    """
    A tutoring request posted by a student.

    Fields:
    - student: Owning student
    - subject / location / description: What and where
    - salary: Offered monthly salary
    - status: pending, approved or rejected (admin review)
    """

    STATUS_PENDING = 'pending'
    STATUS_APPROVED = 'approved'
    STATUS_REJECTED = 'rejected'

    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_APPROVED, 'Approved'),
        (STATUS_REJECTED, 'Rejected'),
    ]

    TRANSITIONS = {
        STATUS_PENDING: {STATUS_APPROVED, STATUS_REJECTED},
    }
    entity_label = 'tuition'

    student = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='tuitions',
        help_text=_('Student who posted the tuition')
    )

    subject = models.CharField(_('subject'), max_length=200)

    location = models.CharField(_('location'), max_length=300)

    salary = models.DecimalField(
        _('salary'),
        max_digits=10,
        decimal_places=2,
        validators=[validate_positive_amount],
        help_text=_('Offered salary')
    )

    description = models.TextField(_('description'), blank=True, default='')

    status = models.CharField(
        _('status'),
        max_length=20,
        choices=STATUS_CHOICES,
        default=STATUS_PENDING,
    )

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)
    updated_at = models.DateTimeField(_('updated at'), auto_now=True)

    class Meta:
        verbose_name = _('tuition')
        verbose_name_plural = _('tuitions')
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['student'], name='core_tuitio_student_5b1c8e_idx'),
            models.Index(fields=['status'], name='core_tuitio_status_a2f4d7_idx'),
        ]

    def __str__(self):
        return f"{self.subject} ({self.location})"

    def clean(self):
        super().clean()

        # Role is checked when the tuition is posted; later role changes do
        # not invalidate it.
        if self.pk is None and self.student_id and not self.student.is_student():
            raise ValidationError({
                'student': _('Only students can post tuitions.')
            })

        if not self.subject or not self.subject.strip():
            raise ValidationError({'subject': _('Subject cannot be empty.')})

        if not self.location or not self.location.strip():
            raise ValidationError({'location': _('Location cannot be empty.')})

        self._validate_status_change()

    def save(self, *args, **kwargs):
        self.full_clean()
        super().save(*args, **kwargs)

    def hired_application(self):
        """Return the approved application for this tuition, if any."""
        return self.applications.filter(status=Application.STATUS_APPROVED).first()


class Application(StatusMachineMixin, models.Model):
    """
    A tutor's bid for a tuition.

    At most one application per (tuition, tutor). At most one approved
    application per tuition; approval requires a successful payment.
    """

    STATUS_PENDING = 'pending'
    STATUS_APPROVED = 'approved'
    STATUS_REJECTED = 'rejected'

    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_APPROVED, 'Approved'),
        (STATUS_REJECTED, 'Rejected'),
    ]

    TRANSITIONS = {
        STATUS_PENDING: {STATUS_APPROVED, STATUS_REJECTED},
    }
    entity_label = 'application'

    tuition = models.ForeignKey(
        Tuition,
        on_delete=models.CASCADE,
        related_name='applications',
    )

    tutor = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='applications',
        help_text=_('Tutor applying for the tuition')
    )

    qualifications = models.TextField(_('qualifications'))

    experience = models.TextField(_('experience'), blank=True, default='')

    expected_salary = models.DecimalField(
        _('expected salary'),
        max_digits=10,
        decimal_places=2,
        validators=[validate_positive_amount],
    )

    status = models.CharField(
        _('status'),
        max_length=20,
        choices=STATUS_CHOICES,
        default=STATUS_PENDING,
    )

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)
    updated_at = models.DateTimeField(_('updated at'), auto_now=True)

    class Meta:
        verbose_name = _('application')
        verbose_name_plural = _('applications')
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['tutor'], name='core_applic_tutor_i_6e2d90_idx'),
            models.Index(fields=['status'], name='core_applic_status_c81b3a_idx'),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=['tuition', 'tutor'],
                name='unique_application_per_tutor',
            ),
            models.UniqueConstraint(
                fields=['tuition'],
                condition=models.Q(status='approved'),
                name='one_hire_per_tuition',
            ),
        ]

    def __str__(self):
        return f"Application by {self.tutor.email} for {self.tuition}"

    def clean(self):
        super().clean()

        if self.pk is None and self.tutor_id and not self.tutor.is_tutor():
            raise ValidationError({
                'tutor': _('Only tutors can apply to tuitions.')
            })

        if not self.qualifications or not self.qualifications.strip():
            raise ValidationError({
                'qualifications': _('Qualifications cannot be empty.')
            })

        self._validate_status_change()

    def save(self, *args, **kwargs):
        self.full_clean()
        super().save(*args, **kwargs)

    @property
    def student(self):
        return self.tuition.student

    def involves(self, user):
        """Check if user is the student or the tutor of this application."""
        return user.pk in (self.tutor_id, self.tuition.student_id)


class Payment(StatusMachineMixin, models.Model):
    """
    Ledger entry for a hiring payment.

    Settled records (success or failed) are immutable; adjustments are new
    records. At most one successful payment exists per application.
    """

    STATUS_PENDING = 'pending'
    STATUS_SUCCESS = 'success'
    STATUS_FAILED = 'failed'

    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_SUCCESS, 'Success'),
        (STATUS_FAILED, 'Failed'),
    ]

    TRANSITIONS = {
        STATUS_PENDING: {STATUS_SUCCESS, STATUS_FAILED},
    }
    entity_label = 'payment'

    application = models.ForeignKey(
        Application,
        on_delete=models.PROTECT,
        related_name='payments',
    )

    student = models.ForeignKey(
        User,
        on_delete=models.PROTECT,
        related_name='payments_made',
    )

    tutor = models.ForeignKey(
        User,
        on_delete=models.PROTECT,
        related_name='payments_received',
    )

    amount = models.DecimalField(
        _('amount'),
        max_digits=10,
        decimal_places=2,
        validators=[MinValueValidator(0)],
    )

    currency = models.CharField(_('currency'), max_length=10, default='bdt')

    transaction_id = models.CharField(
        _('transaction ID'),
        max_length=255,
        unique=True,
        help_text=_('Payment reference issued by the payment gateway')
    )

    status = models.CharField(
        _('status'),
        max_length=20,
        choices=STATUS_CHOICES,
        default=STATUS_PENDING,
    )

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)
    updated_at = models.DateTimeField(_('updated at'), auto_now=True)

    class Meta:
        verbose_name = _('payment')
        verbose_name_plural = _('payments')
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['student'], name='core_paymen_student_0f7a21_idx'),
            models.Index(fields=['status'], name='core_paymen_status_4b9c6e_idx'),
            models.Index(fields=['created_at'], name='core_paymen_created_d3e8f5_idx'),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=['application'],
                condition=models.Q(status='success'),
                name='one_success_payment_per_application',
            ),
        ]

    def __str__(self):
        return f"Payment {self.transaction_id} ({self.status})"

    def clean(self):
        super().clean()

        if self.pk is not None:
            previous = Payment.objects.filter(pk=self.pk).values(
                'status', 'amount', 'currency', 'transaction_id', 'application_id'
            ).first()
            if previous and previous['status'] != self.STATUS_PENDING:
                unchanged = (
                    previous['status'] == self.status
                    and previous['amount'] == self.amount
                    and previous['currency'] == self.currency
                    and previous['transaction_id'] == self.transaction_id
                    and previous['application_id'] == self.application_id
                )
                if not unchanged:
                    raise ValidationError(
                        _('Settled payments are immutable. Record a new payment instead.')
                    )

        self._validate_status_change()

    def save(self, *args, **kwargs):
        self.full_clean()
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        if self.status == self.STATUS_SUCCESS:
            raise ValidationError(_('Successful payments cannot be deleted.'))
        return super().delete(*args, **kwargs)


class Session(StatusMachineMixin, models.Model):
    """
    A single scheduled teaching occurrence for a hired application.
    """

    STATUS_SCHEDULED = 'scheduled'
    STATUS_COMPLETED = 'completed'
    STATUS_CANCELLED = 'cancelled'

    STATUS_CHOICES = [
        (STATUS_SCHEDULED, 'Scheduled'),
        (STATUS_COMPLETED, 'Completed'),
        (STATUS_CANCELLED, 'Cancelled'),
    ]

    TRANSITIONS = {
        STATUS_SCHEDULED: {STATUS_COMPLETED, STATUS_CANCELLED},
    }
    entity_label = 'session'

    application = models.ForeignKey(
        Application,
        on_delete=models.CASCADE,
        related_name='sessions',
    )

    tuition = models.ForeignKey(
        Tuition,
        on_delete=models.CASCADE,
        related_name='sessions',
    )

    created_by = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='created_sessions',
    )

    start_time = models.DateTimeField(_('start time'))
    end_time = models.DateTimeField(_('end time'))

    location = models.CharField(_('location'), max_length=300, blank=True, default='')
    notes = models.TextField(_('notes'), blank=True, default='')

    status = models.CharField(
        _('status'),
        max_length=20,
        choices=STATUS_CHOICES,
        default=STATUS_SCHEDULED,
    )

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)
    updated_at = models.DateTimeField(_('updated at'), auto_now=True)

    class Meta:
        verbose_name = _('session')
        verbose_name_plural = _('sessions')
        ordering = ['start_time']
        indexes = [
            models.Index(fields=['application', 'start_time'], name='core_sessio_applica_7a5b2c_idx'),
            models.Index(fields=['status'], name='core_sessio_status_e6f1a9_idx'),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(end_time__gt=models.F('start_time')),
                name='session_end_after_start',
            ),
        ]

    def __str__(self):
        return f"{self.tuition.subject} - {self.start_time}"

    def clean(self):
        super().clean()

        if self.start_time and self.end_time and self.end_time <= self.start_time:
            raise ValidationError({
                'end_time': _('End time must be after start time.')
            })

        self._validate_status_change()

    def save(self, *args, **kwargs):
        self.full_clean()
        super().save(*args, **kwargs)


class Review(models.Model):
    """
    A student's rating of a tutor they hired.

    One review per (student, tutor). Saving or deleting a review recomputes
    the tutor's average_rating and review_count (core/signals.py).
    """

    student = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='reviews_given',
        help_text=_('Student writing the review')
    )

    tutor = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='reviews_received',
        help_text=_('Tutor being reviewed')
    )

    tuition = models.ForeignKey(
        Tuition,
        on_delete=models.CASCADE,
        related_name='reviews',
        help_text=_('Tuition the tutor was hired for')
    )

    rating = models.PositiveSmallIntegerField(
        _('rating'),
        validators=[
            MinValueValidator(1, message=_('Rating must be at least 1.')),
            MaxValueValidator(5, message=_('Rating must be at most 5.'))
        ],
    )

    comment = models.TextField(_('comment'))

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)
    updated_at = models.DateTimeField(_('updated at'), auto_now=True)

    class Meta:
        verbose_name = _('review')
        verbose_name_plural = _('reviews')
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['tutor', 'created_at'], name='core_review_tutor_i_2f8c41_idx'),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=['student', 'tutor'],
                name='one_review_per_student_and_tutor',
            ),
        ]

    def __str__(self):
        return f"Review by {self.student.email} for {self.tutor.email} - {self.rating}"

    def clean(self):
        super().clean()

        if self.student_id and self.student_id == self.tutor_id:
            raise ValidationError({'tutor': _('You cannot review yourself.')})

        if not self.comment or not self.comment.strip():
            raise ValidationError({'comment': _('Comment cannot be empty.')})

    def save(self, *args, **kwargs):
        self.full_clean()
        super().save(*args, **kwargs)
