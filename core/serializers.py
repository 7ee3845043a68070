"""
Serializers for the tuition marketplace API.

Input serializers only check request shape and types; business rules live in
core.lifecycle.LifecycleEngine. Output serializers render model instances.
"""

from django.contrib.auth import get_user_model
from rest_framework import serializers
from rest_framework_simplejwt.serializers import TokenObtainPairSerializer

from .models import Application, Payment, Review, Session, Tuition

User = get_user_model()


class EmailTokenObtainPairSerializer(TokenObtainPairSerializer):
    """
    Token serializer that takes email instead of username.
    """
    username_field = 'email'

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        if 'username' in self.fields:
            del self.fields['username']
        if 'email' not in self.fields:
            self.fields['email'] = serializers.EmailField()

    @classmethod
    def get_token(cls, user):
        token = super().get_token(user)
        token['role'] = user.role
        return token


# ============================================================================
# Users
# ============================================================================

class UserSummarySerializer(serializers.ModelSerializer):
    """Public view of a user shown next to tuitions, applications and chats."""

    name = serializers.CharField(read_only=True)

    class Meta:
        model = User
        fields = ['id', 'email', 'name', 'role', 'photo_url']
        read_only_fields = fields


class RoleUpdateSerializer(serializers.Serializer):
    role = serializers.ChoiceField(choices=User.ROLE_CHOICES)


class UserProfileSerializer(serializers.ModelSerializer):
    """The profile a user sees and edits on the settings page."""

    name = serializers.CharField(read_only=True)

    class Meta:
        model = User
        fields = [
            'id', 'email', 'name', 'display_name', 'role', 'photo_url', 'bio', 'subjects',
            'average_rating', 'review_count', 'created_at', 'updated_at',
        ]
        read_only_fields = fields


class ProfileUpdateSerializer(serializers.Serializer):
    """
    Partial profile edit. Accepts "name" and "photoURL" as aliases used by
    the web client.
    """

    display_name = serializers.CharField(max_length=150, required=False, allow_blank=True)
    photo_url = serializers.CharField(max_length=500, required=False, allow_blank=True)
    bio = serializers.CharField(required=False, allow_blank=True)
    subjects = serializers.CharField(max_length=300, required=False, allow_blank=True)

    ALIASES = {'name': 'display_name', 'photoURL': 'photo_url'}

    def to_internal_value(self, data):
        if hasattr(data, 'items'):
            data = {self.ALIASES.get(key, key): value for key, value in data.items()}
        return super().to_internal_value(data)

    def validate(self, attrs):
        read_only = {'email', 'role', 'average_rating', 'review_count'} & set(self.initial_data)
        if read_only:
            raise serializers.ValidationError(
                {field: 'This field cannot be changed here.' for field in sorted(read_only)}
            )
        if not attrs:
            raise serializers.ValidationError('Nothing to update.')
        return attrs


class TutorSerializer(serializers.ModelSerializer):
    """Public tutor card for the directory and profile page."""

    name = serializers.CharField(read_only=True)
    subjects = serializers.ListField(source='subject_list', child=serializers.CharField(), read_only=True)

    class Meta:
        model = User
        fields = [
            'id', 'email', 'name', 'photo_url', 'bio', 'subjects',
            'average_rating', 'review_count', 'created_at',
        ]
        read_only_fields = fields


# ============================================================================
# Reviews
# ============================================================================

class ReviewSerializer(serializers.ModelSerializer):
    student = UserSummarySerializer(read_only=True)
    tutor_id = serializers.IntegerField(read_only=True)
    subject = serializers.CharField(source='tuition.subject', read_only=True)

    class Meta:
        model = Review
        fields = [
            'id', 'student', 'tutor_id', 'tuition', 'subject',
            'rating', 'comment', 'created_at',
        ]
        read_only_fields = fields


class ReviewCreateSerializer(serializers.Serializer):
    """Accepts "tuitionId" as an alias used by the web client."""

    tuition = serializers.IntegerField(min_value=1)
    rating = serializers.IntegerField(min_value=1, max_value=5)
    comment = serializers.CharField()

    def to_internal_value(self, data):
        if hasattr(data, 'items') and 'tuition' not in data and 'tuitionId' in data:
            data = data.copy()
            data['tuition'] = data['tuitionId']
        return super().to_internal_value(data)


# ============================================================================
# Tuitions
# ============================================================================

class TuitionSerializer(serializers.ModelSerializer):
    """
    Tuition details.

    Fields:
    - student: Owner summary
    - application_count: Present on the owner's own listing
    """

    student = UserSummarySerializer(read_only=True)
    application_count = serializers.IntegerField(read_only=True, required=False)

    class Meta:
        model = Tuition
        fields = [
            'id', 'student', 'subject', 'location', 'salary', 'description',
            'status', 'application_count', 'created_at', 'updated_at',
        ]
        read_only_fields = fields


class TuitionWriteSerializer(serializers.Serializer):
    """Create (all required except description) or partial edit of a tuition."""

    subject = serializers.CharField(max_length=200)
    location = serializers.CharField(max_length=300)
    salary = serializers.DecimalField(max_digits=10, decimal_places=2)
    description = serializers.CharField(required=False, allow_blank=True, default='')

    def validate(self, attrs):
        if 'status' in self.initial_data:
            raise serializers.ValidationError(
                {'status': 'Status can only be changed by an admin review.'}
            )
        return attrs


class TuitionReviewSerializer(serializers.Serializer):
    """Admin decision: 'approved'/'approve' or 'rejected'/'reject'."""

    status = serializers.ChoiceField(choices=['approve', 'approved', 'reject', 'rejected'])


# ============================================================================
# Applications
# ============================================================================

class ApplicationSerializer(serializers.ModelSerializer):
    """
    Application details with the tuition and both parties.
    """

    tutor = UserSummarySerializer(read_only=True)
    tuition = TuitionSerializer(read_only=True)

    class Meta:
        model = Application
        fields = [
            'id', 'tuition', 'tutor', 'qualifications', 'experience',
            'expected_salary', 'status', 'created_at', 'updated_at',
        ]
        read_only_fields = fields


class ApplicationCreateSerializer(serializers.Serializer):
    tuition = serializers.IntegerField(min_value=1)
    qualifications = serializers.CharField()
    experience = serializers.CharField(required=False, allow_blank=True, default='')
    expected_salary = serializers.DecimalField(max_digits=10, decimal_places=2)


# ============================================================================
# Payments
# ============================================================================

class PaymentIntentRequestSerializer(serializers.Serializer):
    application = serializers.IntegerField(min_value=1)


class PaymentConfirmSerializer(serializers.Serializer):
    """
    Gateway outcome reported by the checkout page.

    status 'success' confirms the hire; 'failed' records a failed payment.
    """

    STATUS_SUCCESS = 'success'
    STATUS_FAILED = 'failed'

    application = serializers.IntegerField(min_value=1)
    transaction_id = serializers.CharField(max_length=255)
    status = serializers.ChoiceField(
        choices=[STATUS_SUCCESS, STATUS_FAILED], required=False, default=STATUS_SUCCESS
    )


class PaymentSerializer(serializers.ModelSerializer):
    student = UserSummarySerializer(read_only=True)
    tutor = UserSummarySerializer(read_only=True)
    tuition_id = serializers.IntegerField(source='application.tuition_id', read_only=True)
    subject = serializers.CharField(source='application.tuition.subject', read_only=True)

    class Meta:
        model = Payment
        fields = [
            'id', 'application', 'tuition_id', 'subject', 'student', 'tutor',
            'amount', 'currency', 'transaction_id', 'status', 'created_at',
        ]
        read_only_fields = fields


class PaymentReportSerializer(serializers.Serializer):
    total_earnings = serializers.DecimalField(max_digits=12, decimal_places=2)
    successful_payments = serializers.IntegerField()
    pending_payments = serializers.IntegerField()
    failed_payments = serializers.IntegerField()


# ============================================================================
# Sessions
# ============================================================================

class SessionSerializer(serializers.ModelSerializer):
    subject = serializers.CharField(source='tuition.subject', read_only=True)
    created_by = UserSummarySerializer(read_only=True)

    class Meta:
        model = Session
        fields = [
            'id', 'application', 'tuition', 'subject', 'created_by',
            'start_time', 'end_time', 'location', 'notes', 'status',
            'created_at', 'updated_at',
        ]
        read_only_fields = fields


class SessionCreateSerializer(serializers.Serializer):
    application = serializers.IntegerField(min_value=1)
    start_time = serializers.DateTimeField()
    end_time = serializers.DateTimeField()
    location = serializers.CharField(required=False, allow_blank=True, default='')
    notes = serializers.CharField(required=False, allow_blank=True, default='')


class SessionStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=[Session.STATUS_COMPLETED, Session.STATUS_CANCELLED])
