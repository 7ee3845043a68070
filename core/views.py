"""
API views for the tuition marketplace hiring lifecycle.

Views authenticate the caller, check request shape with a serializer and
delegate to core.lifecycle.LifecycleEngine. Domain errors raised by the
engine are rendered by MarketplaceAPIView.handle_exception as
{"code": ..., "detail": ...} responses.
"""

import logging

from django.db.models import Q
from rest_framework import status
from rest_framework.pagination import PageNumberPagination
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView
from rest_framework_simplejwt.views import TokenObtainPairView

from .errors import DomainError, NotFound, Unauthorized
from .lifecycle import LifecycleEngine
from .models import Tuition, User
from .payments import PaymentGatewayError
from .permissions import IsAdmin, IsTutor
from .serializers import (
    ApplicationCreateSerializer,
    ApplicationSerializer,
    EmailTokenObtainPairSerializer,
    PaymentConfirmSerializer,
    PaymentIntentRequestSerializer,
    PaymentReportSerializer,
    PaymentSerializer,
    ProfileUpdateSerializer,
    ReviewCreateSerializer,
    ReviewSerializer,
    RoleUpdateSerializer,
    SessionCreateSerializer,
    SessionSerializer,
    SessionStatusSerializer,
    TuitionReviewSerializer,
    TuitionSerializer,
    TuitionWriteSerializer,
    TutorSerializer,
    UserProfileSerializer,
    UserSummarySerializer,
)

logger = logging.getLogger(__name__)


def get_client_ip(request):
    """
    Get client IP address from request.
    Handles proxy headers for accurate IP detection.
    """
    x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
    if x_forwarded_for:
        ip = x_forwarded_for.split(',')[0]
    else:
        ip = request.META.get('REMOTE_ADDR')
    return ip


def error_response(error, **extra):
    """Render a DomainError as a JSON response."""
    payload = error.as_dict()
    payload.update(extra)
    return Response(payload, status=error.http_status)


class EmailTokenObtainPairView(TokenObtainPairView):
    """
    Obtain a JWT pair with email + password.
    """
    serializer_class = EmailTokenObtainPairSerializer


class MarketplaceAPIView(APIView):
    """
    Base view: JWT authentication, domain error rendering and pagination.
    """
    permission_classes = [IsAuthenticated]

    def get_engine(self):
        return LifecycleEngine()

    def handle_exception(self, exc):
        if isinstance(exc, DomainError):
            user = self.request.user
            logger.warning(
                f"Request rejected. Code: {exc.code.value}, Detail: {exc.message}, "
                f"Path: {self.request.path}, "
                f"User: {getattr(user, 'email', None)} (ID: {getattr(user, 'id', None)}), "
                f"IP: {get_client_ip(self.request)}"
            )
            return error_response(exc)

        if isinstance(exc, PaymentGatewayError):
            logger.error(
                f"Payment gateway failure. Path: {self.request.path}, "
                f"IP: {get_client_ip(self.request)}",
                exc_info=exc,
            )
            return Response(
                {
                    'code': 'PAYMENT_GATEWAY_ERROR',
                    'detail': 'The payment provider is unavailable. Please try again.',
                },
                status=status.HTTP_502_BAD_GATEWAY,
            )

        return super().handle_exception(exc)

    def invalid_input(self, serializer):
        return Response(
            {
                'code': 'VALIDATION_ERROR',
                'detail': 'Invalid input.',
                'errors': serializer.errors,
            },
            status=status.HTTP_400_BAD_REQUEST,
        )

    def paginated(self, queryset, serializer_class, **context):
        paginator = PageNumberPagination()
        page = paginator.paginate_queryset(queryset, self.request, view=self)
        context['request'] = self.request
        serializer = serializer_class(page, many=True, context=context)
        return paginator.get_paginated_response(serializer.data)


# ============================================================================
# Tuitions
# ============================================================================

class TuitionListCreateView(MarketplaceAPIView):
    """
    GET  /api/tuitions/   Approved tuitions (public). Filters: subject, location.
    POST /api/tuitions/   Post a tuition (students). Starts as pending.
    """

    def get_permissions(self):
        if self.request.method == 'GET':
            return [AllowAny()]
        return super().get_permissions()

    def get(self, request, *args, **kwargs):
        queryset = self.get_engine().open_tuitions()

        subject = request.query_params.get('subject')
        if subject:
            queryset = queryset.filter(subject__icontains=subject.strip())

        location = request.query_params.get('location')
        if location:
            queryset = queryset.filter(location__icontains=location.strip())

        return self.paginated(queryset.order_by('-created_at'), TuitionSerializer)

    def post(self, request, *args, **kwargs):
        serializer = TuitionWriteSerializer(data=request.data)
        if not serializer.is_valid():
            return self.invalid_input(serializer)

        tuition = self.get_engine().create_tuition(request.user, **serializer.validated_data)

        return Response(TuitionSerializer(tuition).data, status=status.HTTP_201_CREATED)


class MyTuitionsView(MarketplaceAPIView):
    """
    GET /api/tuitions/mine/   The caller's tuitions with application counts.
    """

    def get(self, request, *args, **kwargs):
        queryset = self.get_engine().tuitions_for(request.user)
        if request.user.is_admin():
            # Admins see the review queue here as well as their own
            status_filter = request.query_params.get('status')
            if status_filter:
                queryset = queryset.filter(status=status_filter)
        return self.paginated(queryset.order_by('-created_at'), TuitionSerializer)


class TuitionDetailView(MarketplaceAPIView):
    """
    GET    /api/tuitions/<id>/   Approved tuitions are public; owner and admins see any.
    PATCH  /api/tuitions/<id>/   Owner edit while pending or without applications.
    DELETE /api/tuitions/<id>/   Owner delete under the same rule.
    """

    def get_permissions(self):
        if self.request.method == 'GET':
            return [AllowAny()]
        return super().get_permissions()

    def get(self, request, *args, **kwargs):
        tuition_id = kwargs.get('pk')
        user = request.user
        visible = Q(status=Tuition.STATUS_APPROVED)
        if user.is_authenticated:
            visible |= Q(student_id=user.id)
        queryset = Tuition.objects.select_related('student')
        if not (user.is_authenticated and user.is_admin()):
            queryset = queryset.filter(visible)

        tuition = queryset.filter(pk=tuition_id).first()
        if tuition is None:
            raise NotFound('Tuition', tuition_id)
        return Response(TuitionSerializer(tuition).data)

    def patch(self, request, *args, **kwargs):
        serializer = TuitionWriteSerializer(data=request.data, partial=True)
        if not serializer.is_valid():
            return self.invalid_input(serializer)

        # Partial validation skips defaults, so only submitted fields are edited
        tuition = self.get_engine().update_tuition(
            request.user, kwargs.get('pk'), **serializer.validated_data
        )
        return Response(TuitionSerializer(tuition).data)

    def delete(self, request, *args, **kwargs):
        self.get_engine().delete_tuition(request.user, kwargs.get('pk'))
        return Response(status=status.HTTP_204_NO_CONTENT)


class TuitionReviewView(MarketplaceAPIView):
    """
    PATCH /api/tuitions/<id>/review/
    Request body: {"status": "approved"} or {"status": "rejected"}
    """
    permission_classes = [IsAuthenticated, IsAdmin]

    def patch(self, request, *args, **kwargs):
        serializer = TuitionReviewSerializer(data=request.data)
        if not serializer.is_valid():
            return self.invalid_input(serializer)

        tuition = self.get_engine().review_tuition(
            request.user, kwargs.get('pk'), serializer.validated_data['status']
        )

        logger.info(
            f"Tuition review recorded. Tuition ID: {tuition.id}, Status: {tuition.status}, "
            f"Admin: {request.user.email}, IP: {get_client_ip(request)}"
        )
        return Response(TuitionSerializer(tuition).data)


# ============================================================================
# Applications
# ============================================================================

class ApplicationListCreateView(MarketplaceAPIView):
    """
    GET  /api/applications/   Tutors: own applications. Students: applications
                              to their tuitions (?tuition=<id> to narrow down).
    POST /api/applications/   Tutor applies to an approved tuition.
    """

    def get(self, request, *args, **kwargs):
        queryset = self.get_engine().applications_for(request.user)

        tuition_id = request.query_params.get('tuition')
        if tuition_id:
            if not tuition_id.isdigit():
                raise NotFound('Tuition', tuition_id)
            queryset = queryset.filter(tuition_id=int(tuition_id))

        status_filter = request.query_params.get('status')
        if status_filter:
            queryset = queryset.filter(status=status_filter)

        return self.paginated(queryset.order_by('-created_at'), ApplicationSerializer)

    def post(self, request, *args, **kwargs):
        serializer = ApplicationCreateSerializer(data=request.data)
        if not serializer.is_valid():
            return self.invalid_input(serializer)

        data = serializer.validated_data
        application = self.get_engine().submit_application(
            request.user,
            data['tuition'],
            qualifications=data['qualifications'],
            experience=data['experience'],
            expected_salary=data['expected_salary'],
        )
        return Response(ApplicationSerializer(application).data, status=status.HTTP_201_CREATED)


class OngoingTuitionsView(MarketplaceAPIView):
    """
    GET /api/applications/ongoing/   The tutor's hired (approved) applications.
    """
    permission_classes = [IsAuthenticated, IsTutor]

    def get(self, request, *args, **kwargs):
        queryset = self.get_engine().ongoing_tuitions(request.user).order_by('-updated_at')
        return self.paginated(queryset, ApplicationSerializer)


class ApplicationRejectView(MarketplaceAPIView):
    """
    PATCH /api/applications/<id>/reject/
    """

    def patch(self, request, *args, **kwargs):
        application = self.get_engine().reject_application(request.user, kwargs.get('pk'))
        return Response(ApplicationSerializer(application).data)


class ApplicationApproveView(MarketplaceAPIView):
    """
    PATCH /api/applications/<id>/approve/

    Re-runs the hire commit for an application whose payment already
    succeeded. Never charges; returns 409 when no successful payment exists.
    """

    def patch(self, request, *args, **kwargs):
        outcome = self.get_engine().confirm_payment(kwargs.get('pk'), caller=request.user)

        return Response({
            'application': ApplicationSerializer(outcome.application).data,
            'payment': PaymentSerializer(outcome.payment).data,
            'conversation_id': outcome.conversation.id if outcome.conversation else None,
        })


# ============================================================================
# Payments
# ============================================================================

class CreatePaymentIntentView(MarketplaceAPIView):
    """
    POST /api/create-payment-intent/
    Request body: {"application": <id>}

    Success response (201):
    {
        "client_secret": "...",
        "transaction_id": "pi_...",
        "amount": "5000.00",
        "currency": "bdt",
        "payment_id": 1
    }
    """

    def post(self, request, *args, **kwargs):
        serializer = PaymentIntentRequestSerializer(data=request.data)
        if not serializer.is_valid():
            return self.invalid_input(serializer)

        checkout = self.get_engine().initiate_hire(
            request.user, serializer.validated_data['application']
        )

        return Response(
            {
                'client_secret': checkout.intent.client_secret,
                'transaction_id': checkout.intent.reference,
                'amount': str(checkout.payment.amount),
                'currency': checkout.payment.currency,
                'payment_id': checkout.payment.id,
            },
            status=status.HTTP_201_CREATED,
        )


class PaymentListCreateView(MarketplaceAPIView):
    """
    GET  /api/payments/   Payments the caller made or received (admins: all).
    POST /api/payments/   Report the checkout outcome.

    Request body: {"application": <id>, "transaction_id": "pi_...", "status": "success"}

    On "success" the outcome is verified with the payment gateway before the
    hire is committed. Re-posting a committed hire returns 200 with the same
    payment and conversation.
    """

    def get(self, request, *args, **kwargs):
        queryset = self.get_engine().payments_for(request.user).order_by('-created_at')
        return self.paginated(queryset, PaymentSerializer)

    def post(self, request, *args, **kwargs):
        serializer = PaymentConfirmSerializer(data=request.data)
        if not serializer.is_valid():
            return self.invalid_input(serializer)

        data = serializer.validated_data
        engine = self.get_engine()

        if data['status'] == PaymentConfirmSerializer.STATUS_FAILED:
            payment = engine.record_payment_failure(
                data['application'], data['transaction_id'], caller=request.user
            )
            return Response(PaymentSerializer(payment).data)

        result = engine.gateway.retrieve(data['transaction_id'])
        outcome = engine.confirm_payment(data['application'], result, caller=request.user)

        logger.info(
            f"Payment confirmation handled. Application ID: {outcome.application.id}, "
            f"Payment ID: {outcome.payment.id}, Newly hired: {outcome.newly_hired}, "
            f"User: {request.user.email}, IP: {get_client_ip(request)}"
        )

        return Response(
            {
                'application': ApplicationSerializer(outcome.application).data,
                'payment': PaymentSerializer(outcome.payment).data,
                'conversation_id': outcome.conversation.id if outcome.conversation else None,
            },
            status=status.HTTP_201_CREATED if outcome.newly_hired else status.HTTP_200_OK,
        )


class PaymentReportView(MarketplaceAPIView):
    """
    GET /api/reports/payments/   Platform earnings (admins).
    """
    permission_classes = [IsAuthenticated, IsAdmin]

    def get(self, request, *args, **kwargs):
        report = self.get_engine().payment_report(request.user)
        return Response(PaymentReportSerializer(report).data)


# ============================================================================
# Sessions
# ============================================================================

class SessionListCreateView(MarketplaceAPIView):
    """
    GET  /api/sessions/   Sessions of the caller's hires. Filters: status, application.
    POST /api/sessions/   Schedule a session for a hired application.
    """

    def get(self, request, *args, **kwargs):
        queryset = self.get_engine().sessions_for(request.user)

        status_filter = request.query_params.get('status')
        if status_filter:
            queryset = queryset.filter(status=status_filter)

        application_id = request.query_params.get('application')
        if application_id and application_id.isdigit():
            queryset = queryset.filter(application_id=int(application_id))

        return self.paginated(queryset.order_by('start_time'), SessionSerializer)

    def post(self, request, *args, **kwargs):
        serializer = SessionCreateSerializer(data=request.data)
        if not serializer.is_valid():
            return self.invalid_input(serializer)

        data = serializer.validated_data
        session = self.get_engine().schedule_session(
            request.user,
            data['application'],
            start=data['start_time'],
            end=data['end_time'],
            location=data['location'],
            notes=data['notes'],
        )
        return Response(SessionSerializer(session).data, status=status.HTTP_201_CREATED)


class SessionDetailView(MarketplaceAPIView):
    """
    PATCH  /api/sessions/<id>/   {"status": "completed" | "cancelled"}
    DELETE /api/sessions/<id>/   Only while scheduled.
    """

    def patch(self, request, *args, **kwargs):
        serializer = SessionStatusSerializer(data=request.data)
        if not serializer.is_valid():
            return self.invalid_input(serializer)

        session = self.get_engine().update_session_status(
            request.user, kwargs.get('pk'), serializer.validated_data['status']
        )
        return Response(SessionSerializer(session).data)

    def delete(self, request, *args, **kwargs):
        self.get_engine().delete_session(request.user, kwargs.get('pk'))
        return Response(status=status.HTTP_204_NO_CONTENT)


# ============================================================================
# Tutors and reviews
# ============================================================================

class TutorListView(MarketplaceAPIView):
    """
    GET /api/tutors/?search=physics   Public tutor directory, best rated first.
    """
    permission_classes = [AllowAny]

    def get(self, request, *args, **kwargs):
        search = (request.query_params.get('search') or '').strip()
        return self.paginated(self.get_engine().tutors(search), TutorSerializer)


class TutorDetailView(MarketplaceAPIView):
    """
    GET /api/tutors/<id>/   Public tutor profile with the latest reviews.
    """
    permission_classes = [AllowAny]
    latest_reviews = 10

    def get(self, request, *args, **kwargs):
        engine = self.get_engine()
        tutor = engine.tutor_profile(kwargs.get('pk'))
        reviews = engine.reviews_for(tutor)[:self.latest_reviews]

        data = TutorSerializer(tutor).data
        data['reviews'] = ReviewSerializer(reviews, many=True).data
        return Response(data)


class TutorReviewListView(MarketplaceAPIView):
    """
    GET /api/tutors/<id>/reviews/   All reviews of a tutor, newest first.
    """
    permission_classes = [AllowAny]

    def get(self, request, *args, **kwargs):
        engine = self.get_engine()
        tutor = engine.tutor_profile(kwargs.get('pk'))
        return self.paginated(engine.reviews_for(tutor), ReviewSerializer)


class ReviewCreateView(MarketplaceAPIView):
    """
    POST /api/reviews/
    Request body: {"tuition": <id>, "rating": 5, "comment": "..."}

    Rates the tutor hired for the caller's tuition. 409 DUPLICATE_REVIEW when
    the caller already reviewed that tutor.
    """

    def post(self, request, *args, **kwargs):
        serializer = ReviewCreateSerializer(data=request.data)
        if not serializer.is_valid():
            return self.invalid_input(serializer)

        data = serializer.validated_data
        review = self.get_engine().submit_review(
            request.user, data['tuition'], rating=data['rating'], comment=data['comment']
        )

        logger.info(
            f"Review created via API. Review ID: {review.id}, "
            f"User: {request.user.email}, IP: {get_client_ip(request)}"
        )
        return Response(ReviewSerializer(review).data, status=status.HTTP_201_CREATED)


# ============================================================================
# Users
# ============================================================================

class UserProfileView(MarketplaceAPIView):
    """
    GET   /api/users/<email>/   Profile of the caller (admins: anyone).
    PATCH /api/users/<email>/   {"name": "...", "photoURL": "...", "bio": "...", "subjects": "..."}
    """

    def get(self, request, *args, **kwargs):
        email = kwargs.get('email', '').lower()
        if email != request.user.email and not request.user.is_admin():
            raise Unauthorized('You can only view your own profile.')

        user = User.objects.filter(email=email).first()
        if user is None:
            raise NotFound('User', email)
        return Response(UserProfileSerializer(user).data)

    def patch(self, request, *args, **kwargs):
        serializer = ProfileUpdateSerializer(data=request.data)
        if not serializer.is_valid():
            return self.invalid_input(serializer)

        user = self.get_engine().update_profile(
            request.user, kwargs.get('email'), **serializer.validated_data
        )
        return Response(UserProfileSerializer(user).data)


class UserRoleView(MarketplaceAPIView):
    """
    PUT /api/users/<id>/role/
    Request body: {"role": "tutor"}
    """
    permission_classes = [IsAuthenticated, IsAdmin]

    def put(self, request, *args, **kwargs):
        serializer = RoleUpdateSerializer(data=request.data)
        if not serializer.is_valid():
            return self.invalid_input(serializer)

        user = self.get_engine().change_role(
            request.user, kwargs.get('pk'), serializer.validated_data['role']
        )
        return Response(UserSummarySerializer(user).data)
