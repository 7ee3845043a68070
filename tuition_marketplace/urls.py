"""
URL configuration for tuition_marketplace project.

All API endpoints live under /api/. Lifecycle endpoints are served by
core.views, conversations and live channels by messaging.views.
"""
from django.contrib import admin
from django.urls import path
from rest_framework_simplejwt.views import TokenRefreshView

from core.views import (
    ApplicationApproveView,
    ApplicationListCreateView,
    ApplicationRejectView,
    CreatePaymentIntentView,
    EmailTokenObtainPairView,
    MyTuitionsView,
    OngoingTuitionsView,
    PaymentListCreateView,
    PaymentReportView,
    ReviewCreateView,
    SessionDetailView,
    SessionListCreateView,
    TuitionDetailView,
    TuitionListCreateView,
    TuitionReviewView,
    TutorDetailView,
    TutorListView,
    TutorReviewListView,
    UserProfileView,
    UserRoleView,
)
from messaging.views import (
    ChannelConnectView,
    ChannelDetailView,
    ChannelEventsView,
    ContactView,
    ConversationListView,
    ConversationReadView,
    MessageListCreateView,
)


urlpatterns = [
    path('admin/', admin.site.urls),

    # JWT Authentication endpoints
    path('api/token/', EmailTokenObtainPairView.as_view(), name='token_obtain_pair'),
    path('api/token/refresh/', TokenRefreshView.as_view(), name='token_refresh'),

    # Tuitions
    path('api/tuitions/', TuitionListCreateView.as_view(), name='tuition-list'),
    path('api/tuitions/mine/', MyTuitionsView.as_view(), name='tuition-mine'),
    path('api/tuitions/<int:pk>/', TuitionDetailView.as_view(), name='tuition-detail'),
    path('api/tuitions/<int:pk>/review/', TuitionReviewView.as_view(), name='tuition-review'),

    # Applications
    path('api/applications/', ApplicationListCreateView.as_view(), name='application-list'),
    path('api/applications/ongoing/', OngoingTuitionsView.as_view(), name='application-ongoing'),
    path('api/applications/<int:pk>/reject/', ApplicationRejectView.as_view(), name='application-reject'),
    path('api/applications/<int:pk>/approve/', ApplicationApproveView.as_view(), name='application-approve'),

    # Payments
    path('api/create-payment-intent/', CreatePaymentIntentView.as_view(), name='payment-intent'),
    path('api/payments/', PaymentListCreateView.as_view(), name='payment-list'),
    path('api/reports/payments/', PaymentReportView.as_view(), name='payment-report'),

    # Sessions
    path('api/sessions/', SessionListCreateView.as_view(), name='session-list'),
    path('api/sessions/<int:pk>/', SessionDetailView.as_view(), name='session-detail'),

    # Tutors and reviews
    path('api/tutors/', TutorListView.as_view(), name='tutor-list'),
    path('api/tutors/<int:pk>/', TutorDetailView.as_view(), name='tutor-detail'),
    path('api/tutors/<int:pk>/reviews/', TutorReviewListView.as_view(), name='tutor-reviews'),
    path('api/reviews/', ReviewCreateView.as_view(), name='review-create'),

    # Users
    path('api/users/<int:pk>/role/', UserRoleView.as_view(), name='user-role'),
    path('api/users/<str:email>/', UserProfileView.as_view(), name='user-profile'),

    # Messaging
    path('api/conversations/', ContactView.as_view(), name='conversation-contact'),
    path('api/conversations/<int:pk>/read/', ConversationReadView.as_view(), name='conversation-read'),
    path('api/conversations/<str:email>/', ConversationListView.as_view(), name='conversation-list'),
    path('api/messages/<int:conversation_id>/', MessageListCreateView.as_view(), name='message-list'),

    # Live channels
    path('api/channels/', ChannelConnectView.as_view(), name='channel-connect'),
    path('api/channels/<str:client_id>/', ChannelDetailView.as_view(), name='channel-detail'),
    path('api/channels/<str:client_id>/events/', ChannelEventsView.as_view(), name='channel-events'),
]
