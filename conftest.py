"""
Shared pytest fixtures: users, JWT-authenticated API clients, and helpers
that walk a tuition through review, application and hire.
"""

from decimal import Decimal

import pytest
from django.apps import apps
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken

from core.lifecycle import LifecycleEngine
from core.payments import get_payment_gateway

User = get_user_model()


@pytest.fixture(autouse=True)
def clear_cache():
    """Clear Django cache before each test to reset throttle limits."""
    from django.core.cache import cache
    cache.clear()


@pytest.fixture(autouse=True)
def payment_gateway():
    """A fresh mock gateway per test."""
    get_payment_gateway.cache_clear()
    yield get_payment_gateway()
    get_payment_gateway.cache_clear()


@pytest.fixture(autouse=True)
def hub():
    """The channel hub owned by the messaging app, reopened around each test."""
    channel_hub = apps.get_app_config('messaging').hub
    channel_hub.reopen()
    yield channel_hub
    channel_hub.reopen()


@pytest.fixture
def make_user(db):
    def _make_user(email, role=User.ROLE_STUDENT, **extra):
        return User.objects.create_user(
            username=email.split('@')[0],
            email=email,
            password='TestPass123!',
            role=role,
            **extra,
        )
    return _make_user


@pytest.fixture
def student(make_user):
    return make_user('student@test.com', User.ROLE_STUDENT, display_name='Test Student')


@pytest.fixture
def other_student(make_user):
    return make_user('student2@test.com', User.ROLE_STUDENT)


@pytest.fixture
def tutor(make_user):
    return make_user('tutor@test.com', User.ROLE_TUTOR, display_name='Test Tutor')


@pytest.fixture
def other_tutor(make_user):
    return make_user('tutor2@test.com', User.ROLE_TUTOR)


@pytest.fixture
def admin_user(make_user):
    return make_user('admin@test.com', User.ROLE_ADMIN)


@pytest.fixture
def api_client():
    """Provide API client for testing."""
    return APIClient()


@pytest.fixture
def client_for():
    """Return an APIClient authenticated as the given user with a bearer token."""
    def _client_for(user):
        client = APIClient()
        token = RefreshToken.for_user(user).access_token
        client.credentials(HTTP_AUTHORIZATION=f'Bearer {token}')
        return client
    return _client_for


@pytest.fixture
def engine(payment_gateway):
    return LifecycleEngine(gateway=payment_gateway)


@pytest.fixture
def approved_tuition(engine, student, admin_user):
    tuition = engine.create_tuition(
        student,
        subject='Physics',
        location='Dhanmondi',
        salary=Decimal('5000'),
        description='HSC physics, three days a week',
    )
    return engine.review_tuition(admin_user, tuition.id, 'approve')


@pytest.fixture
def application(engine, approved_tuition, tutor):
    return engine.submit_application(
        tutor,
        approved_tuition.id,
        qualifications='BSc in Physics',
        experience='3 years',
        expected_salary=Decimal('5000'),
    )


@pytest.fixture
def second_application(engine, approved_tuition, other_tutor):
    return engine.submit_application(
        other_tutor,
        approved_tuition.id,
        qualifications='MSc in Physics',
        expected_salary=Decimal('6000'),
    )


@pytest.fixture
def hire(engine):
    """Run checkout and confirmation for an application; returns the HireOutcome."""
    def _hire(app):
        checkout = engine.initiate_hire(app.tuition.student, app.id)
        result = engine.gateway.retrieve(checkout.intent.reference)
        return engine.confirm_payment(app.id, result)
    return _hire
