"""
Tests for tutor reviews, the public tutor directory and profile editing.

Reviews are only accepted from a student who hired and paid the tutor, one
per student and tutor, and every save or delete recomputes the tutor's
average rating and review count.
"""

from decimal import Decimal
from io import StringIO

import pytest
from django.core.management import call_command
from rest_framework import status

from core import errors
from core.models import Review, User


@pytest.fixture
def hired_by(engine, hire, admin_user, tutor, make_user):
    """Have a new student post a tuition and hire `tutor` for it; returns (student, tuition)."""
    def _hired_by(email, subject='Chemistry'):
        student = make_user(email, User.ROLE_STUDENT)
        tuition = engine.create_tuition(student, subject=subject, location='Uttara', salary='4000')
        engine.review_tuition(admin_user, tuition.id, 'approve')
        app = engine.submit_application(tutor, tuition.id, qualifications='BSc', expected_salary='4000')
        hire(app)
        return student, tuition
    return _hired_by


@pytest.fixture
def hired_tuition(hire, application):
    hire(application)
    return application.tuition


# ============================================================================
# Submitting reviews
# ============================================================================

@pytest.mark.django_db
class TestSubmitReview:

    def test_student_reviews_hired_tutor(self, engine, hired_tuition, student, tutor):
        review = engine.submit_review(student, hired_tuition.id, rating=4, comment='Very patient')

        assert review.tutor == tutor
        assert review.student == student
        assert review.tuition_id == hired_tuition.id
        assert review.rating == 4
        assert review.comment == 'Very patient'

    def test_review_before_hire_rejected(self, engine, application, student):
        with pytest.raises(errors.PreconditionFailed):
            engine.submit_review(student, application.tuition_id, rating=5, comment='Great')
        assert not Review.objects.exists()

    def test_review_with_only_pending_payment_rejected(self, engine, application, student):
        engine.initiate_hire(student, application.id)

        with pytest.raises(errors.PreconditionFailed):
            engine.submit_review(student, application.tuition_id, rating=5, comment='Great')

    def test_only_tuition_owner_reviews(self, engine, hired_tuition, other_student):
        with pytest.raises(errors.Unauthorized):
            engine.submit_review(other_student, hired_tuition.id, rating=5, comment='Great')

    def test_one_review_per_tutor(self, engine, hired_tuition, student):
        engine.submit_review(student, hired_tuition.id, rating=5, comment='Great')

        with pytest.raises(errors.DuplicateReview):
            engine.submit_review(student, hired_tuition.id, rating=1, comment='Changed my mind')
        assert Review.objects.count() == 1

    @pytest.mark.parametrize('rating', [0, 6, -1, 'five', None])
    def test_invalid_rating_rejected(self, engine, hired_tuition, student, rating):
        with pytest.raises(errors.ValidationError) as exc_info:
            engine.submit_review(student, hired_tuition.id, rating=rating, comment='Fine')
        assert exc_info.value.context['field'] == 'rating'

    def test_blank_comment_rejected(self, engine, hired_tuition, student):
        with pytest.raises(errors.ValidationError) as exc_info:
            engine.submit_review(student, hired_tuition.id, rating=3, comment='   ')
        assert exc_info.value.context['field'] == 'comment'

    def test_missing_tuition(self, engine, student):
        with pytest.raises(errors.NotFound):
            engine.submit_review(student, 424242, rating=3, comment='Fine')


# ============================================================================
# Rating recalculation
# ============================================================================

@pytest.mark.django_db
class TestTutorRating:

    def test_first_review_sets_rating(self, engine, hired_tuition, student, tutor):
        engine.submit_review(student, hired_tuition.id, rating=5, comment='Excellent')

        tutor.refresh_from_db()
        assert tutor.average_rating == Decimal('5.00')
        assert tutor.review_count == 1

    def test_average_across_students(self, engine, hired_by, tutor):
        for index, rating in enumerate([5, 4, 4]):
            student, tuition = hired_by(f'reviewer{index}@test.com')
            engine.submit_review(student, tuition.id, rating=rating, comment='Good lessons')

        tutor.refresh_from_db()
        assert tutor.average_rating == Decimal('4.33')
        assert tutor.review_count == 3

    def test_edit_recalculates(self, engine, hired_tuition, student, tutor):
        review = engine.submit_review(student, hired_tuition.id, rating=2, comment='Often late')

        review.rating = 4
        review.save()

        tutor.refresh_from_db()
        assert tutor.average_rating == Decimal('4.00')

    def test_delete_recalculates(self, engine, hired_by, hired_tuition, student, tutor):
        kept_student, kept_tuition = hired_by('kept@test.com')
        engine.submit_review(kept_student, kept_tuition.id, rating=3, comment='Okay')
        removed = engine.submit_review(student, hired_tuition.id, rating=5, comment='Great')

        removed.delete()

        tutor.refresh_from_db()
        assert tutor.average_rating == Decimal('3.00')
        assert tutor.review_count == 1

    def test_deleting_last_review_resets_rating(self, engine, hired_tuition, student, tutor):
        review = engine.submit_review(student, hired_tuition.id, rating=5, comment='Great')

        review.delete()

        tutor.refresh_from_db()
        assert tutor.average_rating == Decimal('0.00')
        assert tutor.review_count == 0


@pytest.mark.django_db
class TestRecalculateRatingsCommand:

    def test_repairs_drifted_rating(self, engine, hired_tuition, student, tutor):
        engine.submit_review(student, hired_tuition.id, rating=4, comment='Good')
        User.objects.filter(pk=tutor.pk).update(average_rating=Decimal('1.00'), review_count=7)

        out = StringIO()
        call_command('recalculate_ratings', stdout=out)

        tutor.refresh_from_db()
        assert tutor.average_rating == Decimal('4.00')
        assert tutor.review_count == 1
        assert '1 corrected' in out.getvalue()

    def test_dry_run_changes_nothing(self, tutor):
        User.objects.filter(pk=tutor.pk).update(average_rating=Decimal('3.00'), review_count=2)

        out = StringIO()
        call_command('recalculate_ratings', '--dry-run', stdout=out)

        tutor.refresh_from_db()
        assert tutor.average_rating == Decimal('3.00')
        assert '[DRY-RUN]' in out.getvalue()


# ============================================================================
# Review endpoints
# ============================================================================

@pytest.mark.django_db
class TestReviewEndpoints:

    def test_create_review(self, client_for, hired_tuition, student, tutor):
        response = client_for(student).post('/api/reviews/', {
            'tuition': hired_tuition.id,
            'rating': 5,
            'comment': 'Explains clearly',
        }, format='json')

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data['tutor_id'] == tutor.id
        assert response.data['rating'] == 5
        assert response.data['subject'] == 'Physics'
        assert response.data['student']['email'] == student.email

    def test_tuition_id_alias(self, client_for, hired_tuition, student):
        response = client_for(student).post('/api/reviews/', {
            'tuitionId': hired_tuition.id,
            'rating': 4,
            'comment': 'Good',
        }, format='json')

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data['tuition'] == hired_tuition.id

    def test_duplicate_review_returns_409(self, client_for, hired_tuition, student):
        client = client_for(student)
        body = {'tuition': hired_tuition.id, 'rating': 4, 'comment': 'Good'}
        client.post('/api/reviews/', body, format='json')

        response = client.post('/api/reviews/', body, format='json')

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.data['code'] == 'DUPLICATE_REVIEW'

    def test_out_of_range_rating_returns_400(self, client_for, hired_tuition, student):
        response = client_for(student).post('/api/reviews/', {
            'tuition': hired_tuition.id, 'rating': 6, 'comment': 'Good',
        }, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert 'rating' in response.data['errors']

    def test_review_before_hire_returns_409(self, client_for, application, student):
        response = client_for(student).post('/api/reviews/', {
            'tuition': application.tuition_id, 'rating': 5, 'comment': 'Great',
        }, format='json')

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.data['code'] == 'PRECONDITION_FAILED'

    def test_requires_authentication(self, api_client, hired_tuition):
        response = api_client.post('/api/reviews/', {
            'tuition': hired_tuition.id, 'rating': 5, 'comment': 'Great',
        }, format='json')

        assert response.status_code == status.HTTP_401_UNAUTHORIZED


# ============================================================================
# Tutor directory and profile
# ============================================================================

@pytest.mark.django_db
class TestTutorDirectory:

    def test_directory_is_public_and_lists_tutors_only(self, api_client, tutor, other_tutor, student):
        response = api_client.get('/api/tutors/')

        assert response.status_code == status.HTTP_200_OK
        assert {t['id'] for t in response.data['results']} == {tutor.id, other_tutor.id}

    def test_best_rated_first(self, api_client, engine, hired_tuition, student, tutor, other_tutor):
        engine.submit_review(student, hired_tuition.id, rating=3, comment='Fine')

        response = api_client.get('/api/tutors/')

        assert [t['id'] for t in response.data['results']] == [tutor.id, other_tutor.id]
        assert response.data['results'][0]['average_rating'] == '3.00'
        assert response.data['results'][0]['review_count'] == 1

    def test_search_by_subject_and_name(self, api_client, tutor, other_tutor):
        User.objects.filter(pk=tutor.pk).update(subjects='Physics, Higher Math')
        User.objects.filter(pk=other_tutor.pk).update(display_name='Nadia Rahman', subjects='English')

        response = api_client.get('/api/tutors/', {'search': 'physics'})
        assert [t['id'] for t in response.data['results']] == [tutor.id]
        assert response.data['results'][0]['subjects'] == ['Physics', 'Higher Math']

        response = api_client.get('/api/tutors/', {'search': 'nadia'})
        assert [t['id'] for t in response.data['results']] == [other_tutor.id]

    def test_inactive_tutor_hidden(self, api_client, tutor, other_tutor):
        User.objects.filter(pk=other_tutor.pk).update(is_active=False)

        response = api_client.get('/api/tutors/')

        assert [t['id'] for t in response.data['results']] == [tutor.id]

    def test_profile_includes_latest_reviews(self, api_client, engine, hired_tuition, student, tutor):
        engine.submit_review(student, hired_tuition.id, rating=5, comment='Great tutor')

        response = api_client.get(f'/api/tutors/{tutor.id}/')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['email'] == tutor.email
        assert response.data['name'] == 'Test Tutor'
        assert [r['comment'] for r in response.data['reviews']] == ['Great tutor']

    def test_profile_of_non_tutor_is_404(self, api_client, student):
        response = api_client.get(f'/api/tutors/{student.id}/')

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.data['code'] == 'NOT_FOUND'

    def test_reviews_are_paginated(self, api_client, engine, hired_by, tutor):
        for index in range(3):
            student, tuition = hired_by(f'paged{index}@test.com')
            engine.submit_review(student, tuition.id, rating=4, comment=f'Review {index}')

        response = api_client.get(f'/api/tutors/{tutor.id}/reviews/')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['count'] == 3
        assert all(r['tutor_id'] == tutor.id for r in response.data['results'])


# ============================================================================
# Profile editing
# ============================================================================

@pytest.mark.django_db
class TestProfileUpdate:

    def test_user_reads_own_profile(self, client_for, student):
        response = client_for(student).get(f'/api/users/{student.email}/')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['email'] == student.email
        assert response.data['role'] == User.ROLE_STUDENT

    def test_cannot_read_someone_elses_profile(self, client_for, student, tutor):
        response = client_for(student).get(f'/api/users/{tutor.email}/')

        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_name_and_photo_aliases(self, client_for, student):
        response = client_for(student).patch(f'/api/users/{student.email}/', {
            'name': '  Rafi Ahmed ',
            'photoURL': 'https://images.example.com/rafi.png',
        }, format='json')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['display_name'] == 'Rafi Ahmed'
        assert response.data['photo_url'] == 'https://images.example.com/rafi.png'
        student.refresh_from_db()
        assert student.display_name == 'Rafi Ahmed'

    def test_tutor_edits_bio_and_subjects(self, client_for, api_client, tutor):
        client_for(tutor).patch(f'/api/users/{tutor.email}/', {
            'bio': 'Physics graduate, five years of HSC tutoring.',
            'subjects': 'Physics, Math',
        }, format='json')

        response = api_client.get(f'/api/tutors/{tutor.id}/')

        assert response.data['bio'] == 'Physics graduate, five years of HSC tutoring.'
        assert response.data['subjects'] == ['Physics', 'Math']

    def test_bad_photo_url_returns_400(self, client_for, student):
        response = client_for(student).patch(f'/api/users/{student.email}/', {
            'photoURL': 'javascript:alert(1)',
        }, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        student.refresh_from_db()
        assert student.photo_url == ''

    def test_cannot_edit_someone_elses_profile(self, client_for, student, tutor):
        response = client_for(student).patch(f'/api/users/{tutor.email}/', {'name': 'Hijacked'}, format='json')

        assert response.status_code == status.HTTP_403_FORBIDDEN
        tutor.refresh_from_db()
        assert tutor.display_name == 'Test Tutor'

    def test_admin_edits_any_profile(self, client_for, admin_user, tutor):
        response = client_for(admin_user).patch(f'/api/users/{tutor.email}/', {'name': 'Renamed'}, format='json')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['display_name'] == 'Renamed'

    @pytest.mark.parametrize('field', ['email', 'role', 'average_rating'])
    def test_protected_fields_rejected(self, client_for, student, field):
        response = client_for(student).patch(f'/api/users/{student.email}/', {
            'name': 'Someone', field: 'admin',
        }, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        student.refresh_from_db()
        assert student.role == User.ROLE_STUDENT
        assert student.display_name == 'Test Student'

    def test_empty_update_rejected(self, client_for, student):
        response = client_for(student).patch(f'/api/users/{student.email}/', {}, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_unknown_user_is_404_for_admin(self, client_for, admin_user):
        response = client_for(admin_user).patch('/api/users/nobody@test.com/', {'name': 'X'}, format='json')

        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_engine_rejects_non_profile_fields(self, engine, student):
        with pytest.raises(errors.ValidationError):
            engine.update_profile(student, student.email, role=User.ROLE_ADMIN)
