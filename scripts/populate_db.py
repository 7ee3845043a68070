import os
import sys
import django
import random
from decimal import Decimal
from datetime import timedelta
from django.utils import timezone
from faker import Faker

# Add project root to Python path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Set up Django environment
os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'tuition_marketplace.settings')
django.setup()

from core.errors import DomainError
from core.lifecycle import LifecycleEngine
from core.models import User
from messaging.gateway import get_messaging_gateway

fake = Faker()
engine = LifecycleEngine()

SUBJECTS = [
    "Mathematics", "Physics", "Chemistry", "English", "Biology",
    "ICT", "Accounting", "Bangla", "Higher Math", "Economics",
]


def create_users(num_students=10, num_tutors=5):
    print(f"Creating {num_students} students, {num_tutors} tutors and 1 admin...")

    def make_user(role):
        email = fake.unique.email()
        return User.objects.create_user(
            username=email.split('@')[0] + fake.unique.lexify('????'),
            email=email,
            password='password123',
            first_name=fake.first_name(),
            last_name=fake.last_name(),
            display_name=fake.name(),
            role=role,
        )

    students = [make_user(User.ROLE_STUDENT) for _ in range(num_students)]
    tutors = [make_user(User.ROLE_TUTOR) for _ in range(num_tutors)]
    admin = make_user(User.ROLE_ADMIN)

    print(f"Created {len(students)} students and {len(tutors)} tutors. Admin: {admin.email}")
    return students, tutors, admin


def create_tuitions(students, admin):
    print("Creating and reviewing tuitions...")
    tuitions = []

    for student in students:
        # Each student posts 1-2 tuitions
        for _ in range(random.randint(1, 2)):
            tuition = engine.create_tuition(
                student,
                subject=random.choice(SUBJECTS),
                location=fake.city(),
                salary=Decimal(random.randrange(3000, 12000, 500)),
                description=fake.paragraph(nb_sentences=2),
            )
            # Most get approved, some rejected, some stay pending
            decision = random.choices(['approve', 'reject', None], weights=[7, 1, 2])[0]
            if decision:
                tuition = engine.review_tuition(admin, tuition.id, decision)
            tuitions.append(tuition)

    print(f"Created {len(tuitions)} tuitions.")
    return tuitions


def create_applications(tuitions, tutors):
    print("Creating applications...")
    applications = []

    for tuition in tuitions:
        if tuition.status != 'approved':
            continue
        for tutor in random.sample(tutors, random.randint(1, min(3, len(tutors)))):
            application = engine.submit_application(
                tutor,
                tuition.id,
                qualifications=fake.sentence(nb_words=8),
                experience=f"{random.randint(1, 8)} years",
                expected_salary=tuition.salary + random.choice([0, 500, -500]),
            )
            applications.append(application)

    print(f"Created {len(applications)} applications.")
    return applications


def hire_tutors(applications):
    print("Hiring tutors through the mock payment gateway...")
    outcomes = []

    by_tuition = {}
    for application in applications:
        by_tuition.setdefault(application.tuition_id, []).append(application)

    for tuition_applications in by_tuition.values():
        if random.random() < 0.3:
            continue
        chosen = random.choice(tuition_applications)
        checkout = engine.initiate_hire(chosen.tuition.student, chosen.id)
        result = engine.gateway.retrieve(checkout.intent.reference)
        outcomes.append(engine.confirm_payment(chosen.id, result))

    print(f"Hired {len(outcomes)} tutors.")
    return outcomes


def create_sessions_and_messages(outcomes):
    print("Scheduling sessions and sending messages...")
    messaging = get_messaging_gateway()
    session_count = 0
    message_count = 0

    for outcome in outcomes:
        application = outcome.application
        student = application.tuition.student

        for day in range(1, random.randint(2, 5)):
            start = timezone.now() + timedelta(days=day, hours=random.randint(1, 8))
            try:
                engine.schedule_session(
                    student, application.id, start, start + timedelta(hours=1),
                    location=application.tuition.location,
                )
                session_count += 1
            except DomainError as e:
                print(f"  Skipped session: {e}")

        for _ in range(random.randint(2, 6)):
            sender = random.choice([student, application.tutor])
            messaging.send_message(outcome.conversation.id, sender, fake.sentence())
            message_count += 1

    print(f"Created {session_count} sessions and {message_count} messages.")


def main():
    print("Starting database population...")

    students, tutors, admin = create_users(num_students=20, num_tutors=10)

    tuitions = create_tuitions(students, admin)

    applications = create_applications(tuitions, tutors)

    outcomes = hire_tutors(applications)

    create_sessions_and_messages(outcomes)

    print("Database population completed successfully!")


if __name__ == '__main__':
    main()
