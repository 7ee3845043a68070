"""
Email-based authentication backend.

Marketplace users sign in with their email address; the username column
only exists because AbstractUser requires it.
"""

from django.contrib.auth import get_user_model
from django.contrib.auth.backends import ModelBackend

User = get_user_model()


class EmailBackend(ModelBackend):
    """Authenticate with email + password (email is matched case-insensitively)."""

    def authenticate(self, request, username=None, password=None, **kwargs):
        # simplejwt passes the credential under USERNAME_FIELD or 'email'
        email = kwargs.get('email', username)

        if email is None or password is None:
            return None

        try:
            user = User.objects.get(email__iexact=email.strip())
        except User.DoesNotExist:
            # Run the default password hasher once to reduce the timing
            # difference between an existing and a nonexistent user
            User().set_password(password)
            return None

        if user.check_password(password) and self.user_can_authenticate(user):
            return user

        return None
