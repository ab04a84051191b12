"""
Authentication backend that resolves users by email address.

Buyers and providers sign in with their email; usernames are generated at
registration and never shown to them.
"""

from django.contrib.auth import get_user_model
from django.contrib.auth.backends import ModelBackend

User = get_user_model()


class EmailBackend(ModelBackend):
    """
    Case-insensitive email login.

    Inactive accounts are refused through ModelBackend.user_can_authenticate,
    so a deactivated buyer or provider gets the same answer as a wrong password.
    """

    def authenticate(self, request, username=None, password=None, email=None, **kwargs):
        """
        Args:
            request: HTTP request object (may be None)
            username: Email address, accepted for admin login compatibility
            password: Raw password
            email: Email address

        Returns:
            User if the credentials match an active account, None otherwise
        """
        email = email or username
        if not email or password is None:
            return None

        user = User.objects.filter(email__iexact=email.strip()).first()
        if user is None:
            # Hash once anyway so unknown emails take as long as known ones
            User().set_password(password)
            return None

        if user.check_password(password) and self.user_can_authenticate(user):
            return user
        return None
