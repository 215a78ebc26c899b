from django.contrib.auth import get_user_model
from django.contrib.auth.backends import ModelBackend

User = get_user_model()


class EmailBackend(ModelBackend):
    """
    Signs users in with their email address, matched case-insensitively.

    The username is accepted too, so accounts created from the admin or a
    shell with a username of their own can still log in.
    """

    def authenticate(self, request, username=None, password=None, **kwargs):
        login = username if username is not None else kwargs.get(User.USERNAME_FIELD)
        if not login or password is None:
            return None

        user = self.find_user(login.strip())
        if user is None:
            return None
        if user.check_password(password) and self.user_can_authenticate(user):
            return user
        return None

    @staticmethod
    def find_user(login):
        # Email wins over a username that happens to look like someone's email
        user = User.objects.filter(email__iexact=login).order_by('id').first()
        if user is None:
            user = User.objects.filter(username=login).first()
        return user
