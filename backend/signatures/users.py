"""
User directory lookups. Users are addressed by their username.
"""

from django.contrib.auth import get_user_model


def get_user_by_username(username):
    """Returns the active user with this username, or None."""
    if not username:
        return None
    User = get_user_model()
    return User.objects.filter(
        **{User.USERNAME_FIELD: username, 'is_active': True}
    ).first()


def get_display_name(user):
    if user is None:
        return None
    return user.get_full_name() or user.get_username()


def get_display_name_for(username):
    user = get_user_by_username(username)
    if user is None:
        return username
    return get_display_name(user)
