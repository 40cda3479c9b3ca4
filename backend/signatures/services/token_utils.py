"""
Token utility functions used by the token service and the request store.

These are pure functions that don't depend on models; they can be imported
and used in multiple places without circular imports.
"""

import secrets
from datetime import timedelta
from django.utils import timezone


def generate_secure_token(length=24):
    """
    Generate a cryptographically secure random token.

    Used for signing request ids, which are handed out to recipients and
    therefore must not be guessable.

    Args:
        length: int, number of random bytes (default 24)

    Returns:
        str: URL-safe token string (32 chars for 24 bytes)
    """
    return secrets.token_urlsafe(length)


def calculate_expiry(seconds, now=None):
    """
    Calculate expiry datetime from a lifetime in seconds.

    Args:
        seconds: int, lifetime of the token
        now: datetime or None, reference time (defaults to timezone.now())

    Returns:
        datetime: expiry datetime
    """
    if now is None:
        now = timezone.now()
    return now + timedelta(seconds=seconds)
