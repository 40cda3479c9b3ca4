"""
Configuration accessors for the signing service account and servers.

Services read configuration through these helpers instead of touching
django.conf.settings directly, so tests can override a single setting.
"""

from dataclasses import dataclass

from django.conf import settings


@dataclass(frozen=True)
class Account:
    """Account on the external signing service."""
    id: str
    secret: str

    @property
    def is_configured(self) -> bool:
        return bool(self.id) and bool(self.secret)


def _with_trailing_slash(url: str) -> str:
    if url and not url.endswith('/'):
        return url + '/'
    return url


def get_account() -> Account:
    return Account(
        id=getattr(settings, 'ESIG_ACCOUNT_ID', '') or '',
        secret=getattr(settings, 'ESIG_ACCOUNT_SECRET', '') or '',
    )


def get_api_server() -> str:
    """Base URL of the signing service API."""
    return _with_trailing_slash(getattr(settings, 'ESIG_API_SERVER', ''))


def get_server() -> str:
    """Base URL of the signing service web frontend (details pages)."""
    return _with_trailing_slash(getattr(settings, 'ESIG_SERVER', ''))


def get_request_timeout() -> int:
    return getattr(settings, 'ESIG_REQUEST_TIMEOUT', 30)


def get_token_lifetime() -> int:
    return getattr(settings, 'ESIG_TOKEN_LIFETIME', 300)


def get_signature_image(user):
    """
    Get the personal signature image configured by a user.

    Returns:
        SignatureImage or None
    """
    from .models import SignatureImage

    if user is None or not user.is_authenticated:
        return None
    return SignatureImage.objects.filter(user=user).first()
