"""
Token service for the external signing service.

Responsibilities:
- Derive short-lived tokens authorizing calls to the signing service
- Validate tokens sent by the signing service with its callbacks

Tokens are JWTs signed with the account secret. They are bound to the
account (iss), a single resource id (sub) and optionally a purpose, so a
token for one file or operation cannot be replayed for another. Nothing is
stored server-side.
"""

import logging

import jwt
from django.utils import timezone

from .. import config
from .token_utils import calculate_expiry

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"


class TokenService:
    """Service for signing service tokens."""

    def __init__(self, lifetime=None):
        self.lifetime = lifetime

    def _get_lifetime(self):
        return self.lifetime if self.lifetime is not None else config.get_token_lifetime()

    def get_token(self, account, resource_id, purpose=None):
        """
        Generate a token for a resource.

        Args:
            account: config.Account
            resource_id: str, file name, external file id or signature id
            purpose: str or None, e.g. 'notify-signed'

        Returns:
            str: encoded token
        """
        now = timezone.now()
        payload = {
            'iss': account.id,
            'sub': str(resource_id),
            'iat': now,
            'exp': calculate_expiry(self._get_lifetime(), now),
        }
        if purpose:
            payload['purpose'] = purpose
        return jwt.encode(payload, account.secret, algorithm=ALGORITHM)

    def validate_token(self, token, account, resource_id, purpose=None):
        """
        Check a token against the account, resource id and purpose.

        Returns:
            bool: True only if signature, expiry, issuer, subject and
            purpose all match
        """
        if not token or not account.is_configured:
            return False

        try:
            payload = jwt.decode(
                token,
                account.secret,
                algorithms=[ALGORITHM],
                issuer=account.id,
                options={'require': ['exp', 'iss', 'sub']},
            )
        except jwt.InvalidTokenError as e:
            logger.info(f"Rejected token for {resource_id}: {e}")
            return False

        if payload.get('sub') != str(resource_id):
            logger.info(f"Rejected token for {resource_id}: subject mismatch")
            return False

        if payload.get('purpose') != purpose:
            logger.info(f"Rejected token for {resource_id}: purpose mismatch")
            return False

        return True


# Singleton instance
_token_service = None


def get_token_service() -> TokenService:
    """Get singleton instance of token service."""
    global _token_service
    if _token_service is None:
        _token_service = TokenService()
    return _token_service
