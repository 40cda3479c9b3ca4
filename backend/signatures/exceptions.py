"""
Error taxonomy of the signing core.

Every failure the coordinator reports is an APIException subclass, so the
view layer never has to translate errors. The `code` is the machine readable
error returned to clients as {"error": <code>}. `throttle` marks failures on
public endpoints that count against the anti-enumeration budget.
"""

import logging

from rest_framework import status
from rest_framework.exceptions import APIException
from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


class SigningError(APIException):
    """Base class for all signing errors."""
    status_code = status.HTTP_400_BAD_REQUEST
    default_code = 'error'
    default_detail = 'Signing request failed.'

    def __init__(self, code=None, details=None, field=None, status_code=None, throttle=False):
        self.error_code = code if code is not None else self.default_code
        self.details = details
        self.field = field
        self.throttle = throttle
        if status_code is not None:
            self.status_code = status_code
        super().__init__(detail=str(self.error_code), code=self.error_code)

    def to_dict(self):
        data = {'error': self.error_code}
        if self.details is not None:
            data['details'] = self.details
        if self.field is not None:
            data['field'] = self.field
        return data


class Unconfigured(SigningError):
    """No account for the signing service has been set up."""
    status_code = status.HTTP_412_PRECONDITION_FAILED
    default_code = 'unconfigured'


class ValidationFailed(SigningError):
    """Structurally invalid recipients, metadata, options or uploads."""
    status_code = status.HTTP_400_BAD_REQUEST
    default_code = 'validation_failed'


class InvalidMetadata(ValidationFailed):
    default_code = 'invalid_metadata'


class InvalidOptions(ValidationFailed):
    default_code = 'invalid_options'


class DuplicateEmail(ValidationFailed):
    default_code = 'duplicate_email'


class DuplicateUser(ValidationFailed):
    default_code = 'duplicate_user'


class InvalidFiletype(ValidationFailed):
    default_code = 'invalid_filetype'


class SignatureImagesMissing(ValidationFailed):
    status_code = status.HTTP_412_PRECONDITION_FAILED
    default_code = 'signature_images_missing'


class NotFound(SigningError):
    """Unknown request, file, user or recipient."""
    status_code = status.HTTP_404_NOT_FOUND
    default_code = 'not_found'


class UnknownUser(NotFound):
    default_code = 'unknown_user'


class UnknownFile(NotFound):
    default_code = 'unknown_file'


class AlreadySigned(SigningError):
    """The recipient has already signed (conflict)."""
    status_code = status.HTTP_409_CONFLICT
    default_code = 'already_signed'


class Forbidden(SigningError):
    """Token, ownership, file access or account mismatch."""
    status_code = status.HTTP_403_FORBIDDEN
    default_code = 'forbidden'


class ErrorAccessingFile(Forbidden):
    default_code = 'error_accessing_file'


class InvalidAccount(Forbidden):
    status_code = status.HTTP_412_PRECONDITION_FAILED
    default_code = 'invalid_account'


class UpstreamConnectionError(SigningError):
    """The signing service could not be reached (retryable by the caller)."""
    status_code = status.HTTP_502_BAD_GATEWAY
    default_code = 'error_connecting'


class UpstreamError(SigningError):
    """The signing service answered with an application level error."""
    status_code = status.HTTP_502_BAD_GATEWAY
    default_code = 'upstream_error'


class InvalidResponse(SigningError):
    """The signing service answered without the required fields."""
    status_code = status.HTTP_502_BAD_GATEWAY
    default_code = 'invalid_response'


def signing_exception_handler(exc, context):
    """
    DRF exception handler rendering SigningError as {"error": code, ...}.
    Everything else falls back to the default REST framework handler.
    """
    if isinstance(exc, SigningError):
        view = context.get('view')
        logger.warning(
            f"Signing error '{exc.error_code}' (HTTP {exc.status_code}) "
            f"in {view.__class__.__name__ if view else 'unknown view'}"
        )
        return Response(exc.to_dict(), status=exc.status_code)
    return exception_handler(exc, context)
