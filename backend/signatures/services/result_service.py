"""
Archival of signed results.

Responsibilities:
- Download the signed document of a completed request
- Check it is a readable PDF, store it and record its SHA-256
- Mark the request as saved (state Archived)
"""

import logging
from io import BytesIO

from django.core.files.base import ContentFile
from django.utils import timezone
from PyPDF2 import PdfReader
from PyPDF2.errors import PdfReadError

from ..exceptions import InvalidResponse
from .api_client import get_api_client
from .hashing import HashingService

logger = logging.getLogger(__name__)


class SignedResultService:
    """Service for saving the signed result of completed requests."""

    def __init__(self, client=None):
        self.client = client or get_api_client()

    def save_signed_result(self, request, signed, user, account):
        """
        Download and archive the signed document of a request.

        Args:
            request: SigningRequest whose recipients all signed
            signed: datetime of the final signature
            user: user who signed last, may be None
            account: config.Account

        Returns:
            SigningRequest: the archived request

        Raises:
            UpstreamConnectionError, UpstreamError: download failed
            InvalidResponse: the download is not a PDF
        """
        if request.saved:
            logger.info(f"Signed result of request {request.id} already saved")
            return request

        content = self.client.download_signed_file(
            request.external_file_id, account, request.external_server
        )

        try:
            reader = PdfReader(BytesIO(content))
            page_count = len(reader.pages)
        except (PdfReadError, ValueError) as e:
            logger.error(f"Signed result of request {request.id} is not a PDF: {e}")
            raise InvalidResponse() from e

        filename = f'signed_{signed.strftime("%Y%m%d%H%M%S")}.pdf'
        request.signed_file.save(filename, ContentFile(content), save=False)
        with request.signed_file.open('rb') as fp:
            request.signed_pdf_sha256 = HashingService.compute_file_sha256(fp)
        request.saved = timezone.now()
        request.save(update_fields=['signed_file', 'signed_pdf_sha256', 'saved'])

        logger.info(
            f"Saved signed result of request {request.id} "
            f"({page_count} page(s), signed by {user or 'callback'})"
        )
        return request


# Singleton instance
_result_service = None


def get_result_service() -> SignedResultService:
    """Get singleton instance of the signed result service."""
    global _result_service
    if _result_service is None:
        _result_service = SignedResultService()
    return _result_service
