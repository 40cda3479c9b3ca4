"""
Client for the external signing service API.

Responsibilities:
- Upload files for signature, submit signatures and delete files
- Build download / details URLs carrying freshly derived tokens
- Map transport and application failures to typed signing errors

Every request carries a token scoped to the resource it operates on and
uses a bounded timeout; connection failures and timeouts surface as
UpstreamConnectionError, HTTP error statuses as UpstreamError.
"""

import json
import logging
import time
from urllib.parse import quote, urlencode

import requests

from .. import config
from ..exceptions import InvalidResponse, UpstreamConnectionError, UpstreamError
from .token_service import get_token_service

logger = logging.getLogger(__name__)


def _quote(value):
    return quote(str(value), safe='')


class SigningApiClient:
    """Wrapper around the signing service HTTP API."""

    TOKEN_HEADER = 'X-Vinegar-Token'
    API_HEADER = 'X-Vinegar-API'

    def __init__(self, tokens=None, session=None, timeout=None):
        self.tokens = tokens or get_token_service()
        self.session = session or requests.Session()
        self.timeout = timeout

    def _get_timeout(self):
        return self.timeout if self.timeout is not None else config.get_request_timeout()

    def _headers(self, account, resource_id):
        return {
            self.TOKEN_HEADER: self.tokens.get_token(account, resource_id),
            self.API_HEADER: 'true',
        }

    def _files_url(self, account, server):
        return f"{server}api/v1/files/{_quote(account.id)}"

    def _send(self, method, url, **kwargs):
        """
        Send a request and return the raw response.

        Raises:
            UpstreamConnectionError: connection failure or timeout
            UpstreamError: HTTP error status (code is the HTTP status)
        """
        start_time = time.time()
        try:
            response = self.session.request(method, url, timeout=self._get_timeout(), **kwargs)
        except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as e:
            logger.error(f"Error connecting to {url}: {e}")
            raise UpstreamConnectionError() from e

        duration_ms = int((time.time() - start_time) * 1000)
        logger.info(f"{method} {url} -> HTTP {response.status_code} ({duration_ms} ms)")

        if response.status_code >= 400:
            logger.warning(f"Signing service error for {method} {url}: HTTP {response.status_code}: {response.text[:200]}")
            raise UpstreamError(code=response.status_code)
        return response

    def _send_json(self, method, url, **kwargs):
        response = self._send(method, url, **kwargs)
        try:
            data = response.json()
        except ValueError as e:
            logger.warning(f"Invalid JSON from {url}: {e}")
            raise InvalidResponse() from e
        if not isinstance(data, dict):
            raise InvalidResponse()
        return data

    def share_file(self, file, recipients, metadata, account, server):
        """
        Upload a file for signature.

        Args:
            file: files.HostFile to upload
            recipients: list of recipient dicts ({type, value, display_name?})
            metadata: dict, signature field layout and sender information
            account: config.Account
            server: str, API server base URL

        Returns:
            dict: {file_id, signature_id?, recipients?}
        """
        mime_type = (file.mime_type or 'application/octet-stream').lower()
        parts = [
            ('file', (file.name, file.read(), mime_type)),
            ('recipients', (None, json.dumps(recipients), 'application/json')),
            ('metadata', (None, json.dumps(metadata), 'application/json')),
        ]
        return self._send_json(
            'POST',
            self._files_url(account, server),
            headers=self._headers(account, file.name),
            files=parts,
        )

    def sign_file(self, file_id, parts, account, server):
        """
        Submit the signature of one recipient.

        Args:
            file_id: str, external file id
            parts: list of multipart tuples (name, (filename, content, content_type))
            account: config.Account
            server: str, API server base URL

        Returns:
            dict: {status, signed?}
        """
        return self._send_json(
            'POST',
            f"{self._files_url(account, server)}/sign/{_quote(file_id)}",
            headers=self._headers(account, file_id),
            files=parts,
        )

    def delete_file(self, file_id, account, server):
        """Delete a file from the signing service. Returns {status}."""
        return self._send_json(
            'DELETE',
            f"{self._files_url(account, server)}/{_quote(file_id)}",
            headers=self._headers(account, file_id),
        )

    def download_signed_file(self, file_id, account, server):
        """Download the signed document. Returns the PDF bytes."""
        response = self._send(
            'GET',
            f"{self._files_url(account, server)}/sign/{_quote(file_id)}",
            headers=self._headers(account, file_id),
        )
        return response.content

    def _with_token(self, url, account, resource_id):
        token = self.tokens.get_token(account, resource_id)
        return f"{url}?{urlencode({'token': token})}"

    def get_original_url(self, file_id, account, server):
        url = f"{self._files_url(account, server)}/{_quote(file_id)}"
        return self._with_token(url, account, file_id)

    def get_source_url(self, file_id, account, server):
        """Download URL of the unsigned document handed to recipients."""
        url = f"{self._files_url(account, server)}/{_quote(file_id)}/source"
        return self._with_token(url, account, file_id)

    def get_signed_url(self, file_id, account, server):
        url = f"{self._files_url(account, server)}/sign/{_quote(file_id)}"
        return self._with_token(url, account, file_id)

    def get_details_url(self, signature_result_id, server=None):
        """
        URL of the public signature details page of a completed request.

        Args:
            signature_result_id: result id reported by the signing service
            server: server the request was created on, defaults to the
                configured server
        """
        base = server.rstrip("/") + "/" if server else config.get_server()
        return f"{base}details/{_quote(signature_result_id)}"


# Singleton instance
_api_client = None


def get_api_client() -> SigningApiClient:
    """Get singleton instance of the signing service client."""
    global _api_client
    if _api_client is None:
        _api_client = SigningApiClient()
    return _api_client
