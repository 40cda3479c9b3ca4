"""
Outbound mails of the signing workflow.
"""

import logging
from urllib.parse import quote, urlencode

from django.conf import settings
from django.core.mail import send_mail

from .serializers import format_datetime
from .users import get_display_name

logger = logging.getLogger(__name__)


def get_signing_url(request, email, signature_id=None):
    """Link a recipient follows to sign a request."""
    base_url = settings.FRONTEND_BASE_URL.rstrip('/')
    if signature_id:
        return f"{base_url}/signature/{quote(signature_id, safe='')}"
    return f"{base_url}/sign/{quote(request.id, safe='')}?{urlencode({'email': email})}"


def send_request_mail(request, email, signature_id, sender):
    """Ask an email recipient to sign a request."""
    sender_name = get_display_name(sender) or 'Someone'
    subject = f"{sender_name} asks you to sign a document"
    body = (
        f"{sender_name} has requested your signature.\n\n"
        f"Open the document to sign it:\n{get_signing_url(request, email, signature_id)}\n"
    )
    send_mail(subject, body, settings.DEFAULT_FROM_EMAIL, [email])
    logger.info(f"Sent signing request mail for {request.id} to {email}")


def send_signed_mail(request, recipient_type, recipient_value, signed, is_last):
    """Tell the owner of a request that a recipient signed."""
    owner_email = request.owner.email
    if not owner_email:
        logger.debug(f"Owner of request {request.id} has no email address")
        return False

    subject = "A document has been signed"
    if is_last:
        subject = "A document has been signed by all recipients"
    body = (
        f"{recipient_value} ({recipient_type}) signed request {request.id} "
        f"on {format_datetime(signed)}.\n"
    )
    send_mail(subject, body, settings.DEFAULT_FROM_EMAIL, [owner_email])
    logger.info(f"Sent signed mail for {request.id} to the owner")
    return True
