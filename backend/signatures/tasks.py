import logging

from celery import shared_task
from django.contrib.auth import get_user_model
from django.utils.dateparse import parse_datetime

from . import config, mails
from .exceptions import UpstreamConnectionError
from .models import SigningRequest
from .services.request_store import get_request_store
from .services.result_service import get_result_service

logger = logging.getLogger(__name__)


def _get_user(user_id):
    if user_id is None:
        return None
    return get_user_model().objects.filter(pk=user_id).first()


@shared_task
def send_request_mail(request_id, email, signature_id, sender_id):
    """Celery task to mail a signing request to an email recipient."""
    try:
        request = SigningRequest.objects.get(pk=request_id)
    except SigningRequest.DoesNotExist:
        logger.error(f"SigningRequest {request_id} not found")
        return
    mails.send_request_mail(request, email, signature_id, _get_user(sender_id))


@shared_task
def send_signed_mail(request_id, recipient_type, recipient_value, signed, is_last):
    """Celery task to tell the owner about a signature."""
    try:
        request = SigningRequest.objects.select_related('owner').get(pk=request_id)
    except SigningRequest.DoesNotExist:
        logger.error(f"SigningRequest {request_id} not found")
        return
    mails.send_signed_mail(request, recipient_type, recipient_value, parse_datetime(signed), is_last)


@shared_task(
    autoretry_for=(UpstreamConnectionError,),
    retry_backoff=60,
    max_retries=5,
)
def save_signed_result(request_id, signed, user_id=None):
    """Celery task to archive the signed result of a completed request."""
    request = SigningRequest.objects.filter(pk=request_id).first()
    if request is None:
        logger.error(f"SigningRequest {request_id} not found")
        return
    if request.saved:
        return

    account = config.get_account()
    get_result_service().save_signed_result(
        request, parse_datetime(signed), _get_user(user_id), account
    )


@shared_task
def archive_completed_requests():
    """Periodic task re-queueing completed requests whose result was not saved."""
    requests = get_request_store().get_unsaved_completed_requests()
    for request in requests:
        last_signed = max(r.signed for r in request.recipients.all())
        save_signed_result.delay(request.id, last_signed.isoformat(), None)
    if requests:
        logger.info(f"Queued {len(requests)} completed request(s) for archival")
    return len(requests)
