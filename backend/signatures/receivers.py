import logging

from django.dispatch import receiver

from .signals import recipient_signed

logger = logging.getLogger(__name__)


@receiver(recipient_signed)
def log_recipient_signed(sender, request_id, recipient_type, recipient_value, signed, is_last, **kwargs):
    logger.info(
        f"Request {request_id} signed by {recipient_type}:{recipient_value} at {signed.isoformat()}"
        + (" (completed)" if is_last else "")
    )


@receiver(recipient_signed)
def notify_owner(sender, request_id, recipient_type, recipient_value, signed, is_last, **kwargs):
    """Mail the owner of the request about the signature."""
    from .tasks import send_signed_mail

    try:
        send_signed_mail.delay(request_id, recipient_type, recipient_value, signed.isoformat(), is_last)
    except Exception as e:
        logger.error(f"Failed to queue signed mail for {request_id}: {e}")
