"""
Persistence of signing requests and their recipients.

Responsibilities:
- Store new requests together with their ordered recipient list
- Query requests for owners, recipients and the signing service callbacks
- Provide the atomic Pending -> Signed transition of a recipient
- Delete requests (recipients cascade)
"""

import logging
from dataclasses import dataclass

from django.db import transaction
from django.db.models import Exists, OuterRef
from django.utils import timezone

from ..models import Recipient, SigningRequest
from .token_utils import generate_secure_token

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SignedTransition:
    """Outcome of mark_recipient_signed."""
    performed: bool
    is_last: bool = False


class RequestStore:
    """Service for signing request persistence."""

    @staticmethod
    def _with_recipients(queryset):
        return queryset.select_related('owner').prefetch_related('recipients')

    @staticmethod
    @transaction.atomic
    def store_request(file, user, recipients, options, metadata, account, server,
                      external_file_id, external_signature_result_id=None):
        """
        Persist a new request and its recipients.

        Args:
            file: files.HostFile that was shared
            user: owner of the request
            recipients: list of recipient dicts in binding order
                ({type, value, display_name?, c24_signature_id?, public_id?})
            options: dict or None
            metadata: dict
            account: config.Account the file was uploaded with
            server: str, API server the file was uploaded to
            external_file_id: str, file id on the signing service
            external_signature_result_id: str or None

        Returns:
            str: id of the new request
        """
        request = SigningRequest.objects.create(
            id=generate_secure_token(),
            file_id=str(file.id),
            owner=user,
            options=options,
            metadata=metadata,
            external_file_id=external_file_id,
            external_server=server,
            external_account_id=account.id,
            external_signature_result_id=external_signature_result_id,
        )

        Recipient.objects.bulk_create([
            Recipient(
                request=request,
                position=position,
                type=recipient['type'],
                value=recipient['value'],
                display_name=recipient.get('display_name') or '',
                external_signature_id=(
                    recipient.get('c24_signature_id') or recipient.get('public_id') or None
                ),
            )
            for position, recipient in enumerate(recipients)
        ])

        logger.info(f"Stored request {request.id} for file {request.file_id} with {len(recipients)} recipient(s)")
        return request.id

    @staticmethod
    def get_request_by_id(request_id):
        return RequestStore._with_recipients(
            SigningRequest.objects.filter(pk=request_id)
        ).first()

    @staticmethod
    def get_own_request_by_id(user, request_id):
        return RequestStore._with_recipients(
            SigningRequest.objects.filter(pk=request_id, owner=user)
        ).first()

    @staticmethod
    def get_own_requests(user, include_signed=False):
        """
        Requests created by a user.

        Args:
            include_signed: bool, also return requests every recipient signed
        """
        queryset = SigningRequest.objects.filter(owner=user)
        if not include_signed:
            pending = Recipient.objects.filter(request=OuterRef('pk'), signed__isnull=True)
            queryset = queryset.filter(Exists(pending))
        return list(RequestStore._with_recipients(queryset))

    @staticmethod
    def get_incoming_requests(recipient_type, recipient_value, include_signed=False):
        """
        Requests across all owners that list the given recipient.

        Args:
            include_signed: bool, also return requests the recipient already signed
        """
        matching = Recipient.objects.filter(
            request=OuterRef('pk'),
            type=recipient_type,
            value=recipient_value,
        )
        if not include_signed:
            matching = matching.filter(signed__isnull=True)
        queryset = SigningRequest.objects.filter(Exists(matching))
        return list(RequestStore._with_recipients(queryset))

    @staticmethod
    def get_request_by_external_file_id(external_file_id):
        return RequestStore._with_recipients(
            SigningRequest.objects.filter(external_file_id=external_file_id)
        ).first()

    @staticmethod
    def get_request_by_external_signature_id(signature_id):
        return RequestStore._with_recipients(
            SigningRequest.objects.filter(recipients__external_signature_id=signature_id)
        ).first()

    @staticmethod
    def mark_recipient_signed(request_id, recipient_type, recipient_value, signed,
                              external_signature_id=None):
        """
        Transition a recipient from Pending to Signed.

        The parent request row is locked for the duration of the transition
        and the update only applies to an unsigned recipient, so of several
        concurrent callers exactly one performs the transition and at most
        one observes is_last.

        Args:
            signed: datetime of the signature
            external_signature_id: str or None, stored if not yet known

        Returns:
            SignedTransition
        """
        with transaction.atomic():
            locked = list(
                SigningRequest.objects.select_for_update().filter(pk=request_id).values_list('pk', flat=True)
            )
            if not locked:
                return SignedTransition(performed=False)

            recipients = Recipient.objects.filter(
                request_id=request_id,
                type=recipient_type,
                value=recipient_value,
                signed__isnull=True,
            )
            updated = recipients.update(signed=signed)
            if not updated:
                return SignedTransition(performed=False)

            if external_signature_id:
                Recipient.objects.filter(
                    request_id=request_id,
                    type=recipient_type,
                    value=recipient_value,
                    external_signature_id__isnull=True,
                ).update(external_signature_id=external_signature_id)

            is_last = not Recipient.objects.filter(
                request_id=request_id,
                signed__isnull=True,
            ).exists()

        logger.info(f"Recipient {recipient_type}:{recipient_value} signed request {request_id} (last={is_last})")
        return SignedTransition(performed=True, is_last=is_last)

    @staticmethod
    def set_signature_result_id(request_id, signature_result_id):
        """Record the signature result id unless one is already known."""
        return SigningRequest.objects.filter(
            pk=request_id,
            external_signature_result_id__isnull=True,
        ).update(external_signature_result_id=signature_result_id)

    @staticmethod
    def mark_request_saved(request_id, saved=None):
        SigningRequest.objects.filter(pk=request_id).update(saved=saved or timezone.now())

    @staticmethod
    def get_unsaved_completed_requests():
        """Completed requests whose signed result has not been archived yet."""
        pending = Recipient.objects.filter(request=OuterRef('pk'), signed__isnull=True)
        return list(
            SigningRequest.objects.filter(saved__isnull=True).exclude(Exists(pending))
        )

    @staticmethod
    def delete_request_by_id(request_id):
        deleted, _ = SigningRequest.objects.filter(pk=request_id).delete()
        logger.info(f"Deleted request {request_id}")
        return deleted > 0


# Singleton instance
_request_store = None


def get_request_store() -> RequestStore:
    """Get singleton instance of the request store."""
    global _request_store
    if _request_store is None:
        _request_store = RequestStore()
    return _request_store
