"""
Signing request lifecycle.

Responsibilities:
- Create requests (validate -> upload -> persist -> notify recipients)
- Record the signature of one recipient (upload signature images, mark the
  recipient signed, detect completion and archive the result)
- Process the asynchronous "signed" callback of the signing service
- Delete requests on both sides
- Read requests for owners and recipients

Recipients move from Pending to Signed exactly once. Both the synchronous
signing path and the callback path go through the store's atomic
transition, so the completion side effects run once per request.
"""

import json
import logging
from datetime import timezone as dt_timezone
from io import BytesIO

from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import validate_email
from django.db import transaction
from django.utils import timezone, translation
from django.utils.dateparse import parse_datetime
from PIL import Image, UnidentifiedImageError

from .. import config
from ..exceptions import (
    AlreadySigned,
    DuplicateEmail,
    DuplicateUser,
    ErrorAccessingFile,
    Forbidden,
    InvalidAccount,
    InvalidFiletype,
    InvalidMetadata,
    InvalidOptions,
    InvalidResponse,
    NotFound,
    SignatureImagesMissing,
    SigningError,
    Unconfigured,
    UnknownFile,
    UnknownUser,
    UpstreamConnectionError,
    UpstreamError,
    ValidationFailed,
)
from ..files import get_file_resolver
from ..models import Recipient
from ..serializers import IncomingRequestSerializer, SigningRequestSerializer, format_datetime
from ..signals import recipient_signed
from ..users import get_display_name, get_user_by_username
from .api_client import get_api_client
from .metadata_store import get_metadata_store
from .request_store import get_request_store
from .token_service import get_token_service
from .validator import get_validator

logger = logging.getLogger(__name__)

PDF_MIME_TYPES = ('application/pdf',)
MAX_IMAGE_SIZE = 1024 * 1024
NOTIFY_SIGNED_PURPOSE = 'notify-signed'
SIGN_OPTIONS_VERSION = '1.0'


def queue_request_mail(request, recipient, sender):
    """Default notifier: deliver the signing request mail in the background."""
    from ..tasks import send_request_mail
    send_request_mail.delay(request.id, recipient.value, recipient.external_signature_id, sender.pk)


def queue_signed_result(request, signed, user, account):
    """Default result saver: archive the signed result in the background."""
    from ..tasks import save_signed_result
    save_signed_result.delay(request.id, signed.isoformat(), user.pk if user else None)


def parse_signed(value):
    """Parse the signing time reported by the signing service, default now."""
    signed = None
    if isinstance(value, str):
        try:
            signed = parse_datetime(value)
        except ValueError:
            signed = None
    if signed is None:
        return timezone.now()
    if timezone.is_naive(signed):
        signed = timezone.make_aware(signed, dt_timezone.utc)
    return signed


def parse_sign_options(raw):
    """
    Decode the `options` form part of a signature submission.

    Returns:
        dict: the options, empty if none were given

    Raises:
        ValidationFailed: invalid_options_format
    """
    if not raw:
        return {}
    if isinstance(raw, dict):
        return raw
    try:
        options = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise ValidationFailed(code='invalid_options_format') from e
    if not isinstance(options, dict):
        raise ValidationFailed(code='invalid_options_format')
    return options


def resolve_identity(user, email=None):
    """
    Identity a caller acts as: the given email address, else the logged in
    user.

    Returns:
        tuple: (recipient_type, recipient_value)

    Raises:
        ValidationFailed: unknown_recipient
    """
    if email:
        return Recipient.TYPE_EMAIL, email
    if user is not None and user.is_authenticated:
        return Recipient.TYPE_USER, user.get_username()
    raise ValidationFailed(code='unknown_recipient')


class SigningCoordinator:
    """Service orchestrating the signing request lifecycle."""

    def __init__(self, client=None, store=None, metadata_store=None, validator=None,
                 files=None, notifier=None, result_saver=None, tokens=None):
        self.client = client or get_api_client()
        self.store = store or get_request_store()
        self.metadata_store = metadata_store or get_metadata_store()
        self.validator = validator or get_validator()
        self.files = files or get_file_resolver()
        self.notifier = notifier or queue_request_mail
        self.result_saver = result_saver or queue_signed_result
        self.tokens = tokens or get_token_service()

    # ----------------------------
    # Helpers
    # ----------------------------

    @staticmethod
    def _require_account():
        account = config.get_account()
        if not account.is_configured:
            raise Unconfigured()
        return account

    @staticmethod
    def _normalize_recipients(recipients):
        """
        Check and normalize the recipient list of a new request.

        Returns:
            list: recipient dicts ({type, value, display_name?})
        """
        result = []
        emails = set()
        users = set()
        for entry in recipients:
            if not isinstance(entry, dict):
                raise ValidationFailed(code='invalid_recipient_type')
            recipient_type = entry.get('type')
            value = entry.get('value')
            recipient = dict(entry)

            if recipient_type == Recipient.TYPE_EMAIL:
                if not isinstance(value, str) or not value:
                    raise ValidationFailed(code='invalid_email')
                if value in emails:
                    raise DuplicateEmail()
                try:
                    validate_email(value)
                except ValidationError as e:
                    raise ValidationFailed(code='invalid_email') from e
                if recipient.get('display_name') == value:
                    recipient.pop('display_name')
                emails.add(value)
            elif recipient_type == Recipient.TYPE_USER:
                if not isinstance(value, str):
                    raise UnknownUser()
                if value in users:
                    raise DuplicateUser()
                directory_user = get_user_by_username(value)
                if directory_user is None:
                    raise UnknownUser()
                display_name = get_display_name(directory_user)
                if display_name != value:
                    recipient['display_name'] = display_name
                users.add(value)
            else:
                raise ValidationFailed(code='invalid_recipient_type')

            result.append(recipient)
        return result

    @staticmethod
    def _sender_metadata(user):
        sender = {'language': translation.get_language() or settings.LANGUAGE_CODE}
        tz = getattr(settings, 'TIME_ZONE', None)
        if tz:
            sender['timezone'] = tz
        return sender

    @staticmethod
    def _find_recipient(request, recipient_type, recipient_value):
        for idx, recipient in enumerate(request.recipients.all()):
            if recipient.type == recipient_type and recipient.value == recipient_value:
                return idx, recipient
        return None, None

    @staticmethod
    def _load_image(field_id, upload):
        """
        Read and check an uploaded signature image.

        Returns:
            tuple: (content, mime_type)
        """
        if upload.size is not None and upload.size > MAX_IMAGE_SIZE:
            raise SigningError(code='image_too_large', field=field_id, status_code=413)

        content = upload.read()
        if len(content) > MAX_IMAGE_SIZE:
            raise SigningError(code='image_too_large', field=field_id, status_code=413)

        try:
            with Image.open(BytesIO(content)) as img:
                img.verify()
                mime_type = Image.MIME.get(img.format)
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError, SyntaxError, ValueError) as e:
            logger.info(f"Rejected signature image for field {field_id}: {e}")
            raise ValidationFailed(code='error_loading_image', field=field_id) from e

        return content, mime_type or 'application/octet-stream'

    @staticmethod
    def _load_personal_image(user):
        signature_image = config.get_signature_image(user)
        if signature_image is None or not signature_image.image:
            return None

        with signature_image.image.open('rb') as fp:
            content = fp.read()

        mime_type = signature_image.mime_type
        if not mime_type or mime_type == 'application/octet-stream':
            try:
                with Image.open(BytesIO(content)) as img:
                    mime_type = Image.MIME.get(img.format)
            except (UnidentifiedImageError, Image.DecompressionBombError, OSError):
                mime_type = None
        return content, mime_type or 'application/octet-stream'

    def _build_sign_parts(self, request, recipient_idx, recipient_type, recipient_value,
                          references, uploads, personal_image_user, client_info):
        """
        Multipart payload of a signature submission.

        Per field bound to the recipient the image source is, in order of
        preference: a reference to another part, an uploaded image, the
        personal signature image (attached once, referenced afterwards).
        """
        parts = []
        metadata = request.metadata or {}
        fields = metadata.get('signature_fields') or []
        check_recipient_idx = len(request.recipients.all()) > 1

        personal_image = None
        personal_image_loaded = False
        personal_image_id = None
        for field in fields:
            field_id = field['id']
            field_idx = field.get('recipient_idx')
            if check_recipient_idx and field_idx is not None and field_idx != recipient_idx:
                continue

            reference = references.get(field_id)
            if reference:
                parts.append((field_id, (None, reference)))
                continue

            upload = uploads.get(field_id)
            if upload is not None:
                content, mime_type = self._load_image(field_id, upload)
                parts.append((field_id, (field_id, content, mime_type)))
                continue

            if personal_image_id:
                parts.append((field_id, (None, personal_image_id)))
                continue

            if not personal_image_loaded:
                personal_image_loaded = True
                if personal_image_user is not None:
                    personal_image = self._load_personal_image(personal_image_user)
            if personal_image is None:
                raise SignatureImagesMissing()

            content, mime_type = personal_image
            personal_image_id = field_id
            parts.append((field_id, (field_id, content, mime_type)))

        parts.append(('options', (None, json.dumps({
            'version': SIGN_OPTIONS_VERSION,
            'signer': {
                'type': recipient_type,
                'value': recipient_value,
            },
        }), 'application/json')))

        client = {'clientip': (client_info or {}).get('clientip')}
        if (client_info or {}).get('useragent'):
            client['useragent'] = client_info['useragent']
        parts.append(('metadata', (None, json.dumps({'client': client}), 'application/json')))
        return parts

    def _apply_signed(self, request, recipient_type, recipient_value, signed, user, account,
                      external_signature_id=None, signature_result_id=None):
        """
        Pending -> Signed transition with its side effects.

        Returns:
            tuple: (performed, is_last, request snapshot after the transition)
        """
        transition = self.store.mark_recipient_signed(
            request.id, recipient_type, recipient_value, signed,
            external_signature_id=external_signature_id,
        )
        if not transition.performed:
            return False, False, request

        if transition.is_last and signature_result_id:
            self.store.set_signature_result_id(request.id, signature_result_id)

        snapshot = self.store.get_request_by_id(request.id) or request
        recipient_signed.send(
            sender=self.__class__,
            request_id=request.id,
            request=snapshot,
            recipient_type=recipient_type,
            recipient_value=recipient_value,
            signed=signed,
            user=user,
            is_last=transition.is_last,
        )

        if transition.is_last:
            try:
                self.result_saver(snapshot, signed, user, account)
            except Exception:
                # The transition stands; completed requests are archived later.
                logger.exception(f"Could not schedule saving the signed result of request {request.id}")

        return True, transition.is_last, snapshot

    # ----------------------------
    # Operations
    # ----------------------------

    def create_request(self, user, file_id, recipients=None, options=None, metadata=None,
                       recipient='', recipient_type=''):
        """
        Share a file for signature.

        Args:
            user: owner of the new request
            file_id: host file id
            recipients: list of {type, value, display_name?}
            options: dict or None
            metadata: dict with `signature_fields`
            recipient, recipient_type: single recipient form, used when
                `recipients` is empty

        Returns:
            str: id of the new request
        """
        account = self._require_account()

        if not recipients:
            if recipient and recipient_type:
                recipients = [{'type': recipient_type, 'value': recipient}]
            else:
                raise ValidationFailed(code='no_recipients')

        recipients = self._normalize_recipients(recipients)

        metadata = metadata or {}
        errors = self.validator.validate_share_metadata(metadata)
        if errors:
            raise InvalidMetadata(details=errors)

        fields = metadata.get('signature_fields')
        if not fields:
            raise InvalidMetadata(details=['no signature fields found'])

        violation = self.validator.validate_field_assignment(fields, len(recipients))
        if violation:
            raise InvalidMetadata(details=[violation])

        options = options or None
        errors = self.validator.validate_share_options(options)
        if errors:
            raise InvalidOptions(details=errors)

        file = self.files.resolve(user, file_id)
        if file is None:
            raise UnknownFile()
        if not file.is_accessible:
            raise ErrorAccessingFile()

        mime_type = (file.mime_type or '').lower()
        if mime_type not in PDF_MIME_TYPES:
            raise InvalidFiletype()

        metadata = dict(metadata)
        metadata['sender'] = self._sender_metadata(user)

        server = config.get_api_server()
        try:
            data = self.client.share_file(file, recipients, metadata, account, server)
        except UpstreamConnectionError:
            logger.error(f"Error connecting to {server}")
            raise
        except UpstreamError:
            logger.error(f"Error sending file {file.id} to {server}")
            raise

        external_file_id = data.get('file_id')
        if not external_file_id:
            raise InvalidResponse()

        upstream_recipients = data.get('recipients')
        if isinstance(upstream_recipients, list) and upstream_recipients:
            recipients = upstream_recipients

        with transaction.atomic():
            request_id = self.store.store_request(
                file, user, recipients, options, metadata, account, server,
                external_file_id, data.get('signature_id'),
            )
            self.metadata_store.store_metadata(user, file, metadata)

        request = self.store.get_request_by_id(request_id)
        for entry in request.recipients.all():
            if entry.type != Recipient.TYPE_EMAIL:
                continue
            try:
                self.notifier(request, entry, user)
            except Exception:
                logger.exception(f"Could not send request mail for {request_id} to {entry.value}")

        logger.info(f"Created request {request_id} for file {file.id} ({len(recipients)} recipient(s))")
        return request_id

    def sign_recipient(self, request_id, recipient_type, recipient_value, references=None,
                       uploads=None, user=None, client_info=None, embed_user_signature=False):
        """
        Record the signature of one recipient.

        Args:
            request_id: str
            recipient_type, recipient_value: identity of the signer
            references: dict field id -> id of another part to reuse
            uploads: dict field id -> uploaded image file
            user: logged in user, or None
            client_info: dict {clientip, useragent}
            embed_user_signature: bool, use the user's personal image

        Returns:
            dict: {request_id, signed, details_url?}
        """
        request = self.store.get_request_by_id(request_id)
        if request is None:
            raise NotFound(throttle=True)

        recipient_idx, recipient = self._find_recipient(request, recipient_type, recipient_value)
        if recipient is None:
            raise NotFound(throttle=True)
        if recipient.is_signed:
            raise AlreadySigned()

        account = self._require_account()
        if account.id != request.external_account_id:
            raise InvalidAccount()

        personal_image_user = user if (embed_user_signature and user is not None and user.is_authenticated) else None
        parts = self._build_sign_parts(
            request, recipient_idx, recipient_type, recipient_value,
            references or {}, uploads or {}, personal_image_user, client_info,
        )

        try:
            data = self.client.sign_file(request.external_file_id, parts, account, request.external_server)
        except UpstreamConnectionError as e:
            raise UpstreamConnectionError(status_code=500) from e
        except UpstreamError as e:
            if e.error_code == 409:
                # Signed through another path, the callback records it
                raise AlreadySigned() from e
            raise UpstreamError(code=e.error_code, status_code=500) from e
        except InvalidResponse as e:
            raise InvalidResponse(code='INVALID_RESPONSE') from e

        if data.get('status') != 'success':
            raise InvalidResponse(code='INVALID_RESPONSE')

        signed = parse_signed(data.get('signed'))
        performed, is_last, snapshot = self._apply_signed(
            request, recipient_type, recipient_value, signed, user, account,
        )
        if not performed:
            raise AlreadySigned()

        result = {
            'request_id': request.id,
            'signed': format_datetime(signed),
        }
        if is_last and snapshot.external_signature_result_id:
            result['details_url'] = self.client.get_details_url(
                snapshot.external_signature_result_id, snapshot.external_server
            )
        return result

    def process_signed_notification(self, external_file_id, signature_id, token, body):
        """
        Handle the callback of the signing service confirming a signature.

        Args:
            external_file_id: file id on the signing service
            signature_id: external signature id of the recipient
            token: token from the callback headers
            body: raw JSON body with the signature details

        Returns:
            bool: True if this call recorded the signature
        """
        account = config.get_account()
        if not self.tokens.validate_token(token, account, signature_id, NOTIFY_SIGNED_PURPOSE):
            raise Forbidden(throttle=True)

        request = self.store.get_request_by_external_file_id(external_file_id)
        if request is None:
            raise NotFound(throttle=True)

        recipient = None
        for entry in request.recipients.all():
            if entry.external_signature_id == signature_id:
                recipient = entry
                break
        if recipient is None:
            # Authenticated caller
            raise NotFound()
        if recipient.is_signed:
            return False

        if isinstance(body, bytes):
            body = body.decode('utf-8', errors='replace')
        try:
            details = json.loads(body) if body else {}
        except ValueError as e:
            raise ValidationFailed(code='invalid_details') from e
        if not isinstance(details, dict):
            raise ValidationFailed(code='invalid_details')

        signed = parse_signed(details.get('signed'))
        performed, is_last, _ = self._apply_signed(
            request, recipient.type, recipient.value, signed, None, account,
            external_signature_id=signature_id,
            signature_result_id=details.get('signature_id'),
        )
        logger.info(
            f"Signed notification for request {request.id}, signature {signature_id}: "
            f"performed={performed} last={is_last}"
        )
        return performed

    def delete_request(self, user, request_id):
        """Delete a request of `user` on the signing service and locally."""
        request = self.store.get_own_request_by_id(user, request_id)
        if request is None:
            raise NotFound()

        account = self._require_account()
        if account.id != request.external_account_id:
            raise InvalidAccount()

        try:
            data = self.client.delete_file(request.external_file_id, account, request.external_server)
        except UpstreamConnectionError as e:
            raise UpstreamConnectionError(status_code=500) from e
        except UpstreamError as e:
            raise UpstreamError(code=e.error_code, status_code=500) from e
        except InvalidResponse as e:
            raise InvalidResponse(code='INVALID_RESPONSE') from e

        if data.get('status') != 'success':
            raise InvalidResponse(code='INVALID_RESPONSE')

        self.store.delete_request_by_id(request.id)

    # ----------------------------
    # Read operations
    # ----------------------------

    def _serialize_own(self, request, file, account):
        context = {'client': self.client, 'account': account, 'file': file}
        return SigningRequestSerializer(request, context=context).data

    def _serialize_incoming(self, request, recipient_type, recipient_value, account):
        file = self.files.resolve(request.owner, request.file_id)
        if file is None:
            return None
        context = {
            'client': self.client,
            'account': account,
            'file': file,
            'viewer': (recipient_type, recipient_value),
        }
        return IncomingRequestSerializer(request, context=context).data

    def get_own_requests(self, user, include_signed=False):
        account = self._require_account()
        result = []
        for request in self.store.get_own_requests(user, include_signed):
            file = self.files.resolve(user, request.file_id)
            if file is None:
                continue
            result.append(self._serialize_own(request, file, account))
        return result

    def get_own_request(self, user, request_id):
        account = self._require_account()
        request = self.store.get_own_request_by_id(user, request_id)
        if request is None:
            raise NotFound()
        file = self.files.resolve(user, request.file_id)
        if file is None:
            raise NotFound()
        return self._serialize_own(request, file, account)

    def get_incoming_requests(self, user, include_signed=False):
        account = self._require_account()
        recipient_type, recipient_value = Recipient.TYPE_USER, user.get_username()
        result = []
        for request in self.store.get_incoming_requests(recipient_type, recipient_value, include_signed):
            data = self._serialize_incoming(request, recipient_type, recipient_value, account)
            if data is not None:
                result.append(data)
        return result

    def get_incoming_request(self, request_id, user=None, email=None):
        account = self._require_account()
        recipient_type, recipient_value = resolve_identity(user, email)

        request = self.store.get_request_by_id(request_id)
        if request is None:
            raise NotFound(throttle=True)
        _, recipient = self._find_recipient(request, recipient_type, recipient_value)
        if recipient is None:
            raise NotFound(throttle=True)

        data = self._serialize_incoming(request, recipient_type, recipient_value, account)
        if data is None:
            raise NotFound()
        return data

    def get_signature_request(self, signature_id):
        """Request of the recipient with the given external signature id."""
        account = self._require_account()
        request = self.store.get_request_by_external_signature_id(signature_id)
        if request is None:
            raise NotFound(throttle=True)

        recipient = None
        for entry in request.recipients.all():
            if entry.external_signature_id == signature_id:
                recipient = entry
                break
        if recipient is None:
            raise NotFound()

        data = self._serialize_incoming(request, recipient.type, recipient.value, account)
        if data is None:
            raise NotFound()
        return data

    def get_file_metadata(self, user, file_id):
        file = self.files.resolve(user, file_id)
        if file is None:
            raise UnknownFile()
        if not file.is_accessible:
            raise ErrorAccessingFile()
        metadata = self.metadata_store.get_metadata(user, file)
        return metadata if metadata is not None else {}


# Singleton instance
_signing_coordinator = None


def get_signing_coordinator() -> SigningCoordinator:
    """Get singleton instance of the signing coordinator."""
    global _signing_coordinator
    if _signing_coordinator is None:
        _signing_coordinator = SigningCoordinator()
    return _signing_coordinator
