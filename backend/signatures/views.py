from rest_framework import status, viewsets
from rest_framework.parsers import FormParser, JSONParser, MultiPartParser
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response

from .serializers import ShareRequestSerializer, SignResponseSerializer
from .services.signing_coordinator import (
    get_signing_coordinator,
    parse_sign_options,
    resolve_identity,
)
from .throttling import FailedAttemptThrottle


def _as_bool(value):
    return str(value).lower() in ('1', 'true', 'yes', 'on')


def get_client_ip(request):
    """Extract client IP from request."""
    x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
    if x_forwarded_for:
        ip = x_forwarded_for.split(',')[0].strip()
    else:
        ip = request.META.get('REMOTE_ADDR')
    return ip


class CoordinatorMixin:
    """Gives views access to the signing coordinator."""

    def get_coordinator(self):
        return get_signing_coordinator()


class FailedAttemptMixin:
    """
    Counts throttled failures (unknown ids on public endpoints) and rejects
    clients that used up their budget.
    """
    failed_attempt_scope = None

    def get_throttles(self):
        return [FailedAttemptThrottle(self.failed_attempt_scope)]

    def handle_exception(self, exc):
        if getattr(exc, 'throttle', False):
            FailedAttemptThrottle(self.failed_attempt_scope).register_failure(self.request)
        return super().handle_exception(exc)


class ShareViewSet(CoordinatorMixin, viewsets.ViewSet):
    """Signing requests of the logged in user."""
    permission_classes = [IsAuthenticated]
    parser_classes = (JSONParser, MultiPartParser, FormParser)

    def list(self, request):
        include_signed = _as_bool(request.query_params.get('include_signed', ''))
        data = self.get_coordinator().get_own_requests(request.user, include_signed)
        return Response(data)

    def create(self, request):
        serializer = ShareRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        payload = serializer.validated_data

        request_id = self.get_coordinator().create_request(
            request.user,
            payload['file_id'],
            recipients=payload.get('recipients'),
            options=payload.get('options'),
            metadata=payload.get('metadata'),
            recipient=payload.get('recipient', ''),
            recipient_type=payload.get('recipient_type', ''),
        )
        return Response({'request_id': request_id}, status=status.HTTP_201_CREATED)

    def retrieve(self, request, pk=None):
        return Response(self.get_coordinator().get_own_request(request.user, pk))

    def destroy(self, request, pk=None):
        self.get_coordinator().delete_request(request.user, pk)
        return Response({})


class IncomingViewSet(CoordinatorMixin, viewsets.ViewSet):
    """Requests the logged in user has been asked to sign."""
    permission_classes = [IsAuthenticated]

    def list(self, request):
        include_signed = _as_bool(request.query_params.get('include_signed', ''))
        data = self.get_coordinator().get_incoming_requests(request.user, include_signed)
        return Response(data)


class PublicRequestViewSet(FailedAttemptMixin, CoordinatorMixin, viewsets.ViewSet):
    """Request view and signature submission for recipients (no login needed for email recipients)."""
    permission_classes = [AllowAny]
    parser_classes = (MultiPartParser, FormParser, JSONParser)
    failed_attempt_scope = 'request'

    def retrieve(self, request, pk=None):
        data = self.get_coordinator().get_incoming_request(
            pk, user=request.user, email=request.query_params.get('email'),
        )
        return Response(data)

    def sign(self, request, pk=None):
        options = parse_sign_options(request.data.get('options'))
        recipient_type, recipient_value = resolve_identity(request.user, options.get('email'))

        references = {
            key: value for key, value in request.data.items()
            if key != 'options' and isinstance(value, str)
        }
        uploads = {key: request.FILES[key] for key in request.FILES}

        result = self.get_coordinator().sign_recipient(
            pk,
            recipient_type,
            recipient_value,
            references=references,
            uploads=uploads,
            user=request.user if request.user.is_authenticated else None,
            client_info={
                'clientip': get_client_ip(request),
                'useragent': request.META.get('HTTP_USER_AGENT', ''),
            },
            embed_user_signature=bool(options.get('embed_user_signature')),
        )
        return Response(SignResponseSerializer(result).data)


class PublicSignatureViewSet(FailedAttemptMixin, CoordinatorMixin, viewsets.ViewSet):
    """Request lookup by the signature id handed out in request mails."""
    permission_classes = [AllowAny]
    failed_attempt_scope = 'signature'

    def retrieve(self, request, pk=None):
        return Response(self.get_coordinator().get_signature_request(pk))


class SignedCallbackViewSet(FailedAttemptMixin, CoordinatorMixin, viewsets.ViewSet):
    """Callback of the signing service once a signature is confirmed."""
    permission_classes = [AllowAny]
    authentication_classes = []
    failed_attempt_scope = 'file'

    TOKEN_HEADER = 'HTTP_X_VINEGAR_TOKEN'

    def notify_signed(self, request, file_id=None, signature_id=None):
        self.get_coordinator().process_signed_notification(
            file_id,
            signature_id,
            request.META.get(self.TOKEN_HEADER, ''),
            request.body,
        )
        return Response({})


class FileMetadataViewSet(CoordinatorMixin, viewsets.ViewSet):
    """Signature field layout last used for a file."""
    permission_classes = [IsAuthenticated]

    def retrieve(self, request, pk=None):
        return Response(self.get_coordinator().get_file_metadata(request.user, pk))
