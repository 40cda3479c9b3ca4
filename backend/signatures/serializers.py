from datetime import timezone as dt_timezone

from django.utils import timezone
from rest_framework import serializers

from .models import Recipient, SigningRequest
from .users import get_display_name, get_display_name_for


def format_datetime(value):
    """Format a timestamp as RFC 3339 in UTC."""
    if value is None:
        return None
    if timezone.is_naive(value):
        value = timezone.make_aware(value, dt_timezone.utc)
    return value.astimezone(dt_timezone.utc).isoformat()


def filter_metadata(request, recipient_type, recipient_value):
    """
    Restrict the signature fields of a multi-recipient request to the
    fields bound to one recipient. Other requests are returned unchanged.
    """
    metadata = request.metadata
    if not metadata or 'signature_fields' not in metadata:
        return metadata

    recipients = list(request.recipients.all())
    if len(recipients) <= 1:
        return metadata

    found = None
    for idx, recipient in enumerate(recipients):
        if recipient.type == recipient_type and recipient.value == recipient_value:
            found = idx
            break
    if found is None:
        return metadata

    filtered = dict(metadata)
    filtered['signature_fields'] = [
        field for field in metadata['signature_fields']
        if isinstance(field, dict)
        and not isinstance(field.get('recipient_idx'), bool)
        and field.get('recipient_idx') == found
    ]
    return filtered


class RecipientSerializer(serializers.ModelSerializer):
    """Recipient entry of request responses."""

    class Meta:
        model = Recipient
        fields = ['type', 'value', 'signed', 'display_name']
        read_only_fields = fields

    def to_representation(self, instance):
        data = {
            'type': instance.type,
            'value': instance.value,
        }
        if instance.signed:
            data['signed'] = format_datetime(instance.signed)
        if instance.type == Recipient.TYPE_USER:
            data['display_name'] = get_display_name_for(instance.value)
        elif instance.display_name:
            data['display_name'] = instance.display_name
        return data


class SigningRequestSerializer(serializers.ModelSerializer):
    """
    Request as seen by its owner.

    Context:
        client: SigningApiClient used to build download URLs
        account: config.Account
        file: files.HostFile of the request
    """
    request_id = serializers.CharField(source='id', read_only=True)
    created = serializers.SerializerMethodField()
    filename = serializers.SerializerMethodField()
    mimetype = serializers.SerializerMethodField()
    download_url = serializers.SerializerMethodField()
    recipients = RecipientSerializer(many=True, read_only=True)
    metadata = serializers.SerializerMethodField()

    class Meta:
        model = SigningRequest
        fields = [
            'request_id', 'created', 'file_id', 'filename', 'mimetype',
            'download_url', 'recipients', 'metadata',
        ]
        read_only_fields = fields

    def get_created(self, obj):
        return format_datetime(obj.created)

    def get_filename(self, obj):
        return self.context['file'].name

    def get_mimetype(self, obj):
        mime_type = self.context['file'].mime_type
        return mime_type.lower() if mime_type else mime_type

    def get_download_url(self, obj):
        return self.context['client'].get_original_url(
            obj.external_file_id, self.context['account'], obj.external_server
        )

    def get_metadata(self, obj):
        return obj.metadata

    def get_signed_summary(self, obj):
        """Signing time and result links, present once every recipient signed."""
        recipients = list(obj.recipients.all())
        if not recipients or any(r.signed is None for r in recipients):
            return {}

        client = self.context['client']
        account = self.context['account']
        summary = {
            'signed': format_datetime(max(r.signed for r in recipients)),
            'signed_url': client.get_signed_url(obj.external_file_id, account, obj.external_server),
        }
        if obj.external_signature_result_id:
            summary['details_url'] = client.get_details_url(obj.external_signature_result_id, obj.external_server)
        return summary

    def to_representation(self, instance):
        data = super().to_representation(instance)
        data.update(self.get_signed_summary(instance))
        return data


class IncomingRequestSerializer(SigningRequestSerializer):
    """
    Request as seen by one of its recipients.

    Additional context:
        viewer: (recipient_type, recipient_value) of the recipient
    """
    user_id = serializers.SerializerMethodField()
    display_name = serializers.SerializerMethodField()

    class Meta:
        model = SigningRequest
        fields = [
            'request_id', 'created', 'user_id', 'display_name', 'filename',
            'mimetype', 'download_url', 'metadata',
        ]
        read_only_fields = fields

    def get_user_id(self, obj):
        return obj.owner.get_username()

    def get_display_name(self, obj):
        return get_display_name(obj.owner)

    def get_download_url(self, obj):
        return self.context['client'].get_source_url(
            obj.external_file_id, self.context['account'], obj.external_server
        )

    def get_metadata(self, obj):
        recipient_type, recipient_value = self.context['viewer']
        return filter_metadata(obj, recipient_type, recipient_value)

    def to_representation(self, instance):
        data = super().to_representation(instance)
        recipient_type, recipient_value = self.context['viewer']
        for recipient in instance.recipients.all():
            if recipient.type == recipient_type and recipient.value == recipient_value and recipient.signed:
                data['own_signed'] = format_datetime(recipient.signed)
        return data


class ShareRequestSerializer(serializers.Serializer):
    """Payload of a new signing request."""
    file_id = serializers.CharField(max_length=255)
    recipients = serializers.ListField(
        child=serializers.DictField(),
        required=False,
        allow_empty=True,
    )
    # Single recipient form, used when `recipients` is empty
    recipient = serializers.CharField(required=False, allow_blank=True, default='')
    recipient_type = serializers.CharField(required=False, allow_blank=True, default='')
    options = serializers.JSONField(required=False, allow_null=True)
    metadata = serializers.JSONField(required=False, allow_null=True)


class SignResponseSerializer(serializers.Serializer):
    request_id = serializers.CharField()
    signed = serializers.CharField()
    details_url = serializers.CharField(required=False)
