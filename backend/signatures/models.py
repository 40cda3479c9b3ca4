from django.conf import settings
from django.db import models


def signed_result_upload_path(instance, filename):
    """
    Generate upload path for archived signed results.
    Uses the request ID so every request keeps its own directory.
    """
    return f'signed/{instance.pk}/{filename}'


def signature_image_upload_path(instance, filename):
    return f'signature-images/{instance.user_id}/{filename}'


class SigningRequest(models.Model):
    """
    SigningRequest represents one file shared for signature with one or
    more recipients through the external signing service.

    The request is Open while any recipient is pending, Completed once every
    recipient signed and Archived once the signed result was saved.
    """
    STATE_OPEN = 'open'
    STATE_COMPLETED = 'completed'
    STATE_ARCHIVED = 'archived'

    id = models.CharField(max_length=64, primary_key=True)
    file_id = models.CharField(max_length=255, db_index=True)
    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='signing_requests'
    )
    created = models.DateTimeField(auto_now_add=True)
    options = models.JSONField(null=True, blank=True)
    metadata = models.JSONField(null=True, blank=True)

    # Record of the file on the external signing service
    external_file_id = models.CharField(max_length=255, db_index=True)
    external_server = models.CharField(max_length=255)
    external_account_id = models.CharField(max_length=255)
    external_signature_result_id = models.CharField(max_length=255, null=True, blank=True)

    # Archived signed result
    signed_file = models.FileField(
        upload_to=signed_result_upload_path,
        null=True,
        blank=True,
        help_text="Signed PDF downloaded from the signing service"
    )
    signed_pdf_sha256 = models.CharField(max_length=64, null=True, blank=True)
    saved = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = 'esig_requests'
        ordering = ['-created']

    def __str__(self):
        return f"Request {self.id} for file {self.file_id}"

    @property
    def state(self):
        if self.saved:
            return self.STATE_ARCHIVED
        if self.recipients.filter(signed__isnull=True).exists():
            return self.STATE_OPEN
        return self.STATE_COMPLETED


class Recipient(models.Model):
    """
    Recipient is a (type, value) pair who must sign a request.
    The position is the index used by signature fields (recipient_idx).
    """
    TYPE_USER = 'user'
    TYPE_EMAIL = 'email'
    TYPE_CHOICES = [
        (TYPE_USER, 'User'),
        (TYPE_EMAIL, 'Email'),
    ]

    request = models.ForeignKey(
        SigningRequest,
        on_delete=models.CASCADE,
        related_name='recipients'
    )
    position = models.PositiveIntegerField(default=0)
    created = models.DateTimeField(auto_now_add=True)
    type = models.CharField(max_length=16, choices=TYPE_CHOICES)
    value = models.CharField(max_length=255)
    display_name = models.CharField(max_length=255, blank=True, default='')
    signed = models.DateTimeField(null=True, blank=True)
    external_signature_id = models.CharField(max_length=255, null=True, blank=True, db_index=True)

    class Meta:
        db_table = 'esig_recipients'
        ordering = ['position']
        constraints = [
            models.UniqueConstraint(
                fields=['request', 'type', 'value'],
                name='recipients_unique_recipient'
            )
        ]

    def __str__(self):
        return f"{self.type}:{self.value} ({self.request_id})"

    @property
    def is_signed(self):
        return self.signed is not None


class FileMetadata(models.Model):
    """Signature field layout last used for a host file."""
    file_id = models.CharField(max_length=255, unique=True)
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        related_name='+'
    )
    metadata = models.JSONField(default=dict)
    updated = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'esig_file_metadata'

    def __str__(self):
        return f"Metadata for file {self.file_id}"


class SignatureImage(models.Model):
    """Personal signature image a user may embed when signing."""
    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='signature_image'
    )
    image = models.FileField(upload_to=signature_image_upload_path)
    mime_type = models.CharField(max_length=100, blank=True)
    updated = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'esig_signature_images'

    def __str__(self):
        return f"Signature image of {self.user}"
