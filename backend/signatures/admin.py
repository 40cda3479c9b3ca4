from django.contrib import admin
from .models import SigningRequest, Recipient, FileMetadata, SignatureImage


class RecipientInline(admin.TabularInline):
    model = Recipient
    extra = 0
    fields = ('position', 'type', 'value', 'display_name', 'signed', 'external_signature_id')
    readonly_fields = fields
    can_delete = False


@admin.register(SigningRequest)
class SigningRequestAdmin(admin.ModelAdmin):
    list_display = ('id', 'file_id', 'owner', 'created', 'state', 'saved')
    list_filter = ('created', 'saved')
    search_fields = ('id', 'file_id', 'external_file_id', 'owner__username')
    readonly_fields = ('id', 'created', 'external_file_id', 'external_server',
                       'external_account_id', 'external_signature_result_id',
                       'signed_pdf_sha256', 'saved')
    inlines = [RecipientInline]
    fieldsets = (
        ('Request', {
            'fields': ('id', 'file_id', 'owner', 'created')
        }),
        ('Signing service', {
            'fields': ('external_file_id', 'external_server', 'external_account_id',
                       'external_signature_result_id')
        }),
        ('Signed result', {
            'fields': ('signed_file', 'signed_pdf_sha256', 'saved')
        }),
        ('Payload', {
            'fields': ('options', 'metadata'),
            'classes': ('collapse',)
        }),
    )


@admin.register(FileMetadata)
class FileMetadataAdmin(admin.ModelAdmin):
    list_display = ('file_id', 'user', 'updated')
    search_fields = ('file_id',)
    readonly_fields = ('updated',)


@admin.register(SignatureImage)
class SignatureImageAdmin(admin.ModelAdmin):
    list_display = ('user', 'mime_type', 'updated')
    search_fields = ('user__username',)
