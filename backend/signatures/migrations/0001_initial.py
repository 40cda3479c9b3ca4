from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion
import signatures.models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='SigningRequest',
            fields=[
                ('id', models.CharField(max_length=64, primary_key=True, serialize=False)),
                ('file_id', models.CharField(db_index=True, max_length=255)),
                ('created', models.DateTimeField(auto_now_add=True)),
                ('options', models.JSONField(blank=True, null=True)),
                ('metadata', models.JSONField(blank=True, null=True)),
                ('external_file_id', models.CharField(db_index=True, max_length=255)),
                ('external_server', models.CharField(max_length=255)),
                ('external_account_id', models.CharField(max_length=255)),
                ('external_signature_result_id', models.CharField(blank=True, max_length=255, null=True)),
                ('signed_file', models.FileField(blank=True, help_text='Signed PDF downloaded from the signing service', null=True, upload_to=signatures.models.signed_result_upload_path)),
                ('signed_pdf_sha256', models.CharField(blank=True, max_length=64, null=True)),
                ('saved', models.DateTimeField(blank=True, null=True)),
                ('owner', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='signing_requests', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'esig_requests',
                'ordering': ['-created'],
            },
        ),
        migrations.CreateModel(
            name='Recipient',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('position', models.PositiveIntegerField(default=0)),
                ('created', models.DateTimeField(auto_now_add=True)),
                ('type', models.CharField(choices=[('user', 'User'), ('email', 'Email')], max_length=16)),
                ('value', models.CharField(max_length=255)),
                ('display_name', models.CharField(blank=True, default='', max_length=255)),
                ('signed', models.DateTimeField(blank=True, null=True)),
                ('external_signature_id', models.CharField(blank=True, db_index=True, max_length=255, null=True)),
                ('request', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='recipients', to='signatures.signingrequest')),
            ],
            options={
                'db_table': 'esig_recipients',
                'ordering': ['position'],
            },
        ),
        migrations.AddConstraint(
            model_name='recipient',
            constraint=models.UniqueConstraint(fields=('request', 'type', 'value'), name='recipients_unique_recipient'),
        ),
        migrations.CreateModel(
            name='FileMetadata',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('file_id', models.CharField(max_length=255, unique=True)),
                ('metadata', models.JSONField(default=dict)),
                ('updated', models.DateTimeField(auto_now=True)),
                ('user', models.ForeignKey(null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'esig_file_metadata',
            },
        ),
        migrations.CreateModel(
            name='SignatureImage',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('image', models.FileField(upload_to=signatures.models.signature_image_upload_path)),
                ('mime_type', models.CharField(blank=True, max_length=100)),
                ('updated', models.DateTimeField(auto_now=True)),
                ('user', models.OneToOneField(on_delete=django.db.models.deletion.CASCADE, related_name='signature_image', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'esig_signature_images',
            },
        ),
    ]
