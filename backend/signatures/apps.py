from django.apps import AppConfig


class SignaturesConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'signatures'
    verbose_name = 'Signature requests'

    def ready(self):
        # Connect notification receivers
        from . import receivers  # noqa: F401
