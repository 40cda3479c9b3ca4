from io import BytesIO

import pytest
from PIL import Image


API_SERVER = 'https://api.example.test/'
WEB_SERVER = 'https://www.example.test/'
PDF_BYTES = b'%PDF-1.4\n%fake\n'


@pytest.fixture(autouse=True)
def esig_settings(settings, tmp_path):
    settings.ESIG_ACCOUNT_ID = 'account-1'
    settings.ESIG_ACCOUNT_SECRET = 'account-secret'
    settings.ESIG_API_SERVER = API_SERVER
    settings.ESIG_SERVER = WEB_SERVER
    settings.MEDIA_ROOT = str(tmp_path / 'media')
    settings.CELERY_TASK_ALWAYS_EAGER = True
    return settings


@pytest.fixture
def account():
    from signatures import config
    return config.get_account()


@pytest.fixture
def owner(django_user_model):
    return django_user_model.objects.create_user(
        username='alice', email='alice@example.com', password='pw',
        first_name='Alice', last_name='Owner',
    )


@pytest.fixture
def bob(django_user_model):
    return django_user_model.objects.create_user(username='bob', email='bob@example.com', password='pw')


@pytest.fixture
def carol(django_user_model):
    return django_user_model.objects.create_user(username='carol', email='carol@example.com', password='pw')


class FakeFileResolver:
    """In-memory host files keyed by (username, file_id)."""

    def __init__(self):
        self.files = {}

    def add(self, user, file_id, name='contract.pdf', mime_type='application/pdf',
            content=PDF_BYTES, readable=True, updatable=True):
        from signatures.files import HostFile

        host_file = HostFile(
            id=str(file_id),
            name=name,
            mime_type=mime_type,
            opener=lambda: content,
            readable=readable,
            updatable=updatable,
        )
        self.files[(user.get_username(), str(file_id))] = host_file
        return host_file

    def resolve(self, user, file_id):
        if user is None:
            return None
        return self.files.get((user.get_username(), str(file_id)))


class FakeSigningClient:
    """Stands in for SigningApiClient and records every call."""

    def __init__(self):
        self.calls = []
        self.share_response = {'file_id': 'ext-file-1'}
        self.sign_response = {'status': 'success', 'signed': '2023-01-01T00:00:00Z'}
        self.delete_response = {'status': 'success'}
        self.share_error = None
        self.sign_error = None
        self.delete_error = None
        self.on_sign = None

    def calls_to(self, name):
        return [call for call in self.calls if call[0] == name]

    def share_file(self, file, recipients, metadata, account, server):
        self.calls.append(('share_file', file, recipients, metadata, account, server))
        if self.share_error:
            raise self.share_error
        return self.share_response

    def sign_file(self, file_id, parts, account, server):
        self.calls.append(('sign_file', file_id, parts, account, server))
        if self.on_sign:
            self.on_sign()
        if self.sign_error:
            raise self.sign_error
        return self.sign_response

    def delete_file(self, file_id, account, server):
        self.calls.append(('delete_file', file_id, account, server))
        if self.delete_error:
            raise self.delete_error
        return self.delete_response

    def get_original_url(self, file_id, account, server):
        return f'{server}original/{file_id}'

    def get_source_url(self, file_id, account, server):
        return f'{server}source/{file_id}'

    def get_signed_url(self, file_id, account, server):
        return f'{server}signed/{file_id}'

    def get_details_url(self, signature_result_id, server=None):
        return f'{server or WEB_SERVER}details/{signature_result_id}'


class Recorder:
    def __init__(self):
        self.calls = []

    def __call__(self, *args):
        self.calls.append(args)


@pytest.fixture
def files():
    return FakeFileResolver()


@pytest.fixture
def client_stub():
    return FakeSigningClient()


@pytest.fixture
def notifier():
    return Recorder()


@pytest.fixture
def result_saver():
    return Recorder()


@pytest.fixture
def coordinator(client_stub, files, notifier, result_saver):
    from signatures.services.signing_coordinator import SigningCoordinator

    return SigningCoordinator(
        client=client_stub,
        files=files,
        notifier=notifier,
        result_saver=result_saver,
    )


@pytest.fixture
def signed_events():
    """Collects the keyword arguments of every recipient_signed dispatch."""
    from signatures.signals import recipient_signed

    events = []

    def collect(sender, **kwargs):
        kwargs.pop('signal', None)
        events.append(kwargs)

    recipient_signed.connect(collect, weak=False, dispatch_uid='test-collect')
    yield events
    recipient_signed.disconnect(dispatch_uid='test-collect')


@pytest.fixture
def single_field_metadata():
    return {'signature_fields': [{'id': 'f1', 'page': 1, 'x': 10, 'y': 20, 'width': 100, 'height': 40}]}


@pytest.fixture
def png_bytes():
    buffer = BytesIO()
    Image.new('RGB', (4, 4), color='black').save(buffer, format='PNG')
    return buffer.getvalue()
