import json
from unittest import mock

import pytest
from django.core.cache import cache
from django.core.files.uploadedfile import SimpleUploadedFile
from rest_framework.test import APIClient

from signatures.models import SigningRequest
from signatures.services.token_service import get_token_service

pytestmark = pytest.mark.django_db


@pytest.fixture(autouse=True)
def use_coordinator(coordinator):
    cache.clear()
    with mock.patch('signatures.views.get_signing_coordinator', return_value=coordinator):
        yield coordinator
    cache.clear()


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def owner_client(api_client, owner):
    api_client.force_authenticate(owner)
    return api_client


@pytest.fixture
def request_id(coordinator, client_stub, owner, files, single_field_metadata):
    files.add(owner, '7')
    client_stub.share_response = {
        'file_id': 'abc',
        'recipients': [{'type': 'email', 'value': 'a@x.com', 'c24_signature_id': 'sig-a'}],
    }
    return coordinator.create_request(
        owner, '7', recipients=[{'type': 'email', 'value': 'a@x.com'}], metadata=single_field_metadata,
    )


def test_share_creates_request(owner_client, files, owner, single_field_metadata):
    files.add(owner, '7')
    response = owner_client.post('/api/v1/share/', {
        'file_id': '7',
        'recipients': [{'type': 'email', 'value': 'a@x.com'}],
        'metadata': single_field_metadata,
    }, format='json')

    assert response.status_code == 201
    assert SigningRequest.objects.filter(pk=response.data['request_id']).exists()


def test_share_single_recipient_form(owner_client, files, owner, single_field_metadata):
    files.add(owner, '7')
    response = owner_client.post('/api/v1/share/', {
        'file_id': '7',
        'recipient': 'a@x.com',
        'recipient_type': 'email',
        'metadata': single_field_metadata,
    }, format='json')
    assert response.status_code == 201


def test_share_errors_are_rendered(owner_client, files, owner):
    files.add(owner, '7')
    response = owner_client.post('/api/v1/share/', {
        'file_id': '7',
        'recipients': [{'type': 'email', 'value': 'a@x.com'}],
        'metadata': {'signature_fields': []},
    }, format='json')

    assert response.status_code == 400
    assert response.json() == {'error': 'invalid_metadata', 'details': ['no signature fields found']}


def test_share_requires_login(api_client):
    response = api_client.get('/api/v1/share/')
    assert response.status_code == 403


def test_unconfigured(owner_client, settings):
    settings.ESIG_ACCOUNT_ID = ''
    response = owner_client.get('/api/v1/share/')
    assert response.status_code == 412
    assert response.json() == {'error': 'unconfigured'}


def test_list_and_retrieve_own(owner_client, request_id):
    response = owner_client.get('/api/v1/share/')
    assert response.status_code == 200
    assert [r['request_id'] for r in response.json()] == [request_id]

    response = owner_client.get(f'/api/v1/share/{request_id}/')
    assert response.json()['download_url'] == 'https://api.example.test/original/abc'


def test_delete(owner_client, request_id):
    response = owner_client.delete(f'/api/v1/share/{request_id}/')
    assert response.status_code == 200
    assert response.json() == {}
    assert not SigningRequest.objects.filter(pk=request_id).exists()


def test_delete_of_other_user(api_client, bob, request_id):
    api_client.force_authenticate(bob)
    response = api_client.delete(f'/api/v1/share/{request_id}/')
    assert response.status_code == 404
    assert response.json() == {'error': 'not_found'}


def test_incoming(api_client, owner, bob, files, coordinator, single_field_metadata):
    files.add(owner, '7')
    coordinator.create_request(owner, '7', recipients=[{'type': 'user', 'value': 'bob'}],
                               metadata=single_field_metadata)
    api_client.force_authenticate(bob)

    response = api_client.get('/api/v1/incoming/')
    assert [r['user_id'] for r in response.json()] == ['alice']


def test_public_request_by_email(api_client, request_id):
    response = api_client.get(f'/api/v1/incoming/{request_id}/', {'email': 'a@x.com'})
    assert response.status_code == 200
    assert response.json()['request_id'] == request_id


def test_sign_with_upload(api_client, client_stub, request_id, png_bytes):
    response = api_client.post(f'/api/v1/sign/{request_id}/', {
        'options': json.dumps({'email': 'a@x.com'}),
        'f1': SimpleUploadedFile('f1.png', png_bytes, content_type='image/png'),
    }, format='multipart', HTTP_USER_AGENT='pytest-agent', REMOTE_ADDR='10.1.2.3')

    assert response.status_code == 200
    assert response.json() == {'request_id': request_id, 'signed': '2023-01-01T00:00:00+00:00'}

    parts = dict(client_stub.calls_to('sign_file')[0][2])
    assert parts['f1'][1] == png_bytes
    assert json.loads(parts['metadata'][1]) == {'client': {'clientip': '10.1.2.3', 'useragent': 'pytest-agent'}}


def test_sign_with_reference(api_client, client_stub, request_id):
    response = api_client.post(f'/api/v1/sign/{request_id}/', {
        'options': json.dumps({'email': 'a@x.com'}),
        'f1': 'image-part',
    }, format='multipart')

    assert response.status_code == 200
    assert dict(client_stub.calls_to('sign_file')[0][2])['f1'] == (None, 'image-part')


def test_sign_twice_conflicts(api_client, request_id, png_bytes):
    def submit():
        return api_client.post(f'/api/v1/sign/{request_id}/', {
            'options': json.dumps({'email': 'a@x.com'}),
            'f1': SimpleUploadedFile('f1.png', png_bytes, content_type='image/png'),
        }, format='multipart')

    assert submit().status_code == 200
    response = submit()
    assert response.status_code == 409
    assert response.json() == {'error': 'already_signed'}


def test_sign_invalid_options(api_client, request_id):
    response = api_client.post(f'/api/v1/sign/{request_id}/', {'options': '{broken'}, format='multipart')
    assert response.status_code == 400
    assert response.json() == {'error': 'invalid_options_format'}


def test_anonymous_sign_without_email(api_client, request_id):
    response = api_client.post(f'/api/v1/sign/{request_id}/', {}, format='multipart')
    assert response.status_code == 400
    assert response.json() == {'error': 'unknown_recipient'}


def test_failed_lookups_are_throttled(api_client, settings, request_id):
    settings.ESIG_FAILED_ATTEMPTS_LIMIT = 2

    for _ in range(2):
        response = api_client.get('/api/v1/incoming/missing/', {'email': 'a@x.com'})
        assert response.status_code == 404

    response = api_client.get(f'/api/v1/incoming/{request_id}/', {'email': 'a@x.com'})
    assert response.status_code == 429

    # Budgets are kept per scope
    response = api_client.get('/api/v1/signature/sig-a/')
    assert response.status_code == 200


def test_successful_lookups_are_not_counted(api_client, settings, request_id):
    settings.ESIG_FAILED_ATTEMPTS_LIMIT = 2
    for _ in range(3):
        response = api_client.get(f'/api/v1/incoming/{request_id}/', {'email': 'a@x.com'})
        assert response.status_code == 200


def test_notify_signed(api_client, account, request_id, signed_events):
    token = get_token_service().get_token(account, 'sig-a', 'notify-signed')
    response = api_client.post(
        '/api/v1/files/abc/signed/sig-a/',
        data=json.dumps({'signed': '2023-02-01T00:00:00Z'}),
        content_type='application/json',
        HTTP_X_VINEGAR_TOKEN=token,
    )

    assert response.status_code == 200
    assert response.json() == {}
    assert len(signed_events) == 1


def test_notify_signed_rejects_bad_token(api_client, request_id, signed_events):
    response = api_client.post(
        '/api/v1/files/abc/signed/sig-a/',
        data='{}',
        content_type='application/json',
        HTTP_X_VINEGAR_TOKEN='invalid',
    )
    assert response.status_code == 403
    assert response.json() == {'error': 'forbidden'}
    assert signed_events == []


def test_file_metadata(owner_client, owner, files, request_id):
    response = owner_client.get('/api/v1/metadata/7/')
    assert response.status_code == 200
    assert response.json()['signature_fields'][0]['id'] == 'f1'

    response = owner_client.get('/api/v1/metadata/404/')
    assert response.status_code == 404
    assert response.json() == {'error': 'unknown_file'}
