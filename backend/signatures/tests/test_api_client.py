import json
from unittest import mock
from urllib.parse import parse_qs, urlparse

import pytest
import requests

from signatures.config import Account
from signatures.exceptions import InvalidResponse, UpstreamConnectionError, UpstreamError
from signatures.files import HostFile
from signatures.services.api_client import SigningApiClient
from signatures.services.token_service import TokenService


ACCOUNT = Account(id='account-1', secret='account-secret')
SERVER = 'https://api.example.test/'


def make_response(status_code=200, payload=None, content=b''):
    response = mock.Mock()
    response.status_code = status_code
    response.text = json.dumps(payload) if payload is not None else ''
    response.content = content
    if payload is None:
        response.json.side_effect = ValueError('no json')
    else:
        response.json.return_value = payload
    return response


@pytest.fixture
def tokens():
    return TokenService(lifetime=60)


@pytest.fixture
def session():
    return mock.Mock(spec=requests.Session)


@pytest.fixture
def api(tokens, session):
    return SigningApiClient(tokens=tokens, session=session, timeout=5)


@pytest.fixture
def host_file():
    return HostFile(id='7', name='Contract.pdf', mime_type='APPLICATION/PDF', opener=lambda: b'%PDF-1.4')


def test_share_file(api, session, tokens, host_file):
    session.request.return_value = make_response(payload={'file_id': 'ext-1', 'signature_id': 'res-1'})

    data = api.share_file(host_file, [{'type': 'email', 'value': 'a@x.com'}], {'signature_fields': []}, ACCOUNT, SERVER)

    assert data == {'file_id': 'ext-1', 'signature_id': 'res-1'}
    method, url = session.request.call_args.args
    kwargs = session.request.call_args.kwargs
    assert method == 'POST'
    assert url == 'https://api.example.test/api/v1/files/account-1'
    assert kwargs['timeout'] == 5
    assert kwargs['headers']['X-Vinegar-API'] == 'true'
    assert tokens.validate_token(kwargs['headers']['X-Vinegar-Token'], ACCOUNT, 'Contract.pdf')

    parts = dict(kwargs['files'])
    assert parts['file'] == ('Contract.pdf', b'%PDF-1.4', 'application/pdf')
    assert json.loads(parts['recipients'][1]) == [{'type': 'email', 'value': 'a@x.com'}]
    assert json.loads(parts['metadata'][1]) == {'signature_fields': []}


def test_sign_file_uses_file_scoped_token(api, session, tokens):
    session.request.return_value = make_response(payload={'status': 'success'})
    parts = [('options', (None, '{}', 'application/json'))]

    assert api.sign_file('ext-1', parts, ACCOUNT, SERVER) == {'status': 'success'}

    method, url = session.request.call_args.args
    headers = session.request.call_args.kwargs['headers']
    assert (method, url) == ('POST', 'https://api.example.test/api/v1/files/account-1/sign/ext-1')
    assert tokens.validate_token(headers['X-Vinegar-Token'], ACCOUNT, 'ext-1')
    assert not tokens.validate_token(headers['X-Vinegar-Token'], ACCOUNT, 'ext-2')
    assert session.request.call_args.kwargs['files'] == parts


def test_delete_file(api, session):
    session.request.return_value = make_response(payload={'status': 'success'})
    assert api.delete_file('ext-1', ACCOUNT, SERVER) == {'status': 'success'}
    method, url = session.request.call_args.args
    assert (method, url) == ('DELETE', 'https://api.example.test/api/v1/files/account-1/ext-1')


def test_download_signed_file(api, session):
    session.request.return_value = make_response(content=b'%PDF-signed')
    assert api.download_signed_file('ext-1', ACCOUNT, SERVER) == b'%PDF-signed'


@pytest.mark.parametrize('error', [
    requests.exceptions.ConnectionError('refused'),
    requests.exceptions.ConnectTimeout('slow'),
    requests.exceptions.ReadTimeout('slow'),
])
def test_connection_failures(api, session, error):
    session.request.side_effect = error
    with pytest.raises(UpstreamConnectionError) as excinfo:
        api.delete_file('ext-1', ACCOUNT, SERVER)
    assert excinfo.value.error_code == 'error_connecting'


def test_http_error_status_carries_code(api, session):
    session.request.return_value = make_response(status_code=409, payload={'error': 'already_signed'})
    with pytest.raises(UpstreamError) as excinfo:
        api.sign_file('ext-1', [], ACCOUNT, SERVER)
    assert excinfo.value.error_code == 409


@pytest.mark.parametrize('response', [
    make_response(payload=None),
    make_response(payload=['not', 'an', 'object']),
])
def test_invalid_response(api, session, response):
    session.request.return_value = response
    with pytest.raises(InvalidResponse):
        api.delete_file('ext-1', ACCOUNT, SERVER)


def test_url_builders_embed_fresh_tokens(api, tokens):
    urls = {
        'original': api.get_original_url('ext-1', ACCOUNT, SERVER),
        'source': api.get_source_url('ext-1', ACCOUNT, SERVER),
        'signed': api.get_signed_url('ext-1', ACCOUNT, SERVER),
    }
    assert urls['original'].startswith('https://api.example.test/api/v1/files/account-1/ext-1?token=')
    assert urls['source'].startswith('https://api.example.test/api/v1/files/account-1/ext-1/source?token=')
    assert urls['signed'].startswith('https://api.example.test/api/v1/files/account-1/sign/ext-1?token=')
    for url in urls.values():
        token = parse_qs(urlparse(url).query)['token'][0]
        assert tokens.validate_token(token, ACCOUNT, 'ext-1')


def test_details_url(api, settings):
    settings.ESIG_SERVER = 'https://www.example.test'
    assert api.get_details_url('res 1') == 'https://www.example.test/details/res%201'


def test_details_url_uses_recorded_server(api, settings):
    settings.ESIG_SERVER = 'https://new.example.test/'
    assert api.get_details_url('res-1', 'https://old.example.test') == 'https://old.example.test/details/res-1'
