from datetime import datetime, timezone as dt_timezone

import pytest

from signatures.exceptions import Forbidden, NotFound, ValidationFailed
from signatures.models import Recipient, SigningRequest
from signatures.services.token_service import get_token_service

pytestmark = pytest.mark.django_db


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


@pytest.fixture
def token(account):
    return get_token_service().get_token(account, 'sig-a', 'notify-signed')


def test_notification_records_signature(coordinator, result_saver, signed_events, request_id, token):
    body = b'{"signed": "2023-03-04T05:06:07Z", "signature_id": "res-1"}'

    assert coordinator.process_signed_notification('abc', 'sig-a', token, body) is True

    recipient = Recipient.objects.get(request_id=request_id)
    assert recipient.signed == datetime(2023, 3, 4, 5, 6, 7, tzinfo=dt_timezone.utc)
    request = SigningRequest.objects.get(pk=request_id)
    assert request.external_signature_result_id == 'res-1'

    assert len(signed_events) == 1
    assert signed_events[0]['is_last'] is True
    assert signed_events[0]['user'] is None
    assert len(result_saver.calls) == 1


def test_repeated_notification_is_noop(coordinator, result_saver, signed_events, request_id, token):
    assert coordinator.process_signed_notification('abc', 'sig-a', token, b'{}') is True
    assert coordinator.process_signed_notification('abc', 'sig-a', token, b'{"signature_id": "res-2"}') is False

    assert len(signed_events) == 1
    assert len(result_saver.calls) == 1
    assert SigningRequest.objects.get(pk=request_id).external_signature_result_id is None


def test_missing_signed_defaults_to_now(coordinator, request_id, token):
    coordinator.process_signed_notification('abc', 'sig-a', token, '')
    assert Recipient.objects.get(request_id=request_id).signed is not None


@pytest.mark.parametrize('bad_token', ['', 'garbage'])
def test_invalid_token(coordinator, signed_events, request_id, bad_token):
    with pytest.raises(Forbidden) as excinfo:
        coordinator.process_signed_notification('abc', 'sig-a', bad_token, b'{}')
    assert excinfo.value.throttle
    assert signed_events == []


def test_token_for_other_signature(coordinator, account, request_id):
    token = get_token_service().get_token(account, 'sig-b', 'notify-signed')
    with pytest.raises(Forbidden):
        coordinator.process_signed_notification('abc', 'sig-a', token, b'{}')


def test_unknown_file(coordinator, request_id, token):
    with pytest.raises(NotFound) as excinfo:
        coordinator.process_signed_notification('other', 'sig-a', token, b'{}')
    assert excinfo.value.throttle


def test_unknown_signature_id(coordinator, account, request_id):
    token = get_token_service().get_token(account, 'sig-x', 'notify-signed')
    with pytest.raises(NotFound) as excinfo:
        coordinator.process_signed_notification('abc', 'sig-x', token, b'{}')
    assert not excinfo.value.throttle


@pytest.mark.parametrize('body', [b'{not json', b'[1, 2]', b'"signed"'])
def test_invalid_details(coordinator, request_id, token, body):
    with pytest.raises(ValidationFailed) as excinfo:
        coordinator.process_signed_notification('abc', 'sig-a', token, body)
    assert excinfo.value.error_code == 'invalid_details'
    assert Recipient.objects.get(request_id=request_id).signed is None
