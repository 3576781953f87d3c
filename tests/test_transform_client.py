from types import SimpleNamespace

import pytest
import requests
from PIL import Image

from helpers import FakeResponse, FakeSession, edit_ok, image_ok, make_image
from photobooth.errors import (
    APIError,
    ConfigurationError,
    ImageDecodeError,
    MalformedResponse,
    NetworkFailure,
    RetriesExhausted,
)
from photobooth.transform import client as client_module
from photobooth.transform.client import (
    TransformClient,
    TransformResult,
    build_multipart,
    parse_image_url,
)

PHOTO = make_image(300, 200)


def make_client(session, api_key='sk-test', **kwargs):
    sleeps = []
    client = TransformClient(api_key, session=session, sleep=sleeps.append, **kwargs)
    return client, sleeps


def test_successful_edit_returns_downloaded_bytes():
    download = image_ok()
    session = FakeSession(posts=[edit_ok('https://cdn.example/a.png')], gets=[download])
    client, sleeps = make_client(session)

    result = client.transform(PHOTO, 'Transform this photo into Ghibli style')

    assert result.ok
    assert result.image == download.content
    assert result.attempts == 1
    assert sleeps == []

    post = session.post_calls[0]
    assert post['url'] == 'https://api.openai.com:443/v1/images/edits'
    assert post['headers'] == {'Authorization': 'Bearer sk-test'}
    assert [name for name, _ in post['files']] == ['model', 'prompt', 'size', 'image']
    filename, png, content_type = post['files'][3][1]
    assert (filename, content_type) == ('image.png', 'image/png')
    assert png.startswith(b'\x89PNG')
    assert post['timeout'] == 120
    assert session.get_calls[0]['url'] == 'https://cdn.example/a.png'


def test_multipart_body_keeps_part_order():
    files = build_multipart('gpt-image-1', 'Ghibli ✨', '1536x1024', b'\x89PNGdata')
    prepared = requests.Request('POST', 'https://example.test/v1/images/edits', files=files).prepare()
    body = prepared.body

    assert prepared.headers['Content-Type'].startswith('multipart/form-data; boundary=')
    positions = [body.index(f'name="{name}"'.encode()) for name in ('model', 'prompt', 'size', 'image')]
    assert positions == sorted(positions)
    assert b'filename="image.png"' in body
    assert b'Content-Type: image/png' in body
    assert 'Ghibli ✨'.encode('utf-8') in body
    assert b'1536x1024' in body


def test_endpoint_uses_configured_host():
    client, _ = make_client(FakeSession(), host='localhost', port=8080, scheme='http')
    assert client.endpoint == 'http://localhost:8080/v1/images/edits'


def test_retries_with_growing_pause_then_succeeds():
    session = FakeSession(
        posts=[requests.ConnectionError('reset'), FakeResponse(502, text='bad gateway'), edit_ok()],
        gets=[image_ok()],
    )
    client, sleeps = make_client(session)

    result = client.transform(PHOTO, 'prompt')

    assert result.ok
    assert result.attempts == 3
    assert sleeps == [2.0, 4.0]
    assert len(session.post_calls) == 3


def test_gives_up_after_three_attempts_with_last_error():
    session = FakeSession(posts=[
        FakeResponse(500, text='one'),
        requests.Timeout('slow'),
        FakeResponse(429, text='rate limited'),
    ])
    client, sleeps = make_client(session)

    result = client.transform(PHOTO, 'prompt')

    assert not result.ok
    assert isinstance(result.error, RetriesExhausted)
    assert result.error.attempts == 3
    assert isinstance(result.error.last_error, APIError)
    assert result.error.last_error.status_code == 429
    assert result.error.last_error.body == 'rate limited'
    assert len(session.post_calls) == 3
    assert sleeps == [2.0, 4.0]


def test_network_failure_is_wrapped():
    session = FakeSession(posts=[requests.ConnectionError('down')])
    client, _ = make_client(session, max_attempts=1)

    result = client.transform(PHOTO, 'prompt')
    assert isinstance(result.error.last_error, NetworkFailure)


def test_missing_data_is_malformed_and_retried():
    session = FakeSession(posts=[FakeResponse(200, {'created': 1})] * 3)
    client, sleeps = make_client(session)

    result = client.transform(PHOTO, 'prompt')

    assert isinstance(result.error.last_error, MalformedResponse)
    assert len(session.post_calls) == 3
    assert sleeps == [2.0, 4.0]


def test_non_json_body_is_malformed():
    session = FakeSession(posts=[FakeResponse(200, text='<html>oops</html>')])
    client, _ = make_client(session, max_attempts=1)

    result = client.transform(PHOTO, 'prompt')
    assert isinstance(result.error.last_error, MalformedResponse)


def test_undecodable_download_is_decode_error():
    session = FakeSession(posts=[edit_ok()], gets=[FakeResponse(200, content=b'definitely not a png')])
    client, _ = make_client(session, max_attempts=1)

    result = client.transform(PHOTO, 'prompt')
    assert isinstance(result.error.last_error, ImageDecodeError)


def test_failed_download_status_is_api_error():
    session = FakeSession(posts=[edit_ok()], gets=[FakeResponse(404, text='expired')])
    client, _ = make_client(session, max_attempts=1)

    result = client.transform(PHOTO, 'prompt')
    assert result.error.last_error.status_code == 404


def test_missing_key_fails_without_network_or_retry():
    session = FakeSession()
    client, sleeps = make_client(session, api_key=None)

    result = client.transform(PHOTO, 'prompt')

    assert isinstance(result.error, ConfigurationError)
    assert session.post_calls == []
    assert sleeps == []


def test_missing_host_is_not_configured():
    client, _ = make_client(FakeSession(), host='')
    assert not client.is_configured


def test_from_config_reads_settings():
    config = SimpleNamespace(
        api_key='k', api_host='edits.local', api_port=9000, api_scheme='http',
        model='m', image_size='1024x1024', max_attempts=2, request_timeout=5.0,
    )
    client = TransformClient.from_config(config, session=FakeSession())

    assert client.endpoint == 'http://edits.local:9000/v1/images/edits'
    assert (client.model, client.size, client.max_attempts, client.timeout) == ('m', '1024x1024', 2, 5.0)


def test_close_stops_backoff_early():
    session = FakeSession(posts=[FakeResponse(500, text='x')] * 3)
    client = TransformClient('k', session=session)
    client.close()

    result = client.transform(PHOTO, 'prompt')

    assert session.closed
    assert result.attempts == 1
    assert isinstance(result.error, RetriesExhausted)


@pytest.mark.parametrize('payload', [
    [],
    {'data': []},
    {'data': 'x'},
    {'data': ['x']},
    {'data': [{}]},
    {'data': [{'url': ''}]},
    {'data': [{'url': 3}]},
])
def test_parse_image_url_rejects(payload):
    with pytest.raises(MalformedResponse):
        parse_image_url(payload)


def test_parse_image_url_takes_first():
    assert parse_image_url({'data': [{'url': 'a'}, {'url': 'b'}]}) == 'a'


def test_result_requires_exactly_one_outcome():
    with pytest.raises(ValueError):
        TransformResult()
    with pytest.raises(ValueError):
        TransformResult(image=b'x', error=NetworkFailure('x'))


@pytest.mark.parametrize('attempts', [0, -1])
def test_attempt_count_must_be_positive(attempts):
    with pytest.raises(ValueError):
        TransformClient('k', session=FakeSession(), max_attempts=attempts)


def test_zero_attempts_after_construction_still_returns_result():
    session = FakeSession()
    client, _ = make_client(session)
    client.max_attempts = 0

    result = client.transform(PHOTO, 'prompt')

    assert isinstance(result.error, ConfigurationError)
    assert session.post_calls == []


def test_decompression_bomb_is_decode_error(monkeypatch):
    monkeypatch.setattr(Image, 'MAX_IMAGE_PIXELS', 100)
    session = FakeSession()
    client, _ = make_client(session, max_attempts=1)

    result = client.transform(PHOTO, 'prompt')

    assert isinstance(result.error.last_error, ImageDecodeError)
    assert session.post_calls == []


def test_oversized_upload_is_rejected(monkeypatch):
    monkeypatch.setattr(client_module, 'MAX_UPLOAD_BYTES', 10)
    session = FakeSession()
    client, _ = make_client(session, max_attempts=1)

    result = client.transform(PHOTO, 'prompt')

    assert 'too large' in str(result.error.last_error)
    assert session.post_calls == []
