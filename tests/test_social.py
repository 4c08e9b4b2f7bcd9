from urllib.parse import parse_qs, urlparse

import pytest
import requests

from socialboost.core.errors import SocialPlatformError
from socialboost.services import social
from socialboost.services.social import InstagramGraphPublisher, SocialAccount


ACCOUNT = SocialAccount(username='shop', access_token='tok', platform_user_id='1789')


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=''):
        self.status_code = status_code
        self._payload = payload or {}
        self.text = text

    def json(self):
        return self._payload


def test_mock_connect(publisher):
    account = publisher.connect(123456, 'code')
    assert account.username == 'businessaccount3456'
    assert account.access_token.startswith('mock_access_token_')
    assert account.platform_user_id == 'mock_ig_user_123456'


def test_mock_publish_engagement_ranges(publisher):
    for _ in range(50):
        result = publisher.publish(ACCOUNT, 'hello', None)
        assert result.platform_post_id.startswith('ig_post_')
        assert 10 <= result.likes <= 109
        assert 1 <= result.comments <= 20


def test_mock_authorize_url(publisher):
    url = publisher.authorize_url('http://testserver/social/connect')
    query = parse_qs(urlparse(url).query)
    assert url.startswith('https://api.instagram.com/oauth/authorize?')
    assert query['redirect_uri'] == ['http://testserver/social/connect']
    assert query['response_type'] == ['code']


def test_instagram_connect_exchanges_code(monkeypatch):
    calls = []

    def fake_request(method, url, timeout=None, **kwargs):
        calls.append((method, url))
        if url.endswith('/access_token'):
            assert kwargs['data']['code'] == 'abc'
            return FakeResponse(payload={'access_token': 'long-token'})
        return FakeResponse(payload={'id': 42, 'username': 'bakery'})

    monkeypatch.setattr(social.requests, 'request', fake_request)
    publisher = InstagramGraphPublisher('cid', 'secret', 'https://app.example.com/cb', timeout=5)

    account = publisher.connect(1, 'abc')

    assert account == SocialAccount(username='bakery', access_token='long-token', platform_user_id='42')
    assert calls[0] == ('POST', social.INSTAGRAM_TOKEN_URL)
    assert calls[1] == ('GET', f'{social.GRAPH_BASE_URL}/me')


def test_instagram_publish_creates_and_publishes_container(monkeypatch):
    urls = []

    def fake_request(method, url, timeout=None, **kwargs):
        urls.append(url)
        if url.endswith('/media'):
            assert kwargs['data']['caption'] == 'Fresh bread'
            return FakeResponse(payload={'id': 'container-1'})
        assert kwargs['data']['creation_id'] == 'container-1'
        return FakeResponse(payload={'id': 'media-9'})

    monkeypatch.setattr(social.requests, 'request', fake_request)
    publisher = InstagramGraphPublisher('cid', 'secret', 'https://app.example.com/cb')

    result = publisher.publish(ACCOUNT, 'Fresh bread', 'https://img.example.com/bread.jpg')

    assert result.platform_post_id == 'media-9'
    assert urls == [f'{social.GRAPH_BASE_URL}/1789/media', f'{social.GRAPH_BASE_URL}/1789/media_publish']


def test_instagram_publish_requires_image():
    publisher = InstagramGraphPublisher('cid', 'secret', 'https://app.example.com/cb')
    with pytest.raises(SocialPlatformError):
        publisher.publish(ACCOUNT, 'text only', None)


def test_instagram_error_status(monkeypatch):
    monkeypatch.setattr(
        social.requests, 'request', lambda *a, **kw: FakeResponse(status_code=400, text='{"error": "bad token"}')
    )
    publisher = InstagramGraphPublisher('cid', 'secret', 'https://app.example.com/cb')
    with pytest.raises(SocialPlatformError, match='400'):
        publisher.publish(ACCOUNT, 'caption', 'https://img.example.com/x.jpg')


def test_instagram_network_failure(monkeypatch):
    def boom(*args, **kwargs):
        raise requests.ConnectionError('connection refused')

    monkeypatch.setattr(social.requests, 'request', boom)
    publisher = InstagramGraphPublisher('cid', 'secret', 'https://app.example.com/cb')
    with pytest.raises(SocialPlatformError) as excinfo:
        publisher.connect(1, 'abc')
    assert excinfo.value.status_code == 502


def test_instagram_non_json_body(monkeypatch):
    class HtmlResponse(FakeResponse):
        def json(self):
            raise ValueError('Expecting value')

    monkeypatch.setattr(social.requests, 'request', lambda *a, **kw: HtmlResponse(text='<html>oops</html>'))
    publisher = InstagramGraphPublisher('cid', 'secret', 'https://app.example.com/cb')
    with pytest.raises(SocialPlatformError, match='non-JSON'):
        publisher.publish(ACCOUNT, 'caption', 'https://img.example.com/x.jpg')


def test_instagram_response_without_id(monkeypatch):
    monkeypatch.setattr(social.requests, 'request', lambda *a, **kw: FakeResponse(payload={'status': 'ok'}))
    publisher = InstagramGraphPublisher('cid', 'secret', 'https://app.example.com/cb')
    with pytest.raises(SocialPlatformError, match="missing 'id'"):
        publisher.publish(ACCOUNT, 'caption', 'https://img.example.com/x.jpg')


def test_instagram_token_response_without_access_token(monkeypatch):
    monkeypatch.setattr(social.requests, 'request', lambda *a, **kw: FakeResponse(payload={'error_type': 'x'}))
    publisher = InstagramGraphPublisher('cid', 'secret', 'https://app.example.com/cb')
    with pytest.raises(SocialPlatformError, match='access_token'):
        publisher.connect(1, 'abc')
