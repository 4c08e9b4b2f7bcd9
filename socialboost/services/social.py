import logging
import random
import time
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Optional, Protocol
from urllib.parse import urlencode

import requests

from socialboost.core.config import settings
from socialboost.core.errors import SocialPlatformError


logger = logging.getLogger(__name__)

INSTAGRAM_AUTHORIZE_URL = 'https://api.instagram.com/oauth/authorize'
INSTAGRAM_TOKEN_URL = 'https://api.instagram.com/oauth/access_token'
GRAPH_BASE_URL = 'https://graph.instagram.com'


@dataclass(frozen=True)
class SocialAccount:
    username: str
    access_token: str
    platform_user_id: str


@dataclass(frozen=True)
class PublishResult:
    platform_post_id: str
    likes: int = 0
    comments: int = 0


class SocialPublisher(Protocol):
    def authorize_url(self, redirect_uri: str) -> str:
        ...

    def connect(self, user_id: int, code: str) -> SocialAccount:
        ...

    def publish(self, account: SocialAccount, caption: str, image_url: Optional[str]) -> PublishResult:
        ...


class MockSocialPublisher:
    """Stands in for the platform: always succeeds with synthetic ids and engagement."""

    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng or random.Random()

    def authorize_url(self, redirect_uri: str) -> str:
        query = urlencode(
            {
                'client_id': 'mock',
                'redirect_uri': redirect_uri,
                'scope': 'user_profile,user_media',
                'response_type': 'code',
            }
        )
        return f'{INSTAGRAM_AUTHORIZE_URL}?{query}'

    def connect(self, user_id: int, code: str) -> SocialAccount:
        suffix = str(user_id)[-4:]
        return SocialAccount(
            username=f'businessaccount{suffix}',
            access_token=f'mock_access_token_{int(time.time() * 1000)}',
            platform_user_id=f'mock_ig_user_{user_id}',
        )

    def publish(self, account: SocialAccount, caption: str, image_url: Optional[str]) -> PublishResult:
        return PublishResult(
            platform_post_id=f'ig_post_{int(time.time() * 1000)}',
            likes=self.rng.randint(10, 109),
            comments=self.rng.randint(1, 20),
        )


class InstagramGraphPublisher:
    def __init__(self, client_id: str, client_secret: str, redirect_uri: str, timeout: int = 20):
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.timeout = timeout

    def _request(self, method: str, url: str, **kwargs: Any) -> dict:
        try:
            resp = requests.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as exc:
            raise SocialPlatformError(f'Instagram unreachable: {exc}') from exc
        if resp.status_code not in (200, 201):
            raise SocialPlatformError(f'Instagram error {resp.status_code}: {resp.text[:300]}')
        try:
            return resp.json()
        except ValueError as exc:
            raise SocialPlatformError(f'Instagram returned a non-JSON body: {resp.text[:300]}') from exc

    @staticmethod
    def _field(payload: dict, key: str) -> Any:
        try:
            return payload[key]
        except (KeyError, TypeError):
            raise SocialPlatformError(f'Instagram response is missing {key!r}') from None

    def authorize_url(self, redirect_uri: str) -> str:
        query = urlencode(
            {
                'client_id': self.client_id,
                'redirect_uri': self.redirect_uri or redirect_uri,
                'scope': 'user_profile,user_media',
                'response_type': 'code',
            }
        )
        return f'{INSTAGRAM_AUTHORIZE_URL}?{query}'

    def connect(self, user_id: int, code: str) -> SocialAccount:
        token = self._request(
            'POST',
            INSTAGRAM_TOKEN_URL,
            data={
                'client_id': self.client_id,
                'client_secret': self.client_secret,
                'grant_type': 'authorization_code',
                'redirect_uri': self.redirect_uri,
                'code': code,
            },
        )
        access_token = self._field(token, 'access_token')
        me = self._request('GET', f'{GRAPH_BASE_URL}/me', params={'fields': 'id,username', 'access_token': access_token})
        return SocialAccount(
            username=self._field(me, 'username'), access_token=access_token, platform_user_id=str(self._field(me, 'id'))
        )

    def publish(self, account: SocialAccount, caption: str, image_url: Optional[str]) -> PublishResult:
        if not image_url:
            raise SocialPlatformError('Instagram posts require an image')
        container = self._request(
            'POST',
            f'{GRAPH_BASE_URL}/{account.platform_user_id}/media',
            data={'image_url': image_url, 'caption': caption, 'access_token': account.access_token},
        )
        published = self._request(
            'POST',
            f'{GRAPH_BASE_URL}/{account.platform_user_id}/media_publish',
            data={'creation_id': self._field(container, 'id'), 'access_token': account.access_token},
        )
        return PublishResult(platform_post_id=str(self._field(published, 'id')))


@lru_cache
def get_social_publisher() -> SocialPublisher:
    if settings.social_publisher == 'instagram':
        return InstagramGraphPublisher(
            settings.instagram_client_id,
            settings.instagram_client_secret,
            settings.instagram_redirect_uri,
            timeout=settings.social_timeout_seconds,
        )
    logger.info('Using mock social publisher')
    return MockSocialPublisher()
