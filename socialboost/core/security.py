from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt

from socialboost.core.config import settings


ACCESS_TOKEN_TYPE = 'access'


def create_access_token(user_id: int, expires_minutes: Optional[int] = None) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        'sub': str(user_id),
        'iat': now,
        'exp': now + timedelta(minutes=expires_minutes or settings.jwt_expire_minutes),
        'typ': ACCESS_TOKEN_TYPE,
    }
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> Optional[int]:
    """Return the user id carried by a valid access token, else None."""
    try:
        claims = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None
    if claims.get('typ') != ACCESS_TOKEN_TYPE:
        return None
    try:
        return int(claims['sub'])
    except (KeyError, TypeError, ValueError):
        return None
