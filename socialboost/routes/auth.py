from urllib.parse import quote_plus

from authlib.integrations.starlette_client import OAuth
from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from socialboost.core.config import settings
from socialboost.core.security import create_access_token
from socialboost.db import get_db
from socialboost.deps import get_current_user
from socialboost.models import User
from socialboost.schemas import TokenResponse, UserMeResponse
from socialboost.services.users import upsert_user


router = APIRouter(prefix='/auth', tags=['auth'])
oauth = OAuth()

if settings.google_client_id and settings.google_client_secret:
    oauth.register(
        name='google',
        client_id=settings.google_client_id,
        client_secret=settings.google_client_secret,
        server_metadata_url='https://accounts.google.com/.well-known/openid-configuration',
        client_kwargs={'scope': 'openid email profile'},
    )


def _google_client():
    client = oauth.create_client('google')
    if client is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail='Google sign-in is not configured')
    return client


async def _google_identity(request: Request) -> dict:
    client = _google_client()
    token = await client.authorize_access_token(request)
    # OIDC puts the claims in the ID token; fall back to the userinfo endpoint.
    claims = token.get('userinfo') or await client.userinfo(token=token)
    if not claims or not claims.get('email'):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Google did not share an email address')
    return claims


def _signed_in(user: User):
    access_token = create_access_token(user.id)
    target = settings.auth_frontend_success_url
    if not target:
        return TokenResponse(access_token=access_token)
    joiner = '&' if '?' in target else '?'
    return RedirectResponse(
        url=f'{target}{joiner}access_token={quote_plus(access_token)}', status_code=status.HTTP_302_FOUND
    )


@router.get('/google/login')
async def google_login(request: Request):
    return await _google_client().authorize_redirect(request, request.url_for('google_callback'))


@router.get('/google/callback')
async def google_callback(request: Request, db: Session = Depends(get_db)):
    claims = await _google_identity(request)
    user = upsert_user(
        db,
        email=claims['email'],
        first_name=claims.get('given_name'),
        last_name=claims.get('family_name'),
        profile_image_url=claims.get('picture'),
    )
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail='Account suspended')
    return _signed_in(user)


@router.get('/me', response_model=UserMeResponse)
def me(user: User = Depends(get_current_user)):
    return user
