from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from socialboost.db import get_db
from socialboost.deps import get_current_user, social_publisher
from socialboost.models import User
from socialboost.schemas import BusinessProfileRequest, BusinessProfileResponse, SocialConnectRequest
from socialboost.services.profiles import get_profile, save_profile, store_social_connection
from socialboost.services.social import SocialPublisher


router = APIRouter(tags=['profile'])


@router.get('/business-profile', response_model=BusinessProfileResponse | None)
def read_profile(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return get_profile(db, user.id)


@router.post('/business-profile', response_model=BusinessProfileResponse)
def write_profile(payload: BusinessProfileRequest, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return save_profile(db, user.id, payload.model_dump(exclude_unset=True))


@router.get('/social/auth-url')
def social_auth_url(
    request: Request,
    _user: User = Depends(get_current_user),
    publisher: SocialPublisher = Depends(social_publisher),
):
    return {'auth_url': publisher.authorize_url(str(request.url_for('social_connect')))}


@router.post('/social/connect', response_model=BusinessProfileResponse)
def social_connect(
    payload: SocialConnectRequest,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    publisher: SocialPublisher = Depends(social_publisher),
):
    account = publisher.connect(user.id, payload.code)
    return store_social_connection(db, user.id, account)
