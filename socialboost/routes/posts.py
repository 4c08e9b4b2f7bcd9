from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from socialboost.db import get_db
from socialboost.deps import get_current_user, social_publisher
from socialboost.models import User
from socialboost.schemas import PostCreateRequest, PostResponse, PostUpdateRequest
from socialboost.services import posts as post_service
from socialboost.services.social import SocialPublisher


router = APIRouter(prefix='/posts', tags=['posts'])


def _post_fields(payload, **dump_kwargs) -> dict:
    fields = payload.model_dump(**dump_kwargs)
    if fields.get('status') is not None:
        fields['status'] = fields['status'].value
    return fields


@router.get('', response_model=list[PostResponse])
def list_posts(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return post_service.list_posts(db, user.id)


@router.get('/recent', response_model=list[PostResponse])
def recent_posts(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return post_service.recent_published(db, user.id, limit=6)


@router.get('/scheduled', response_model=list[PostResponse])
def scheduled_posts(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return post_service.scheduled_posts(db, user.id)


@router.post('', response_model=PostResponse)
def create_post(payload: PostCreateRequest, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return post_service.create_post(db, user.id, _post_fields(payload))


@router.put('/{post_id}', response_model=PostResponse)
def update_post(
    post_id: int,
    payload: PostUpdateRequest,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return post_service.update_post(db, user.id, post_id, _post_fields(payload, exclude_unset=True))


@router.delete('/{post_id}')
def delete_post(post_id: int, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    post_service.delete_post(db, user.id, post_id)
    return {'success': True}


@router.post('/{post_id}/publish', response_model=PostResponse)
def publish_post(
    post_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    publisher: SocialPublisher = Depends(social_publisher),
):
    return post_service.publish_post(db, publisher, user.id, post_id)
