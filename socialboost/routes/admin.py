from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from socialboost.core.errors import UserNotFoundError
from socialboost.db import get_db
from socialboost.deps import require_admin
from socialboost.models import User
from socialboost.schemas import AdminUserResponse
from socialboost.services.usage import reset


router = APIRouter(prefix='/admin', tags=['admin'])


@router.get('/users', response_model=list[AdminUserResponse])
def list_users(db: Session = Depends(get_db), _admin=Depends(require_admin)):
    return db.query(User).order_by(User.id).all()


@router.post('/users/{user_id}/suspend')
def suspend_user(user_id: int, db: Session = Depends(get_db), _admin=Depends(require_admin)):
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise UserNotFoundError(user_id)
    user.is_active = False
    db.commit()
    return {'status': 'suspended', 'user_id': user_id}


@router.post('/users/{user_id}/usage/reset')
def reset_usage(user_id: int, db: Session = Depends(get_db), _admin=Depends(require_admin)):
    reset(db, user_id)
    return {'user_id': user_id, 'monthly_posts_used': 0}
