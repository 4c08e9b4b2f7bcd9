from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from socialboost.db import get_db
from socialboost.deps import get_current_user
from socialboost.models import User
from socialboost.schemas import StatsResponse
from socialboost.services.analytics import user_stats


router = APIRouter(prefix='/analytics', tags=['analytics'])


@router.get('/stats', response_model=StatsResponse)
def stats(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return user_stats(db, user.id)
