import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from socialboost.models import User


logger = logging.getLogger(__name__)


def upsert_user(
    db: Session,
    email: str,
    first_name: Optional[str] = None,
    last_name: Optional[str] = None,
    profile_image_url: Optional[str] = None,
) -> User:
    """Create the user on first sign-in, otherwise merge in fresh profile fields.

    Billing and usage fields are never touched here.
    """
    profile = {'first_name': first_name, 'last_name': last_name, 'profile_image_url': profile_image_url}
    user = db.query(User).filter(User.email == email).first()
    if user is None:
        user = User(email=email, **profile)
        db.add(user)
        try:
            db.commit()
        except IntegrityError:
            # Concurrent first sign-in for the same email won the insert.
            db.rollback()
            user = db.query(User).filter(User.email == email).one()
        else:
            logger.info('Created user id=%s email=%s', user.id, email)
            db.refresh(user)
            return user

    for key, value in profile.items():
        if value is not None:
            setattr(user, key, value)
    db.commit()
    db.refresh(user)
    return user
