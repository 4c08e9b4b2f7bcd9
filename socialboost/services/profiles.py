from typing import Any

from sqlalchemy.orm import Session

from socialboost.models import BusinessProfile
from socialboost.services.social import SocialAccount


def get_profile(db: Session, user_id: int) -> BusinessProfile | None:
    return db.query(BusinessProfile).filter(BusinessProfile.user_id == user_id).first()


def save_profile(db: Session, user_id: int, fields: dict[str, Any]) -> BusinessProfile:
    profile = get_profile(db, user_id)
    if profile is None:
        profile = BusinessProfile(user_id=user_id, **fields)
        db.add(profile)
    else:
        for key, value in fields.items():
            setattr(profile, key, value)
    db.commit()
    db.refresh(profile)
    return profile


def store_social_connection(db: Session, user_id: int, account: SocialAccount) -> BusinessProfile:
    profile = get_profile(db, user_id)
    if profile is None:
        profile = BusinessProfile(user_id=user_id)
        db.add(profile)
    profile.social_username = account.username
    profile.social_access_token = account.access_token
    profile.social_user_id = account.platform_user_id
    profile.social_connected = True
    db.commit()
    db.refresh(profile)
    return profile
