import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.orm import Session

from socialboost.core.errors import InvalidPostError, NotFoundError, QuotaExceededError, SocialPlatformError
from socialboost.models import Post, PostStatus
from socialboost.services.profiles import get_profile
from socialboost.services.social import SocialAccount, SocialPublisher
from socialboost.services.usage import record_post_if_allowed


logger = logging.getLogger(__name__)


def create_post(db: Session, user_id: int, fields: dict[str, Any]) -> Post:
    # Quota check, usage bump and insert share one transaction; nothing else runs in between.
    decision = record_post_if_allowed(db, user_id)
    if not decision.allowed:
        db.rollback()
        raise QuotaExceededError(decision.reason, tier=decision.tier, used=decision.used, allowance=decision.allowance)

    post = Post(user_id=user_id, **fields)
    db.add(post)
    db.commit()
    db.refresh(post)
    return post


def get_owned_post(db: Session, user_id: int, post_id: int) -> Post:
    post = db.query(Post).filter(Post.id == post_id, Post.user_id == user_id).first()
    if not post:
        raise NotFoundError('Post not found')
    return post


def list_posts(db: Session, user_id: int, limit: int = 50) -> list[Post]:
    return (
        db.query(Post)
        .filter(Post.user_id == user_id)
        .order_by(Post.created_at.desc())
        .limit(limit)
        .all()
    )


def recent_published(db: Session, user_id: int, limit: int = 10) -> list[Post]:
    return (
        db.query(Post)
        .filter(Post.user_id == user_id, Post.status == PostStatus.PUBLISHED.value)
        .order_by(Post.published_at.desc())
        .limit(limit)
        .all()
    )


def scheduled_posts(db: Session, user_id: int) -> list[Post]:
    return (
        db.query(Post)
        .filter(Post.user_id == user_id, Post.status == PostStatus.SCHEDULED.value)
        .order_by(Post.scheduled_for.asc())
        .all()
    )


def update_post(db: Session, user_id: int, post_id: int, updates: dict[str, Any]) -> Post:
    post = get_owned_post(db, user_id, post_id)
    status = updates.get('status', post.status)
    scheduled_for = updates['scheduled_for'] if 'scheduled_for' in updates else post.scheduled_for
    if status == PostStatus.SCHEDULED.value and scheduled_for is None:
        raise InvalidPostError('Scheduled posts need scheduled_for')
    for key, value in updates.items():
        setattr(post, key, value)
    db.commit()
    db.refresh(post)
    return post


def delete_post(db: Session, user_id: int, post_id: int) -> None:
    # Usage is not refunded; the allowance counts posts created this cycle.
    post = get_owned_post(db, user_id, post_id)
    db.delete(post)
    db.commit()


def publish_post(db: Session, publisher: SocialPublisher, user_id: int, post_id: int) -> Post:
    post = get_owned_post(db, user_id, post_id)
    profile = get_profile(db, user_id)
    if not profile or not profile.social_connected:
        raise SocialPlatformError('Connect a social account before publishing', status_code=400)

    account = SocialAccount(
        username=profile.social_username or '',
        access_token=profile.social_access_token or '',
        platform_user_id=profile.social_user_id or '',
    )
    caption, image_url = post.caption, post.image_url
    # Release the read transaction before calling out to the platform.
    db.commit()
    try:
        result = publisher.publish(account, caption, image_url)
    except SocialPlatformError:
        post.status = PostStatus.FAILED.value
        db.commit()
        logger.warning('Publishing post %s for user_id=%s failed', post_id, user_id)
        raise

    post.status = PostStatus.PUBLISHED.value
    post.published_at = datetime.now(timezone.utc)
    post.platform_post_id = result.platform_post_id
    post.likes = result.likes
    post.comments = result.comments
    db.commit()
    db.refresh(post)
    logger.info('Published post %s as %s', post_id, result.platform_post_id)
    return post
