from datetime import datetime, timezone

from sqlalchemy.orm import Session

from socialboost.models import Analytics, Post, PostStatus
from socialboost.services.usage import get_entitlement_summary


def month_start(now: datetime | None = None) -> datetime:
    now = now or datetime.now(timezone.utc)
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def user_stats(db: Session, user_id: int) -> dict:
    posts_this_month = (
        db.query(Post).filter(Post.user_id == user_id, Post.created_at >= month_start()).count()
    )
    scheduled = db.query(Post).filter(Post.user_id == user_id, Post.status == PostStatus.SCHEDULED.value).count()
    latest = (
        db.query(Analytics)
        .filter(Analytics.user_id == user_id)
        .order_by(Analytics.date.desc())
        .first()
    )
    summary = get_entitlement_summary(db, user_id)
    return {
        'posts_this_month': posts_this_month,
        'engagement_rate': (latest.engagement_rate if latest else None) or '0%',
        'followers_growth': (latest.followers_growth if latest else None) or 0,
        'scheduled_posts': scheduled,
        'monthly_limit': summary.allowance,
        'monthly_posts_used': summary.used,
        'subscription_tier': summary.tier,
    }
