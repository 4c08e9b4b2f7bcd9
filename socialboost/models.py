from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import Boolean, CheckConstraint, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from socialboost.db import Base


class SubscriptionTier(str, Enum):
    FREE = 'free'
    STARTER = 'starter'
    PRO = 'pro'
    ENTERPRISE = 'enterprise'


class SubscriptionStatus(str, Enum):
    ACTIVE = 'active'
    INACTIVE = 'inactive'
    CANCELED = 'canceled'
    PAST_DUE = 'past_due'


class PostStatus(str, Enum):
    DRAFT = 'draft'
    SCHEDULED = 'scheduled'
    PUBLISHED = 'published'
    FAILED = 'failed'


def _in_enum(column: str, enum_cls: type[Enum]) -> str:
    values = ', '.join(f"'{member.value}'" for member in enum_cls)
    return f'{column} IN ({values})'


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc)
    )


class User(Base, TimestampMixin):
    __tablename__ = 'users'
    __table_args__ = (
        CheckConstraint('monthly_posts_used >= 0', name='ck_users_posts_used_non_negative'),
        CheckConstraint(_in_enum('subscription_tier', SubscriptionTier), name='ck_users_subscription_tier'),
        CheckConstraint(_in_enum('subscription_status', SubscriptionStatus), name='ck_users_subscription_status'),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    first_name: Mapped[str | None] = mapped_column(String(120), nullable=True)
    last_name: Mapped[str | None] = mapped_column(String(120), nullable=True)
    profile_image_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    role: Mapped[str] = mapped_column(String(20), default='user')  # admin/user
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    stripe_customer_id: Mapped[str | None] = mapped_column(String(120), nullable=True)
    stripe_subscription_id: Mapped[str | None] = mapped_column(String(120), nullable=True)
    subscription_tier: Mapped[str] = mapped_column(String(20), default=SubscriptionTier.FREE.value)
    subscription_status: Mapped[str] = mapped_column(String(20), default=SubscriptionStatus.INACTIVE.value)
    monthly_posts_used: Mapped[int] = mapped_column(Integer, default=0)
    # Bumped by every subscription lifecycle write; usage updates leave it alone.
    billing_version: Mapped[int] = mapped_column(Integer, default=0)

    business_profile: Mapped['BusinessProfile'] = relationship(back_populates='user', uselist=False)
    posts: Mapped[list['Post']] = relationship(back_populates='user')

    @property
    def display_name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip()


class BusinessProfile(Base, TimestampMixin):
    __tablename__ = 'business_profiles'

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey('users.id'), unique=True)
    business_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    industry: Mapped[str | None] = mapped_column(String(120), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    target_audience: Mapped[str | None] = mapped_column(Text, nullable=True)
    social_username: Mapped[str | None] = mapped_column(String(120), nullable=True)
    social_connected: Mapped[bool] = mapped_column(Boolean, default=False)
    social_access_token: Mapped[str | None] = mapped_column(Text, nullable=True)
    social_user_id: Mapped[str | None] = mapped_column(String(120), nullable=True)

    user: Mapped['User'] = relationship(back_populates='business_profile')


class Post(Base, TimestampMixin):
    __tablename__ = 'posts'
    __table_args__ = (CheckConstraint(_in_enum('status', PostStatus), name='ck_posts_status'),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey('users.id'), index=True)
    caption: Mapped[str] = mapped_column(Text)
    image_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    scheduled_for: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    published_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    status: Mapped[str] = mapped_column(String(20), default=PostStatus.DRAFT.value)  # draft/scheduled/published/failed
    platform_post_id: Mapped[str | None] = mapped_column(String(120), nullable=True)
    likes: Mapped[int] = mapped_column(Integer, default=0)
    comments: Mapped[int] = mapped_column(Integer, default=0)

    user: Mapped['User'] = relationship(back_populates='posts')


class Analytics(Base):
    __tablename__ = 'analytics'

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey('users.id'), index=True)
    post_id: Mapped[int | None] = mapped_column(ForeignKey('posts.id'), nullable=True)
    engagement_rate: Mapped[str | None] = mapped_column(String(20), nullable=True)
    reach: Mapped[int | None] = mapped_column(Integer, nullable=True)
    impressions: Mapped[int | None] = mapped_column(Integer, nullable=True)
    followers_growth: Mapped[int | None] = mapped_column(Integer, nullable=True)
    date: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
