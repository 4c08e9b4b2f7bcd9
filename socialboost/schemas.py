from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator

from socialboost.models import PostStatus


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = 'bearer'


class UserMeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: EmailStr
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    profile_image_url: Optional[str] = None
    role: str
    is_active: bool
    subscription_tier: str
    subscription_status: str
    monthly_posts_used: int


class BusinessProfileRequest(BaseModel):
    business_name: Optional[str] = Field(default=None, max_length=255)
    industry: Optional[str] = Field(default=None, max_length=120)
    description: Optional[str] = None
    target_audience: Optional[str] = None


class BusinessProfileResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    business_name: Optional[str]
    industry: Optional[str]
    description: Optional[str]
    target_audience: Optional[str]
    social_username: Optional[str]
    social_connected: bool


class SocialConnectRequest(BaseModel):
    code: str = Field(min_length=1)


class PostCreateRequest(BaseModel):
    caption: str = Field(min_length=1)
    image_url: Optional[str] = Field(default=None, max_length=500)
    scheduled_for: Optional[datetime] = None
    status: Optional[PostStatus] = None

    @model_validator(mode='after')
    def _resolve_status(self):
        if self.status is None:
            self.status = PostStatus.SCHEDULED if self.scheduled_for else PostStatus.DRAFT
        if self.status is PostStatus.SCHEDULED and self.scheduled_for is None:
            raise ValueError('scheduled posts need scheduled_for')
        if self.status is PostStatus.PUBLISHED:
            raise ValueError('posts are published through the publish endpoint')
        return self


class PostUpdateRequest(BaseModel):
    caption: Optional[str] = Field(default=None, min_length=1)
    image_url: Optional[str] = Field(default=None, max_length=500)
    scheduled_for: Optional[datetime] = None
    status: Optional[PostStatus] = None

    @model_validator(mode='after')
    def _check_fields(self):
        # Omitted fields stay as they are; an explicit null would clear a required column.
        for name in ('caption', 'status'):
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f'{name} cannot be null')
        if self.status in (PostStatus.PUBLISHED, PostStatus.FAILED):
            raise ValueError('published and failed are set by the publish endpoint')
        return self


class PostResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    caption: str
    image_url: Optional[str]
    scheduled_for: Optional[datetime]
    published_at: Optional[datetime]
    status: str
    platform_post_id: Optional[str]
    likes: int
    comments: int
    created_at: datetime


class StatsResponse(BaseModel):
    posts_this_month: int
    engagement_rate: str
    followers_growth: int
    scheduled_posts: int
    monthly_limit: Optional[int]  # null is unlimited
    monthly_posts_used: int
    subscription_tier: str


class EntitlementResponse(BaseModel):
    tier: str
    status: str
    allowance: Optional[int]  # null is unlimited
    used: int
    remaining: Optional[int]
    price_cents: int


class SelectPlanRequest(BaseModel):
    tier: str


class SelectPlanResponse(BaseModel):
    outcome: str  # pending_payment/active/requires_manual_sales
    tier: str
    client_secret: Optional[str] = None
    subscription_id: Optional[str] = None
    contact_url: Optional[str] = None


class AdminUserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    role: str
    is_active: bool
    subscription_tier: str
    subscription_status: str
    monthly_posts_used: int
