"""Monthly post usage accounting and the entitlement guard.

The counter lives on the user row (`users.monthly_posts_used`). Every write is
a single UPDATE statement so concurrent requests for the same user never lose
an increment, and recording a post folds the allowance check into the same
statement (`... WHERE monthly_posts_used < :allowance`), which keeps a burst of
parallel post creations from overshooting the quota.
"""

import logging
from dataclasses import dataclass

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from socialboost.core.errors import ConcurrentUpdateError, UserNotFoundError
from socialboost.models import User
from socialboost.services.entitlements import entitlement_for


logger = logging.getLogger(__name__)

LIMIT_REACHED = 'monthly limit reached'


@dataclass(frozen=True)
class Allowed:
    used: int
    allowance: int | None

    allowed = True


@dataclass(frozen=True)
class Denied:
    reason: str
    used: int
    allowance: int
    tier: str

    allowed = False


@dataclass(frozen=True)
class EntitlementSummary:
    tier: str
    status: str
    allowance: int | None
    used: int
    remaining: int | None
    price_cents: int


def _expire_cached_user(db: Session, user_id: int) -> None:
    # Bulk UPDATEs bypass the identity map; drop any stale copy this session holds.
    cached = db.identity_map.get(db.identity_key(User, user_id))
    if cached is not None:
        db.expire(cached)


def _tier_and_usage(db: Session, user_id: int) -> tuple[str, int]:
    row = db.execute(
        select(User.subscription_tier, User.monthly_posts_used).where(User.id == user_id)
    ).first()
    if row is None:
        raise UserNotFoundError(user_id)
    return row.subscription_tier, row.monthly_posts_used or 0


def current_usage(db: Session, user_id: int) -> int:
    _, used = _tier_and_usage(db, user_id)
    return used


def increment(db: Session, user_id: int) -> int:
    """Add one post to the user's monthly usage and return the new count."""
    result = db.execute(
        update(User)
        .where(User.id == user_id)
        .values(monthly_posts_used=User.monthly_posts_used + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.rollback()
        raise UserNotFoundError(user_id)
    _expire_cached_user(db, user_id)
    used = current_usage(db, user_id)
    db.commit()
    return used


def reset(db: Session, user_id: int) -> None:
    result = db.execute(
        update(User)
        .where(User.id == user_id)
        .values(monthly_posts_used=0)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.rollback()
        raise UserNotFoundError(user_id)
    _expire_cached_user(db, user_id)
    db.commit()
    logger.info('Monthly usage reset user_id=%s', user_id)


def can_create_post(db: Session, user_id: int) -> Allowed | Denied:
    tier, used = _tier_and_usage(db, user_id)
    entitlement = entitlement_for(tier)
    if entitlement.unlimited:
        return Allowed(used=used, allowance=None)
    if used < entitlement.monthly_allowance:
        return Allowed(used=used, allowance=entitlement.monthly_allowance)
    return Denied(reason=LIMIT_REACHED, used=used, allowance=entitlement.monthly_allowance, tier=tier)


def record_post_if_allowed(db: Session, user_id: int) -> Allowed | Denied:
    """Conditionally consume one post from the allowance without committing.

    The caller owns the transaction so the post row and the usage bump land
    together. The UPDATE is pinned to the tier that was read; if a plan change
    slips in between, the check is re-run once against the new tier.
    """
    for _ in range(2):
        tier, _used = _tier_and_usage(db, user_id)
        entitlement = entitlement_for(tier)

        stmt = update(User).where(User.id == user_id, User.subscription_tier == tier)
        if not entitlement.unlimited:
            stmt = stmt.where(User.monthly_posts_used < entitlement.monthly_allowance)
        result = db.execute(
            stmt.values(monthly_posts_used=User.monthly_posts_used + 1).execution_options(synchronize_session=False)
        )
        _expire_cached_user(db, user_id)

        if result.rowcount == 1:
            return Allowed(used=current_usage(db, user_id), allowance=entitlement.monthly_allowance)

        tier_now, used_now = _tier_and_usage(db, user_id)
        if tier_now == tier:
            logger.info('Post denied user_id=%s tier=%s used=%s/%s', user_id, tier, used_now, entitlement.monthly_allowance)
            return Denied(reason=LIMIT_REACHED, used=used_now, allowance=entitlement.monthly_allowance, tier=tier)

    raise ConcurrentUpdateError(f'Subscription for user {user_id} changed while recording a post; retry')


def check_and_record_post(db: Session, user_id: int) -> Allowed | Denied:
    decision = record_post_if_allowed(db, user_id)
    if decision.allowed:
        db.commit()
    else:
        db.rollback()
    return decision


def get_entitlement_summary(db: Session, user_id: int) -> EntitlementSummary:
    row = db.execute(
        select(User.subscription_tier, User.subscription_status, User.monthly_posts_used).where(User.id == user_id)
    ).first()
    if row is None:
        raise UserNotFoundError(user_id)
    entitlement = entitlement_for(row.subscription_tier)
    used = row.monthly_posts_used or 0
    remaining = None if entitlement.unlimited else max(0, entitlement.monthly_allowance - used)
    return EntitlementSummary(
        tier=entitlement.tier.value,
        status=row.subscription_status,
        allowance=entitlement.monthly_allowance,
        used=used,
        remaining=remaining,
        price_cents=entitlement.price_cents,
    )
