"""Subscription lifecycle: plan selection, cancellation and status refresh.

Every operation follows the same shape: read the user, talk to the billing
provider, then write the outcome back in one conditional UPDATE keyed on
`billing_version`. Nothing is written locally until every provider call has
succeeded, so a provider failure leaves tier, status and external references
exactly as they were.

Operations for one user are serialized with a process-local lock; the
`billing_version` check covers writers in other processes.
"""

import logging
import threading
import weakref
from dataclasses import dataclass
from typing import Optional, Union

from sqlalchemy import update
from sqlalchemy.orm import Session

from socialboost.core.config import settings
from socialboost.core.errors import BillingError, ConcurrentUpdateError, NoActiveSubscriptionError, UserNotFoundError
from socialboost.models import SubscriptionStatus, SubscriptionTier, User
from socialboost.services.billing import BillingProvider
from socialboost.services.entitlements import entitlement_for, parse_tier


logger = logging.getLogger(__name__)

BILLING_INTERVAL = 'month'

# Provider subscription status -> local subscription status
PROVIDER_STATUS_MAP = {
    'active': SubscriptionStatus.ACTIVE,
    'trialing': SubscriptionStatus.ACTIVE,
    'past_due': SubscriptionStatus.PAST_DUE,
    'unpaid': SubscriptionStatus.PAST_DUE,
    'canceled': SubscriptionStatus.CANCELED,
    'incomplete_expired': SubscriptionStatus.CANCELED,
    'incomplete': SubscriptionStatus.INACTIVE,
    'paused': SubscriptionStatus.INACTIVE,
}


@dataclass(frozen=True)
class PendingPayment:
    tier: str
    subscription_id: str
    client_secret: Optional[str]
    outcome = 'pending_payment'


@dataclass(frozen=True)
class ImmediatelyActive:
    tier: str
    client_secret: Optional[str] = None
    outcome = 'active'


@dataclass(frozen=True)
class RequiresManualSales:
    tier: str
    contact_url: str
    outcome = 'requires_manual_sales'


PlanOutcome = Union[PendingPayment, ImmediatelyActive, RequiresManualSales]


@dataclass(frozen=True)
class Canceled:
    subscription_id: str


# Entries disappear once no caller holds the lock, so the map only covers users mid-operation.
_locks: "weakref.WeakValueDictionary[int, threading.Lock]" = weakref.WeakValueDictionary()
_locks_guard = threading.Lock()


def user_lock(user_id: int) -> threading.Lock:
    with _locks_guard:
        lock = _locks.get(user_id)
        if lock is None:
            lock = threading.Lock()
            _locks[user_id] = lock
        return lock


def map_provider_status(status: str) -> SubscriptionStatus:
    return PROVIDER_STATUS_MAP.get(status, SubscriptionStatus.INACTIVE)


@dataclass(frozen=True)
class BillingSnapshot:
    user_id: int
    email: str
    name: str
    tier: str
    status: str
    customer_id: Optional[str]
    subscription_id: Optional[str]
    version: int


def _snapshot(db: Session, user_id: int) -> BillingSnapshot:
    user = db.get(User, user_id, populate_existing=True)
    if user is None:
        db.rollback()
        raise UserNotFoundError(user_id)
    snapshot = BillingSnapshot(
        user_id=user.id,
        email=user.email,
        name=user.display_name,
        tier=user.subscription_tier,
        status=user.subscription_status,
        customer_id=user.stripe_customer_id,
        subscription_id=user.stripe_subscription_id,
        version=user.billing_version or 0,
    )
    # Provider calls can be slow; do not hold the read transaction across them.
    db.commit()
    return snapshot


def _apply(db: Session, snapshot: BillingSnapshot, **values) -> None:
    result = db.execute(
        update(User)
        .where(User.id == snapshot.user_id, User.billing_version == snapshot.version)
        .values(billing_version=snapshot.version + 1, **values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.rollback()
        logger.error(
            'Lost subscription write for user_id=%s; provider objects may be orphaned: %s', snapshot.user_id, values
        )
        raise ConcurrentUpdateError(f'Subscription for user {snapshot.user_id} was changed concurrently; retry')
    db.commit()
    cached = db.identity_map.get(db.identity_key(User, snapshot.user_id))
    if cached is not None:
        db.expire(cached)


def _cancel_replaced(billing: BillingProvider, user_id: int, subscription_id: str) -> None:
    try:
        billing.cancel_subscription(subscription_id)
    except BillingError as exc:
        logger.error('Could not cancel replaced subscription %s for user_id=%s: %s', subscription_id, user_id, exc)


def select_plan(db: Session, billing: BillingProvider, user_id: int, tier: object) -> PlanOutcome:
    target = parse_tier(tier)
    if target is SubscriptionTier.ENTERPRISE:
        logger.info('Enterprise plan requested user_id=%s; routing to sales', user_id)
        return RequiresManualSales(tier=target.value, contact_url=settings.sales_contact_url)

    with user_lock(user_id):
        current = _snapshot(db, user_id)
        if current.tier == target.value and current.status == SubscriptionStatus.ACTIVE.value:
            return ImmediatelyActive(tier=target.value)

        customer_id = current.customer_id or billing.create_customer(current.email, current.name)

        if target is SubscriptionTier.FREE:
            client_secret = billing.create_setup_intent(customer_id)
            _apply(
                db,
                current,
                stripe_customer_id=customer_id,
                stripe_subscription_id=None,
                subscription_tier=target.value,
                subscription_status=SubscriptionStatus.ACTIVE.value,
            )
            if current.subscription_id:
                _cancel_replaced(billing, user_id, current.subscription_id)
            logger.info('User %s moved to free plan', user_id)
            return ImmediatelyActive(tier=target.value, client_secret=client_secret)

        entitlement = entitlement_for(target)
        price_id = billing.create_recurring_price(
            entitlement.price_cents,
            BILLING_INTERVAL,
            f'{settings.product_name} {target.value.capitalize()} Plan',
        )
        created = billing.create_subscription(customer_id, price_id)
        status = map_provider_status(created.status)
        _apply(
            db,
            current,
            stripe_customer_id=customer_id,
            stripe_subscription_id=created.subscription_id,
            subscription_tier=target.value,
            subscription_status=status.value,
        )
        if current.subscription_id and current.subscription_id != created.subscription_id:
            _cancel_replaced(billing, user_id, current.subscription_id)

        logger.info(
            'User %s selected %s; subscription=%s status=%s', user_id, target.value, created.subscription_id, status.value
        )
        if status is SubscriptionStatus.ACTIVE:
            return ImmediatelyActive(tier=target.value, client_secret=created.client_secret)
        return PendingPayment(
            tier=target.value, subscription_id=created.subscription_id, client_secret=created.client_secret
        )


def cancel_plan(db: Session, billing: BillingProvider, user_id: int) -> Canceled:
    with user_lock(user_id):
        current = _snapshot(db, user_id)
        if not current.subscription_id:
            raise NoActiveSubscriptionError()

        billing.cancel_subscription(current.subscription_id)
        _apply(
            db,
            current,
            stripe_subscription_id=None,
            subscription_tier=SubscriptionTier.FREE.value,
            subscription_status=SubscriptionStatus.CANCELED.value,
        )
        logger.info('User %s canceled subscription %s', user_id, current.subscription_id)
        return Canceled(subscription_id=current.subscription_id)


def refresh_subscription_status(db: Session, billing: BillingProvider, user_id: int) -> SubscriptionStatus:
    """Mirror the provider's view of the subscription after client-side payment confirmation."""
    with user_lock(user_id):
        current = _snapshot(db, user_id)
        if not current.subscription_id:
            raise NoActiveSubscriptionError()

        status = map_provider_status(billing.retrieve_subscription_status(current.subscription_id))
        if status is SubscriptionStatus.CANCELED:
            _apply(
                db,
                current,
                stripe_subscription_id=None,
                subscription_tier=SubscriptionTier.FREE.value,
                subscription_status=status.value,
            )
        elif status.value != current.status:
            _apply(db, current, subscription_status=status.value)
        return status
