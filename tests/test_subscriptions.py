import gc

import pytest
from sqlalchemy import update

from socialboost.core.errors import (
    BillingRejectedError,
    BillingTransientError,
    ConcurrentUpdateError,
    InvalidTierError,
    NoActiveSubscriptionError,
    UserNotFoundError,
)
from socialboost.db import SessionLocal
from socialboost.models import SubscriptionStatus, User
from socialboost.services import subscriptions
from socialboost.services.billing import InMemoryBillingProvider
from socialboost.services.subscriptions import (
    Canceled,
    ImmediatelyActive,
    PendingPayment,
    RequiresManualSales,
    cancel_plan,
    map_provider_status,
    refresh_subscription_status,
    select_plan,
    user_lock,
)


def _state(user):
    return (
        user.subscription_tier,
        user.subscription_status,
        user.stripe_customer_id,
        user.stripe_subscription_id,
    )


def test_free_plan_is_active_immediately(db, billing, make_user, fetch_user):
    user = make_user()
    outcome = select_plan(db, billing, user.id, 'free')

    assert isinstance(outcome, ImmediatelyActive)
    assert outcome.tier == 'free'
    assert outcome.client_secret.endswith('_secret')
    assert billing.operations() == ['create_customer', 'create_setup_intent']

    stored = fetch_user(user.id)
    assert stored.subscription_tier == 'free'
    assert stored.subscription_status == 'active'
    assert stored.stripe_customer_id == 'cus_mem_1'
    assert stored.stripe_subscription_id is None


def test_paid_plan_waits_for_payment(db, billing, make_user, fetch_user):
    user = make_user()
    outcome = select_plan(db, billing, user.id, 'pro')

    assert isinstance(outcome, PendingPayment)
    assert outcome.outcome == 'pending_payment'
    assert outcome.client_secret == f'{outcome.subscription_id}_secret'
    assert billing.operations() == ['create_customer', 'create_recurring_price', 'create_subscription']
    assert billing.calls[1][1][:2] == (2900, 'month')

    stored = fetch_user(user.id)
    assert stored.subscription_tier == 'pro'
    assert stored.subscription_status == 'inactive'
    assert stored.stripe_subscription_id == outcome.subscription_id


def test_paid_plan_active_at_provider_is_immediately_active(db, make_user, fetch_user):
    billing = InMemoryBillingProvider(initial_status='active')
    user = make_user()
    outcome = select_plan(db, billing, user.id, 'starter')

    assert isinstance(outcome, ImmediatelyActive)
    assert fetch_user(user.id).subscription_status == 'active'


def test_existing_customer_is_reused(db, billing, make_user, fetch_user):
    user = make_user(customer_id='cus_existing')
    select_plan(db, billing, user.id, 'starter')

    assert 'create_customer' not in billing.operations()
    assert billing.calls[-1] == ('create_subscription', ('cus_existing', 'price_mem_1'))
    assert fetch_user(user.id).stripe_customer_id == 'cus_existing'


def test_enterprise_routes_to_sales_without_billing_calls(db, billing, make_user, fetch_user):
    user = make_user(tier='starter', status='active', customer_id='cus_1', subscription_id='sub_1')
    before = _state(fetch_user(user.id))

    outcome = select_plan(db, billing, user.id, 'enterprise')

    assert isinstance(outcome, RequiresManualSales)
    assert outcome.contact_url
    assert billing.calls == []
    assert _state(fetch_user(user.id)) == before


def test_invalid_tier_makes_no_calls(db, billing, make_user, fetch_user):
    user = make_user()
    with pytest.raises(InvalidTierError):
        select_plan(db, billing, user.id, 'platinum')
    assert billing.calls == []
    assert _state(fetch_user(user.id)) == ('free', 'inactive', None, None)


def test_unknown_user(db, billing):
    with pytest.raises(UserNotFoundError):
        select_plan(db, billing, 404, 'pro')


def test_rejected_subscription_leaves_state_unchanged(db, billing, make_user, fetch_user):
    user = make_user(tier='starter', status='active', customer_id='cus_1', subscription_id='sub_old')
    before = _state(fetch_user(user.id))
    billing.fail('create_subscription', BillingRejectedError('Your card was declined.'))

    with pytest.raises(BillingRejectedError):
        select_plan(db, billing, user.id, 'pro')

    assert _state(fetch_user(user.id)) == before
    assert 'cancel_subscription' not in billing.operations()


def test_transient_customer_failure_leaves_state_unchanged(db, billing, make_user, fetch_user):
    user = make_user()
    billing.fail('create_customer', BillingTransientError())

    with pytest.raises(BillingTransientError) as excinfo:
        select_plan(db, billing, user.id, 'free')

    assert excinfo.value.status_code == 503
    assert billing.operations() == ['create_customer']
    assert _state(fetch_user(user.id)) == ('free', 'inactive', None, None)


def test_transient_failure_then_retry_succeeds(db, billing, make_user, fetch_user):
    user = make_user()
    billing.fail('create_recurring_price', BillingTransientError())
    with pytest.raises(BillingTransientError):
        select_plan(db, billing, user.id, 'starter')

    outcome = select_plan(db, billing, user.id, 'starter')
    assert isinstance(outcome, PendingPayment)
    assert fetch_user(user.id).subscription_tier == 'starter'


def test_reselecting_current_active_plan_is_a_no_op(db, billing, make_user, fetch_user):
    user = make_user(tier='pro', status='active', customer_id='cus_1', subscription_id='sub_1')
    outcome = select_plan(db, billing, user.id, 'pro')

    assert outcome == ImmediatelyActive(tier='pro')
    assert billing.calls == []
    assert fetch_user(user.id).stripe_subscription_id == 'sub_1'


def test_upgrade_cancels_previous_subscription(db, billing, make_user, fetch_user):
    user = make_user()
    first = select_plan(db, billing, user.id, 'starter')
    second = select_plan(db, billing, user.id, 'pro')

    assert billing.calls[-1] == ('cancel_subscription', (first.subscription_id,))
    assert billing.subscriptions[first.subscription_id] == 'canceled'
    stored = fetch_user(user.id)
    assert stored.subscription_tier == 'pro'
    assert stored.stripe_subscription_id == second.subscription_id


def test_upgrade_does_not_reset_usage(db, billing, make_user, fetch_user):
    user = make_user(used=4)
    select_plan(db, billing, user.id, 'starter')
    assert fetch_user(user.id).monthly_posts_used == 4


def test_downgrade_to_free_cancels_paid_subscription(db, billing, make_user, fetch_user):
    user = make_user()
    paid = select_plan(db, billing, user.id, 'pro')
    select_plan(db, billing, user.id, 'free')

    assert billing.subscriptions[paid.subscription_id] == 'canceled'
    stored = fetch_user(user.id)
    assert stored.subscription_tier == 'free'
    assert stored.stripe_subscription_id is None


def test_failed_cleanup_of_replaced_subscription_keeps_new_plan(db, billing, make_user, fetch_user):
    user = make_user(tier='starter', status='active', customer_id='cus_1', subscription_id='sub_unknown')
    outcome = select_plan(db, billing, user.id, 'pro')

    # The old reference is unknown to the provider so the cancel is rejected and only logged.
    assert billing.operations()[-1] == 'cancel_subscription'
    assert fetch_user(user.id).stripe_subscription_id == outcome.subscription_id


def test_cancel_without_subscription(db, billing, make_user, fetch_user):
    user = make_user(tier='free', status='active', customer_id='cus_1')
    with pytest.raises(NoActiveSubscriptionError) as excinfo:
        cancel_plan(db, billing, user.id)
    assert excinfo.value.status_code == 400
    assert billing.calls == []
    assert _state(fetch_user(user.id)) == ('free', 'active', 'cus_1', None)


def test_cancel_reverts_to_free(db, billing, make_user, fetch_user):
    user = make_user(used=3)
    paid = select_plan(db, billing, user.id, 'pro')

    result = cancel_plan(db, billing, user.id)

    assert result == Canceled(subscription_id=paid.subscription_id)
    assert billing.subscriptions[paid.subscription_id] == 'canceled'
    stored = fetch_user(user.id)
    assert stored.subscription_tier == 'free'
    assert stored.subscription_status == 'canceled'
    assert stored.stripe_subscription_id is None
    assert stored.stripe_customer_id == 'cus_mem_1'
    assert stored.monthly_posts_used == 3


def test_cancel_rejected_by_provider_keeps_subscription(db, billing, make_user, fetch_user):
    user = make_user()
    paid = select_plan(db, billing, user.id, 'pro')
    billing.fail('cancel_subscription', BillingRejectedError('nope'))

    with pytest.raises(BillingRejectedError):
        cancel_plan(db, billing, user.id)

    stored = fetch_user(user.id)
    assert stored.subscription_tier == 'pro'
    assert stored.stripe_subscription_id == paid.subscription_id


def test_refresh_marks_paid_subscription_active(db, billing, make_user, fetch_user):
    user = make_user()
    paid = select_plan(db, billing, user.id, 'starter')
    billing.subscriptions[paid.subscription_id] = 'active'

    assert refresh_subscription_status(db, billing, user.id) is SubscriptionStatus.ACTIVE
    assert fetch_user(user.id).subscription_status == 'active'


def test_refresh_canceled_at_provider_reverts_to_free(db, billing, make_user, fetch_user):
    user = make_user()
    paid = select_plan(db, billing, user.id, 'pro')
    billing.subscriptions[paid.subscription_id] = 'incomplete_expired'

    assert refresh_subscription_status(db, billing, user.id) is SubscriptionStatus.CANCELED
    stored = fetch_user(user.id)
    assert stored.subscription_tier == 'free'
    assert stored.stripe_subscription_id is None


def test_refresh_without_subscription(db, billing, make_user):
    user = make_user()
    with pytest.raises(NoActiveSubscriptionError):
        refresh_subscription_status(db, billing, user.id)


@pytest.mark.parametrize(
    'provider_status,expected',
    [
        ('active', SubscriptionStatus.ACTIVE),
        ('trialing', SubscriptionStatus.ACTIVE),
        ('past_due', SubscriptionStatus.PAST_DUE),
        ('canceled', SubscriptionStatus.CANCELED),
        ('incomplete', SubscriptionStatus.INACTIVE),
        ('something_new', SubscriptionStatus.INACTIVE),
    ],
)
def test_provider_status_mapping(provider_status, expected):
    assert map_provider_status(provider_status) is expected


def test_concurrent_change_is_detected(db, make_user, fetch_user):
    user = make_user()

    class RacingProvider(InMemoryBillingProvider):
        def create_subscription(self, customer_id, price_id):
            # Another writer commits a billing change while the provider call is in flight.
            with SessionLocal() as other:
                other.execute(
                    update(User)
                    .where(User.id == user.id)
                    .values(billing_version=User.billing_version + 1, subscription_tier='starter')
                )
                other.commit()
            return super().create_subscription(customer_id, price_id)

    billing = RacingProvider()
    with pytest.raises(ConcurrentUpdateError) as excinfo:
        select_plan(db, billing, user.id, 'pro')

    assert excinfo.value.status_code == 409
    stored = fetch_user(user.id)
    assert stored.subscription_tier == 'starter'
    assert stored.stripe_subscription_id is None


def test_user_lock_is_shared_while_held_and_released_after():
    lock = user_lock(31337)
    assert user_lock(31337) is lock
    assert user_lock(31338) is not lock

    del lock
    gc.collect()
    assert 31337 not in subscriptions._locks
