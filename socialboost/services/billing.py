"""Billing provider boundary.

Business logic talks to a `BillingProvider`; the Stripe implementation lives in
`socialboost.services.stripe_billing`, and `InMemoryBillingProvider` backs local
development and tests. Providers translate their own failures into
`BillingTransientError` (retry-safe) or `BillingRejectedError` (terminal).
"""

import itertools
import logging
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Optional, Protocol

from socialboost.core.config import settings
from socialboost.core.errors import BillingError, BillingRejectedError


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CreatedSubscription:
    subscription_id: str
    status: str  # provider status, e.g. incomplete/active
    client_secret: Optional[str] = None


class BillingProvider(Protocol):
    def create_customer(self, email: str, name: str) -> str:
        ...

    def create_recurring_price(self, amount_cents: int, interval: str, product_name: str) -> str:
        ...

    def create_subscription(self, customer_id: str, price_id: str) -> CreatedSubscription:
        ...

    def create_setup_intent(self, customer_id: str) -> str:
        ...

    def cancel_subscription(self, subscription_id: str) -> None:
        ...

    def retrieve_subscription_status(self, subscription_id: str) -> str:
        ...


@dataclass
class InMemoryBillingProvider:
    """Provider double that keeps everything in process memory.

    `calls` records every operation in order. `fail(op, error)` primes the next
    call of `op` to raise `error` instead of succeeding.
    """

    initial_status: str = 'incomplete'
    calls: list[tuple[str, tuple]] = field(default_factory=list)
    subscriptions: dict[str, str] = field(default_factory=dict)
    prices: dict[str, int] = field(default_factory=dict)
    _failures: dict[str, BillingError] = field(default_factory=dict)
    _ids: itertools.count = field(default_factory=lambda: itertools.count(1))

    def fail(self, operation: str, error: BillingError) -> None:
        self._failures[operation] = error

    def _call(self, operation: str, *args) -> None:
        self.calls.append((operation, args))
        error = self._failures.pop(operation, None)
        if error is not None:
            raise error

    def _new_id(self, prefix: str) -> str:
        return f'{prefix}_mem_{next(self._ids)}'

    def operations(self) -> list[str]:
        return [op for op, _ in self.calls]

    def create_customer(self, email: str, name: str) -> str:
        self._call('create_customer', email, name)
        return self._new_id('cus')

    def create_recurring_price(self, amount_cents: int, interval: str, product_name: str) -> str:
        self._call('create_recurring_price', amount_cents, interval, product_name)
        price_id = self._new_id('price')
        self.prices[price_id] = amount_cents
        return price_id

    def create_subscription(self, customer_id: str, price_id: str) -> CreatedSubscription:
        self._call('create_subscription', customer_id, price_id)
        subscription_id = self._new_id('sub')
        self.subscriptions[subscription_id] = self.initial_status
        return CreatedSubscription(subscription_id, self.initial_status, f'{subscription_id}_secret')

    def create_setup_intent(self, customer_id: str) -> str:
        self._call('create_setup_intent', customer_id)
        return f"{self._new_id('seti')}_secret"

    def cancel_subscription(self, subscription_id: str) -> None:
        self._call('cancel_subscription', subscription_id)
        if subscription_id not in self.subscriptions:
            raise BillingRejectedError(f'No such subscription: {subscription_id}')
        self.subscriptions[subscription_id] = 'canceled'

    def retrieve_subscription_status(self, subscription_id: str) -> str:
        self._call('retrieve_subscription_status', subscription_id)
        if subscription_id not in self.subscriptions:
            raise BillingRejectedError(f'No such subscription: {subscription_id}')
        return self.subscriptions[subscription_id]


@lru_cache
def _memory_provider() -> InMemoryBillingProvider:
    logger.warning('Using in-memory billing provider; no real charges will be made')
    return InMemoryBillingProvider()


@lru_cache
def _stripe_provider() -> BillingProvider:
    from socialboost.services.stripe_billing import StripeBillingProvider

    return StripeBillingProvider(
        settings.stripe_secret_key,
        timeout_seconds=settings.billing_timeout_seconds,
        currency=settings.billing_currency,
    )


def get_billing_provider() -> BillingProvider:
    if settings.billing_provider == 'stripe':
        return _stripe_provider()
    return _memory_provider()
