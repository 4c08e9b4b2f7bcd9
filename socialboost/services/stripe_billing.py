"""Stripe implementation of the billing provider boundary."""

import logging
from functools import wraps

import stripe

from socialboost.core.errors import BillingRejectedError, BillingTransientError
from socialboost.services.billing import CreatedSubscription


logger = logging.getLogger(__name__)

# Network failures, throttling and Stripe-side 5xx. Everything else is terminal.
_TRANSIENT_ERRORS = (stripe.APIConnectionError, stripe.RateLimitError, stripe.APIError)


def _translate_errors(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except _TRANSIENT_ERRORS as exc:
            logger.warning('Stripe %s transient failure: %s', fn.__name__, exc)
            raise BillingTransientError('Payment provider unavailable, please try again') from exc
        except stripe.StripeError as exc:
            message = exc.user_message or str(exc)
            logger.info('Stripe %s rejected: %s', fn.__name__, message)
            raise BillingRejectedError(message) from exc

    return wrapper


def _client_secret(subscription) -> str | None:
    invoice = getattr(subscription, 'latest_invoice', None)
    if not invoice or isinstance(invoice, str):
        return None
    payment_intent = getattr(invoice, 'payment_intent', None)
    if not payment_intent or isinstance(payment_intent, str):
        return None
    return getattr(payment_intent, 'client_secret', None)


class StripeBillingProvider:
    def __init__(self, secret_key: str, timeout_seconds: float = 10.0, currency: str = 'usd'):
        if not secret_key:
            raise ValueError('STRIPE_SECRET_KEY not configured')
        stripe.api_key = secret_key
        # Retries stay with the caller so a timed-out create never yields duplicate objects.
        stripe.max_network_retries = 0
        stripe.default_http_client = stripe.RequestsClient(timeout=timeout_seconds)
        self.currency = currency

    @_translate_errors
    def create_customer(self, email: str, name: str) -> str:
        return stripe.Customer.create(email=email, name=name).id

    @_translate_errors
    def create_recurring_price(self, amount_cents: int, interval: str, product_name: str) -> str:
        product = stripe.Product.create(name=product_name)
        price = stripe.Price.create(
            currency=self.currency,
            product=product.id,
            unit_amount=amount_cents,
            recurring={'interval': interval},
        )
        return price.id

    @_translate_errors
    def create_subscription(self, customer_id: str, price_id: str) -> CreatedSubscription:
        subscription = stripe.Subscription.create(
            customer=customer_id,
            items=[{'price': price_id}],
            payment_behavior='default_incomplete',
            expand=['latest_invoice.payment_intent'],
        )
        return CreatedSubscription(subscription.id, subscription.status, _client_secret(subscription))

    @_translate_errors
    def create_setup_intent(self, customer_id: str) -> str:
        return stripe.SetupIntent.create(customer=customer_id, usage='off_session').client_secret

    @_translate_errors
    def cancel_subscription(self, subscription_id: str) -> None:
        stripe.Subscription.cancel(subscription_id)

    @_translate_errors
    def retrieve_subscription_status(self, subscription_id: str) -> str:
        return stripe.Subscription.retrieve(subscription_id).status
