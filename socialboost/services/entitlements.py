from dataclasses import dataclass

from socialboost.core.errors import InvalidTierError
from socialboost.models import SubscriptionTier


UNLIMITED = None


@dataclass(frozen=True)
class Entitlement:
    tier: SubscriptionTier
    monthly_allowance: int | None  # None is UNLIMITED
    price_cents: int

    @property
    def unlimited(self) -> bool:
        return self.monthly_allowance is UNLIMITED


ENTITLEMENTS: dict[SubscriptionTier, Entitlement] = {
    SubscriptionTier.FREE: Entitlement(SubscriptionTier.FREE, 5, 0),
    SubscriptionTier.STARTER: Entitlement(SubscriptionTier.STARTER, 15, 900),
    SubscriptionTier.PRO: Entitlement(SubscriptionTier.PRO, 50, 2900),
    SubscriptionTier.ENTERPRISE: Entitlement(SubscriptionTier.ENTERPRISE, UNLIMITED, 9900),
}


def parse_tier(value: object) -> SubscriptionTier:
    if isinstance(value, SubscriptionTier):
        return value
    try:
        return SubscriptionTier(value)
    except ValueError:
        raise InvalidTierError(value) from None


def entitlement_for(tier: object) -> Entitlement:
    return ENTITLEMENTS[parse_tier(tier)]
