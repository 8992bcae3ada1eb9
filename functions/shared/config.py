"""
Billing policy configuration.

The canonical price table lives in an immutable BillingConfig that is built
once per invocation and passed to the components that need it, so tests can
inject fixture price tables without touching the environment.
"""

import os
from dataclasses import dataclass
from typing import Optional

from shared.constants import INTERVAL_MONTHLY, INTERVAL_YEARLY


@dataclass(frozen=True)
class BillingConfig:
    """Canonical prices and webhook verification settings."""

    monthly_price_id: str
    yearly_price_id: str
    monthly_amount: int = 2900
    yearly_amount: int = 29900
    default_currency: str = "eur"
    webhook_tolerance_seconds: int = 300

    def interval_for_price(self, price_id: Optional[str]) -> Optional[str]:
        """Interval for a canonical price ID, None if the price is unknown."""
        if not price_id:
            return None
        if price_id == self.monthly_price_id:
            return INTERVAL_MONTHLY
        if price_id == self.yearly_price_id:
            return INTERVAL_YEARLY
        return None

    def amount_for_interval(self, interval: str) -> int:
        if interval == INTERVAL_YEARLY:
            return self.yearly_amount
        return self.monthly_amount

    @property
    def known_price_ids(self) -> tuple[str, str]:
        return (self.monthly_price_id, self.yearly_price_id)


def _int_env(name: str, default: int) -> int:
    value = os.environ.get(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {value!r}")


def load_billing_config() -> BillingConfig:
    """Build BillingConfig from the environment.

    Uses `or` so empty-string env vars (unset deployment parameters) fall
    back to the placeholder price IDs.
    """
    return BillingConfig(
        monthly_price_id=os.environ.get("STRIPE_MONTHLY_PRICE_ID") or "price_monthly",
        yearly_price_id=os.environ.get("STRIPE_YEARLY_PRICE_ID") or "price_yearly",
        monthly_amount=_int_env("MONTHLY_PRICE_CENTS", 2900),
        yearly_amount=_int_env("YEARLY_PRICE_CENTS", 29900),
        default_currency=(os.environ.get("DEFAULT_CURRENCY") or "eur").lower(),
        webhook_tolerance_seconds=_int_env("WEBHOOK_TOLERANCE_SECONDS", 300),
    )
