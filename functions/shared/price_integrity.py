"""
Price/plan integrity checks for completed checkouts.

Maps the charged price to a plan interval using the canonical price table
and compares the charged amount with the contractual one. Discrepancies go
to the anomaly trail; the canonical amount is always what gets stored.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from shared.anomalies import record_anomaly
from shared.config import BillingConfig
from shared.constants import (
    ANOMALY_PRICE_MISMATCH,
    ANOMALY_UNKNOWN_PRICE_ID,
    INTERVAL_MONTHLY,
    INTERVAL_YEARLY,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlanResolution:
    interval: str
    validated_amount: int
    price_known: bool
    amount_matches: bool


class PriceIntegrityChecker:
    """Resolve plan interval and contractual amount for a checkout.

    Args:
        config: Canonical price table
        record: Anomaly sink, same signature as shared.anomalies.record_anomaly
    """

    def __init__(self, config: BillingConfig, record: Callable[..., bool] = record_anomaly):
        self.config = config
        self._record = record

    def check(
        self,
        price_id: Optional[str],
        amount_charged: int,
        mode: Optional[str],
        event_id: str,
        context: Optional[dict] = None,
    ) -> PlanResolution:
        context = context or {}
        interval = self.config.interval_for_price(price_id)
        price_known = interval is not None

        if not price_known:
            # Best-effort fallback, not a validated mapping
            interval = INTERVAL_MONTHLY if mode == "subscription" else INTERVAL_YEARLY
            logger.error(
                f"Unknown price ID {price_id} for event {event_id}, inferred {interval} from mode={mode}"
            )
            self._record(
                event_id,
                ANOMALY_UNKNOWN_PRICE_ID,
                expected_value=None,
                received_value=price_id,
                details={
                    **context,
                    "received_price_id": price_id,
                    "expected_monthly": self.config.monthly_price_id,
                    "expected_yearly": self.config.yearly_price_id,
                    "session_mode": mode,
                    "amount": amount_charged,
                    "inferred_interval": interval,
                },
            )

        expected_amount = self.config.amount_for_interval(interval)
        amount_matches = amount_charged == expected_amount

        if not amount_matches:
            logger.error(
                f"Price mismatch for event {event_id}: expected {expected_amount}, received {amount_charged}"
            )
            self._record(
                event_id,
                ANOMALY_PRICE_MISMATCH,
                expected_value=expected_amount,
                received_value=amount_charged,
                details={
                    **context,
                    "interval": interval,
                    "price_id": price_id,
                    "difference_cents": amount_charged - expected_amount,
                },
            )

        return PlanResolution(
            interval=interval,
            validated_amount=expected_amount,
            price_known=price_known,
            amount_matches=amount_matches,
        )
