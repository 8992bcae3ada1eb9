"""
Processed-webhook ledger.

Every Stripe event ID is recorded exactly once with a conditional put. A
conditional-check failure is the duplicate signal. Any other storage error
is logged and processing continues: a transient DynamoDB failure must not
block a revenue-critical state change.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from botocore.exceptions import ClientError

from shared.aws_clients import get_dynamodb
from shared.constants import PROCESSED_EVENT_TTL_DAYS, PROCESSED_WEBHOOKS_TABLE

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LedgerResult:
    """Outcome of recording an event ID.

    accepted: the event should be processed
    duplicate: the event was already recorded by an earlier delivery
    recorded: a ledger record was written by this call
    """

    accepted: bool
    duplicate: bool = False
    recorded: bool = False


def record_event(event_id: str, event_type: str) -> LedgerResult:
    """Record an event ID, detecting duplicate deliveries.

    Uses a conditional write so that if two invocations race on the same
    event only one of them claims it.
    """
    now = datetime.now(timezone.utc)
    table = get_dynamodb().Table(PROCESSED_WEBHOOKS_TABLE)
    try:
        table.put_item(
            Item={
                "pk": event_id,
                "event_id": event_id,
                "event_type": event_type,
                "processed_at": now.isoformat(),
                "ttl": int((now + timedelta(days=PROCESSED_EVENT_TTL_DAYS)).timestamp()),
            },
            ConditionExpression="attribute_not_exists(pk)",
        )
    except ClientError as e:
        if e.response["Error"]["Code"] == "ConditionalCheckFailedException":
            return LedgerResult(accepted=False, duplicate=True)
        logger.error(
            f"Failed to record webhook event {event_id}, processing anyway: {e}",
            extra={"event_id": event_id, "event_type": event_type},
        )
        return LedgerResult(accepted=True, recorded=False)

    return LedgerResult(accepted=True, recorded=True)


def release_event(event_id: str) -> None:
    """Withdraw the record of an event whose processing failed.

    The failed delivery was never successfully accepted, so the processor's
    redelivery must be able to claim it again. Best-effort.
    """
    try:
        get_dynamodb().Table(PROCESSED_WEBHOOKS_TABLE).delete_item(Key={"pk": event_id})
        logger.info(f"Released webhook event {event_id} to allow retry")
    except ClientError as e:
        logger.error(f"Failed to release webhook event {event_id}: {e}")
