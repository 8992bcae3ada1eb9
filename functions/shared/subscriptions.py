"""
Subscription state reconciler.

One Subscription item per user (the table's partition key is the user ID,
so the store rejects a second create). Billing events are applied as state
transitions:

    none -> active -> {active (renewed), past_due, canceled}

`canceled` ends a subscription lineage; a later checkout overwrites the same
item with a fresh `active` state. Every write that sets `status` also sets
`is_active = (status == "active")` in the same update.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from boto3.dynamodb.conditions import Key
from botocore.exceptions import ClientError

from shared.aws_clients import get_dynamodb
from shared.constants import (
    INTERVAL_MONTHLY,
    PERIOD_DAYS,
    STATUS_ACTIVE,
    STATUS_CANCELED,
    STATUS_PAID,
    STRIPE_SUBSCRIPTION_INDEX,
    SUBSCRIPTIONS_TABLE,
)
from shared.price_integrity import PlanResolution

logger = logging.getLogger(__name__)

PUBLIC_FIELDS = (
    "user_id",
    "stripe_customer_id",
    "stripe_subscription_id",
    "status",
    "is_active",
    "interval",
    "amount",
    "currency",
    "current_period_start",
    "current_period_end",
    "activated_at",
    "created_at",
    "updated_at",
)


def _table():
    return get_dynamodb().Table(SUBSCRIPTIONS_TABLE)


def _status_fields(status: str) -> dict:
    """Status and entitlement, always written together."""
    return {"status": status, "is_active": status == STATUS_ACTIVE}


def _epoch_to_iso(value: Optional[int]) -> Optional[str]:
    if value is None:
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc).isoformat()


def _update_fields(
    user_id: str,
    fields: dict,
    remove: Optional[list[str]] = None,
    condition: Optional[str] = None,
    condition_values: Optional[dict] = None,
    condition_names: Optional[dict] = None,
) -> None:
    """SET the given attributes (and REMOVE others) on one subscription item.

    Attribute names go through placeholders since `status` and `interval`
    are DynamoDB reserved words.
    """
    names = {}
    values = {}
    set_parts = []
    for i, (field, value) in enumerate(fields.items()):
        names[f"#f{i}"] = field
        values[f":v{i}"] = value
        set_parts.append(f"#f{i} = :v{i}")

    update_expr = "SET " + ", ".join(set_parts)
    if remove:
        remove_parts = []
        for i, field in enumerate(remove):
            names[f"#r{i}"] = field
            remove_parts.append(f"#r{i}")
        update_expr += " REMOVE " + ", ".join(remove_parts)

    kwargs = {
        "Key": {"pk": user_id},
        "UpdateExpression": update_expr,
        "ExpressionAttributeNames": names,
        "ExpressionAttributeValues": values,
    }
    if condition:
        kwargs["ConditionExpression"] = condition
        values.update(condition_values or {})
        names.update(condition_names or {})

    _table().update_item(**kwargs)


def get_subscription_by_user(user_id: str) -> Optional[dict]:
    """Fetch the subscription owned by a user."""
    response = _table().get_item(Key={"pk": user_id}, ConsistentRead=True)
    return response.get("Item")


def find_by_stripe_subscription_id(subscription_id: str) -> Optional[dict]:
    """Locate a subscription by its Stripe subscription ID (GSI)."""
    if not subscription_id:
        return None

    response = _table().query(
        IndexName=STRIPE_SUBSCRIPTION_INDEX,
        KeyConditionExpression=Key("stripe_subscription_id").eq(subscription_id),
        Limit=1,
    )
    items = response.get("Items", [])
    return items[0] if items else None


def activate_from_checkout(
    user_id: str,
    *,
    customer_id: str,
    plan: PlanResolution,
    price_id: str,
    currency: str,
    subscription_id: Optional[str] = None,
    payment_intent_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> dict:
    """Apply a completed checkout: create or overwrite the user's subscription.

    Period bounds are computed here (now + 30/365 days) because checkout
    events do not carry Stripe's billing anchor. A later subscription update
    replaces them with Stripe's own period.

    Returns:
        The subscription attributes as written
    """
    now = now or datetime.now(timezone.utc)
    period_end = now + timedelta(days=PERIOD_DAYS[plan.interval])

    fields = {
        "user_id": user_id,
        "stripe_customer_id": customer_id,
        "stripe_payment_intent_id": payment_intent_id or "",
        **_status_fields(STATUS_ACTIVE),
        "amount": plan.validated_amount,
        "currency": currency,
        "interval": plan.interval,
        "stripe_price_id": price_id,
        "current_period_start": now.isoformat(),
        "current_period_end": period_end.isoformat(),
        "updated_at": now.isoformat(),
    }
    # GSI key attributes cannot be empty strings, so a one-time payment
    # drops any previous subscription link instead of blanking it
    remove = []
    if subscription_id:
        fields["stripe_subscription_id"] = subscription_id
    else:
        remove.append("stripe_subscription_id")

    existing = get_subscription_by_user(user_id)
    if existing:
        _update_fields(user_id, fields, remove=remove)
        logger.info(f"Subscription reactivated for user {user_id} ({plan.interval})")
        return {**{k: v for k, v in existing.items() if k not in remove}, **fields}

    item = {"pk": user_id, "created_at": now.isoformat(), **fields}
    try:
        _table().put_item(Item=item, ConditionExpression="attribute_not_exists(pk)")
    except ClientError as e:
        if e.response["Error"]["Code"] != "ConditionalCheckFailedException":
            raise
        # A concurrent delivery created the row first: update it instead
        logger.warning(f"Subscription for user {user_id} created concurrently, updating in place")
        _update_fields(user_id, fields, remove=remove)
        return fields

    logger.info(f"Subscription created for user {user_id} ({plan.interval})")
    return item


def apply_subscription_update(
    subscription_id: str,
    status: str,
    period_start: Optional[int] = None,
    period_end: Optional[int] = None,
    now: Optional[datetime] = None,
) -> bool:
    """Mirror Stripe's subscription status and authoritative period.

    Returns:
        False when no subscription is recorded for the Stripe ID
    """
    existing = find_by_stripe_subscription_id(subscription_id)
    if not existing:
        logger.warning(f"Subscription not found for update: {subscription_id}")
        return False

    now = now or datetime.now(timezone.utc)
    start_iso = _epoch_to_iso(period_start) or now.isoformat()
    end_iso = _epoch_to_iso(period_end) or (now + timedelta(days=PERIOD_DAYS[INTERVAL_MONTHLY])).isoformat()

    _update_fields(
        existing["pk"],
        {
            **_status_fields(status),
            "current_period_start": start_iso,
            "current_period_end": end_iso,
            "updated_at": now.isoformat(),
        },
    )
    logger.info(f"Subscription updated: {subscription_id} status={status}")
    return True


def cancel_subscription(subscription_id: str) -> bool:
    """Mark a subscription canceled. Repeated cancellations are no-ops in effect."""
    existing = find_by_stripe_subscription_id(subscription_id)
    if not existing:
        logger.warning(f"Subscription not found for cancellation: {subscription_id}")
        return False

    _update_fields(
        existing["pk"],
        {
            **_status_fields(STATUS_CANCELED),
            "updated_at": datetime.now(timezone.utc).isoformat(),
        },
    )
    logger.info(f"Subscription canceled: {subscription_id}")
    return True


def confirm_renewal(subscription_id: str) -> bool:
    """Re-activate a subscription after a paid invoice."""
    existing = find_by_stripe_subscription_id(subscription_id)
    if not existing:
        logger.info(f"No recorded subscription for paid invoice: {subscription_id}")
        return False

    _update_fields(
        existing["pk"],
        {
            **_status_fields(STATUS_ACTIVE),
            "updated_at": datetime.now(timezone.utc).isoformat(),
        },
    )
    logger.info(f"Recurring payment processed for subscription: {subscription_id}")
    return True


def promote_pending(user_id: str) -> int:
    """Activate a paid subscription that was never associated with its user.

    Promoted rows get status `active` together with `is_active`, keeping the
    status/entitlement pairing intact.

    Returns:
        Number of subscriptions activated
    """
    existing = get_subscription_by_user(user_id)
    if not existing:
        return 0
    if existing.get("is_active") or existing.get("status") != STATUS_PAID:
        return 0

    now = datetime.now(timezone.utc).isoformat()
    try:
        _update_fields(
            user_id,
            {**_status_fields(STATUS_ACTIVE), "activated_at": now, "updated_at": now},
            condition="is_active = :inactive AND #cs = :paid",
            condition_values={":inactive": False, ":paid": STATUS_PAID},
            condition_names={"#cs": "status"},
        )
    except ClientError as e:
        if e.response["Error"]["Code"] != "ConditionalCheckFailedException":
            raise
        logger.info(f"Pending subscription for {user_id} changed concurrently, skipping")
        return 0

    logger.info(f"Activated pending subscription for user {user_id}")
    return 1


def to_public_view(item: Optional[dict]) -> Optional[dict]:
    """Client-facing projection of a subscription item."""
    if not item:
        return None
    return {field: item.get(field) for field in PUBLIC_FIELDS}
