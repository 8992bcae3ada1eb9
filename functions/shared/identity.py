"""
Identity resolution for payment events.

Maps a Stripe customer to an internal user. An explicit client reference
(set at checkout when the buyer was signed in) always wins; otherwise the
customer email is looked up, and a new identity is created when none exists.
"""

import logging
import secrets
from datetime import datetime, timezone
from typing import Optional

from boto3.dynamodb.conditions import Key
from botocore.exceptions import ClientError

from shared.aws_clients import get_dynamodb
from shared.constants import EMAIL_INDEX, USERS_TABLE

logger = logging.getLogger(__name__)


def _normalize_email(email: str) -> str:
    return email.strip().lower()


def _mask_email(email: str) -> str:
    return f"{email[:3]}***"


def find_identity_by_email(email: str) -> Optional[dict]:
    """Look up an identity by email using the email GSI."""
    if not email:
        return None

    table = get_dynamodb().Table(USERS_TABLE)
    response = table.query(
        IndexName=EMAIL_INDEX,
        KeyConditionExpression=Key("email").eq(_normalize_email(email)),
        Limit=1,
    )
    items = response.get("Items", [])
    if not items:
        return None
    return {"id": items[0]["pk"], "email": items[0].get("email")}


def create_identity(email: str) -> dict:
    """Create a new identity keyed by email.

    Raises:
        ClientError: if the write fails
    """
    table = get_dynamodb().Table(USERS_TABLE)
    user_id = f"user_{secrets.token_hex(8)}"
    normalized = _normalize_email(email)

    table.put_item(
        Item={
            "pk": user_id,
            "email": normalized,
            "created_at": datetime.now(timezone.utc).isoformat(),
            "created_by": "stripe_webhook",
        },
        ConditionExpression="attribute_not_exists(pk)",
    )
    logger.info(f"Created identity {user_id} for {_mask_email(normalized)}")
    return {"id": user_id, "email": normalized}


def resolve_user_id(explicit_user_id: Optional[str], customer_email: Optional[str]) -> Optional[str]:
    """Resolve the internal user for a checkout.

    Returns:
        The user ID, or None when neither the explicit reference nor the
        customer email can produce one.
    """
    if explicit_user_id:
        return explicit_user_id

    if not customer_email:
        logger.error("Cannot resolve user: no client reference and no customer email")
        return None

    existing = find_identity_by_email(customer_email)
    if existing:
        logger.info(f"Resolved user {existing['id']} by email {_mask_email(customer_email)}")
        return existing["id"]

    try:
        return create_identity(customer_email)["id"]
    except ClientError as e:
        logger.error(f"Failed to create identity for {_mask_email(customer_email)}: {e}")
        return None
