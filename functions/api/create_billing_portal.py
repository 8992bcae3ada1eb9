"""
Create Billing Portal Session Endpoint - POST /billing-portal/create

Creates a Stripe Billing Portal session for subscription management.
Requires a bearer identity token and an existing subscription.
"""

import json
import logging

import stripe

from shared.auth import require_identity
from shared.billing_utils import get_stripe_api_key
from shared.errors import APIError, InvalidRequestError
from shared.logging_utils import configure_structured_logging, set_request_id
from shared.response_utils import error_response, get_http_method, get_origin, success_response
from shared.subscriptions import get_subscription_by_user

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)


def handler(event, context):
    """
    Lambda handler for POST /billing-portal/create.

    Request body:
    {
        "returnUrl": "https://..."
    }

    Returns:
    {
        "url": "https://billing.stripe.com/..."
    }
    """
    configure_structured_logging()
    set_request_id(event)
    origin = get_origin(event)

    if get_http_method(event) != "POST":
        return error_response(405, "method_not_allowed", "Method not allowed", origin=origin)

    try:
        identity = require_identity(event)
    except APIError as e:
        return e.to_response(origin=origin)

    try:
        body = json.loads(event.get("body") or "{}")
    except json.JSONDecodeError:
        return error_response(400, "invalid_json", "Request body must be valid JSON", origin=origin)

    return_url = body.get("returnUrl") if isinstance(body, dict) else None
    if not return_url:
        return InvalidRequestError("Return URL is required", code="missing_return_url").to_response(origin=origin)

    user_id = identity["id"]

    try:
        subscription = get_subscription_by_user(user_id)
        if not subscription:
            return error_response(
                400,
                "no_subscription",
                "No billing account yet. Purchase a plan first.",
                origin=origin,
            )

        stripe_customer_id = subscription.get("stripe_customer_id")
        if not stripe_customer_id:
            return error_response(
                400,
                "no_customer",
                "No Stripe customer found. Please contact support.",
                origin=origin,
            )

        stripe_api_key = get_stripe_api_key()
        if not stripe_api_key:
            logger.error("Stripe API key not configured")
            return error_response(
                500, "stripe_not_configured", "Payment system not configured", origin=origin
            )

        stripe.api_key = stripe_api_key

        portal_session = stripe.billing_portal.Session.create(
            customer=stripe_customer_id,
            return_url=return_url,
        )

        logger.info(f"Created billing portal session for user {user_id}")

        return success_response({"url": portal_session.url}, origin=origin)

    except stripe.StripeError as e:
        logger.error(f"Stripe error creating billing portal session: {e}")
        return error_response(
            500, "stripe_error", "Failed to create billing portal session", origin=origin
        )
    except Exception as e:
        logger.error(f"Error creating billing portal session: {e}", exc_info=True)
        return error_response(500, "internal_error", "An error occurred", origin=origin)
