"""
Create Checkout Session Endpoint - POST /checkout/create

Creates a Stripe Checkout session for one of the configured plans.
Authentication is optional: a valid bearer token links the session to the
user through client_reference_id, anonymous buyers are matched by email
when the webhook arrives.
"""

import json
import logging

import stripe

from shared.auth import get_bearer_token, verify_identity_token
from shared.billing_utils import get_stripe_api_key
from shared.config import load_billing_config
from shared.constants import MAX_REQUEST_BODY_BYTES
from shared.logging_utils import configure_structured_logging, set_request_id
from shared.response_utils import error_response, get_http_method, get_origin, success_response

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

CHECKOUT_MODES = ("payment", "subscription")


def _existing_customer_id(email: str):
    """Reuse a Stripe customer already registered for this email."""
    customers = stripe.Customer.list(email=email, limit=1)
    data = getattr(customers, "data", None) or []
    return data[0].id if data else None


def handler(event, context):
    """
    Lambda handler for POST /checkout/create.

    Request body:
    {
        "priceId": "price_...",
        "mode": "payment" | "subscription",
        "successUrl": "https://...",
        "cancelUrl": "https://..."
    }

    Returns:
    {
        "url": "https://checkout.stripe.com/..."
    }
    """
    configure_structured_logging()
    set_request_id(event)
    origin = get_origin(event)

    if get_http_method(event) != "POST":
        return error_response(405, "method_not_allowed", "Method not allowed", origin=origin)

    raw_body = event.get("body") or "{}"
    if len(raw_body.encode("utf-8")) > MAX_REQUEST_BODY_BYTES:
        return error_response(413, "payload_too_large", "Request body too large", origin=origin)

    try:
        body = json.loads(raw_body)
    except json.JSONDecodeError:
        return error_response(400, "invalid_json", "Request body must be valid JSON", origin=origin)
    if not isinstance(body, dict):
        return error_response(400, "invalid_json", "Request body must be a JSON object", origin=origin)

    price_id = body.get("priceId")
    mode = body.get("mode") or "payment"
    success_url = body.get("successUrl")
    cancel_url = body.get("cancelUrl")

    if not price_id:
        return error_response(400, "missing_price", "Price ID is required", origin=origin)
    if not success_url or not cancel_url:
        return error_response(
            400, "missing_redirect_urls", "Success and cancel URLs are required", origin=origin
        )
    if mode not in CHECKOUT_MODES:
        return error_response(
            400, "invalid_mode", 'Mode must be either "payment" or "subscription"', origin=origin
        )

    try:
        config = load_billing_config()
    except ValueError as e:
        logger.error(f"Invalid billing configuration: {e}")
        return error_response(500, "billing_not_configured", "Billing not configured", origin=origin)

    if price_id not in config.known_price_ids:
        return error_response(400, "invalid_price", "Unknown price ID", origin=origin)

    stripe_api_key = get_stripe_api_key()
    if not stripe_api_key:
        logger.error("Stripe API key not configured")
        return error_response(
            500, "stripe_not_configured", "Payment system not configured", origin=origin
        )
    stripe.api_key = stripe_api_key

    # An invalid token falls back to an anonymous checkout
    identity = None
    token = get_bearer_token(event.get("headers"))
    if token:
        identity = verify_identity_token(token)
        if not identity:
            logger.info("Ignoring invalid token on checkout, continuing anonymously")

    try:
        checkout_params = {
            "mode": mode,
            "allow_promotion_codes": True,
            "line_items": [{"price": price_id, "quantity": 1}],
            "success_url": success_url,
            "cancel_url": cancel_url,
        }

        if identity:
            checkout_params["client_reference_id"] = identity["id"]

        existing_customer_id = None
        if identity and identity.get("email"):
            existing_customer_id = _existing_customer_id(identity["email"])
            if existing_customer_id:
                checkout_params["customer"] = existing_customer_id
            else:
                checkout_params["customer_email"] = identity["email"]
        else:
            checkout_params["tax_id_collection"] = {"enabled": True}

        if mode == "payment":
            if not existing_customer_id:
                checkout_params["customer_creation"] = "always"
            checkout_params["payment_intent_data"] = {"setup_future_usage": "on_session"}

        session = stripe.checkout.Session.create(**checkout_params)

        logger.info(
            f"Created checkout session ({mode})",
            extra={"price_id": price_id, "user_id": identity["id"] if identity else None},
        )

        return success_response({"url": session.url}, origin=origin)

    except stripe.StripeError as e:
        logger.error(f"Stripe error creating checkout session: {e}")
        return error_response(
            500, "stripe_error", "Failed to create checkout session", origin=origin
        )
    except Exception as e:
        logger.error(f"Error creating checkout session: {e}", exc_info=True)
        return error_response(500, "internal_error", "An error occurred", origin=origin)
