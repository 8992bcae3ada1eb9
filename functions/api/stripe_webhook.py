"""
Stripe Webhook Endpoint - POST /webhooks/stripe

Reconciles Stripe billing events into the per-user subscription record.
Uses Stripe signature verification instead of user authentication.

Handles:
- checkout.session.completed: resolve user, validate price, activate subscription
- customer.subscription.updated: mirror Stripe status and billing period
- customer.subscription.deleted: cancel subscription
- invoice.paid: confirm renewal
- invoice.payment_failed: logged only, access is kept until Stripe cancels

Any other event type is acknowledged without action.
"""

import base64
import json
import logging
import time
from typing import Callable, Optional

import stripe
from botocore.exceptions import ClientError

from shared import subscriptions
from shared.billing_events import (
    BillingEvent,
    CheckoutCompleted,
    InvoicePaid,
    InvoicePaymentFailed,
    SubscriptionDeleted,
    SubscriptionUpdated,
    UnhandledEvent,
    parse_event,
)
from shared.billing_utils import get_stripe_api_key, get_stripe_webhook_secret
from shared.config import BillingConfig, load_billing_config
from shared.constants import DETACHED_FLUSH_SECONDS
from shared.detached import drain, spawn
from shared.identity import resolve_user_id
from shared.idempotency import record_event, release_event
from shared.logging_utils import configure_structured_logging, log_external_call, set_request_id
from shared.notifications import send_welcome_email
from shared.price_integrity import PriceIntegrityChecker
from shared.response_utils import error_response, get_http_method, success_response

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)


def _raw_body(event: dict) -> str:
    """Raw request body exactly as signed by Stripe."""
    body = event.get("body") or ""
    if event.get("isBase64Encoded"):
        body = base64.b64decode(body).decode("utf-8")
    return body


def _signature_header(event: dict) -> Optional[str]:
    headers = event.get("headers") or {}
    return headers.get("stripe-signature") or headers.get("Stripe-Signature")


def _verify_event(payload: str, sig_header: str, secret: str, tolerance: int) -> dict:
    """Verify the Stripe signature and return the event as a plain dict.

    Raises:
        stripe.SignatureVerificationError: bad signature or timestamp outside tolerance
        ValueError: payload is not valid JSON
    """
    stripe.Webhook.construct_event(payload, sig_header, secret, tolerance=tolerance)
    return json.loads(payload)


def _call_stripe(operation: str, fn: Callable, *args, **kwargs):
    """Invoke a Stripe API method with timing and outcome logging."""
    start = time.monotonic()
    try:
        result = fn(*args, **kwargs)
    except stripe.StripeError as e:
        log_external_call(logger, "stripe", operation, False, (time.monotonic() - start) * 1000, str(e))
        raise
    log_external_call(logger, "stripe", operation, True, (time.monotonic() - start) * 1000)
    return result


def _fetch_price_id(session_id: Optional[str]) -> Optional[str]:
    """Price of the first line item, for sessions delivered without line items."""
    if not session_id:
        return None
    line_items = _call_stripe(
        "checkout.Session.list_line_items", stripe.checkout.Session.list_line_items, session_id, limit=1
    )
    data = getattr(line_items, "data", None) or []
    if not data:
        return None
    price = getattr(data[0], "price", None)
    return getattr(price, "id", None)


def _fetch_customer_email(customer_id: str) -> Optional[str]:
    customer = _call_stripe("Customer.retrieve", stripe.Customer.retrieve, customer_id)
    if getattr(customer, "deleted", False):
        return None
    return getattr(customer, "email", None)


# ===========================================
# Event handlers
# ===========================================


def _handle_checkout_completed(checkout: CheckoutCompleted, config: BillingConfig):
    """Activate the buyer's subscription after a completed checkout."""
    if not checkout.customer_id:
        logger.error(f"Missing customer in checkout session {checkout.session_id}")
        return

    price_id = checkout.price_id or _fetch_price_id(checkout.session_id)
    if not price_id or not checkout.amount_total:
        logger.error(
            "Missing required session data",
            extra={
                "session_id": checkout.session_id,
                "customer_id": checkout.customer_id,
                "price_id": price_id,
                "amount": checkout.amount_total,
            },
        )
        return

    customer_email = _fetch_customer_email(checkout.customer_id) or checkout.customer_email

    user_id = resolve_user_id(checkout.client_reference_id, customer_email)
    if not user_id:
        # Acknowledged without effect; needs manual reconciliation
        logger.error(
            f"Unable to determine user ID for checkout session {checkout.session_id}",
            extra={"event_id": checkout.event_id, "customer_id": checkout.customer_id},
        )
        return

    plan = PriceIntegrityChecker(config).check(
        price_id,
        checkout.amount_total,
        checkout.mode,
        checkout.event_id,
        context={"session_id": checkout.session_id, "customer_id": checkout.customer_id},
    )

    currency = (checkout.currency or config.default_currency).lower()
    subscriptions.activate_from_checkout(
        user_id,
        customer_id=checkout.customer_id,
        plan=plan,
        price_id=price_id,
        currency=currency,
        subscription_id=checkout.subscription_id,
        payment_intent_id=checkout.payment_intent_id,
    )
    logger.info(f"Subscription activated for user {user_id}")

    spawn(
        "welcome_email",
        send_welcome_email,
        customer_email or "",
        checkout.amount_total,
        currency,
        plan.interval,
    )


def _handle_subscription_updated(update: SubscriptionUpdated, config: BillingConfig):
    subscriptions.apply_subscription_update(
        update.subscription_id,
        update.status,
        period_start=update.period_start,
        period_end=update.period_end,
    )


def _handle_subscription_deleted(deletion: SubscriptionDeleted, config: BillingConfig):
    subscriptions.cancel_subscription(deletion.subscription_id)


def _handle_invoice_paid(invoice: InvoicePaid, config: BillingConfig):
    if not invoice.subscription_id:
        logger.info(f"Invoice {invoice.invoice_id} paid without subscription, nothing to renew")
        return
    subscriptions.confirm_renewal(invoice.subscription_id)


def _handle_payment_failed(invoice: InvoicePaymentFailed, config: BillingConfig):
    """Log only: a single failed payment does not revoke access."""
    logger.warning(
        f"Payment failed for subscription {invoice.subscription_id} "
        f"(invoice {invoice.invoice_id}, attempt {invoice.attempt_count})"
    )


def _handle_unhandled(event: UnhandledEvent, config: BillingConfig):
    logger.info(f"Unhandled event type: {event.event_type}")


EVENT_HANDLERS: dict[type, Callable[[BillingEvent, BillingConfig], None]] = {
    CheckoutCompleted: _handle_checkout_completed,
    SubscriptionUpdated: _handle_subscription_updated,
    SubscriptionDeleted: _handle_subscription_deleted,
    InvoicePaid: _handle_invoice_paid,
    InvoicePaymentFailed: _handle_payment_failed,
}


def dispatch(billing_event: BillingEvent, config: BillingConfig) -> None:
    """Route a parsed event to its handler; unknown variants are no-ops."""
    handle = EVENT_HANDLERS.get(type(billing_event), _handle_unhandled)
    handle(billing_event, config)


def handler(event, context):
    """Lambda handler for Stripe webhooks."""
    configure_structured_logging()
    set_request_id(event)

    method = get_http_method(event)
    if method != "POST":
        return error_response(405, "method_not_allowed", "Method not allowed")

    stripe_api_key = get_stripe_api_key()
    webhook_secret = get_stripe_webhook_secret()
    if not stripe_api_key or not webhook_secret:
        logger.error("Stripe secrets not configured")
        return error_response(500, "stripe_not_configured", "Stripe not configured")

    try:
        config = load_billing_config()
    except ValueError as e:
        logger.error(f"Invalid billing configuration: {e}")
        return error_response(500, "billing_not_configured", "Billing not configured")

    stripe.api_key = stripe_api_key

    sig_header = _signature_header(event)
    if not sig_header:
        logger.warning("Missing Stripe signature")
        return error_response(400, "missing_signature", "Missing Stripe signature")

    try:
        payload = _raw_body(event)
        stripe_event = _verify_event(payload, sig_header, webhook_secret, config.webhook_tolerance_seconds)
    except stripe.SignatureVerificationError as e:
        logger.warning(f"Invalid Stripe signature: {e}")
        return error_response(400, "invalid_signature", "Invalid signature")
    except (ValueError, UnicodeDecodeError) as e:
        logger.error(f"Webhook payload error: {e}")
        return error_response(400, "invalid_webhook_payload", "Invalid webhook payload")

    event_id = stripe_event.get("id")
    event_type = stripe_event.get("type")
    if not event_id or not event_type:
        logger.error("Webhook payload missing event id or type")
        return error_response(400, "invalid_webhook_payload", "Invalid webhook payload")

    ledger = record_event(event_id, event_type)
    if ledger.duplicate:
        logger.info(f"Duplicate webhook event {event_id}, skipping")
        return success_response({"received": True, "duplicate": True})

    logger.info(f"Processing Stripe event: {event_type} (id={event_id})")

    try:
        dispatch(parse_event(stripe_event), config)
    except ClientError as e:
        _release_if_recorded(ledger.recorded, event_id)
        logger.error(f"Storage error handling {event_type}: {e}")
        return error_response(500, "temporary_error", "Temporary error, please retry")
    except stripe.StripeError as e:
        _release_if_recorded(ledger.recorded, event_id)
        logger.error(f"Stripe error handling {event_type}: {e}")
        return error_response(500, "stripe_error", "Stripe error, please retry")
    except Exception as e:
        _release_if_recorded(ledger.recorded, event_id)
        logger.error(f"Unexpected error handling {event_type}: {e}", exc_info=True)
        return error_response(500, "processing_failed", "Processing failed")

    # Give the welcome email a bounded chance to finish; the outcome never
    # changes the acknowledgement
    if not drain(timeout=DETACHED_FLUSH_SECONDS):
        logger.warning(f"Side effects for {event_id} still running after {DETACHED_FLUSH_SECONDS}s")

    return success_response({"received": True})


def _release_if_recorded(recorded: bool, event_id: str) -> None:
    if recorded:
        release_event(event_id)
