"""
Typed views of the Stripe events this system reconciles.

parse_event() maps a verified Stripe event onto a closed set of variants.
Every type outside that set becomes UnhandledEvent, which the dispatcher
acknowledges without action.
"""

from dataclasses import dataclass
from typing import Optional, Union


@dataclass(frozen=True)
class CheckoutCompleted:
    event_id: str
    session_id: Optional[str]
    customer_id: Optional[str]
    client_reference_id: Optional[str]
    customer_email: Optional[str]
    price_id: Optional[str]
    amount_total: Optional[int]
    currency: Optional[str]
    mode: Optional[str]
    subscription_id: Optional[str]
    payment_intent_id: Optional[str]


@dataclass(frozen=True)
class SubscriptionUpdated:
    event_id: str
    subscription_id: str
    status: str
    period_start: Optional[int]
    period_end: Optional[int]


@dataclass(frozen=True)
class SubscriptionDeleted:
    event_id: str
    subscription_id: str


@dataclass(frozen=True)
class InvoicePaid:
    event_id: str
    invoice_id: Optional[str]
    subscription_id: Optional[str]


@dataclass(frozen=True)
class InvoicePaymentFailed:
    event_id: str
    invoice_id: Optional[str]
    subscription_id: Optional[str]
    attempt_count: int


@dataclass(frozen=True)
class UnhandledEvent:
    event_id: str
    event_type: str


BillingEvent = Union[
    CheckoutCompleted,
    SubscriptionUpdated,
    SubscriptionDeleted,
    InvoicePaid,
    InvoicePaymentFailed,
    UnhandledEvent,
]


def _id_of(value) -> Optional[str]:
    """Stripe fields may hold an ID or an expanded object."""
    if isinstance(value, dict):
        return value.get("id")
    return value or None


def _embedded_price_id(session: dict) -> Optional[str]:
    """Price ID from expanded line items, when Stripe included them."""
    line_items = (session.get("line_items") or {}).get("data") or []
    if not line_items:
        return None
    return _id_of((line_items[0] or {}).get("price"))


def _subscription_period(subscription: dict) -> tuple[Optional[int], Optional[int]]:
    """Current period bounds.

    Newer API versions carry them on the subscription item, older ones on
    the subscription itself.
    """
    items = (subscription.get("items") or {}).get("data") or []
    if items:
        item = items[0] or {}
        if item.get("current_period_start") or item.get("current_period_end"):
            return item.get("current_period_start"), item.get("current_period_end")
    return subscription.get("current_period_start"), subscription.get("current_period_end")


def _invoice_subscription_id(invoice: dict) -> Optional[str]:
    subscription_id = _id_of(invoice.get("subscription"))
    if subscription_id:
        return subscription_id
    details = (invoice.get("parent") or {}).get("subscription_details") or {}
    return _id_of(details.get("subscription"))


def _parse_checkout(event_id: str, session: dict) -> CheckoutCompleted:
    customer_details = session.get("customer_details") or {}
    return CheckoutCompleted(
        event_id=event_id,
        session_id=session.get("id"),
        customer_id=_id_of(session.get("customer")),
        client_reference_id=session.get("client_reference_id") or None,
        customer_email=customer_details.get("email") or session.get("customer_email"),
        price_id=_embedded_price_id(session),
        amount_total=session.get("amount_total"),
        currency=session.get("currency"),
        mode=session.get("mode"),
        subscription_id=_id_of(session.get("subscription")),
        payment_intent_id=_id_of(session.get("payment_intent")),
    )


def _parse_subscription_updated(event_id: str, subscription: dict) -> SubscriptionUpdated:
    period_start, period_end = _subscription_period(subscription)
    return SubscriptionUpdated(
        event_id=event_id,
        subscription_id=subscription["id"],
        status=subscription["status"],
        period_start=period_start,
        period_end=period_end,
    )


def _parse_subscription_deleted(event_id: str, subscription: dict) -> SubscriptionDeleted:
    return SubscriptionDeleted(event_id=event_id, subscription_id=subscription["id"])


def _parse_invoice_paid(event_id: str, invoice: dict) -> InvoicePaid:
    return InvoicePaid(
        event_id=event_id,
        invoice_id=invoice.get("id"),
        subscription_id=_invoice_subscription_id(invoice),
    )


def _parse_invoice_payment_failed(event_id: str, invoice: dict) -> InvoicePaymentFailed:
    return InvoicePaymentFailed(
        event_id=event_id,
        invoice_id=invoice.get("id"),
        subscription_id=_invoice_subscription_id(invoice),
        attempt_count=invoice.get("attempt_count") or 1,
    )


_PARSERS = {
    "checkout.session.completed": _parse_checkout,
    "customer.subscription.updated": _parse_subscription_updated,
    "customer.subscription.deleted": _parse_subscription_deleted,
    "invoice.paid": _parse_invoice_paid,
    "invoice.payment_failed": _parse_invoice_payment_failed,
}


def parse_event(event: dict) -> BillingEvent:
    """Map a verified Stripe event (plain dict) onto its variant.

    Raises:
        KeyError: if a handled event type lacks a required field
    """
    event_id = event["id"]
    event_type = event["type"]
    parser = _PARSERS.get(event_type)
    if parser is None:
        return UnhandledEvent(event_id=event_id, event_type=event_type)
    return parser(event_id, event["data"]["object"])
