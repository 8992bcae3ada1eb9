"""
Shared constants for Transformer billing.
"""

import os

# DynamoDB tables
SUBSCRIPTIONS_TABLE = os.environ.get("SUBSCRIPTIONS_TABLE", "transformer-subscriptions")
PROCESSED_WEBHOOKS_TABLE = os.environ.get("PROCESSED_WEBHOOKS_TABLE", "transformer-processed-webhooks")
WEBHOOK_ANOMALIES_TABLE = os.environ.get("WEBHOOK_ANOMALIES_TABLE", "transformer-webhook-anomalies")
USERS_TABLE = os.environ.get("USERS_TABLE", "transformer-users")

# GSIs
EMAIL_INDEX = "email-index"
STRIPE_SUBSCRIPTION_INDEX = "stripe-subscription-index"
ANOMALY_TYPE_INDEX = "anomaly-type-index"

BASE_URL = os.environ.get("BASE_URL", "https://transformer.social")

# Subscription statuses written by this system. Stripe-reported statuses
# (e.g. "trialing", "unpaid") are stored verbatim by subscription updates.
STATUS_ACTIVE = "active"
STATUS_CANCELED = "canceled"
# Legacy transitional state: paid but not yet associated with a signed-in user
STATUS_PAID = "paid"

INTERVAL_MONTHLY = "monthly"
INTERVAL_YEARLY = "yearly"

PERIOD_DAYS = {
    INTERVAL_MONTHLY: 30,
    INTERVAL_YEARLY: 365,
}

# Anomaly kinds
ANOMALY_UNKNOWN_PRICE_ID = "unknown_price_id"
ANOMALY_PRICE_MISMATCH = "price_mismatch"

# Processed webhook records outlive Stripe's 3-day retry window by a wide margin
PROCESSED_EVENT_TTL_DAYS = 90

# Max accepted JSON body for client-facing endpoints
MAX_REQUEST_BODY_BYTES = 10 * 1024

# Longest a webhook invocation waits for detached side effects before
# returning; Lambda freezes the sandbox once the handler returns
DETACHED_FLUSH_SECONDS = 5.0
