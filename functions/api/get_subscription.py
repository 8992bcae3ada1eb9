"""
Get Subscription Endpoint - GET /subscription

Returns the caller's subscription and whether it currently grants access.
"""

import logging

from shared.auth import require_identity
from shared.errors import APIError, InternalError
from shared.logging_utils import configure_structured_logging, set_request_id
from shared.response_utils import error_response, get_http_method, get_origin, success_response
from shared.subscriptions import get_subscription_by_user, to_public_view

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)


def handler(event, context):
    """
    Lambda handler for GET /subscription.

    Returns:
    {
        "subscription": {...} | null,
        "has_access": true | false
    }
    """
    configure_structured_logging()
    set_request_id(event)
    origin = get_origin(event)

    if get_http_method(event) != "GET":
        return error_response(405, "method_not_allowed", "Method not allowed", origin=origin)

    try:
        identity = require_identity(event)
        subscription = get_subscription_by_user(identity["id"])
    except APIError as e:
        return e.to_response(origin=origin)
    except Exception as e:
        logger.error(f"Error loading subscription: {e}", exc_info=True)
        return InternalError().to_response(origin=origin)

    return success_response(
        {
            "subscription": to_public_view(subscription),
            "has_access": bool(subscription and subscription.get("is_active")),
        },
        origin=origin,
    )
