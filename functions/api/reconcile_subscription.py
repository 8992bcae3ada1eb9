"""
Subscription Reconciliation Endpoint - POST /subscription/reconcile

Called by the client after checkout returns. Activates a paid subscription
that was stored before it could be associated with the user.
"""

import logging

from shared.auth import require_identity
from shared.errors import APIError, InternalError, MethodNotAllowedError
from shared.logging_utils import configure_structured_logging, set_request_id
from shared.response_utils import get_http_method, get_origin, preflight_response, success_response
from shared.subscriptions import promote_pending

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)


def handler(event, context):
    """
    Lambda handler for POST /subscription/reconcile.

    Returns:
    {
        "success": true,
        "activated": 0 | 1,
        "message": "..."
    }
    """
    configure_structured_logging()
    set_request_id(event)
    origin = get_origin(event)

    method = get_http_method(event)
    if method == "OPTIONS":
        return preflight_response(origin)

    try:
        if method != "POST":
            raise MethodNotAllowedError(method)

        identity = require_identity(event)
        user_id = identity["id"]

        activated = promote_pending(user_id)
    except APIError as e:
        return e.to_response(origin=origin)
    except Exception as e:
        logger.error(f"Subscription reconciliation failed: {e}", exc_info=True)
        return InternalError().to_response(origin=origin)

    if activated:
        message = f"Activated {activated} subscription(s)"
    else:
        message = "No pending subscriptions to activate"
    logger.info(f"Reconciled subscriptions for user {user_id}: activated={activated}")

    return success_response(
        {"success": True, "activated": activated, "message": message},
        origin=origin,
    )
