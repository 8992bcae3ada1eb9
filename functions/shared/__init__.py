# Shared utilities package
from .errors import APIError
from .idempotency import record_event, release_event
from .response_utils import error_response, success_response
from .subscriptions import get_subscription_by_user

__all__ = [
    "record_event",
    "release_event",
    "get_subscription_by_user",
    "error_response",
    "success_response",
    "APIError",
]
