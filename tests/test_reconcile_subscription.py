"""
Tests for the post-checkout reconciliation endpoint.
"""

import base64
import json

from conftest import SESSION_SECRET, make_identity_token


def _pending(mock_dynamodb, user_id="user_1"):
    mock_dynamodb.Table("transformer-subscriptions").put_item(
        Item={"pk": user_id, "user_id": user_id, "status": "paid", "is_active": False, "stripe_customer_id": "cus_1"}
    )


def _post(api_gateway_event, token=None, origin=None):
    api_gateway_event["httpMethod"] = "POST"
    headers = {}
    if token:
        headers["Authorization"] = f"Bearer {token}"
    if origin:
        headers["Origin"] = origin
    api_gateway_event["headers"] = headers
    return api_gateway_event


class TestReconcileSubscriptionHandler:
    def test_preflight(self, api_gateway_event):
        from api.reconcile_subscription import handler

        api_gateway_event["httpMethod"] = "OPTIONS"
        api_gateway_event["headers"] = {"Origin": "https://transformer.social"}

        result = handler(api_gateway_event, {})

        assert result["statusCode"] == 204
        assert result["headers"]["Access-Control-Allow-Origin"] == "https://transformer.social"

    def test_rejects_get(self, api_gateway_event):
        from api.reconcile_subscription import handler

        result = handler(api_gateway_event, {})

        assert result["statusCode"] == 405
        assert json.loads(result["body"])["error"]["code"] == "method_not_allowed"

    def test_requires_token(self, session_secret, api_gateway_event):
        from api.reconcile_subscription import handler

        result = handler(_post(api_gateway_event), {})

        assert result["statusCode"] == 401
        assert json.loads(result["body"])["error"]["code"] == "unauthorized"

    def test_rejects_invalid_token(self, session_secret, api_gateway_event):
        from api.reconcile_subscription import handler

        result = handler(_post(api_gateway_event, token="forged.token"), {})

        assert result["statusCode"] == 401
        assert json.loads(result["body"])["error"]["code"] == "invalid_token"

    def test_rejects_signed_token_with_string_expiry(self, session_secret, api_gateway_event):
        from api.reconcile_subscription import handler
        from shared.auth import _sign

        claims = {"user_id": "user_1", "email": "a@example.com", "exp": "9999999999"}
        payload = base64.urlsafe_b64encode(json.dumps(claims).encode()).decode()
        token = f"{payload}.{_sign(payload, SESSION_SECRET)}"

        result = handler(_post(api_gateway_event, token=token), {})

        assert result["statusCode"] == 401
        assert json.loads(result["body"])["error"]["code"] == "invalid_token"

    def test_activates_pending_subscription(self, session_secret, mock_dynamodb, api_gateway_event):
        from api.reconcile_subscription import handler

        _pending(mock_dynamodb)

        result = handler(_post(api_gateway_event, make_identity_token("user_1")), {})

        assert result["statusCode"] == 200
        body = json.loads(result["body"])
        assert body["success"] is True
        assert body["activated"] == 1

        item = mock_dynamodb.Table("transformer-subscriptions").get_item(Key={"pk": "user_1"})["Item"]
        assert item["is_active"] is True
        assert item["status"] == "active"
        assert "activated_at" in item

    def test_nothing_pending(self, session_secret, mock_dynamodb, api_gateway_event):
        from api.reconcile_subscription import handler

        result = handler(_post(api_gateway_event, make_identity_token("user_1")), {})

        assert result["statusCode"] == 200
        body = json.loads(result["body"])
        assert body == {"success": True, "activated": 0, "message": "No pending subscriptions to activate"}

    def test_only_callers_own_subscription_is_touched(self, session_secret, mock_dynamodb, api_gateway_event):
        from api.reconcile_subscription import handler

        _pending(mock_dynamodb, "user_other")

        result = handler(_post(api_gateway_event, make_identity_token("user_1")), {})

        assert json.loads(result["body"])["activated"] == 0
        other = mock_dynamodb.Table("transformer-subscriptions").get_item(Key={"pk": "user_other"})["Item"]
        assert other["is_active"] is False

    def test_storage_failure_returns_500(self, session_secret, mock_dynamodb, api_gateway_event):
        from unittest.mock import patch

        from api.reconcile_subscription import handler

        with patch("api.reconcile_subscription.promote_pending", side_effect=RuntimeError("db down")):
            result = handler(_post(api_gateway_event, make_identity_token("user_1")), {})

        assert result["statusCode"] == 500
        assert json.loads(result["body"])["error"]["code"] == "internal_error"
