"""
Shared pytest fixtures for Transformer billing tests.
"""

import base64
import hashlib
import hmac
import json
import os
import sys
import time

import boto3
import pytest
from moto import mock_aws

# Add functions directory to Python path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "functions"))

WEBHOOK_SECRET = "whsec_test_secret_key"
STRIPE_API_KEY = "sk_test_123"
SESSION_SECRET = "test-session-secret"

MONTHLY_PRICE_ID = "price_monthly_test"
YEARLY_PRICE_ID = "price_yearly_test"


def pytest_configure(config):
    """Set AWS credentials before test collection.

    This runs before test collection starts, ensuring boto3 resource
    creation during imports doesn't fail with NoRegionError.
    """
    os.environ.setdefault("AWS_ACCESS_KEY_ID", "testing")
    os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "testing")
    os.environ.setdefault("AWS_DEFAULT_REGION", "us-east-1")
    os.environ.setdefault("AWS_REGION", "us-east-1")


@pytest.fixture(autouse=True)
def aws_credentials():
    """Set fake AWS credentials for all tests."""
    os.environ["AWS_ACCESS_KEY_ID"] = "testing"
    os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
    os.environ["AWS_DEFAULT_REGION"] = "us-east-1"
    os.environ["AWS_REGION"] = "us-east-1"


@pytest.fixture(autouse=True)
def reset_aws_clients():
    """Reset shared AWS client singletons between tests."""
    from shared.aws_clients import reset_clients

    reset_clients()
    yield
    reset_clients()


@pytest.fixture(autouse=True)
def reset_secret_caches():
    """Reset cached Stripe and session secrets between tests to prevent pollution."""
    from shared.auth import reset_session_secret_cache
    from shared.billing_utils import reset_secret_cache

    reset_secret_cache()
    reset_session_secret_cache()
    yield
    reset_secret_cache()
    reset_session_secret_cache()


@pytest.fixture(autouse=True)
def billing_env(monkeypatch):
    """Canonical price table used across tests."""
    monkeypatch.setenv("STRIPE_MONTHLY_PRICE_ID", MONTHLY_PRICE_ID)
    monkeypatch.setenv("STRIPE_YEARLY_PRICE_ID", YEARLY_PRICE_ID)
    monkeypatch.setenv("MONTHLY_PRICE_CENTS", "2900")
    monkeypatch.setenv("YEARLY_PRICE_CENTS", "29900")
    monkeypatch.delenv("STRIPE_SECRET_ARN", raising=False)
    monkeypatch.delenv("STRIPE_WEBHOOK_SECRET_ARN", raising=False)
    monkeypatch.delenv("SESSION_SECRET_ARN", raising=False)


def create_dynamodb_tables(dynamodb):
    """Create all DynamoDB tables with their GSIs.

    Args:
        dynamodb: boto3 DynamoDB resource
    """
    dynamodb.create_table(
        TableName="transformer-subscriptions",
        KeySchema=[{"AttributeName": "pk", "KeyType": "HASH"}],
        AttributeDefinitions=[
            {"AttributeName": "pk", "AttributeType": "S"},
            {"AttributeName": "stripe_subscription_id", "AttributeType": "S"},
        ],
        GlobalSecondaryIndexes=[
            {
                "IndexName": "stripe-subscription-index",
                "KeySchema": [{"AttributeName": "stripe_subscription_id", "KeyType": "HASH"}],
                "Projection": {"ProjectionType": "ALL"},
            },
        ],
        BillingMode="PAY_PER_REQUEST",
    )

    dynamodb.create_table(
        TableName="transformer-processed-webhooks",
        KeySchema=[{"AttributeName": "pk", "KeyType": "HASH"}],
        AttributeDefinitions=[{"AttributeName": "pk", "AttributeType": "S"}],
        BillingMode="PAY_PER_REQUEST",
    )

    dynamodb.create_table(
        TableName="transformer-webhook-anomalies",
        KeySchema=[
            {"AttributeName": "pk", "KeyType": "HASH"},
            {"AttributeName": "sk", "KeyType": "RANGE"},
        ],
        AttributeDefinitions=[
            {"AttributeName": "pk", "AttributeType": "S"},
            {"AttributeName": "sk", "AttributeType": "S"},
            {"AttributeName": "anomaly_type", "AttributeType": "S"},
            {"AttributeName": "created_at", "AttributeType": "S"},
        ],
        GlobalSecondaryIndexes=[
            {
                "IndexName": "anomaly-type-index",
                "KeySchema": [
                    {"AttributeName": "anomaly_type", "KeyType": "HASH"},
                    {"AttributeName": "created_at", "KeyType": "RANGE"},
                ],
                "Projection": {"ProjectionType": "ALL"},
            },
        ],
        BillingMode="PAY_PER_REQUEST",
    )

    dynamodb.create_table(
        TableName="transformer-users",
        KeySchema=[{"AttributeName": "pk", "KeyType": "HASH"}],
        AttributeDefinitions=[
            {"AttributeName": "pk", "AttributeType": "S"},
            {"AttributeName": "email", "AttributeType": "S"},
        ],
        GlobalSecondaryIndexes=[
            {
                "IndexName": "email-index",
                "KeySchema": [{"AttributeName": "email", "KeyType": "HASH"}],
                "Projection": {"ProjectionType": "ALL"},
            },
        ],
        BillingMode="PAY_PER_REQUEST",
    )


@pytest.fixture
def mock_dynamodb():
    """Provide mocked DynamoDB with tables."""
    with mock_aws():
        dynamodb = boto3.resource("dynamodb", region_name="us-east-1")
        create_dynamodb_tables(dynamodb)
        yield dynamodb


@pytest.fixture
def stripe_secrets(mock_dynamodb, monkeypatch):
    """Stripe API key (JSON secret) and webhook secret (plain text) in Secrets Manager."""
    sm = boto3.client("secretsmanager", region_name="us-east-1")
    api_key = sm.create_secret(Name="stripe-api-key", SecretString=json.dumps({"key": STRIPE_API_KEY}))
    webhook = sm.create_secret(Name="stripe-webhook-secret", SecretString=WEBHOOK_SECRET)
    monkeypatch.setenv("STRIPE_SECRET_ARN", api_key["ARN"])
    monkeypatch.setenv("STRIPE_WEBHOOK_SECRET_ARN", webhook["ARN"])
    return {"api_key": STRIPE_API_KEY, "webhook_secret": WEBHOOK_SECRET}


@pytest.fixture
def session_secret(mock_dynamodb, monkeypatch):
    """Identity-token signing secret in Secrets Manager."""
    sm = boto3.client("secretsmanager", region_name="us-east-1")
    secret = sm.create_secret(Name="session-secret", SecretString=json.dumps({"secret": SESSION_SECRET}))
    monkeypatch.setenv("SESSION_SECRET_ARN", secret["ARN"])
    return SESSION_SECRET


@pytest.fixture
def billing_config():
    """Fixture price table injected into the integrity checker."""
    from shared.config import BillingConfig

    return BillingConfig(monthly_price_id=MONTHLY_PRICE_ID, yearly_price_id=YEARLY_PRICE_ID)


@pytest.fixture
def api_gateway_event():
    """Base API Gateway event for Lambda handler tests."""
    return {
        "httpMethod": "GET",
        "headers": {},
        "pathParameters": {},
        "queryStringParameters": {},
        "body": None,
        "requestContext": {
            "requestId": "test-request-id",
            "identity": {"sourceIp": "127.0.0.1"},
        },
    }


def sign_stripe_payload(payload: str, secret: str = WEBHOOK_SECRET, timestamp: int | None = None) -> str:
    """Build a Stripe-Signature header the way Stripe does."""
    timestamp = int(time.time()) if timestamp is None else timestamp
    signature = hmac.new(
        secret.encode("utf-8"), f"{timestamp}.{payload}".encode("utf-8"), hashlib.sha256
    ).hexdigest()
    return f"t={timestamp},v1={signature}"


def make_identity_token(
    user_id: str,
    email: str = "user@example.com",
    secret: str = SESSION_SECRET,
    expires_in: int = 3600,
) -> str:
    """Mint an identity token as the auth service would."""
    from shared.auth import _sign

    claims = {"user_id": user_id, "email": email, "exp": int(time.time()) + expires_in}
    payload = base64.urlsafe_b64encode(json.dumps(claims).encode()).decode()
    return f"{payload}.{_sign(payload, secret)}"


def make_stripe_event(event_type: str, data_object: dict, event_id: str = "evt_test_123") -> dict:
    return {
        "id": event_id,
        "object": "event",
        "type": event_type,
        "created": int(time.time()),
        "data": {"object": data_object},
    }
