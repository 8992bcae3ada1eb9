"""Shared billing utilities for Stripe-related operations."""

import json
import logging
import os
import time
from typing import Optional

from botocore.exceptions import ClientError

from shared.aws_clients import get_secretsmanager

logger = logging.getLogger(__name__)

STRIPE_CACHE_TTL = 300  # 5 minutes - allows secret rotation to take effect

# Cached Stripe secrets with TTL
_stripe_api_key_cache: Optional[str] = None
_stripe_api_key_cache_time = 0.0
_webhook_secret_cache: Optional[str] = None
_webhook_secret_cache_time = 0.0


def _read_secret(secret_arn: Optional[str], json_field: str) -> Optional[str]:
    """Read a secret that is stored either as JSON ({json_field: value}) or plain text."""
    if not secret_arn:
        return None

    try:
        response = get_secretsmanager().get_secret_value(SecretId=secret_arn)
    except ClientError as e:
        logger.error(f"Failed to retrieve secret {json_field}: {e}")
        return None

    secret_value = response.get("SecretString", "")
    try:
        secret_json = json.loads(secret_value)
    except json.JSONDecodeError:
        return secret_value or None

    if isinstance(secret_json, dict):
        return secret_json.get(json_field) or None
    return secret_value or None


def get_stripe_api_key() -> Optional[str]:
    """Retrieve Stripe API key from Secrets Manager (cached with TTL)."""
    global _stripe_api_key_cache, _stripe_api_key_cache_time

    if _stripe_api_key_cache and (time.time() - _stripe_api_key_cache_time) < STRIPE_CACHE_TTL:
        return _stripe_api_key_cache

    # Read at runtime to allow tests to set this env var
    api_key = _read_secret(os.environ.get("STRIPE_SECRET_ARN"), "key")
    if api_key:
        _stripe_api_key_cache = api_key
        _stripe_api_key_cache_time = time.time()
    return api_key


def get_stripe_webhook_secret() -> Optional[str]:
    """Retrieve Stripe webhook signing secret from Secrets Manager (cached with TTL)."""
    global _webhook_secret_cache, _webhook_secret_cache_time

    if _webhook_secret_cache and (time.time() - _webhook_secret_cache_time) < STRIPE_CACHE_TTL:
        return _webhook_secret_cache

    secret = _read_secret(os.environ.get("STRIPE_WEBHOOK_SECRET_ARN"), "secret")
    if secret:
        _webhook_secret_cache = secret
        _webhook_secret_cache_time = time.time()
    return secret


def reset_secret_cache() -> None:
    """Forget cached Stripe secrets. Used in tests."""
    global _stripe_api_key_cache, _stripe_api_key_cache_time
    global _webhook_secret_cache, _webhook_secret_cache_time
    _stripe_api_key_cache = None
    _stripe_api_key_cache_time = 0.0
    _webhook_secret_cache = None
    _webhook_secret_cache_time = 0.0
