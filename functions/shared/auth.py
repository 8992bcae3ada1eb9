"""
Identity token verification for client-facing endpoints.

Tokens are issued by the auth service as `<base64url(json)>.<hmac-sha256>`
with `user_id`, `email` and `exp` claims. This module only verifies them.
"""

import base64
import hashlib
import hmac
import json
import logging
import os
import time
from datetime import datetime, timezone
from typing import Optional

from botocore.exceptions import ClientError

from shared.aws_clients import get_secretsmanager
from shared.errors import UnauthorizedError

logger = logging.getLogger(__name__)

# Cached session secret (loaded from Secrets Manager) with TTL
_session_secret_cache: Optional[str] = None
_session_secret_cache_time = 0.0
SESSION_SECRET_CACHE_TTL = 300  # 5 minutes


def _get_session_secret() -> str:
    """Retrieve token signing secret from Secrets Manager (cached with TTL)."""
    global _session_secret_cache, _session_secret_cache_time

    if _session_secret_cache and (time.time() - _session_secret_cache_time) < SESSION_SECRET_CACHE_TTL:
        return _session_secret_cache

    session_secret_arn = os.environ.get("SESSION_SECRET_ARN")
    if not session_secret_arn:
        logger.error("SESSION_SECRET_ARN not configured")
        return ""

    try:
        response = get_secretsmanager().get_secret_value(SecretId=session_secret_arn)
    except ClientError as e:
        logger.error(f"Failed to retrieve session secret: {e}")
        return ""

    secret_string = response["SecretString"]
    try:
        secret_data = json.loads(secret_string)
        secret = secret_data.get("secret", secret_string) if isinstance(secret_data, dict) else secret_string
    except json.JSONDecodeError:
        secret = secret_string

    _session_secret_cache = secret
    _session_secret_cache_time = time.time()
    return secret


def reset_session_secret_cache() -> None:
    global _session_secret_cache, _session_secret_cache_time
    _session_secret_cache = None
    _session_secret_cache_time = 0.0


def _sign(payload: str, secret: str) -> str:
    return hmac.new(secret.encode(), payload.encode(), hashlib.sha256).hexdigest()


def verify_identity_token(token: str) -> Optional[dict]:
    """Verify an identity token.

    Returns:
        {"id": user_id, "email": email} if the token is valid, otherwise None
    """
    secret = _get_session_secret()
    if not secret or not token or "." not in token:
        return None

    try:
        payload, signature = token.rsplit(".", 1)
        if not hmac.compare_digest(signature, _sign(payload, secret)):
            return None

        data = json.loads(base64.urlsafe_b64decode(payload.encode()))
    except (ValueError, TypeError) as e:
        logger.warning(f"Malformed identity token: {e}")
        return None

    if not isinstance(data, dict):
        return None
    exp = data.get("exp")
    if not isinstance(exp, (int, float)) or exp < datetime.now(timezone.utc).timestamp():
        return None
    if not data.get("user_id"):
        return None

    return {"id": data["user_id"], "email": data.get("email")}


def get_bearer_token(headers: Optional[dict]) -> Optional[str]:
    """Extract the token from an `Authorization: Bearer <token>` header."""
    headers = headers or {}
    auth_header = headers.get("Authorization") or headers.get("authorization") or ""
    if not auth_header.startswith("Bearer "):
        return None
    token = auth_header[len("Bearer "):].strip()
    return token or None


def require_identity(event: dict) -> dict:
    """Resolve the calling user or raise UnauthorizedError."""
    token = get_bearer_token(event.get("headers"))
    if not token:
        raise UnauthorizedError()

    identity = verify_identity_token(token)
    if not identity:
        raise UnauthorizedError(code="invalid_token", message="Invalid or expired token")
    return identity
