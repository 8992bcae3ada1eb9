"""Append-only webhook anomaly trail for operator review."""

import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from botocore.exceptions import ClientError

from shared.aws_clients import get_dynamodb
from shared.constants import WEBHOOK_ANOMALIES_TABLE

logger = logging.getLogger(__name__)


def record_anomaly(
    event_id: str,
    anomaly_type: str,
    expected_value: Any = None,
    received_value: Any = None,
    details: Optional[dict] = None,
) -> bool:
    """Append one anomaly record (best-effort).

    Anomalies never block or alter reconciliation, so write failures are
    logged and reported through the return value only.
    """
    now = datetime.now(timezone.utc).isoformat()
    item = {
        "pk": event_id,
        "sk": f"{anomaly_type}#{uuid.uuid4().hex}",
        "event_id": event_id,
        "anomaly_type": anomaly_type,
        "expected_value": expected_value,
        "received_value": received_value,
        "details": json.dumps({**(details or {}), "timestamp": now}, default=str),
        "created_at": now,
    }

    try:
        get_dynamodb().Table(WEBHOOK_ANOMALIES_TABLE).put_item(Item=item)
    except ClientError as e:
        logger.error(f"Failed to record {anomaly_type} anomaly for event {event_id}: {e}")
        return False

    return True
