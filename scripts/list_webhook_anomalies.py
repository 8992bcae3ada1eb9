#!/usr/bin/env python3
"""
List recorded webhook anomalies (unknown price IDs, amount mismatches).

Anomalies are written by the Stripe webhook and never read by it; this is
the operator's view of the trail.

Usage:
    # Everything
    python scripts/list_webhook_anomalies.py

    # One anomaly type since a date (uses the anomaly-type index)
    python scripts/list_webhook_anomalies.py --type price_mismatch --since 2026-01-01

    # Machine-readable output
    python scripts/list_webhook_anomalies.py --json
"""

import argparse
import json
import os
import sys

from boto3.dynamodb.conditions import Attr, Key

# Add functions directory to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "../functions"))

from shared.aws_clients import get_dynamodb  # noqa: E402
from shared.constants import (  # noqa: E402
    ANOMALY_PRICE_MISMATCH,
    ANOMALY_TYPE_INDEX,
    ANOMALY_UNKNOWN_PRICE_ID,
    WEBHOOK_ANOMALIES_TABLE,
)
from shared.response_utils import decimal_default  # noqa: E402

ANOMALY_TYPES = (ANOMALY_UNKNOWN_PRICE_ID, ANOMALY_PRICE_MISMATCH)


def fetch_anomalies(anomaly_type=None, since=None):
    """Collect anomalies, newest first.

    With a type, queries the anomaly-type index; otherwise scans the table.
    `since` is an ISO-8601 prefix compared against created_at.
    """
    table = get_dynamodb().Table(WEBHOOK_ANOMALIES_TABLE)

    if anomaly_type:
        key_condition = Key("anomaly_type").eq(anomaly_type)
        if since:
            key_condition = key_condition & Key("created_at").gte(since)
        request = {"IndexName": ANOMALY_TYPE_INDEX, "KeyConditionExpression": key_condition}
        operation = table.query
    else:
        request = {}
        if since:
            request["FilterExpression"] = Attr("created_at").gte(since)
        operation = table.scan

    items = []
    while True:
        response = operation(**request)
        items.extend(response.get("Items", []))
        if "LastEvaluatedKey" not in response:
            break
        request["ExclusiveStartKey"] = response["LastEvaluatedKey"]

    items.sort(key=lambda item: item.get("created_at", ""), reverse=True)
    return items


def _value(item, key):
    # Absent values may be stored as NULL attributes
    value = item.get(key)
    return "-" if value is None else value


def format_anomaly(item):
    line = (
        f"{item.get('created_at', '?')}  {item.get('anomaly_type', '?'):<17} "
        f"event={item.get('event_id', '?')} "
        f"expected={_value(item, 'expected_value')} received={_value(item, 'received_value')}"
    )
    details = item.get("details")
    if details:
        line += f"\n    {details}"
    return line


def main(argv=None):
    parser = argparse.ArgumentParser(description="List recorded webhook anomalies")
    parser.add_argument("--type", dest="anomaly_type", choices=ANOMALY_TYPES, help="Only this anomaly type")
    parser.add_argument("--since", help="Only anomalies created at or after this ISO-8601 date")
    parser.add_argument("--json", action="store_true", help="Print raw items as JSON")
    args = parser.parse_args(argv)

    anomalies = fetch_anomalies(args.anomaly_type, args.since)

    if args.json:
        print(json.dumps(anomalies, indent=2, default=decimal_default))
        return 0

    if not anomalies:
        print("No anomalies recorded.")
        return 0

    for item in anomalies:
        print(format_anomaly(item))
    print(f"\n{len(anomalies)} anomalies")
    return 0


if __name__ == "__main__":
    sys.exit(main())
