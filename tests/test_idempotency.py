"""
Tests for the processed-webhook ledger.
"""

from unittest.mock import MagicMock, patch

from botocore.exceptions import ClientError


def _client_error(code: str) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, "PutItem")


class TestRecordEvent:
    def test_first_delivery_is_accepted_and_recorded(self, mock_dynamodb):
        from shared.idempotency import record_event

        result = record_event("evt_1", "checkout.session.completed")

        assert result.accepted is True
        assert result.duplicate is False
        assert result.recorded is True

        item = mock_dynamodb.Table("transformer-processed-webhooks").get_item(Key={"pk": "evt_1"})["Item"]
        assert item["event_type"] == "checkout.session.completed"
        assert item["event_id"] == "evt_1"
        assert "processed_at" in item
        assert int(item["ttl"]) > 0

    def test_second_delivery_is_duplicate(self, mock_dynamodb):
        from shared.idempotency import record_event

        record_event("evt_1", "invoice.paid")
        result = record_event("evt_1", "invoice.paid")

        assert result.accepted is False
        assert result.duplicate is True

    def test_distinct_events_are_independent(self, mock_dynamodb):
        from shared.idempotency import record_event

        assert record_event("evt_a", "invoice.paid").accepted
        assert record_event("evt_b", "invoice.paid").accepted

    def test_storage_error_fails_open(self, mock_dynamodb):
        """A non-conditional storage failure must not block processing."""
        from shared.idempotency import record_event

        table = MagicMock()
        table.put_item.side_effect = _client_error("ProvisionedThroughputExceededException")
        dynamodb = MagicMock()
        dynamodb.Table.return_value = table

        with patch("shared.idempotency.get_dynamodb", return_value=dynamodb):
            result = record_event("evt_1", "invoice.paid")

        assert result.accepted is True
        assert result.duplicate is False
        assert result.recorded is False


class TestReleaseEvent:
    def test_released_event_can_be_claimed_again(self, mock_dynamodb):
        from shared.idempotency import record_event, release_event

        record_event("evt_1", "invoice.paid")
        release_event("evt_1")

        assert record_event("evt_1", "invoice.paid").recorded is True

    def test_release_swallows_storage_errors(self, caplog):
        from shared.idempotency import release_event

        table = MagicMock()
        table.delete_item.side_effect = _client_error("InternalServerError")
        dynamodb = MagicMock()
        dynamodb.Table.return_value = table

        with patch("shared.idempotency.get_dynamodb", return_value=dynamodb):
            release_event("evt_1")

        assert "Failed to release webhook event evt_1" in caplog.text
