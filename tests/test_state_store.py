#!/usr/bin/env python3
"""
Tests for the state store adapters.

Run with: pytest tests/test_state_store.py -v
"""
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError, ReadTimeoutError

from src.runtime.errors import StorageError
from src.runtime.interaction import StateRecord
from src.store.state_store import DynamoStateStore, MemoryStateStore


def _client_error(code, operation="PutItem"):
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


# =============================================================================
# TEST: MemoryStateStore
# =============================================================================

class TestMemoryStateStore:

    def test_get_missing(self):
        assert MemoryStateStore().get("nope") is None

    def test_put_get_last_write_wins(self):
        store = MemoryStateStore()
        store.put(StateRecord("a", {"v": 1}))
        store.put(StateRecord("a", {"v": 2}))
        assert store.get("a").attributes == {"v": 2}
        assert store.writes == 2
        print("✓ Last write wins")

    def test_records_are_copies(self):
        store = MemoryStateStore()
        record = StateRecord("a", {"nested": {"x": 1}})
        store.put(record)
        record.attributes["nested"]["x"] = 99
        assert store.get("a").get("nested") == {"x": 1}

    def test_delete_idempotent(self):
        store = MemoryStateStore({"a": {"v": 1}})
        store.delete("a")
        store.delete("a")
        assert store.get("a") is None
        assert len(store) == 0

    def test_put_if_absent(self):
        store = MemoryStateStore()
        assert store.put_if_absent(StateRecord("work#1", {"n": 1})) is True
        assert store.put_if_absent(StateRecord("work#1", {"n": 2})) is False
        assert store.get("work#1").get("n") == 1

    def test_put_if_stale(self):
        store = MemoryStateStore()
        claim = StateRecord("i-1", {"state": "startPending", "ttl": 1300})

        # Missing record
        assert store.put_if_stale(claim, "state", ["stopped"], now=1000) is True
        # Claimed and not expired
        assert store.put_if_stale(claim, "state", ["stopped"], now=1100) is False
        # Claim expired
        assert store.put_if_stale(StateRecord("i-1", {"state": "startPending", "ttl": 1600}),
                                  "state", ["stopped"], now=1300) is True

        store.put(StateRecord("i-1", {"state": "stopped"}))
        assert store.put_if_stale(claim, "state", ["stopped"], now=1300) is True
        print("✓ put_if_stale follows missing/allowed/expired rules")


# =============================================================================
# TEST: DynamoStateStore
# =============================================================================

class TestDynamoStateStore:

    def test_get(self):
        table = MagicMock()
        table.get_item.return_value = {"Item": {"id": "i-1", "state": "running", "ttl": Decimal("1700")}}
        store = DynamoStateStore(table)

        record = store.get("i-1")

        table.get_item.assert_called_once_with(Key={"id": "i-1"})
        assert record.id == "i-1"
        assert record.attributes == {"state": "running", "ttl": 1700}

    def test_get_missing(self):
        table = MagicMock()
        table.get_item.return_value = {}
        assert DynamoStateStore(table).get("x") is None

    def test_put_converts_floats(self):
        table = MagicMock()
        DynamoStateStore(table).put(StateRecord("a", {"ratio": 0.5}))
        table.put_item.assert_called_once_with(Item={"id": "a", "ratio": Decimal("0.5")})

    def test_delete(self):
        table = MagicMock()
        DynamoStateStore(table).delete("a")
        table.delete_item.assert_called_once_with(Key={"id": "a"})

    def test_backend_error(self):
        table = MagicMock()
        table.get_item.side_effect = _client_error("ProvisionedThroughputExceededException", "GetItem")
        with pytest.raises(StorageError) as exc:
            DynamoStateStore(table).get("a")
        assert "ProvisionedThroughputExceededException" in exc.value.message
        assert table.get_item.call_count == 1
        print("✓ ClientError surfaces as StorageError without retry")

    @pytest.mark.parametrize("operation", ["get", "put", "delete", "put_if_absent", "put_if_stale"])
    def test_transport_error(self, operation):
        table = MagicMock()
        error = EndpointConnectionError(endpoint_url="https://dynamodb.ap-northeast-1.amazonaws.com")
        table.get_item.side_effect = error
        table.put_item.side_effect = error
        table.delete_item.side_effect = error
        store = DynamoStateStore(table)
        record = StateRecord("i-1", {"state": "running"})
        calls = {
            "get": lambda: store.get("i-1"),
            "put": lambda: store.put(record),
            "delete": lambda: store.delete("i-1"),
            "put_if_absent": lambda: store.put_if_absent(record),
            "put_if_stale": lambda: store.put_if_stale(record, "state", ["stopped"], now=1000),
        }

        with pytest.raises(StorageError) as exc:
            calls[operation]()
        assert "EndpointConnectionError" in exc.value.message
        print(f"✓ {operation}: connection failure surfaces as StorageError")

    def test_read_timeout(self):
        table = MagicMock()
        table.get_item.side_effect = ReadTimeoutError(endpoint_url="https://dynamodb.test")
        with pytest.raises(StorageError):
            DynamoStateStore(table).get("a")

    def test_put_if_absent(self):
        table = MagicMock()
        store = DynamoStateStore(table)
        assert store.put_if_absent(StateRecord("work#1", {})) is True
        kwargs = table.put_item.call_args[1]
        assert kwargs["ConditionExpression"] == "attribute_not_exists(#k)"

        table.put_item.side_effect = _client_error("ConditionalCheckFailedException")
        assert store.put_if_absent(StateRecord("work#1", {})) is False

        table.put_item.side_effect = _client_error("AccessDeniedException")
        with pytest.raises(StorageError):
            store.put_if_absent(StateRecord("work#1", {}))

    def test_put_if_stale_condition(self):
        table = MagicMock()
        store = DynamoStateStore(table)

        ok = store.put_if_stale(StateRecord("i-1", {"state": "startPending", "ttl": 1300}),
                                "state", ["stopped"], now=1000)

        assert ok is True
        kwargs = table.put_item.call_args[1]
        assert kwargs["ConditionExpression"] == "attribute_not_exists(#k) OR #f IN (:a0) OR #t <= :now"
        assert kwargs["ExpressionAttributeNames"] == {"#k": "id", "#t": "ttl", "#f": "state"}
        assert kwargs["ExpressionAttributeValues"] == {":now": 1000, ":a0": "stopped"}

        table.put_item.side_effect = _client_error("ConditionalCheckFailedException")
        assert store.put_if_stale(StateRecord("i-1", {}), "state", ["stopped"], now=1000) is False
