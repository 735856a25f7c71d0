# =============================================================================
# State Store Adapter
# =============================================================================
# get / put (upsert, last-write-wins) / delete keyed by partition key "id".
# Backend errors surface as StorageError. The adapter never retries: only the
# calling handler knows whether its write is safe to repeat.
# =============================================================================

import copy
import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, Optional

from botocore.exceptions import BotoCoreError, ClientError

from src.runtime.errors import StorageError
from src.runtime.interaction import StateRecord
from src.runtime.util import epoch_now, from_dynamo, to_dynamo

logger = logging.getLogger(__name__)

CONDITION_FAILED = "ConditionalCheckFailedException"


def _error_code(e: Exception) -> str:
    if isinstance(e, ClientError):
        return e.response.get("Error", {}).get("Code", "Unknown")
    return type(e).__name__


class StateStore(ABC):
    """Key-value persistence for StateRecords."""

    @abstractmethod
    def get(self, record_id: str) -> Optional[StateRecord]:
        """Return the record, or None if it does not exist."""

    @abstractmethod
    def put(self, record: StateRecord) -> None:
        """Create or replace the record."""

    @abstractmethod
    def delete(self, record_id: str) -> None:
        """Remove the record. Deleting a missing record is not an error."""

    @abstractmethod
    def put_if_absent(self, record: StateRecord) -> bool:
        """Create the record only if no record with this id exists."""

    @abstractmethod
    def put_if_stale(self, record: StateRecord, field: str, allowed: Iterable[Any],
                     ttl_field: str = "ttl", now: Optional[int] = None) -> bool:
        """Replace the record when it is missing, its `field` is one of
        `allowed`, or its `ttl_field` (epoch seconds) has passed."""


class DynamoStateStore(StateStore):
    """StateStore on a DynamoDB table (boto3 Table resource)."""

    def __init__(self, table: Any, key_name: str = "id"):
        self.table = table
        self.key_name = key_name

    def _storage_error(self, operation: str, record_id: str, e: Exception) -> StorageError:
        code = _error_code(e)
        logger.error(f"State store {operation} failed for {record_id}: {code}")
        return StorageError(f"State store {operation} failed: {code}", detail=str(e))

    def get(self, record_id: str) -> Optional[StateRecord]:
        try:
            response = self.table.get_item(Key={self.key_name: record_id})
        except (ClientError, BotoCoreError) as e:
            raise self._storage_error("get", record_id, e)
        item = response.get("Item")
        if not item:
            return None
        return StateRecord.from_item(from_dynamo(item), key_name=self.key_name)

    def put(self, record: StateRecord) -> None:
        try:
            self.table.put_item(Item=to_dynamo(record.to_item(self.key_name)))
        except (ClientError, BotoCoreError) as e:
            raise self._storage_error("put", record.id, e)

    def delete(self, record_id: str) -> None:
        try:
            self.table.delete_item(Key={self.key_name: record_id})
        except (ClientError, BotoCoreError) as e:
            raise self._storage_error("delete", record_id, e)

    def put_if_absent(self, record: StateRecord) -> bool:
        try:
            self.table.put_item(
                Item=to_dynamo(record.to_item(self.key_name)),
                ConditionExpression="attribute_not_exists(#k)",
                ExpressionAttributeNames={"#k": self.key_name},
            )
            return True
        except (ClientError, BotoCoreError) as e:
            if _error_code(e) == CONDITION_FAILED:
                return False
            raise self._storage_error("put_if_absent", record.id, e)

    def put_if_stale(self, record: StateRecord, field: str, allowed: Iterable[Any],
                     ttl_field: str = "ttl", now: Optional[int] = None) -> bool:
        allowed = list(allowed)
        now = epoch_now() if now is None else now

        names = {"#k": self.key_name, "#t": ttl_field}
        values: Dict[str, Any] = {":now": now}
        clauses = ["attribute_not_exists(#k)", "#t <= :now"]
        if allowed:
            names["#f"] = field
            placeholders = []
            for i, value in enumerate(allowed):
                values[f":a{i}"] = to_dynamo(value)
                placeholders.append(f":a{i}")
            clauses.insert(1, f"#f IN ({', '.join(placeholders)})")

        try:
            self.table.put_item(
                Item=to_dynamo(record.to_item(self.key_name)),
                ConditionExpression=" OR ".join(clauses),
                ExpressionAttributeNames=names,
                ExpressionAttributeValues=values,
            )
            return True
        except (ClientError, BotoCoreError) as e:
            if _error_code(e) == CONDITION_FAILED:
                return False
            raise self._storage_error("put_if_stale", record.id, e)


class MemoryStateStore(StateStore):
    """In-process StateStore for local runs and tests."""

    def __init__(self, records: Optional[Dict[str, Dict[str, Any]]] = None):
        self._lock = threading.Lock()
        self._records: Dict[str, Dict[str, Any]] = copy.deepcopy(records or {})
        self.writes = 0

    def get(self, record_id: str) -> Optional[StateRecord]:
        with self._lock:
            attributes = self._records.get(record_id)
            if attributes is None:
                return None
            return StateRecord(record_id, copy.deepcopy(attributes))

    def _write(self, record: StateRecord) -> None:
        self._records[record.id] = copy.deepcopy(record.attributes)
        self.writes += 1

    def put(self, record: StateRecord) -> None:
        with self._lock:
            self._write(record)

    def delete(self, record_id: str) -> None:
        with self._lock:
            if self._records.pop(record_id, None) is not None:
                self.writes += 1

    def put_if_absent(self, record: StateRecord) -> bool:
        with self._lock:
            if record.id in self._records:
                return False
            self._write(record)
            return True

    def put_if_stale(self, record: StateRecord, field: str, allowed: Iterable[Any],
                     ttl_field: str = "ttl", now: Optional[int] = None) -> bool:
        now = epoch_now() if now is None else now
        with self._lock:
            existing = self._records.get(record.id)
            if existing is not None:
                expired = ttl_field in existing and existing[ttl_field] <= now
                if existing.get(field) not in list(allowed) and not expired:
                    return False
            self._write(record)
            return True

    def __len__(self) -> int:
        return len(self._records)
