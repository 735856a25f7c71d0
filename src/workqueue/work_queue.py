# =============================================================================
# Work Queue Adapter
# =============================================================================
# enqueue(item) -> enqueue id. Delivery is at-least-once and unordered; the
# executor de-duplicates on originInteractionId. Failures surface as
# QueueError and are never retried here (retry is the invoker's policy).
#
# Backends:
# - SqsWorkQueue:    SQS queue consumed by a Lambda trigger or the daemon
# - LambdaWorkQueue: asynchronous ("Event") invoke of the executor function
# - MemoryWorkQueue: local runs and tests
# =============================================================================

import logging
import threading
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, List

from botocore.exceptions import BotoCoreError, ClientError

from src.runtime.errors import QueueError
from src.runtime.interaction import WorkItem

logger = logging.getLogger(__name__)

# Long polling settings for the executor daemon
RECEIVE_WAIT_SECONDS = 20
RECEIVE_VISIBILITY_TIMEOUT = 30
RECEIVE_MAX_MESSAGES = 1


@dataclass(frozen=True)
class QueueMessage:
    """A received queue message: body plus the handle needed to delete it."""
    message_id: str
    body: str
    receipt_handle: str


class WorkQueue(ABC):
    """Single-operation queue capability."""

    @abstractmethod
    def enqueue(self, item: WorkItem) -> str:
        """Submit a work item. Returns the backend's id for it."""


def _error_code(e: Exception) -> str:
    if isinstance(e, ClientError):
        return e.response.get("Error", {}).get("Code", "Unknown")
    return type(e).__name__


class SqsWorkQueue(WorkQueue):
    """WorkQueue on an SQS queue (boto3 client)."""

    def __init__(self, client: Any, queue_url: str):
        self.client = client
        self.queue_url = queue_url

    def enqueue(self, item: WorkItem) -> str:
        try:
            response = self.client.send_message(
                QueueUrl=self.queue_url,
                MessageBody=item.to_json(),
                MessageAttributes={
                    "commandName": {"DataType": "String", "StringValue": item.command_name},
                },
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"SQS send_message failed for {item.origin_interaction_id}: {_error_code(e)}")
            raise QueueError(f"Enqueue failed: {_error_code(e)}", detail=str(e))
        return response.get("MessageId", "")

    def receive(self, max_messages: int = RECEIVE_MAX_MESSAGES,
                wait_seconds: int = RECEIVE_WAIT_SECONDS,
                visibility_timeout: int = RECEIVE_VISIBILITY_TIMEOUT) -> List[QueueMessage]:
        """Long-poll for messages (executor daemon)."""
        try:
            response = self.client.receive_message(
                QueueUrl=self.queue_url,
                MaxNumberOfMessages=max_messages,
                WaitTimeSeconds=wait_seconds,
                VisibilityTimeout=visibility_timeout,
            )
        except (ClientError, BotoCoreError) as e:
            raise QueueError(f"Receive failed: {_error_code(e)}", detail=str(e))
        return [
            QueueMessage(
                message_id=m.get("MessageId", ""),
                body=m.get("Body", ""),
                receipt_handle=m.get("ReceiptHandle", ""),
            )
            for m in response.get("Messages", [])
        ]

    def delete(self, message: QueueMessage) -> None:
        try:
            self.client.delete_message(QueueUrl=self.queue_url, ReceiptHandle=message.receipt_handle)
        except (ClientError, BotoCoreError) as e:
            raise QueueError(f"Delete failed: {_error_code(e)}", detail=str(e))


class LambdaWorkQueue(WorkQueue):
    """WorkQueue that hands items straight to the executor function.

    Lambda's asynchronous invocation queue provides the at-least-once
    delivery; no response is awaited.
    """

    def __init__(self, client: Any, function_name: str):
        self.client = client
        self.function_name = function_name

    def enqueue(self, item: WorkItem) -> str:
        try:
            response = self.client.invoke(
                FunctionName=self.function_name,
                InvocationType="Event",
                Payload=item.to_json().encode("utf-8"),
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Executor invoke failed for {item.origin_interaction_id}: {_error_code(e)}")
            raise QueueError(f"Executor invoke failed: {_error_code(e)}", detail=str(e))

        status = response.get("StatusCode", 0)
        if status != 202:
            raise QueueError(f"Executor invoke not accepted: HTTP {status}")
        metadata = response.get("ResponseMetadata", {})
        return metadata.get("RequestId", "")


class MemoryWorkQueue(WorkQueue):
    """In-process queue for local runs and tests."""

    def __init__(self):
        self._lock = threading.Lock()
        self.items: List[WorkItem] = []
        self.ids: List[str] = []

    def enqueue(self, item: WorkItem) -> str:
        enqueue_id = str(uuid.uuid4())
        with self._lock:
            self.items.append(item)
            self.ids.append(enqueue_id)
        return enqueue_id

    def drain(self) -> List[WorkItem]:
        with self._lock:
            items, self.items, self.ids = self.items, [], []
        return items

    def __len__(self) -> int:
        return len(self.items)
