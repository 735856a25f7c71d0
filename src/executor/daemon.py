# =============================================================================
# Executor Daemon - Long-running SQS Consumer
# =============================================================================
# Runs on the managed instance. Long-polls the work queue, executes each work
# item, and periodically records the instance as running so the start-server
# command knows it is up.
#
# Message handling:
#   malformed body       -> deleted (it can never succeed)
#   executed / duplicate -> deleted
#   delivery failure     -> left on the queue; visibility timeout redelivers
# =============================================================================

import logging
import threading
import time
from typing import Any, Callable, Optional

from src.executor.worker import execute_work_item
from src.runtime.errors import DispatcherError, MalformedPayloadError
from src.runtime.instances import HEARTBEAT_TTL_SECONDS, InstanceState
from src.runtime.interaction import StateRecord, WorkItem
from src.runtime.registry import CommandRegistry
from src.runtime.util import epoch_now, iso_now
from src.workqueue.work_queue import QueueMessage

logger = logging.getLogger(__name__)

HEARTBEAT_INTERVAL_SECONDS = 3 * 60
RECEIVE_ERROR_BACKOFF_SECONDS = 5


class ExecutorDaemon:
    """SQS consumer loop for deferred commands."""

    def __init__(self, deps: Any, registry: CommandRegistry, queue: Optional[Any] = None,
                 heartbeat_interval: float = HEARTBEAT_INTERVAL_SECONDS,
                 clock: Callable[[], float] = time.monotonic,
                 sleep: Callable[[float], None] = time.sleep):
        self.deps = deps
        self.registry = registry
        self.queue = queue if queue is not None else deps.sqs_queue
        self.heartbeat_interval = heartbeat_interval
        self._clock = clock
        self._sleep = sleep
        self._stop = threading.Event()
        self._next_heartbeat: Optional[float] = None
        self.processed = 0

    def stop(self) -> None:
        self._stop.set()

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def run(self, max_iterations: Optional[int] = None) -> int:
        """Poll until stop() is called (or max_iterations polls). Returns messages handled."""
        logger.info(f"Executor daemon started (commands={len(self.registry)})")
        iterations = 0
        while not self.stopped:
            if max_iterations is not None and iterations >= max_iterations:
                break
            iterations += 1

            self.heartbeat()
            try:
                messages = self.queue.receive()
            except DispatcherError as e:
                logger.error(f"Receive failed: {e.message}")
                self._sleep(RECEIVE_ERROR_BACKOFF_SECONDS)
                continue

            for message in messages:
                self.handle_message(message)

        logger.info(f"Executor daemon stopped after {iterations} poll(s), {self.processed} message(s)")
        return self.processed

    def heartbeat(self, force: bool = False) -> bool:
        """Record the instance as running, at most once per interval."""
        now = self._clock()
        if not force and self._next_heartbeat is not None and now < self._next_heartbeat:
            return False
        self._next_heartbeat = now + self.heartbeat_interval

        try:
            instance_id = self.deps.instance_id
            self.deps.state_store.put(StateRecord(instance_id, {
                "state": InstanceState.RUNNING,
                "ttl": epoch_now() + HEARTBEAT_TTL_SECONDS,
                "updatedAt": iso_now(),
            }))
        except DispatcherError as e:
            logger.error(f"Heartbeat failed: {e.message}")
            return False
        logger.debug(f"Heartbeat recorded for {instance_id}")
        return True

    def handle_message(self, message: QueueMessage) -> bool:
        """Process one message. Returns True if it was removed from the queue."""
        try:
            item = WorkItem.from_message(message.body)
        except MalformedPayloadError as e:
            logger.warning(f"Dropping malformed message {message.message_id}: {e.message}")
            return self._delete(message)

        try:
            outcome = execute_work_item(item, self.registry, self.deps)
        except DispatcherError as e:
            logger.error(f"Work item {item.origin_interaction_id} failed, leaving for redelivery: {e.message}")
            return False

        self.processed += 1
        logger.info(f"Message {message.message_id} {outcome}")
        return self._delete(message)

    def _delete(self, message: QueueMessage) -> bool:
        try:
            self.queue.delete(message)
        except DispatcherError as e:
            logger.error(f"DeleteMessage failed for {message.message_id}: {e.message}")
            return False
        return True
