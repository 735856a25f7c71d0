# =============================================================================
# Command Invoker
# =============================================================================
# Synchronous commands run inline within the webhook's response budget.
# Asynchronous commands are acknowledged immediately (DEFERRED) and handed to
# the executor as exactly one WorkItem; their result arrives later through
# the follow-up channel keyed by the interaction id/token.
# =============================================================================

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from typing import Any, Optional

from src.runtime.errors import HandlerError, QueueError
from src.runtime.interaction import CommandResult, Interaction, ResultStatus, WorkItem
from src.runtime.registry import CommandDescriptor

logger = logging.getLogger(__name__)

DEFAULT_SYNC_TIMEOUT_SECONDS = 2.5
DEFAULT_ENQUEUE_ATTEMPTS = 2

# Backoff between enqueue attempts; short, the webhook must answer in ~3s
ENQUEUE_BASE_DELAY_SECONDS = 0.05
ENQUEUE_MAX_DELAY_SECONDS = 0.4
RETRY_BACKOFF_MULTIPLIER = 2


def calculate_retry_delay(retry_count: int, base_delay: float = ENQUEUE_BASE_DELAY_SECONDS,
                          max_delay: float = ENQUEUE_MAX_DELAY_SECONDS) -> float:
    """Exponential backoff: min(max_delay, base_delay * 2^retry_count)."""
    delay = base_delay * (RETRY_BACKOFF_MULTIPLIER ** retry_count)
    return min(delay, max_delay)


def coerce_result(value: Any) -> CommandResult:
    """Accept CommandResult, plain text, or a raw response dict from handlers."""
    if isinstance(value, CommandResult):
        return value
    if isinstance(value, str):
        return CommandResult.message(value)
    if isinstance(value, dict) and "type" in value:
        return CommandResult(ResultStatus.OK, value)
    raise HandlerError(f"Handler returned unsupported result type {type(value).__name__}")


def run_handler(descriptor: CommandDescriptor, interaction: Interaction, deps: Any) -> CommandResult:
    """Execute a handler and map every failure to a FAILED result.

    Shared by the inline path and the executor so both report errors the
    same way.
    """
    try:
        return coerce_result(descriptor.handler(interaction, deps))
    except HandlerError as e:
        logger.warning(f"Command {descriptor.name} failed for {interaction.id}: {e.message}")
        return CommandResult.failed(e.message or f"`/{descriptor.name}` failed")
    except Exception as e:
        logger.exception(f"Command {descriptor.name} raised for {interaction.id}: {e}")
        return CommandResult.failed(f"`/{descriptor.name}` failed: {type(e).__name__}: {e}")


class CommandInvoker:
    """Runs or defers a resolved command."""

    def __init__(self, deps: Any, work_queue: Optional[Any] = None,
                 sync_timeout_seconds: float = DEFAULT_SYNC_TIMEOUT_SECONDS,
                 enqueue_attempts: int = DEFAULT_ENQUEUE_ATTEMPTS,
                 sleep=time.sleep):
        self.deps = deps
        self._work_queue = work_queue
        self.sync_timeout_seconds = sync_timeout_seconds
        self.enqueue_attempts = max(1, enqueue_attempts)
        self._sleep = sleep

    @classmethod
    def from_deps(cls, deps: Any) -> "CommandInvoker":
        settings = deps.settings
        return cls(
            deps,
            sync_timeout_seconds=settings.sync_timeout_seconds,
            enqueue_attempts=settings.enqueue_attempts,
        )

    @property
    def work_queue(self):
        # Resolved lazily: sync-only traffic never needs a queue client
        if self._work_queue is None:
            self._work_queue = self.deps.work_queue
        return self._work_queue

    def invoke(self, descriptor: CommandDescriptor, interaction: Interaction) -> CommandResult:
        if descriptor.is_async:
            return self._defer(descriptor, interaction)
        return self._run_inline(descriptor, interaction)

    # ------------------------------------------------------------------
    # Synchronous path
    # ------------------------------------------------------------------

    def _run_inline(self, descriptor: CommandDescriptor, interaction: Interaction) -> CommandResult:
        started = time.monotonic()
        pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"cmd-{descriptor.name}")
        future = pool.submit(run_handler, descriptor, interaction, self.deps)
        try:
            result = future.result(timeout=self.sync_timeout_seconds)
        except FutureTimeout:
            logger.error(f"Command {descriptor.name} exceeded {self.sync_timeout_seconds}s for {interaction.id}")
            result = CommandResult.failed(f"`/{descriptor.name}` took too long to respond")
        finally:
            # Do not wait for a handler that overran its budget
            pool.shutdown(wait=False)

        elapsed_ms = int((time.monotonic() - started) * 1000)
        logger.info(f"Command {descriptor.name} id={interaction.id} status={result.status.value} "
                    f"elapsedMs={elapsed_ms}")
        return result

    # ------------------------------------------------------------------
    # Deferred path
    # ------------------------------------------------------------------

    def _defer(self, descriptor: CommandDescriptor, interaction: Interaction) -> CommandResult:
        item = WorkItem.for_interaction(descriptor.name, interaction)
        try:
            enqueue_id = self._enqueue(item)
        except QueueError as e:
            logger.error(f"Could not defer {descriptor.name} for {interaction.id} after "
                         f"{self.enqueue_attempts} attempt(s): {e.message}")
            return CommandResult.failed(f"`/{descriptor.name}` could not be scheduled, please try again")

        logger.info(f"Deferred {descriptor.name} id={interaction.id} enqueueId={enqueue_id}")
        return CommandResult.deferred(ephemeral=descriptor.ephemeral, update=interaction.is_component)

    def _enqueue(self, item: WorkItem) -> str:
        last_error: Optional[QueueError] = None
        for attempt in range(self.enqueue_attempts):
            if attempt:
                self._sleep(calculate_retry_delay(attempt - 1))
            try:
                return self.work_queue.enqueue(item)
            except QueueError as e:
                last_error = e
                logger.warning(f"Enqueue attempt {attempt + 1}/{self.enqueue_attempts} failed "
                               f"for {item.origin_interaction_id}: {e.message}")
        raise last_error
