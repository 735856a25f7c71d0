# =============================================================================
# Worker Handler
# =============================================================================
# Executor Lambda entry point. Accepts:
#   - SQS batches: reports failed records via batchItemFailures so only
#     those are retried; malformed records are dropped
#   - direct asynchronous invokes carrying a single work item; failures are
#     raised so Lambda's async retry redelivers, malformed items are dropped
# =============================================================================

import logging
from typing import Any, Dict, List, Optional

from src.app.runtime import Runtime, get_runtime
from src.executor.worker import Outcome, execute_work_item
from src.runtime.errors import DispatcherError, MalformedPayloadError
from src.runtime.interaction import WorkItem
from src.runtime.parse_event import EventSource, detect_event_source, parse_direct_event, parse_sqs_records

logger = logging.getLogger(__name__)


def worker_handler(event: Dict[str, Any], context: Any, runtime: Optional[Runtime] = None) -> Dict[str, Any]:
    """
    Executor entry point.

    Returns:
        SQS: {"batchItemFailures": [...]}
        Direct: {"statusCode": 200, "outcome": ...}
    """
    runtime = runtime or get_runtime()
    source = detect_event_source(event)

    if source == EventSource.SQS:
        return _handle_sqs_batch(event, runtime)

    if source == EventSource.DIRECT:
        try:
            item = parse_direct_event(event)
        except MalformedPayloadError as e:
            logger.warning(f"Dropping malformed direct invoke: {e.message}")
            return {"statusCode": 200, "outcome": Outcome.DROPPED}
        outcome = execute_work_item(item, runtime.registry, runtime.deps)
        return {"statusCode": 200, "outcome": outcome}

    logger.warning(f"Worker received unsupported event, keys: {list(event.keys()) if isinstance(event, dict) else []}")
    raise MalformedPayloadError("Unsupported worker event")


def _handle_sqs_batch(event: Dict[str, Any], runtime: Runtime) -> Dict[str, Any]:
    failures: List[Dict[str, str]] = []
    results = {Outcome.DELIVERED: 0, Outcome.DUPLICATE: 0, Outcome.DROPPED: 0, "failed": 0}

    for record in parse_sqs_records(event):
        try:
            item = WorkItem.from_message(record.body)
        except MalformedPayloadError as e:
            logger.warning(f"Dropping malformed record {record.message_id}: {e.message}")
            results[Outcome.DROPPED] += 1
            continue

        try:
            outcome = execute_work_item(item, runtime.registry, runtime.deps)
        except DispatcherError as e:
            logger.error(f"Record {record.message_id} failed: {e.message}")
            failures.append({"itemIdentifier": record.message_id})
            results["failed"] += 1
            continue
        results[outcome] += 1

    logger.info(f"Worker batch done: {results}")
    return {"batchItemFailures": failures}
