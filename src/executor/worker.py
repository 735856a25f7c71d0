# =============================================================================
# Executor - Deferred Command Execution
# =============================================================================
# Runs a WorkItem's command and delivers the result through the follow-up
# channel. Work items are delivered at least once, so each origin interaction
# is claimed in the state store before running:
#
#   work#<originInteractionId>  put_if_absent -> run -> edit @original
#
# If the follow-up cannot be delivered the claim is released and the error
# re-raised, letting the queue redeliver the item.
# =============================================================================

import logging
from typing import Any, Dict

from src.runtime.errors import DispatcherError, MalformedPayloadError
from src.runtime.interaction import CommandResult, Interaction, StateRecord, WorkItem
from src.runtime.invoker import run_handler
from src.runtime.registry import CommandRegistry
from src.runtime.util import epoch_now, iso_now

logger = logging.getLogger(__name__)

DEDUPE_PREFIX = "work#"
# Claims outlive any realistic redelivery window
DEDUPE_TTL_SECONDS = 24 * 60 * 60


class Outcome:
    DELIVERED = "delivered"
    DUPLICATE = "duplicate"
    DROPPED = "dropped"


def dedupe_key(origin_interaction_id: str) -> str:
    return f"{DEDUPE_PREFIX}{origin_interaction_id}"


def _claim(item: WorkItem, deps: Any) -> bool:
    record = StateRecord(dedupe_key(item.origin_interaction_id), {
        "commandName": item.command_name,
        "claimedAt": iso_now(),
        "ttl": epoch_now() + DEDUPE_TTL_SECONDS,
    })
    return deps.state_store.put_if_absent(record)


def _release(item: WorkItem, deps: Any) -> None:
    try:
        deps.state_store.delete(dedupe_key(item.origin_interaction_id))
    except DispatcherError as e:
        # Redelivery will then be reported as a duplicate
        logger.error(f"Could not release claim for {item.origin_interaction_id}: {e.message}")


def compute_result(item: WorkItem, registry: CommandRegistry, deps: Any) -> CommandResult:
    """Run the work item's command. Never raises for handler failures."""
    descriptor = registry.lookup(item.command_name)
    if descriptor is None:
        logger.warning(f"Executor has no command {item.command_name} for {item.origin_interaction_id}")
        return CommandResult.failed(f"Unknown command `{item.command_name}`")

    try:
        interaction = Interaction.from_dict(item.payload.get("interaction") or {})
    except MalformedPayloadError as e:
        logger.warning(f"Work item {item.origin_interaction_id} carries no usable interaction: {e.message}")
        return CommandResult.failed(f"`/{item.command_name}` could not be processed")

    return run_handler(descriptor, interaction, deps)


def follow_up_message(result: CommandResult) -> Dict[str, Any]:
    """Body for editing the deferred response. Visibility is fixed at defer time."""
    body = result.follow_up_body()
    body.pop("flags", None)
    if not body.get("content") and not body.get("embeds"):
        body["content"] = "Done."
    return body


def execute_work_item(item: WorkItem, registry: CommandRegistry, deps: Any) -> str:
    """
    Execute one work item exactly once per origin interaction.

    Returns:
        Outcome.DELIVERED or Outcome.DUPLICATE

    Raises:
        FollowUpError: follow-up delivery failed (claim released)
        StorageError: claim could not be written
    """
    if not _claim(item, deps):
        logger.info(f"Skipping duplicate work item {item.command_name} for {item.origin_interaction_id}")
        return Outcome.DUPLICATE

    try:
        result = compute_result(item, registry, deps)
        deps.discord.edit_original(item.application_id, item.token, follow_up_message(result))
    except DispatcherError:
        _release(item, deps)
        raise

    logger.info(f"Delivered {item.command_name} for {item.origin_interaction_id} status={result.status.value}")
    return Outcome.DELIVERED
