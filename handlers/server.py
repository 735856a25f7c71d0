# Managed Server Handlers
# Status (inline) plus start / show-ip (executed in the background)
#
# Instance state record (state store, keyed by instance id):
#   {"id": "i-0abc...", "state": "startPending", "ttl": 1700000300, ...}
#
# A start is claimed with a conditional write that only succeeds when the
# server is stopped, the record is missing, or the previous claim/heartbeat
# has expired. Concurrent /start-server calls therefore start it once.

import logging
from typing import Any, List

from handlers.base import CATEGORY_SERVER, display_zone, format_epoch
from src.runtime.errors import InstanceError, StorageError, HandlerError
from src.runtime.instances import CLAIM_TTL_SECONDS, InstanceState
from src.runtime.interaction import CommandResult, Interaction, StateRecord
from src.runtime.registry import CommandDescriptor
from src.runtime.util import epoch_now, iso_now

logger = logging.getLogger()


def handle_status(interaction: Interaction, deps: Any) -> CommandResult:
    """Show the game server's recorded state."""
    instance_id = deps.instance_id
    record = deps.state_store.get(instance_id)
    if record is None:
        return CommandResult.message("Server is `stopped` (no state recorded yet)")

    state = record.get("state", InstanceState.STOPPED)
    ttl = record.get("ttl")
    zone = display_zone(deps, interaction.guild_id)

    if ttl is not None and int(ttl) <= epoch_now() and state != InstanceState.STOPPED:
        return CommandResult.message(
            f"Server was `{state}` but has not reported since {format_epoch(ttl, zone)}; "
            f"it is probably stopped"
        )

    message = f"Server is `{state}`"
    if ttl is not None:
        message += f" (valid until {format_epoch(ttl, zone)})"
    return CommandResult.message(message)


def handle_start_server(interaction: Interaction, deps: Any) -> CommandResult:
    """Start the game server.

    Test Event (work item):
    {
        "commandName": "start-server",
        "originInteractionId": "1203456789012345678",
        "payload": {"applicationId": "...", "token": "...", "interaction": {...}}
    }
    """
    instance_id = deps.instance_id
    now = epoch_now()
    claim = StateRecord(instance_id, {
        "state": InstanceState.START_PENDING,
        "ttl": now + CLAIM_TTL_SECONDS,
        "updatedAt": iso_now(),
        "requestedBy": interaction.user_id,
    })

    if not deps.state_store.put_if_stale(claim, "state", [InstanceState.STOPPED], now=now):
        current = deps.state_store.get(instance_id)
        state = current.get("state") if current else "unknown"
        logger.info(f"Start of {instance_id} refused, state={state}")
        return CommandResult.message(f"Server is already `{state}`, not starting it again")

    try:
        ec2_state = deps.instances.start(instance_id)
    except InstanceError as e:
        _release_claim(deps, instance_id)
        raise HandlerError(f"Could not start the server: {e.message}")
    except Exception:
        _release_claim(deps, instance_id)
        raise

    logger.info(f"Start requested for {instance_id} by {interaction.user_id}, ec2 state={ec2_state}")
    return CommandResult.message(
        f"Starting the server (instance `{ec2_state}`). It takes a few minutes; "
        f"use `/show-ip` to get its address."
    )


def _release_claim(deps: Any, instance_id: str) -> None:
    try:
        deps.state_store.put(StateRecord(instance_id, {
            "state": InstanceState.STOPPED,
            "updatedAt": iso_now(),
        }))
    except StorageError as e:
        # The claim's ttl still expires on its own
        logger.error(f"Could not release start claim for {instance_id}: {e.message}")


def handle_show_ip(interaction: Interaction, deps: Any) -> CommandResult:
    """Show the game server's public IP address."""
    try:
        info = deps.instances.describe(deps.instance_id)
    except InstanceError as e:
        raise HandlerError(f"Could not look up the server: {e.message}")

    if not info.public_ip:
        return CommandResult.message(f"Server is `{info.state}` and has no public IP right now")
    return CommandResult.message(f"Server IP: `{info.public_ip}`")


SERVER_COMMANDS: List[CommandDescriptor] = [
    CommandDescriptor(
        name="status",
        handler=handle_status,
        description="Show the game server's state",
        category=CATEGORY_SERVER,
    ),
    CommandDescriptor(
        name="start-server",
        handler=handle_start_server,
        is_async=True,
        description="Start the game server",
        category=CATEGORY_SERVER,
    ),
    CommandDescriptor(
        name="show-ip",
        handler=handle_show_ip,
        is_async=True,
        description="Show the game server's IP address",
        category=CATEGORY_SERVER,
    ),
]
