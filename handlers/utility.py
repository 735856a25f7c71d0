# Utility Command Handlers
# Liveness and help commands answered inline

import logging
from typing import Any, Callable, List

from handlers.base import CATEGORY_UTILITY
from src.runtime.interaction import CommandResult, Interaction
from src.runtime.registry import CommandDescriptor, CommandRegistry

logger = logging.getLogger()


def handle_ping(interaction: Interaction, deps: Any) -> CommandResult:
    """Check that the bot is responding.

    Test Event:
    {"type": 2, "id": "1203456789012345678", "data": {"name": "ping"}}
    """
    age_ms = max(0, int(interaction.age_seconds() * 1000))
    return CommandResult.message(f"Pong! ({age_ms} ms since the interaction was created)")


def make_help_handler(registry: CommandRegistry) -> Callable[[Interaction, Any], CommandResult]:
    """Build the help handler bound to the registry it describes."""

    def handle_help(interaction: Interaction, deps: Any) -> CommandResult:
        """List available commands."""
        lines = ["**Available commands**"]
        for category, names in sorted(registry.by_category().items()):
            lines.append(f"__{category}__")
            for name in names:
                descriptor = registry.lookup(name)
                suffix = " (runs in background)" if descriptor.is_async else ""
                lines.append(f"`/{name}` - {descriptor.description}{suffix}")
        return CommandResult.message("\n".join(lines), ephemeral=True)

    return handle_help


def utility_commands(registry: CommandRegistry) -> List[CommandDescriptor]:
    return [
        CommandDescriptor(
            name="ping",
            handler=handle_ping,
            description="Check that the bot is responding",
            category=CATEGORY_UTILITY,
        ),
        CommandDescriptor(
            name="help",
            handler=make_help_handler(registry),
            description="List available commands",
            category=CATEGORY_UTILITY,
            ephemeral=True,
        ),
    ]
