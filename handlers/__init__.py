# =============================================================================
# Discord Bot - Command Handler Package
# =============================================================================
#
# ARCHITECTURE:
#   handlers/
#   ├── __init__.py          # This file - build_registry()
#   ├── base.py              # Shared helpers (options, guild settings, time)
#   ├── utility.py           # ping, help
#   ├── guild_config.py      # config
#   └── server.py            # status, start-server, show-ip
#
# USAGE:
#   from handlers import build_registry
#   registry = build_registry()
#
# TO ADD A NEW COMMAND:
#   1. Write handle_<name>(interaction, deps) -> CommandResult in a module
#   2. Add a CommandDescriptor to that module's *_COMMANDS list
#   3. Include the list below
# =============================================================================

from src.runtime.registry import CommandRegistry

from handlers.guild_config import CONFIG_COMMANDS
from handlers.server import SERVER_COMMANDS
from handlers.utility import utility_commands


def build_registry() -> CommandRegistry:
    """Registry of every built-in command. Built once per process."""
    registry = CommandRegistry()
    for descriptor in utility_commands(registry) + CONFIG_COMMANDS + SERVER_COMMANDS:
        registry.register(descriptor)
    return registry


__all__ = [
    "build_registry",
]
