# =============================================================================
# Command Registry
# =============================================================================
# Maps command names to handler descriptors. Populated once at process start
# (handlers.build_registry) and read-only while serving requests.
#
# Usage:
#     registry = CommandRegistry()
#
#     @registry.command("roll", category="fun", description="Roll a die")
#     def handle_roll(interaction, deps):
#         return CommandResult.message("4")
# =============================================================================

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Optional

from src.runtime.errors import DuplicateNameError
from src.runtime.interaction import CommandResult, Interaction

logger = logging.getLogger(__name__)

# handler(interaction, deps) -> CommandResult
HandlerFunc = Callable[[Interaction, Any], CommandResult]


@dataclass(frozen=True)
class CommandDescriptor:
    """
    A registered command.

    Attributes:
        name: Unique command name (slash command name or component prefix)
        handler: Callable executing the command
        is_async: Execute out-of-band through the work queue
        description: Short help text (first docstring line by default)
        category: Grouping for help output
        ephemeral: Deferred/failed replies visible to the caller only
        options: Discord option schema, published by `sync-commands`
    """
    name: str
    handler: HandlerFunc
    is_async: bool = False
    description: str = ""
    category: str = "general"
    ephemeral: bool = False
    options: List[Dict[str, Any]] = field(default_factory=list)

    def to_discord_schema(self) -> Dict[str, Any]:
        """CHAT_INPUT command definition for the Discord applications API."""
        return {
            "name": self.name,
            "type": 1,
            "description": (self.description or self.name)[:100],
            "options": list(self.options),
        }


def _describe(name: str, handler: Callable, description: Optional[str]) -> str:
    if description:
        return description
    if handler.__doc__:
        return handler.__doc__.strip().split("\n")[0].strip()
    return f"Handle {name} command"


class CommandRegistry:
    """Name → CommandDescriptor map with unique names."""

    def __init__(self, descriptors: Optional[List[CommandDescriptor]] = None):
        self._commands: Dict[str, CommandDescriptor] = {}
        for descriptor in descriptors or []:
            self.register(descriptor)

    def register(self, descriptor: CommandDescriptor) -> CommandDescriptor:
        """Add a descriptor. Raises DuplicateNameError and keeps the first one."""
        if not descriptor.name:
            raise ValueError("Command name must not be empty")
        if descriptor.name in self._commands:
            raise DuplicateNameError(descriptor.name)
        self._commands[descriptor.name] = descriptor
        logger.debug(f"Registered command {descriptor.name} async={descriptor.is_async}")
        return descriptor

    def command(self, name: str, is_async: bool = False, category: str = "general",
                description: str = None, ephemeral: bool = False,
                options: List[Dict[str, Any]] = None):
        """Decorator form of register()."""
        def decorator(func: HandlerFunc) -> HandlerFunc:
            self.register(CommandDescriptor(
                name=name,
                handler=func,
                is_async=is_async,
                description=_describe(name, func, description),
                category=category,
                ephemeral=ephemeral,
                options=options or [],
            ))
            return func
        return decorator

    def lookup(self, name: str) -> Optional[CommandDescriptor]:
        return self._commands.get(name)

    def names(self) -> List[str]:
        return sorted(self._commands)

    def descriptors(self) -> List[CommandDescriptor]:
        return [self._commands[name] for name in self.names()]

    def by_category(self) -> Dict[str, List[str]]:
        """Command names grouped by category."""
        categories: Dict[str, List[str]] = {}
        for descriptor in self.descriptors():
            categories.setdefault(descriptor.category, []).append(descriptor.name)
        return categories

    def __contains__(self, name: str) -> bool:
        return name in self._commands

    def __len__(self) -> int:
        return len(self._commands)

    def __iter__(self) -> Iterator[CommandDescriptor]:
        return iter(self.descriptors())
