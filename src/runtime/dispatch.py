# =============================================================================
# Request Router
# =============================================================================
# Parses a verified webhook body and dispatches by interaction kind:
#   PING                       -> Pong, answered here (liveness check)
#   APPLICATION_COMMAND        -> registry lookup by command name
#   MESSAGE_COMPONENT / MODAL  -> registry lookup by custom_id prefix
# Unknown commands produce a user-visible FAILED result, never an exception.
# =============================================================================

import logging
from typing import Optional, Tuple, Union

from src.runtime.errors import UnknownCommandError
from src.runtime.interaction import CommandResult, Interaction, InteractionType
from src.runtime.invoker import CommandInvoker
from src.runtime.registry import CommandRegistry

logger = logging.getLogger(__name__)


class Router:
    """Routes interactions to registered commands."""

    def __init__(self, registry: CommandRegistry, invoker: CommandInvoker):
        self.registry = registry
        self.invoker = invoker

    def route(self, raw_body: Union[bytes, str]) -> Tuple[Interaction, Optional[CommandResult]]:
        """
        Classify an interaction.

        Returns:
            (interaction, result) where result is the final answer for pings
            and unknown commands, or None when the command is known and must
            be forwarded to the invoker.

        Raises:
            MalformedPayloadError: body is not a valid interaction
        """
        interaction = Interaction.from_payload(raw_body)

        if interaction.type == InteractionType.PING:
            logger.info(f"PING id={interaction.id}")
            return interaction, CommandResult.pong()

        name = interaction.route_key
        if self.registry.lookup(name) is None:
            error = UnknownCommandError(name)
            logger.warning(f"{error.message} (type={interaction.type.name} id={interaction.id})")
            return interaction, CommandResult.failed(f"Unknown command `{name}`")

        return interaction, None

    def handle(self, raw_body: Union[bytes, str]) -> Tuple[Interaction, CommandResult]:
        """Route and, for known commands, invoke. Always yields a result."""
        interaction, result = self.route(raw_body)
        if result is not None:
            return interaction, result

        descriptor = self.registry.lookup(interaction.route_key)
        logger.info(f"Dispatching command={descriptor.name} async={descriptor.is_async} "
                    f"type={interaction.type.name} id={interaction.id} guild={interaction.guild_id or '-'}")
        return interaction, self.invoker.invoke(descriptor, interaction)
