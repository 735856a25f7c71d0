# Guild Configuration Handlers
# Per-guild settings kept in the state store under guild#<guildId>
#
# /config get [key]
# /config set key value
# /config reset [key]

import logging
import re
from typing import Any, Callable, Dict, List, Optional

from handlers.base import (
    CATEGORY_CONFIG, get_guild_settings, put_guild_settings, require_guild,
    resolve_zone, string_option, subcommand, guild_key
)
from src.runtime.errors import HandlerError
from src.runtime.interaction import CommandResult, Interaction
from src.runtime.registry import CommandDescriptor
from src.runtime.util import iso_now

logger = logging.getLogger()


def _validate_timezone(value: str) -> Optional[str]:
    if resolve_zone(value) is None:
        return f"Unknown timezone `{value}` (use an IANA name such as Asia/Tokyo)"
    return None


def _validate_channel(value: str) -> Optional[str]:
    if not re.fullmatch(r"<?#?(\d{5,25})>?", value):
        return f"`{value}` is not a channel id or mention"
    return None


def _validate_locale(value: str) -> Optional[str]:
    if not re.fullmatch(r"[a-z]{2}(-[A-Z]{2})?", value):
        return f"`{value}` is not a locale such as ja or en-US"
    return None


# Allowed keys and their validators
GUILD_SETTINGS: Dict[str, Callable[[str], Optional[str]]] = {
    "timezone": _validate_timezone,
    "notify_channel": _validate_channel,
    "locale": _validate_locale,
}


def _normalize(key: str, value: str) -> str:
    if key == "notify_channel":
        return re.sub(r"\D", "", value)
    return value


def _require_key(key: str) -> str:
    if key not in GUILD_SETTINGS:
        raise HandlerError(f"Unknown setting `{key}`. Available: {', '.join(sorted(GUILD_SETTINGS))}")
    return key


def handle_config(interaction: Interaction, deps: Any) -> CommandResult:
    """Show or change this server's settings.

    Test Event:
    {
        "type": 2, "id": "1203456789012345678", "guild_id": "81384788765712384",
        "data": {"name": "config", "options": [
            {"type": 1, "name": "set", "options": [
                {"type": 3, "name": "key", "value": "timezone"},
                {"type": 3, "name": "value", "value": "Europe/Berlin"}
            ]}
        ]}
    }
    """
    guild_id = require_guild(interaction)
    action = interaction.option("subcommand", "get")
    key = (interaction.option("key") or "").strip()

    if action == "get":
        return _config_get(deps, guild_id, key)
    if action == "set":
        value = str(interaction.option("value") or "").strip()
        return _config_set(deps, guild_id, key, value, interaction.user_id)
    if action == "reset":
        return _config_reset(deps, guild_id, key)
    raise HandlerError(f"Unknown config action `{action}`")


def _config_get(deps: Any, guild_id: str, key: str) -> CommandResult:
    settings = get_guild_settings(deps, guild_id)
    if key:
        _require_key(key)
        value = settings.get(key)
        shown = f"`{value}`" if value else "not set"
        return CommandResult.message(f"`{key}`: {shown}", ephemeral=True)

    lines = ["**Server settings**"]
    for name in sorted(GUILD_SETTINGS):
        value = settings.get(name)
        lines.append(f"`{name}`: {f'`{value}`' if value else 'not set'}")
    return CommandResult.message("\n".join(lines), ephemeral=True)


def _config_set(deps: Any, guild_id: str, key: str, value: str, user_id: str) -> CommandResult:
    if not key or not value:
        raise HandlerError("Usage: /config set key value")
    _require_key(key)
    problem = GUILD_SETTINGS[key](value)
    if problem:
        raise HandlerError(problem)

    settings = get_guild_settings(deps, guild_id)
    settings[key] = _normalize(key, value)
    settings["updatedAt"] = iso_now()
    settings["updatedBy"] = user_id
    put_guild_settings(deps, guild_id, settings)
    logger.info(f"Guild {guild_id} set {key}")
    return CommandResult.message(f"`{key}` set to `{settings[key]}`", ephemeral=True)


def _config_reset(deps: Any, guild_id: str, key: str) -> CommandResult:
    if not key:
        deps.state_store.delete(guild_key(guild_id))
        logger.info(f"Guild {guild_id} settings reset")
        return CommandResult.message("All settings reset to defaults", ephemeral=True)

    _require_key(key)
    settings = get_guild_settings(deps, guild_id)
    if key in settings:
        settings.pop(key)
        settings["updatedAt"] = iso_now()
        put_guild_settings(deps, guild_id, settings)
    return CommandResult.message(f"`{key}` reset to default", ephemeral=True)


_KEY_CHOICES = sorted(GUILD_SETTINGS)

CONFIG_OPTIONS: List[Dict[str, Any]] = [
    subcommand("get", "Show settings", [string_option("key", "Setting name", choices=_KEY_CHOICES)]),
    subcommand("set", "Change a setting", [
        string_option("key", "Setting name", required=True, choices=_KEY_CHOICES),
        string_option("value", "New value", required=True),
    ]),
    subcommand("reset", "Restore defaults", [string_option("key", "Setting name", choices=_KEY_CHOICES)]),
]

CONFIG_COMMANDS: List[CommandDescriptor] = [
    CommandDescriptor(
        name="config",
        handler=handle_config,
        description="Show or change this server's settings",
        category=CATEGORY_CONFIG,
        ephemeral=True,
        options=CONFIG_OPTIONS,
    ),
]
