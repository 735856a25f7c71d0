# Base utilities for all command handlers
# Option schema builders, guild settings access and time formatting
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from src.runtime.errors import HandlerError
from src.runtime.interaction import Interaction, StateRecord

logger = logging.getLogger()

# =============================================================================
# OPTION SCHEMA (Discord application command option types)
# =============================================================================
OPTION_SUB_COMMAND = 1
OPTION_STRING = 3

# =============================================================================
# CATEGORIES
# =============================================================================
CATEGORY_UTILITY = "utility"
CATEGORY_CONFIG = "config"
CATEGORY_SERVER = "server"


def string_option(name: str, description: str, required: bool = False,
                  choices: Optional[List[str]] = None) -> Dict[str, Any]:
    option: Dict[str, Any] = {
        "type": OPTION_STRING,
        "name": name,
        "description": description,
        "required": required,
    }
    if choices:
        option["choices"] = [{"name": c, "value": c} for c in choices]
    return option


def subcommand(name: str, description: str, options: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
    return {
        "type": OPTION_SUB_COMMAND,
        "name": name,
        "description": description,
        "options": options or [],
    }


# =============================================================================
# GUILD SETTINGS
# =============================================================================
GUILD_PREFIX = "guild#"


def guild_key(guild_id: str) -> str:
    return f"{GUILD_PREFIX}{guild_id}"


def require_guild(interaction: Interaction) -> str:
    """Guild id of the interaction. Raises HandlerError in DMs."""
    if not interaction.guild_id:
        raise HandlerError("This command can only be used in a server")
    return interaction.guild_id


def get_guild_settings(deps: Any, guild_id: str) -> Dict[str, Any]:
    """Stored per-guild settings (empty dict if none)."""
    if not guild_id:
        return {}
    record = deps.state_store.get(guild_key(guild_id))
    return dict(record.attributes) if record else {}


def put_guild_settings(deps: Any, guild_id: str, settings: Dict[str, Any]) -> None:
    deps.state_store.put(StateRecord(guild_key(guild_id), dict(settings)))


# =============================================================================
# TIME FORMATTING
# =============================================================================
def resolve_zone(name: str) -> Optional[ZoneInfo]:
    """ZoneInfo for a name, or None if unknown."""
    if not name:
        return None
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return None


def display_zone(deps: Any, guild_id: str = "") -> ZoneInfo:
    """Guild's configured zone, else the deployment's TIMEZONE, else UTC."""
    if guild_id:
        zone = resolve_zone(get_guild_settings(deps, guild_id).get("timezone", ""))
        if zone:
            return zone
    return resolve_zone(deps.settings.timezone) or ZoneInfo("UTC")


def format_epoch(epoch: int, zone: ZoneInfo) -> str:
    return datetime.fromtimestamp(int(epoch), tz=timezone.utc).astimezone(zone).strftime("%Y-%m-%d %H:%M:%S %Z")
