# =============================================================================
# Interaction Model - Normalized Discord Interaction Types
# =============================================================================
# Inbound webhook bodies are parsed into an immutable Interaction. Handlers
# answer with a CommandResult; deferred work travels as a WorkItem; durable
# per-entity state is a StateRecord.
# =============================================================================

import json
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum, IntEnum
from typing import Any, Dict, List, Optional, Union

from src.runtime.errors import MalformedPayloadError

# Discord snowflakes count milliseconds from 2015-01-01T00:00:00Z
DISCORD_EPOCH_MS = 1420070400000

# Message flag: only the invoking user sees the message
EPHEMERAL_FLAG = 1 << 6

MAX_CONTENT_LENGTH = 2000

# Option types that nest further options instead of carrying a value
_SUB_COMMAND = 1
_SUB_COMMAND_GROUP = 2


class InteractionType(IntEnum):
    """Interaction kinds accepted on the webhook (Discord wire values)."""
    PING = 1
    APPLICATION_COMMAND = 2
    MESSAGE_COMPONENT = 3
    MODAL_SUBMIT = 5


class ResponseType(IntEnum):
    """Interaction callback types."""
    PONG = 1
    CHANNEL_MESSAGE = 4
    DEFERRED_CHANNEL_MESSAGE = 5
    DEFERRED_UPDATE_MESSAGE = 6
    UPDATE_MESSAGE = 7


class ResultStatus(str, Enum):
    OK = "ok"
    DEFERRED = "deferred"
    FAILED = "failed"


def snowflake_time(snowflake: str) -> Optional[datetime]:
    """Creation time encoded in a Discord snowflake id, or None if not a snowflake."""
    try:
        value = int(snowflake)
    except (TypeError, ValueError):
        return None
    if value <= 0:
        return None
    millis = (value >> 22) + DISCORD_EPOCH_MS
    try:
        return datetime.fromtimestamp(millis // 1000, tz=timezone.utc) + timedelta(milliseconds=millis % 1000)
    except (OverflowError, OSError, ValueError):
        return None


def _expect(value: Any, kind: type, what: str) -> Any:
    """Return value (or an empty kind when missing), rejecting any other shape."""
    if value is None:
        return kind()
    if not isinstance(value, kind):
        raise MalformedPayloadError(f"Interaction {what} must be a JSON {'object' if kind is dict else 'array'}")
    return value


def _flatten_options(options: Optional[List[Dict[str, Any]]]) -> Dict[str, Any]:
    """Flatten slash-command options into {name: value}.

    Subcommands and groups are collapsed into a single "subcommand" entry
    ("group sub") and their own options merged in.
    """
    result: Dict[str, Any] = {}
    for option in _expect(options, list, "options"):
        if not isinstance(option, dict) or "name" not in option:
            raise MalformedPayloadError("Invalid command option")
        if option.get("type") in (_SUB_COMMAND, _SUB_COMMAND_GROUP):
            nested = _flatten_options(option.get("options"))
            path = option["name"]
            if "subcommand" in nested:
                path = f"{path} {nested.pop('subcommand')}"
            result["subcommand"] = path
            result.update(nested)
        else:
            result[option["name"]] = option.get("value")
    return result


def _modal_values(components: Optional[List[Dict[str, Any]]]) -> Dict[str, Any]:
    """Collect text input values from modal action rows."""
    values: Dict[str, Any] = {}
    for row in _expect(components, list, "components"):
        if not isinstance(row, dict):
            raise MalformedPayloadError("Modal action row must be an object")
        for component in _expect(row.get("components"), list, "components"):
            if isinstance(component, dict) and component.get("custom_id"):
                values[component["custom_id"]] = component.get("value")
    return values


@dataclass(frozen=True)
class Interaction:
    """
    A single inbound event from the webhook.

    Attributes:
        id: Interaction id (snowflake)
        type: Interaction kind
        command_name: Slash command name, set only for application commands
        raw_payload: Exact request body, as verified
        issued_at: Creation time from the snowflake (receipt time otherwise)
        application_id: Application that owns the interaction token
        token: Interaction token used for follow-up messages
        guild_id: Guild the interaction came from (empty in DMs)
        channel_id: Channel the interaction came from
        user_id: Invoking user
        custom_id: Component or modal custom id
        options: Flattened command options / modal values
        data: The parsed JSON object
    """
    id: str
    type: InteractionType
    command_name: Optional[str] = None
    raw_payload: bytes = field(default=b"", repr=False)
    issued_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    application_id: str = ""
    token: str = field(default="", repr=False)
    guild_id: str = ""
    channel_id: str = ""
    user_id: str = ""
    custom_id: str = ""
    options: Dict[str, Any] = field(default_factory=dict)
    data: Dict[str, Any] = field(default_factory=dict, repr=False)

    @property
    def is_ping(self) -> bool:
        return self.type == InteractionType.PING

    @property
    def is_command(self) -> bool:
        return self.type == InteractionType.APPLICATION_COMMAND

    @property
    def is_component(self) -> bool:
        return self.type in (InteractionType.MESSAGE_COMPONENT, InteractionType.MODAL_SUBMIT)

    @property
    def route_key(self) -> str:
        """Registry key: the command name, or the custom_id prefix for components."""
        if self.is_command:
            return self.command_name or ""
        if self.custom_id:
            return self.custom_id.split(":", 1)[0]
        return ""

    def option(self, name: str, default: Any = None) -> Any:
        return self.options.get(name, default)

    def age_seconds(self, now: Optional[datetime] = None) -> float:
        now = now or datetime.now(timezone.utc)
        return (now - self.issued_at).total_seconds()

    def to_work_payload(self) -> Dict[str, Any]:
        """Context the executor needs to run the command and answer it."""
        return {
            "applicationId": self.application_id,
            "token": self.token,
            "interaction": self.data,
        }

    @classmethod
    def from_payload(cls, raw_body: Union[bytes, str]) -> "Interaction":
        """Parse a raw webhook body."""
        if isinstance(raw_body, str):
            raw_body = raw_body.encode("utf-8")
        if not raw_body:
            raise MalformedPayloadError("Empty request body")
        try:
            data = json.loads(raw_body.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise MalformedPayloadError("Request body is not valid JSON", detail=str(e))
        return cls.from_dict(data, raw_payload=raw_body)

    @classmethod
    def from_dict(cls, data: Any, raw_payload: bytes = b"") -> "Interaction":
        """Build an Interaction from a parsed interaction object."""
        if not isinstance(data, dict):
            raise MalformedPayloadError("Interaction must be a JSON object")

        try:
            kind = InteractionType(data.get("type"))
        except ValueError:
            raise MalformedPayloadError(f"Unsupported interaction type: {data.get('type')!r}")

        interaction_id = data.get("id")
        if not interaction_id or not isinstance(interaction_id, (str, int)):
            raise MalformedPayloadError("Interaction id is missing")
        interaction_id = str(interaction_id)

        body = data.get("data") or {}
        if not isinstance(body, dict):
            raise MalformedPayloadError("Interaction data must be an object")

        command_name = None
        custom_id = ""
        options: Dict[str, Any] = {}
        if kind == InteractionType.APPLICATION_COMMAND:
            command_name = body.get("name")
            if not command_name or not isinstance(command_name, str):
                raise MalformedPayloadError("Application command without a name")
            options = _flatten_options(body.get("options"))
        elif kind in (InteractionType.MESSAGE_COMPONENT, InteractionType.MODAL_SUBMIT):
            custom_id = body.get("custom_id") or ""
            if not isinstance(custom_id, str) or not custom_id:
                raise MalformedPayloadError("Component interaction without a custom_id")
            if kind == InteractionType.MODAL_SUBMIT:
                options = _modal_values(body.get("components"))
            elif body.get("values") is not None:
                options = {"values": list(_expect(body.get("values"), list, "values"))}

        # Guild interactions carry member.user, DMs carry user
        member = _expect(data.get("member"), dict, "member")
        user = _expect(member.get("user") or data.get("user"), dict, "user")

        return cls(
            id=interaction_id,
            type=kind,
            command_name=command_name,
            raw_payload=raw_payload,
            issued_at=snowflake_time(interaction_id) or datetime.now(timezone.utc),
            application_id=str(data.get("application_id") or ""),
            token=str(data.get("token") or ""),
            guild_id=str(data.get("guild_id") or ""),
            channel_id=str(data.get("channel_id") or ""),
            user_id=str(user.get("id") or ""),
            custom_id=custom_id,
            options=options,
            data=data,
        )


@dataclass(frozen=True)
class CommandResult:
    """
    Outcome of handling an interaction.

    payload is the interaction response body returned to Discord; for
    deferred results the real answer arrives later through the follow-up
    channel.
    """
    status: ResultStatus
    payload: Dict[str, Any] = field(default_factory=dict)
    follow_up_required: bool = False

    @property
    def is_ok(self) -> bool:
        return self.status == ResultStatus.OK

    @property
    def is_deferred(self) -> bool:
        return self.status == ResultStatus.DEFERRED

    @property
    def is_failed(self) -> bool:
        return self.status == ResultStatus.FAILED

    @property
    def content(self) -> str:
        return (self.payload.get("data") or {}).get("content", "")

    def follow_up_body(self) -> Dict[str, Any]:
        """Message body for the follow-up webhook (the callback's data part)."""
        return dict(self.payload.get("data") or {})

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "payload": self.payload,
            "followUpRequired": self.follow_up_required,
        }

    @classmethod
    def pong(cls) -> "CommandResult":
        return cls(ResultStatus.OK, {"type": ResponseType.PONG.value})

    @classmethod
    def message(cls, content: str, ephemeral: bool = False,
                embeds: Optional[List[Dict[str, Any]]] = None) -> "CommandResult":
        data: Dict[str, Any] = {"content": _truncate(content)}
        if embeds:
            data["embeds"] = embeds
        if ephemeral:
            data["flags"] = EPHEMERAL_FLAG
        return cls(ResultStatus.OK, {"type": ResponseType.CHANNEL_MESSAGE.value, "data": data})

    @classmethod
    def deferred(cls, ephemeral: bool = False, update: bool = False) -> "CommandResult":
        """Acknowledge now; update=True for components (no loading message)."""
        if update:
            payload: Dict[str, Any] = {"type": ResponseType.DEFERRED_UPDATE_MESSAGE.value}
        else:
            payload = {"type": ResponseType.DEFERRED_CHANNEL_MESSAGE.value}
            if ephemeral:
                payload["data"] = {"flags": EPHEMERAL_FLAG}
        return cls(ResultStatus.DEFERRED, payload, follow_up_required=True)

    @classmethod
    def failed(cls, message: str, ephemeral: bool = True) -> "CommandResult":
        data: Dict[str, Any] = {"content": _truncate(message)}
        if ephemeral:
            data["flags"] = EPHEMERAL_FLAG
        return cls(ResultStatus.FAILED, {"type": ResponseType.CHANNEL_MESSAGE.value, "data": data})


def _truncate(content: str) -> str:
    content = str(content or "")
    if len(content) <= MAX_CONTENT_LENGTH:
        return content
    return content[:MAX_CONTENT_LENGTH - 1] + "…"


@dataclass(frozen=True)
class WorkItem:
    """
    A unit of deferred work for the executor.

    Delivery is at-least-once: consumers de-duplicate on origin_interaction_id.
    """
    command_name: str
    origin_interaction_id: str
    payload: Dict[str, Any] = field(default_factory=dict)

    @property
    def application_id(self) -> str:
        return self.payload.get("applicationId", "")

    @property
    def token(self) -> str:
        return self.payload.get("token", "")

    @classmethod
    def for_interaction(cls, command_name: str, interaction: Interaction) -> "WorkItem":
        return cls(
            command_name=command_name,
            origin_interaction_id=interaction.id,
            payload=interaction.to_work_payload(),
        )

    def to_message(self) -> Dict[str, Any]:
        return {
            "commandName": self.command_name,
            "originInteractionId": self.origin_interaction_id,
            "payload": self.payload,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_message(), ensure_ascii=False, default=str)

    @classmethod
    def from_message(cls, message: Union[str, bytes, Dict[str, Any]]) -> "WorkItem":
        """Parse a queue message body or direct-invoke event."""
        if isinstance(message, (str, bytes)):
            try:
                message = json.loads(message)
            except (UnicodeDecodeError, json.JSONDecodeError) as e:
                raise MalformedPayloadError("Work item is not valid JSON", detail=str(e))
        if not isinstance(message, dict):
            raise MalformedPayloadError("Work item must be a JSON object")
        command_name = message.get("commandName")
        origin_id = message.get("originInteractionId")
        payload = message.get("payload") or {}
        if not command_name or not origin_id:
            raise MalformedPayloadError("Work item requires commandName and originInteractionId")
        if not isinstance(payload, dict):
            raise MalformedPayloadError("Work item payload must be an object")
        return cls(command_name=str(command_name), origin_interaction_id=str(origin_id), payload=payload)


@dataclass
class StateRecord:
    """A persisted key-value entity, keyed by partition key id."""
    id: str
    attributes: Dict[str, Any] = field(default_factory=dict)

    def get(self, key: str, default: Any = None) -> Any:
        return self.attributes.get(key, default)

    def to_item(self, key_name: str = "id") -> Dict[str, Any]:
        item = {k: v for k, v in self.attributes.items() if k != key_name}
        item[key_name] = self.id
        return item

    @classmethod
    def from_item(cls, item: Dict[str, Any], key_name: str = "id") -> "StateRecord":
        attributes = {k: v for k, v in item.items() if k != key_name}
        return cls(id=str(item[key_name]), attributes=attributes)


