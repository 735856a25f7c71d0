# Shared helpers for the runtime
import json
import time
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Optional


def iso_now() -> str:
    """Get current UTC timestamp in ISO format."""
    return datetime.now(timezone.utc).isoformat()


def epoch_now() -> int:
    return int(time.time())


def jdump(x: Any) -> str:
    """JSON dump with defaults for non-serializable types."""
    return json.dumps(x, ensure_ascii=False, default=str, separators=(",", ":"))


def header(headers: Optional[Dict[str, Any]], name: str, default: str = "") -> str:
    """Case-insensitive header lookup (HTTP API lowercases, REST API does not)."""
    if not headers:
        return default
    wanted = name.lower()
    for key, value in headers.items():
        if key.lower() == wanted:
            return value if value is not None else default
    return default


def from_dynamo(value: Any) -> Any:
    """Convert DynamoDB Decimals back to int/float, recursively."""
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, dict):
        return {k: from_dynamo(v) for k, v in value.items()}
    if isinstance(value, list):
        return [from_dynamo(v) for v in value]
    return value


def to_dynamo(value: Any) -> Any:
    """DynamoDB rejects floats; store them as Decimal."""
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, dict):
        return {k: to_dynamo(v) for k, v in value.items()}
    if isinstance(value, list):
        return [to_dynamo(v) for v in value]
    return value
