# =============================================================================
# Event Parser - Detect and Parse Lambda Events
# =============================================================================
# Detects the event source and normalizes it:
#   API Gateway (HTTP API v2 / REST v1) -> HttpRequest (exact body bytes)
#   SQS batch                           -> SqsRecord list (executor trigger)
#   Direct invoke                       -> WorkItem (asynchronous executor invoke)
# =============================================================================

import base64
import binascii
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List

from src.runtime.errors import MalformedPayloadError
from src.runtime.interaction import WorkItem

logger = logging.getLogger(__name__)


class EventSource:
    """Event source identifiers."""
    API_GATEWAY = "api_gateway"
    SQS = "sqs"
    DIRECT = "direct"
    UNKNOWN = "unknown"


def detect_event_source(event: Dict[str, Any]) -> str:
    """
    Detect the source of a Lambda event.

    Returns one of: api_gateway, sqs, direct, unknown
    """
    if not event or not isinstance(event, dict):
        return EventSource.UNKNOWN

    # API Gateway HTTP API (v2) or REST API (v1)
    request_context = event.get("requestContext") or {}
    if "http" in request_context or "httpMethod" in request_context or "httpMethod" in event:
        return EventSource.API_GATEWAY

    # SQS Records
    records = event.get("Records")
    if records and isinstance(records, list) and isinstance(records[0], dict):
        if records[0].get("eventSource") == "aws:sqs":
            return EventSource.SQS

    # Direct invoke carrying a work item
    if "commandName" in event and "originInteractionId" in event:
        return EventSource.DIRECT

    return EventSource.UNKNOWN


@dataclass(frozen=True)
class HttpRequest:
    """An inbound HTTP request with the body exactly as signed."""
    method: str
    path: str = ""
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = field(default=b"", repr=False)
    request_id: str = ""


@dataclass(frozen=True)
class SqsRecord:
    message_id: str
    body: str
    receipt_handle: str = ""


def _decode_body(event: Dict[str, Any]) -> bytes:
    body = event.get("body")
    if body is None:
        return b""
    if isinstance(body, bytes):
        return body
    if not isinstance(body, str):
        raise MalformedPayloadError("Request body must be a string")
    if event.get("isBase64Encoded"):
        try:
            return base64.b64decode(body, validate=True)
        except (binascii.Error, ValueError) as e:
            raise MalformedPayloadError("Request body is not valid base64", detail=str(e))
    return body.encode("utf-8")


def parse_http_request(event: Dict[str, Any]) -> HttpRequest:
    """Parse an API Gateway HTTP API or REST API event."""
    request_context = event.get("requestContext") or {}
    http = request_context.get("http") or {}

    method = (http.get("method") or event.get("httpMethod") or request_context.get("httpMethod") or "").upper()
    path = http.get("path") or event.get("rawPath") or event.get("path") or ""
    headers = {str(k): str(v) for k, v in (event.get("headers") or {}).items() if v is not None}

    request_id = (
        request_context.get("requestId") or
        headers.get("x-amzn-trace-id") or
        str(uuid.uuid4())
    )

    return HttpRequest(
        method=method,
        path=path,
        headers=headers,
        body=_decode_body(event),
        request_id=request_id,
    )


def parse_sqs_records(event: Dict[str, Any]) -> List[SqsRecord]:
    """Parse SQS event records. Bodies stay raw; the worker parses each one."""
    records = []
    for i, record in enumerate(event.get("Records", [])):
        message_id = record.get("messageId") or f"record-{i}"
        body = record.get("body", "")
        records.append(SqsRecord(
            message_id=message_id,
            body=body if isinstance(body, str) else "",
            receipt_handle=record.get("receiptHandle", ""),
        ))
    return records


def parse_direct_event(event: Dict[str, Any]) -> WorkItem:
    """Parse a direct (asynchronous) executor invoke."""
    return WorkItem.from_message(event)
