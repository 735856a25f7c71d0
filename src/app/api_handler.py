# =============================================================================
# API Gateway Handler
# =============================================================================
# Entry point for the interactions endpoint.
#   GET            -> 200 liveness
#   POST           -> verify signature (401) -> route (400 on bad body) -> 200
#   anything else  -> 405
# The response body of a 200 is the interaction callback Discord expects.
# =============================================================================

import json
import logging
from typing import Any, Dict, Optional

from src.app.runtime import Runtime, get_runtime
from src.runtime.errors import AuthenticationError, DispatcherError
from src.runtime.parse_event import parse_http_request
from src.runtime.security import SIGNATURE_HEADER, TIMESTAMP_HEADER
from src.runtime.util import header

logger = logging.getLogger(__name__)


def api_response(data: Dict[str, Any], status_code: int = 200) -> Dict[str, Any]:
    """Format response for API Gateway HTTP API."""
    return {
        "statusCode": status_code,
        "headers": {
            "Content-Type": "application/json",
        },
        "body": json.dumps(data, ensure_ascii=False, default=str),
    }


def error_response(error: DispatcherError) -> Dict[str, Any]:
    return api_response({"error": error.message}, error.status_code)


def api_handler(event: Dict[str, Any], context: Any, runtime: Optional[Runtime] = None) -> Dict[str, Any]:
    """
    API Gateway entry point.

    Args:
        event: API Gateway HTTP API (v2) or REST API (v1) event
        context: Lambda context
        runtime: Wired runtime (process-wide one by default)

    Returns:
        API Gateway response format
    """
    try:
        request = parse_http_request(event)
    except DispatcherError as e:
        logger.warning(f"Unreadable request: {e.message}")
        return error_response(e)

    if request.method == "GET":
        return api_response({"status": "ok"})
    if request.method != "POST":
        logger.info(f"Method not allowed: {request.method} {request.path}")
        return api_response({"error": "Method not allowed"}, 405)

    runtime = runtime or get_runtime()
    try:
        verifier = runtime.deps.verifier
        verifier.require_valid(
            request.body,
            header(request.headers, TIMESTAMP_HEADER),
            header(request.headers, SIGNATURE_HEADER),
        )
    except AuthenticationError as e:
        logger.warning(f"Unauthorized request {request.request_id}")
        return error_response(e)
    except DispatcherError as e:
        # Verifier could not be built (public key unavailable)
        logger.error(f"Cannot verify request {request.request_id}: {e.message}")
        return error_response(e)

    try:
        interaction, result = runtime.router.handle(request.body)
    except DispatcherError as e:
        if e.status_code >= 500:
            logger.exception(f"Request {request.request_id} failed: {e.message}")
        else:
            logger.warning(f"Rejected request {request.request_id}: {e.message}")
        return error_response(e)

    logger.info(f"Answered {interaction.type.name} id={interaction.id} status={result.status.value} "
                f"callback={result.payload.get('type')}")
    return api_response(result.payload)
