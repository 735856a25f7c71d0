# =============================================================================
# Lambda Entry Points
# =============================================================================
#   lambda_handler  - interactions endpoint (API Gateway)
#   worker_handler  - executor (SQS trigger or asynchronous invoke)
#
# Clients, secrets and the command registry are created on first use, so the
# module can be imported without AWS credentials.
# =============================================================================

import logging
import os
from typing import Any, Dict

from src.app.api_handler import api_handler
from src.app.worker_handler import worker_handler as _worker_handler
from src.runtime.util import jdump

# ---------- Logger ----------
logger = logging.getLogger()
logger.setLevel(os.environ.get("LOG_LEVEL", "INFO").upper())

# Never logged: signatures, interaction bodies (they carry the follow-up token)
_OMIT_HEADERS = {"x-signature-ed25519", "authorization"}


def _loggable(event: Dict[str, Any]) -> Dict[str, Any]:
    """Event summary that is safe to log."""
    if not isinstance(event, dict):
        return {"type": type(event).__name__}
    summary: Dict[str, Any] = {k: v for k, v in event.items() if k not in ("body", "Records", "payload")}
    if "headers" in summary and isinstance(summary["headers"], dict):
        summary["headers"] = {k: v for k, v in summary["headers"].items() if k.lower() not in _OMIT_HEADERS}
    if "body" in event:
        summary["bodyLength"] = len(event.get("body") or "")
    if "Records" in event:
        summary["recordCount"] = len(event.get("Records") or [])
    return summary


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    logger.info("RAW_EVENT=%s", jdump(_loggable(event)))
    return api_handler(event, context)


def worker_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    logger.info("RAW_EVENT=%s", jdump(_loggable(event)))
    return _worker_handler(event, context)
