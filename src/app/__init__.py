# =============================================================================
# Application Entry Points
# =============================================================================
# Thin transport adapters that parse events and call the router or executor.
# =============================================================================

from src.app.api_handler import api_handler
from src.app.worker_handler import worker_handler
from src.app.runtime import Runtime, build_runtime, get_runtime

__all__ = [
    "api_handler",
    "worker_handler",
    "Runtime",
    "build_runtime",
    "get_runtime",
]
