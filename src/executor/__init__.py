# =============================================================================
# Executor Package
# =============================================================================
# Runs deferred commands. Driven by the worker Lambda (SQS trigger or
# asynchronous invoke) or by the long-running daemon.
# =============================================================================

from src.executor.worker import execute_work_item, Outcome
from src.executor.daemon import ExecutorDaemon

__all__ = [
    "execute_work_item",
    "Outcome",
    "ExecutorDaemon",
]
