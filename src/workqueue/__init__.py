# =============================================================================
# Work Queue Package
# =============================================================================
# Deferred work items travel to the executor through one of these backends.
# =============================================================================

from src.workqueue.work_queue import (
    WorkQueue,
    SqsWorkQueue,
    LambdaWorkQueue,
    MemoryWorkQueue,
    QueueMessage,
)

__all__ = [
    "WorkQueue",
    "SqsWorkQueue",
    "LambdaWorkQueue",
    "MemoryWorkQueue",
    "QueueMessage",
]
