# =============================================================================
# State Store Package
# =============================================================================
# Per-entity key-value state (guild settings, instance state, executor
# de-duplication records) behind a backend-neutral contract.
# =============================================================================

from src.store.state_store import StateStore, DynamoStateStore, MemoryStateStore

__all__ = [
    "StateStore",
    "DynamoStateStore",
    "MemoryStateStore",
]
