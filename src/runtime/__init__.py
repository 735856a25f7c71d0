# =============================================================================
# Runtime Package - Interaction Dispatch Core
# =============================================================================
# Verifies, parses and routes Discord interactions; runs commands inline or
# defers them to the executor.
# =============================================================================

from src.runtime.interaction import Interaction, InteractionType, CommandResult, ResultStatus, WorkItem, StateRecord
from src.runtime.registry import CommandDescriptor, CommandRegistry
from src.runtime.security import SignatureVerifier, verify_signature
from src.runtime.dispatch import Router
from src.runtime.invoker import CommandInvoker, run_handler
from src.runtime.deps import Deps, create_deps

__all__ = [
    "Interaction",
    "InteractionType",
    "CommandResult",
    "ResultStatus",
    "WorkItem",
    "StateRecord",
    "CommandDescriptor",
    "CommandRegistry",
    "SignatureVerifier",
    "verify_signature",
    "Router",
    "CommandInvoker",
    "run_handler",
    "Deps",
    "create_deps",
]
