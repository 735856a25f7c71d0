# =============================================================================
# Process Runtime
# =============================================================================
# Everything shared across invocations of a warm Lambda container: settings,
# deps, the command registry and the router. Built once on first use.
# =============================================================================

import logging
from dataclasses import dataclass
from typing import Optional

from src.runtime.deps import Deps, create_deps
from src.runtime.dispatch import Router
from src.runtime.invoker import CommandInvoker
from src.runtime.registry import CommandRegistry

logger = logging.getLogger(__name__)


@dataclass
class Runtime:
    deps: Deps
    registry: CommandRegistry
    router: Router


def build_runtime(deps: Optional[Deps] = None, registry: Optional[CommandRegistry] = None,
                  invoker: Optional[CommandInvoker] = None) -> Runtime:
    """Wire deps, registry and router together."""
    deps = deps or create_deps()
    if registry is None:
        from handlers import build_registry
        registry = build_registry()
    invoker = invoker or CommandInvoker.from_deps(deps)
    logger.info(f"Runtime ready: {len(registry)} command(s), backend={deps.settings.work_queue_backend}")
    return Runtime(deps=deps, registry=registry, router=Router(registry, invoker))


_runtime: Optional[Runtime] = None


def get_runtime() -> Runtime:
    """Get or create the process-wide runtime."""
    global _runtime
    if _runtime is None:
        _runtime = build_runtime()
    return _runtime


def set_runtime(runtime: Optional[Runtime]) -> None:
    global _runtime
    _runtime = runtime
