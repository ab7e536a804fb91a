"""Execution context registry."""

from ctxfs.kernel.context.execution_context import (
    ContextId,
    ContextRegistry,
    ExecutionContext,
    new_context_id,
)

__all__ = ["ContextId", "ContextRegistry", "ExecutionContext", "new_context_id"]
