"""Log the start and end of every execution."""

from __future__ import annotations

import logging
import time

from graphql import ExecutionResult

from strata.hooks import AfterHook, HookEvent, HookKind
from strata.plugin import Plugin


class LoggerPlugin(Plugin):
    """Log operations with their duration and error count.

    Args:
        logger: Logger to write to (defaults to this module's logger)
        skip_introspection: Do not log introspection queries
    """

    name = "logger"
    version = "1.0.0"

    def __init__(
        self,
        logger: logging.Logger | None = None,
        skip_introspection: bool = False,
    ) -> None:
        super().__init__()
        self.logger = logger or logging.getLogger(__name__)
        self.skip_introspection = skip_introspection

    def setup(self) -> None:
        self.register_hook(HookKind.ON_EXECUTE, self.on_execute)
        self.register_hook(HookKind.ON_SUBSCRIBE, self.on_execute)

    def on_execute(self, event: HookEvent) -> AfterHook | None:
        if self.skip_introspection and _is_introspection(event):
            return None

        operation = event.operation_name or "anonymous"
        kind = "subscribe" if event.kind is HookKind.ON_SUBSCRIBE else "execute"
        self.logger.info(f"{kind}-start {operation}", extra={"operation": operation})
        started = time.perf_counter()

        def done(after: HookEvent) -> None:
            duration_ms = (time.perf_counter() - started) * 1000
            result = after.result
            errors = len(result.errors or []) if isinstance(result, ExecutionResult) else 0
            self.logger.info(
                f"{kind}-end {operation} in {duration_ms:.2f}ms ({errors} errors)",
                extra={"operation": operation, "duration_ms": duration_ms, "errors": errors},
            )

        return done


def _is_introspection(event: HookEvent) -> bool:
    from graphql import FieldNode, OperationDefinitionNode

    if event.document is None:
        return False
    for definition in event.document.definitions:
        if isinstance(definition, OperationDefinitionNode):
            fields = [
                selection
                for selection in definition.selection_set.selections
                if isinstance(selection, FieldNode)
            ]
            if fields and all(f.name.value.startswith("__") for f in fields):
                return True
    return False
