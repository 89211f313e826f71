"""Observe errors produced by any phase.

The handler sees errors before masking, which makes it the place for error
reporting (Sentry, logs). It cannot change the result.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence

from graphql import ExecutionResult, GraphQLError

from strata.context import ExecutionContext
from strata.engine import maybe_await
from strata.hooks import AfterHook, HookEvent, HookKind
from strata.plugin import Plugin


ErrorHandler = Callable[
    [Sequence[GraphQLError], ExecutionContext | None, HookKind], Awaitable[None] | None
]


class ErrorHandlerPlugin(Plugin):
    """Call a handler with the errors of parse, validate and execute."""

    name = "error-handler"
    version = "1.0.0"

    def __init__(self, handler: ErrorHandler) -> None:
        super().__init__()
        self.handler = handler

    def setup(self) -> None:
        self.register_hook(HookKind.ON_PARSE, self.on_phase)
        self.register_hook(HookKind.ON_VALIDATE, self.on_phase)
        self.register_hook(HookKind.ON_EXECUTE_DONE, self.on_execute_done)

    def on_phase(self, event: HookEvent) -> AfterHook:
        return self._report

    async def _report(self, event: HookEvent) -> None:
        if event.errors:
            await maybe_await(self.handler(event.errors, event.context, event.kind))

    async def on_execute_done(self, event: HookEvent) -> None:
        result = event.result
        if isinstance(result, ExecutionResult) and result.errors:
            await maybe_await(self.handler(result.errors, event.context, event.kind))
        elif event.errors:
            await maybe_await(self.handler(event.errors, event.context, event.kind))
