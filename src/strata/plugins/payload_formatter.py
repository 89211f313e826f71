"""Rewrite execution results before they are emitted."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any

from graphql import ExecutionResult

from strata.engine import maybe_await
from strata.hooks import ControlAction, HookEvent, HookKind
from strata.plugin import Plugin

PayloadFormatter = Callable[[ExecutionResult, HookEvent], Any]


class PayloadFormatterPlugin(Plugin):
    """Replace the result with the formatter's return value.

    A formatter returning None (or False) keeps the result unchanged.
    """

    name = "payload-formatter"
    version = "1.0.0"

    def __init__(self, formatter: PayloadFormatter | Callable[..., Awaitable[Any]]) -> None:
        super().__init__()
        self.formatter = formatter

    def setup(self) -> None:
        self.register_hook(
            HookKind.ON_EXECUTE_DONE,
            self.on_execute_done,
            actions={ControlAction.SET_RESULT},
        )

    async def on_execute_done(self, event: HookEvent) -> None:
        if not isinstance(event.result, ExecutionResult):
            return
        formatted = await maybe_await(self.formatter(event.result, event))
        if formatted:
            event.set_result(formatted)
