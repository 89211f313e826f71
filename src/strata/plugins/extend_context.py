"""Extend the execution context while it is being built."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from typing import Any

from strata.context import ExecutionContext
from strata.engine import maybe_await
from strata.hooks import ControlAction, HookEvent, HookKind
from strata.plugin import Plugin

ContextFactory = Callable[[ExecutionContext], Mapping[str, Any] | Awaitable[Mapping[str, Any]]]


class ExtendContextPlugin(Plugin):
    """Merge the mapping returned by a factory into the context.

    The factory sees everything earlier plugins already added, so an auth
    plugin can set ``user`` and a later plugin can derive from it.
    """

    name = "extend-context"
    version = "1.0.0"

    def __init__(self, factory: ContextFactory | Mapping[str, Any]) -> None:
        super().__init__()
        self.factory = factory

    def setup(self) -> None:
        self.register_hook(
            HookKind.ON_CONTEXT_BUILDING,
            self.on_context_building,
            actions={ControlAction.EXTEND_CONTEXT},
        )

    async def on_context_building(self, event: HookEvent) -> None:
        if isinstance(self.factory, Mapping):
            values = self.factory
        else:
            values = await maybe_await(self.factory(event.require_context()))
        if values:
            event.extend_context(values)
