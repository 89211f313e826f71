"""Schema selection plugins.

SchemaPlugin sets the schema for every request when the pipeline is built.
SchemaByContextPlugin picks a schema per request from the built context,
e.g. a reduced public schema for anonymous users. Both own the ``schema``
capability, so only one of them may be registered.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from strata.context import ExecutionContext
from strata.engine import maybe_await, resolve_schema
from strata.hooks import ControlAction, HookEvent, HookKind
from strata.plugin import SCHEMA_OWNER, Plugin

SchemaFactory = Callable[[ExecutionContext], Any]


class SchemaPlugin(Plugin):
    """Use a fixed schema."""

    name = "schema"
    version = "1.0.0"
    description = "Provides the schema for all requests"
    exclusive = frozenset({SCHEMA_OWNER})

    def __init__(self, schema: Any) -> None:
        super().__init__()
        self.schema = resolve_schema(schema)

    def setup(self) -> None:
        self.register_hook(
            HookKind.ON_SCHEMA_CHANGE,
            self.on_schema_change,
            actions={ControlAction.REPLACE_SCHEMA},
        )

    def on_schema_change(self, event: HookEvent) -> None:
        if event.schema is not self.schema:
            event.replace_schema(self.schema)


class SchemaByContextPlugin(Plugin):
    """Select the schema per request from the execution context."""

    name = "schema-by-context"
    version = "1.0.0"
    description = "Selects a schema for each request from its context"
    exclusive = frozenset({SCHEMA_OWNER})

    def __init__(self, factory: SchemaFactory) -> None:
        super().__init__()
        self.factory = factory

    def setup(self) -> None:
        self.register_hook(
            HookKind.ON_PARSE,
            self.on_parse,
            actions={ControlAction.REPLACE_SCHEMA},
        )

    async def on_parse(self, event: HookEvent) -> None:
        schema = await maybe_await(self.factory(event.require_context()))
        event.replace_schema(schema)
