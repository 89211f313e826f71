"""Boundary to the GraphQL engine.

The orchestrator never parses, validates or executes documents itself. It
calls the capability set held by an Engine, which defaults to graphql-core.
Tests and embedders can swap any single capability.

Example:
    engine = Engine()
    document = engine.parse("{ hello }")
    errors = engine.validate(schema, document, [MyRule])
    result = await engine.execute(schema, document, context_value=ctx)
"""

from __future__ import annotations

import inspect
from collections.abc import AsyncIterator, Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

import strawberry
from graphql import (
    DocumentNode,
    ExecutionResult,
    GraphQLError,
    GraphQLSchema,
    create_source_event_stream,
    execute,
    parse,
    specified_rules,
    validate,
)
from graphql.validation import ASTValidationRule

ValidationRuleType = type[ASTValidationRule]


async def maybe_await(value: Any) -> Any:
    """Await the value if it is awaitable, otherwise return it as is."""
    if inspect.isawaitable(value):
        return await value
    return value


def resolve_schema(schema: Any) -> GraphQLSchema:
    """Return the graphql-core schema behind a schema object.

    Accepts a GraphQLSchema or a strawberry.Schema.

    Raises:
        TypeError: If the object is not a supported schema type
    """
    if isinstance(schema, GraphQLSchema):
        return schema
    if isinstance(schema, strawberry.Schema):
        return schema._schema
    raise TypeError(f"Unsupported schema type: {type(schema).__name__}")


@dataclass(frozen=True)
class Engine:
    """Capability set of the underlying GraphQL engine."""

    parse_fn: Callable[[str], DocumentNode] = parse
    validate_fn: Callable[..., list[GraphQLError]] = validate
    execute_fn: Callable[..., Any] = execute
    source_stream_fn: Callable[..., Any] = create_source_event_stream
    specified_rules: tuple[ValidationRuleType, ...] = field(
        default_factory=lambda: tuple(specified_rules)
    )

    def parse(self, source: str) -> DocumentNode:
        """Parse query text. Raises GraphQLSyntaxError on malformed input."""
        return self.parse_fn(source)

    def validate(
        self,
        schema: GraphQLSchema,
        document: DocumentNode,
        extra_rules: Sequence[ValidationRuleType] = (),
    ) -> list[GraphQLError]:
        """Validate with the built-in rules plus extra rules in one pass."""
        rules = [*self.specified_rules, *extra_rules]
        return list(self.validate_fn(schema, document, rules))

    async def execute(
        self,
        schema: GraphQLSchema,
        document: DocumentNode,
        *,
        root_value: Any = None,
        context_value: Any = None,
        variable_values: dict[str, Any] | None = None,
        operation_name: str | None = None,
        middleware: Sequence[Any] | None = None,
    ) -> ExecutionResult:
        """Execute a query or mutation."""
        result = self.execute_fn(
            schema,
            document,
            root_value=root_value,
            context_value=context_value,
            variable_values=variable_values,
            operation_name=operation_name,
            middleware=list(middleware) if middleware else None,
        )
        return await maybe_await(result)

    async def subscribe(
        self,
        schema: GraphQLSchema,
        document: DocumentNode,
        *,
        root_value: Any = None,
        context_value: Any = None,
        variable_values: dict[str, Any] | None = None,
        operation_name: str | None = None,
        middleware: Sequence[Any] | None = None,
    ) -> AsyncIterator[ExecutionResult] | ExecutionResult:
        """Create a subscription event stream.

        Each source event is executed as the root value of the operation,
        through ``execute`` and its middleware. Returns an ExecutionResult
        instead of a stream when the subscription could not be set up.
        """
        stream = await maybe_await(
            self.source_stream_fn(
                schema,
                document,
                root_value=root_value,
                context_value=context_value,
                variable_values=variable_values,
                operation_name=operation_name,
            )
        )
        if isinstance(stream, ExecutionResult):
            return stream
        return self._map_events(
            stream,
            schema,
            document,
            context_value=context_value,
            variable_values=variable_values,
            operation_name=operation_name,
            middleware=middleware,
        )

    async def _map_events(
        self,
        stream: AsyncIterator[Any],
        schema: GraphQLSchema,
        document: DocumentNode,
        **kwargs: Any,
    ) -> AsyncIterator[ExecutionResult]:
        try:
            async for payload in stream:
                yield await self.execute(schema, document, root_value=payload, **kwargs)
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()
