"""OpenTelemetry spans for operations and, optionally, resolvers.

Usage:
    OpenTelemetryPlugin(resolvers=True)

The plugin uses the global tracer provider unless one is passed in.
Operation spans are named ``graphql.execute`` or ``graphql.subscribe`` and
resolver spans ``Type.field``.
"""

from __future__ import annotations

import logging
from typing import Any

from graphql import ExecutionResult
from opentelemetry import context as otel_context
from opentelemetry import trace
from opentelemetry.trace import Span, Status, StatusCode, TracerProvider

from strata.hooks import AfterHook, ControlAction, HookEvent, HookKind, Resolver
from strata.plugin import Plugin

logger = logging.getLogger(__name__)


class OpenTelemetryPlugin(Plugin):
    """Trace operations with OpenTelemetry."""

    name = "opentelemetry"
    version = "1.0.0"
    description = "Creates OpenTelemetry spans for operations and resolvers"

    def __init__(
        self,
        tracer_provider: TracerProvider | None = None,
        resolvers: bool = False,
    ) -> None:
        super().__init__()
        self.tracer = trace.get_tracer("strata.graphql", tracer_provider=tracer_provider)
        self.resolvers = resolvers

    def setup(self) -> None:
        self.register_hook(HookKind.ON_EXECUTE, self.on_execute)
        self.register_hook(HookKind.ON_SUBSCRIBE, self.on_execute)
        if self.resolvers:
            self.register_hook(
                HookKind.ON_RESOLVER_CALLED,
                self.on_resolver_called,
                actions={ControlAction.WRAP_RESOLVER},
            )

    def on_execute(self, event: HookEvent) -> AfterHook:
        kind = "subscribe" if event.kind is HookKind.ON_SUBSCRIBE else "execute"
        span = self.tracer.start_span(f"graphql.{kind}")
        span.set_attribute("graphql.operation.name", event.operation_name or "")
        if event.source:
            span.set_attribute("graphql.document", event.source)

        # Resolver spans become children of the execute span
        token = None
        if event.kind is HookKind.ON_EXECUTE:
            token = otel_context.attach(trace.set_span_in_context(span))

        def done(after: HookEvent) -> None:
            nonlocal token
            if token is not None:
                otel_context.detach(token)
                token = None
            _record_result(span, after.result)
            # Subscriptions emit many results; the span covers setup and the first one
            if span.is_recording():
                span.end()

        return done

    def on_resolver_called(self, event: HookEvent) -> None:
        info = event.info
        span_name = f"{info.parent_type.name}.{info.field_name}"
        tracer = self.tracer

        def wrapper(resolver: Resolver) -> Resolver:
            async def traced(root: Any, info: Any, **args: Any) -> Any:
                with tracer.start_as_current_span(span_name) as span:
                    span.set_attribute("graphql.field.name", info.field_name)
                    path = ".".join(str(key) for key in info.path.as_list())
                    span.set_attribute("graphql.field.path", path)
                    return await resolver(root, info, **args)

            return traced

        event.wrap_resolver(wrapper)


def _record_result(span: Span, result: Any) -> None:
    if not isinstance(result, ExecutionResult) or not span.is_recording():
        return
    if result.errors:
        span.set_attribute("graphql.errors.count", len(result.errors))
        span.set_status(Status(StatusCode.ERROR, result.errors[0].message))
    else:
        span.set_status(Status(StatusCode.OK))
