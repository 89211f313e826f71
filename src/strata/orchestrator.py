"""Orchestrator: drive one request through a fused pipeline.

Each request moves through

    INIT -> CONTEXT_BUILDING -> PARSING -> VALIDATING -> EXECUTING -> COMPLETED

and may end in ERRORED from any phase. Phases run strictly one after the
other and each is entered at most once. Field resolution inside EXECUTING
may fan out concurrently as the engine decides; resolver hooks only read
the (sealed) context.

Example:
    orchestrator = Orchestrator([SchemaPlugin(schema), MaskedErrorsPlugin()])
    result = await orchestrator.run("{ hello }", context={"user": user})

    # Hot reload keeps in-flight requests on their pipeline snapshot
    orchestrator.reload(plugins=[SchemaPlugin(new_schema)])
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass
from enum import Enum, auto
from typing import TYPE_CHECKING, Any
from uuid import uuid4

from graphql import DocumentNode, ExecutionResult, GraphQLError, GraphQLSchema, OperationType
from graphql.utilities import get_operation_ast

from strata.composer import FusedPipeline, compose
from strata.context import ExecutionContext
from strata.engine import Engine, maybe_await, resolve_schema
from strata.errors import ContractViolation, InternalPipelineError, to_structured_error
from strata.hooks import HOOK_METADATA, AfterHook, HookEvent, HookKind, HookSide
from strata.masking import mask_result
from strata.observability.logging import LogContext

if TYPE_CHECKING:
    from strata.config import Settings
    from strata.plugin import Plugin

logger = logging.getLogger(__name__)


class RequestState(Enum):
    """Lifecycle state of a single request."""

    INIT = auto()
    CONTEXT_BUILDING = auto()
    PARSING = auto()
    VALIDATING = auto()
    EXECUTING = auto()
    COMPLETED = auto()
    ERRORED = auto()


@dataclass(frozen=True)
class _PendingAfter:
    order: tuple[int, int]
    kind: HookKind
    plugin: str
    callback: AfterHook


class RequestRun:
    """State of one request travelling through a pipeline snapshot."""

    def __init__(
        self,
        pipeline: FusedPipeline,
        engine: Engine,
        *,
        source: str,
        variables: Mapping[str, Any] | None = None,
        context: Mapping[str, Any] | None = None,
        operation_name: str | None = None,
        root_value: Any = None,
    ) -> None:
        self.pipeline = pipeline
        self.engine = engine
        self.source = source
        self.variables = dict(variables) if variables else None
        self.operation_name = operation_name
        self.root_value = root_value

        self.state = RequestState.INIT
        self.schema: GraphQLSchema | None = pipeline.schema
        self.context = ExecutionContext(context)
        self.document: DocumentNode | None = None
        self.result: ExecutionResult | AsyncIterator[ExecutionResult] | None = None

        self._entered: list[RequestState] = []
        self._pending: list[_PendingAfter] = []
        self._event: HookEvent | None = None
        self._violation: GraphQLError | None = None
        self._resolver_hooks = pipeline.hooks_for(HookKind.ON_RESOLVER_CALLED)

    @property
    def entered_phases(self) -> list[RequestState]:
        return list(self._entered)

    async def execute(self) -> ExecutionResult | AsyncIterator[ExecutionResult]:
        """Run all phases and emit the final result."""
        phases: tuple[tuple[RequestState, Callable[[], Awaitable[None]]], ...] = (
            (RequestState.CONTEXT_BUILDING, self._build_context),
            (RequestState.PARSING, self._parse),
            (RequestState.VALIDATING, self._validate),
            (RequestState.EXECUTING, self._execute),
        )
        try:
            for state, step in phases:
                if self.result is not None:
                    break
                await self._run_phase(state, step)
        except asyncio.CancelledError:
            logger.debug(f"Request cancelled during {self.state.name}")
            if self._event is not None:
                await self._drain(self._event, best_effort_only=True)
            raise
        return self._emit()

    async def _run_phase(self, state: RequestState, step: Callable[[], Awaitable[None]]) -> None:
        self._event = None
        try:
            self._enter(state)
            self._pending = []
            await step()
        except Exception as exc:
            error = to_structured_error(exc)
            logger.debug(f"Phase {state.name} failed: {error.message}")
            if self._event is not None:
                self._event.errors = [error]
                self._event.result = None
                await self._drain(self._event, best_effort_only=True)
            self._fail([error])
        finally:
            if state is RequestState.CONTEXT_BUILDING:
                self.context.seal()

    def _enter(self, state: RequestState) -> None:
        if state in self._entered:
            raise InternalPipelineError(f"Phase {state.name} entered more than once")
        self._entered.append(state)
        self.state = state

    def _new_event(self, kind: HookKind, **fields: Any) -> HookEvent:
        event = HookEvent(
            kind=kind,
            context=self.context,
            schema=self.schema,
            source=self.source,
            document=self.document,
            variables=self.variables,
            operation_name=self.operation_name,
            **fields,
        )
        self._event = event
        return event

    async def _before(self, event: HookEvent) -> bool:
        """Run before-hooks in registration order.

        Returns:
            False if a hook short-circuited the request
        """
        for registration in self.pipeline.hooks_for(event.kind):
            outcome = await maybe_await(registration.handler(event))
            if outcome is not None:
                if not callable(outcome):
                    raise ContractViolation(
                        f"Plugin {registration.plugin} returned a non-callable "
                        f"from {event.kind.value}"
                    )
                self._pending.append(
                    _PendingAfter(
                        order=registration.order,
                        kind=registration.kind,
                        plugin=registration.plugin,
                        callback=outcome,
                    )
                )
            if event.short_circuited:
                logger.debug(f"Plugin {registration.plugin} short-circuited {event.kind.value}")
                self.result = event.result
                return False
        return True

    def _take_after(self) -> list[_PendingAfter]:
        """Pending after callbacks of the current phase, last registered first."""
        items = list(self._pending)
        self._pending = []
        items.sort(key=lambda item: item.order, reverse=True)
        return items

    async def _drain(self, event: HookEvent, best_effort_only: bool = False) -> None:
        await self._run_after(self._take_after(), event, best_effort_only=best_effort_only)

    async def _run_after(
        self,
        items: Sequence[_PendingAfter],
        event: HookEvent,
        best_effort_only: bool = False,
    ) -> None:
        for item in items:
            best_effort = HOOK_METADATA[item.kind].best_effort
            if best_effort_only and not best_effort:
                continue
            event.switch(item.kind, HookSide.AFTER)
            try:
                await maybe_await(item.callback(event))
            except Exception:
                if not best_effort:
                    raise
                logger.exception(f"After hook of {item.plugin} ({item.kind.value}) failed")

    def _fail(self, errors: Sequence[GraphQLError]) -> None:
        self.result = ExecutionResult(data=None, errors=list(errors))
        self.state = RequestState.ERRORED

    async def _build_context(self) -> None:
        event = self._new_event(HookKind.ON_CONTEXT_BUILDING)
        await self._before(event)
        self.schema = event.schema
        await self._drain(event)

    async def _parse(self) -> None:
        event = self._new_event(HookKind.ON_PARSE)
        proceed = await self._before(event)
        self.schema = event.schema

        if proceed and event.document is None:
            try:
                event.document = self.engine.parse(self.source)
            except GraphQLError as exc:
                event.errors = [exc]

        await self._drain(event)
        self.document = event.document

        if event.short_circuited:
            self.result = event.result
        elif event.errors:
            self._fail(event.errors)
        elif self.document is None:
            raise InternalPipelineError("Parsing produced no document")

    async def _validate(self) -> None:
        event = self._new_event(HookKind.ON_VALIDATE)
        proceed = await self._before(event)
        self.schema = event.schema

        if proceed:
            schema = self._require_schema()
            event.errors = self.engine.validate(schema, self._require_document(), event.rules)

        await self._drain(event)

        if event.short_circuited:
            self.result = event.result
        elif event.errors:
            self._fail(event.errors)

    async def _execute(self) -> None:
        document = self._require_document()
        operation = get_operation_ast(document, self.operation_name)
        subscription = operation is not None and operation.operation is OperationType.SUBSCRIPTION
        kind = HookKind.ON_SUBSCRIBE if subscription else HookKind.ON_EXECUTE

        # Execute-done hooks join the after callbacks of this phase, once
        for registration in self.pipeline.hooks_for(HookKind.ON_EXECUTE_DONE):
            self._pending.append(
                _PendingAfter(
                    order=registration.order,
                    kind=registration.kind,
                    plugin=registration.plugin,
                    callback=registration.handler,
                )
            )

        event = self._new_event(kind, root=self.root_value)
        proceed = await self._before(event)
        self.schema = event.schema

        if proceed:
            schema = self._require_schema()
            if subscription:
                event.result = await self.engine.subscribe(
                    schema,
                    document,
                    root_value=self.root_value,
                    context_value=self.context,
                    variable_values=self.variables,
                    operation_name=self.operation_name,
                    middleware=[self] if self._resolver_hooks else None,
                )
            else:
                event.result = await self.engine.execute(
                    schema,
                    document,
                    root_value=self.root_value,
                    context_value=self.context,
                    variable_values=self.variables,
                    operation_name=self.operation_name,
                    middleware=[self] if self._resolver_hooks else None,
                )
                if self._violation is not None:
                    event.result = ExecutionResult(data=None, errors=[self._violation])

        if event.result is not None and not isinstance(event.result, ExecutionResult):
            self.result = self._stream(event.result, self._take_after())
            return

        await self._drain(event)
        self.result = event.result

    def _require_schema(self) -> GraphQLSchema:
        if self.schema is None:
            raise InternalPipelineError(
                "No schema available; register a schema plugin or pass a schema"
            )
        return self.schema

    def _require_document(self) -> DocumentNode:
        if self.document is None:
            raise InternalPipelineError("No parsed document available")
        return self.document

    async def resolve(self, next_: Any, root: Any, info: Any, **args: Any) -> Any:
        """graphql-core middleware applying ON_RESOLVER_CALLED hooks to one field."""
        event = HookEvent(
            kind=HookKind.ON_RESOLVER_CALLED,
            context=self.context,
            schema=self.schema,
            document=self.document,
            variables=self.variables,
            operation_name=self.operation_name,
            root=root,
            info=info,
            args=args,
        )
        try:
            for registration in self._resolver_hooks:
                outcome = await maybe_await(registration.handler(event))
                if outcome is not None:
                    raise ContractViolation(
                        f"Plugin {registration.plugin}: {HookKind.ON_RESOLVER_CALLED.value} "
                        "handlers must not return a value; use wrap_resolver"
                    )
                if event.short_circuited:
                    return event.result

            resolver = _as_async(next_)
            for wrapper in event.wrappers:
                resolver = wrapper(resolver)
            return await maybe_await(resolver(root, info, **args))
        except ContractViolation as exc:
            if self._violation is None:
                self._violation = to_structured_error(exc)
            raise

    async def _stream(
        self,
        source: AsyncIterator[ExecutionResult],
        items: list[_PendingAfter],
    ) -> AsyncIterator[ExecutionResult]:
        try:
            async for payload in source:
                event = HookEvent(
                    kind=HookKind.ON_SUBSCRIBE,
                    side=HookSide.AFTER,
                    context=self.context,
                    schema=self.schema,
                    document=self.document,
                    variables=self.variables,
                    operation_name=self.operation_name,
                    result=payload,
                )
                if self._violation is not None:
                    event.result = ExecutionResult(data=None, errors=[self._violation])
                    self._violation = None
                await self._run_after(items, event)
                yield mask_result(event.result, self.pipeline.error_masker)
        finally:
            aclose = getattr(source, "aclose", None)
            if aclose is not None:
                await aclose()

    def _emit(self) -> ExecutionResult | AsyncIterator[ExecutionResult]:
        result = self.result
        if isinstance(result, ExecutionResult):
            self.state = RequestState.ERRORED if result.errors else RequestState.COMPLETED
            return mask_result(result, self.pipeline.error_masker)
        if result is None:
            raise InternalPipelineError("Request finished without a result")
        self.state = RequestState.COMPLETED
        return result


def _as_async(resolver: Any) -> Callable[..., Awaitable[Any]]:
    async def call(root: Any, info: Any, **args: Any) -> Any:
        return await maybe_await(resolver(root, info, **args))

    return call


class Orchestrator:
    """Request entry point holding the current pipeline snapshot."""

    def __init__(
        self,
        plugins: Sequence[Plugin] = (),
        schema: Any = None,
        *,
        engine: Engine | None = None,
    ) -> None:
        self.engine = engine or Engine()
        self._schema = resolve_schema(schema) if schema is not None else None
        self._pipeline = compose(plugins, self._schema)

    @classmethod
    def from_settings(
        cls,
        schema: Any = None,
        settings: Settings | None = None,
        *,
        engine: Engine | None = None,
    ) -> Orchestrator:
        """Build an orchestrator with the plugin set described by settings."""
        from strata.loader import build_default_plugins

        return cls(build_default_plugins(settings), schema, engine=engine)

    @property
    def pipeline(self) -> FusedPipeline:
        """Current pipeline snapshot."""
        return self._pipeline

    def reload(
        self,
        plugins: Sequence[Plugin] | None = None,
        schema: Any = None,
    ) -> FusedPipeline:
        """Rebuild the pipeline wholesale and swap it in.

        Requests already running keep the snapshot they started with.
        """
        current = self._pipeline
        if schema is not None:
            self._schema = resolve_schema(schema)
        pipeline = compose(current.plugins if plugins is None else plugins, self._schema)
        self._pipeline = pipeline
        logger.info("Pipeline reloaded")
        return pipeline

    async def run(
        self,
        source: str,
        variables: Mapping[str, Any] | None = None,
        context: Mapping[str, Any] | None = None,
        *,
        operation_name: str | None = None,
        root_value: Any = None,
    ) -> ExecutionResult | AsyncIterator[ExecutionResult]:
        """Run one request.

        Args:
            source: Query text
            variables: Variable values
            context: Initial execution context values
            operation_name: Operation to run when the document has several
            root_value: Root value passed to top-level resolvers

        Returns:
            ExecutionResult, or an async iterator of results for subscriptions
        """
        request = RequestRun(
            self._pipeline,
            self.engine,
            source=source,
            variables=variables,
            context=context,
            operation_name=operation_name,
            root_value=root_value,
        )
        with LogContext(request_id=uuid4().hex[:12], operation_name=operation_name or ""):
            return await request.execute()
