"""Hook registry: the closed set of lifecycle extension points.

Every plugin hook receives a HookEvent. The event carries the inputs of the
current phase and doubles as the control handle: its methods are the
control actions, and each one is only legal for some (kind, side) pairs as
listed in HOOK_METADATA.

A before-hook may return an "after" callable. After callables run once the
phase's own work is done, in reverse registration order, and receive the
same event switched to the AFTER side.

Example:
    async def on_parse(event: HookEvent) -> AfterHook:
        started = time.perf_counter()

        def done(event: HookEvent) -> None:
            logger.info(f"parsed in {time.perf_counter() - started:.4f}s")

        return done
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any

from graphql import DocumentNode, ExecutionResult, GraphQLError, GraphQLSchema

from strata.context import ExecutionContext
from strata.engine import resolve_schema
from strata.errors import ContractViolation, InternalPipelineError


class HookKind(Enum):
    """Available lifecycle hook kinds."""

    ON_SCHEMA_CHANGE = "onSchemaChange"
    ON_CONTEXT_BUILDING = "onContextBuilding"
    ON_PARSE = "onParse"
    ON_VALIDATE = "onValidate"
    ON_EXECUTE = "onExecute"
    ON_SUBSCRIBE = "onSubscribe"
    ON_RESOLVER_CALLED = "onResolverCalled"
    ON_EXECUTE_DONE = "onExecuteDone"


class HookSide(Enum):
    """Which side of a phase a hook runs on."""

    BEFORE = auto()
    AFTER = auto()


class ControlAction(Enum):
    """Actions a hook may take through its event."""

    SET_RESULT = auto()
    EXTEND_CONTEXT = auto()
    REPLACE_SCHEMA = auto()
    WRAP_RESOLVER = auto()
    SET_DOCUMENT = auto()
    ADD_VALIDATION_RULE = auto()
    SET_ERRORS = auto()


@dataclass(frozen=True)
class HookSpec:
    """Registry entry describing one hook kind."""

    description: str
    context: str
    before_actions: frozenset[ControlAction] = frozenset()
    after_actions: frozenset[ControlAction] = frozenset()
    # A failing after-hook of a best-effort kind is logged and skipped
    best_effort: bool = False
    # Registered handlers are invoked on the AFTER side only
    after_only: bool = False
    per_request: bool = True

    @property
    def legal_actions(self) -> frozenset[ControlAction]:
        return self.before_actions | self.after_actions

    def actions_for(self, side: HookSide) -> frozenset[ControlAction]:
        return self.before_actions if side is HookSide.BEFORE else self.after_actions


_A = ControlAction

HOOK_METADATA: dict[HookKind, HookSpec] = {
    HookKind.ON_SCHEMA_CHANGE: HookSpec(
        description="Called when the pipeline is built with a schema, before any request",
        context="schema (synchronous handlers only)",
        before_actions=frozenset({_A.REPLACE_SCHEMA}),
        per_request=False,
    ),
    HookKind.ON_CONTEXT_BUILDING: HookSpec(
        description="Called while the per-request execution context is assembled",
        context="context, source, variables, operation_name",
        before_actions=frozenset({_A.EXTEND_CONTEXT, _A.SET_RESULT, _A.REPLACE_SCHEMA}),
        after_actions=frozenset({_A.EXTEND_CONTEXT}),
    ),
    HookKind.ON_PARSE: HookSpec(
        description="Called around parsing of the query text",
        context="context, source; after: document, errors",
        before_actions=frozenset({_A.SET_DOCUMENT, _A.SET_RESULT, _A.REPLACE_SCHEMA}),
        after_actions=frozenset({_A.SET_DOCUMENT, _A.SET_RESULT}),
    ),
    HookKind.ON_VALIDATE: HookSpec(
        description="Called around validation of the parsed document",
        context="context, schema, document, rules; after: errors",
        before_actions=frozenset({_A.ADD_VALIDATION_RULE, _A.SET_RESULT, _A.REPLACE_SCHEMA}),
        after_actions=frozenset({_A.SET_ERRORS, _A.SET_RESULT}),
    ),
    HookKind.ON_EXECUTE: HookSpec(
        description="Called around execution of a query or mutation",
        context="context, schema, document, variables, operation_name; after: result",
        before_actions=frozenset({_A.SET_RESULT, _A.REPLACE_SCHEMA}),
        after_actions=frozenset({_A.SET_RESULT}),
    ),
    HookKind.ON_SUBSCRIBE: HookSpec(
        description="Called around subscription setup; after side runs per emitted result",
        context="context, schema, document, variables, operation_name; after: result",
        before_actions=frozenset({_A.SET_RESULT, _A.REPLACE_SCHEMA}),
        after_actions=frozenset({_A.SET_RESULT}),
        best_effort=True,
    ),
    HookKind.ON_RESOLVER_CALLED: HookSpec(
        description="Called for every field resolution during execution",
        context="context, root, info, args",
        before_actions=frozenset({_A.WRAP_RESOLVER, _A.SET_RESULT}),
    ),
    HookKind.ON_EXECUTE_DONE: HookSpec(
        description="Called with every execution or subscription result",
        context="context, document, result",
        after_actions=frozenset({_A.SET_RESULT}),
        best_effort=True,
        after_only=True,
    ),
}

# Kinds whose phase produces an execution result
EXECUTION_KINDS = frozenset({HookKind.ON_EXECUTE, HookKind.ON_SUBSCRIBE})

# Resolver signature used by graphql-core: resolve(root, info, **args)
Resolver = Callable[..., Any]
ResolverWrapper = Callable[[Resolver], Resolver]


@dataclass
class HookEvent:
    """Inputs of the current phase plus the control actions legal in it.

    A new event is created per request and phase; it is never shared
    between requests.
    """

    kind: HookKind
    side: HookSide = HookSide.BEFORE
    context: ExecutionContext | None = None
    schema: GraphQLSchema | None = None
    source: str | None = None
    document: DocumentNode | None = None
    variables: dict[str, Any] | None = None
    operation_name: str | None = None
    rules: list[Any] = field(default_factory=list)
    errors: list[GraphQLError] = field(default_factory=list)
    result: Any = None
    root: Any = None
    info: Any = None
    args: dict[str, Any] = field(default_factory=dict)
    short_circuited: bool = False
    wrappers: list[ResolverWrapper] = field(default_factory=list, repr=False)
    _allowed: frozenset[ControlAction] | None = field(default=None, repr=False)

    def __post_init__(self) -> None:
        if self._allowed is None:
            self._allowed = HOOK_METADATA[self.kind].actions_for(self.side)

    def switch(self, kind: HookKind, side: HookSide) -> None:
        """Rebind the event to another kind/side (used by the orchestrator)."""
        self.kind = kind
        self.side = side
        self._allowed = HOOK_METADATA[kind].actions_for(side)

    def is_allowed(self, action: ControlAction) -> bool:
        """Check whether an action is legal for this event."""
        return action in (self._allowed or frozenset())

    def _require(self, action: ControlAction) -> None:
        if not self.is_allowed(action):
            raise ContractViolation(
                f"{action.name} is not allowed in {self.kind.value} ({self.side.name.lower()})"
            )

    def set_result(self, result: Any) -> None:
        """Short-circuit the request with a result.

        In ON_RESOLVER_CALLED the value becomes the field value and the
        field resolver is skipped. In after hooks of the execution phase it
        replaces the produced result.
        """
        self._require(ControlAction.SET_RESULT)
        if self.kind is HookKind.ON_RESOLVER_CALLED:
            self.result = result
        else:
            self.result = coerce_result(result, allow_stream=self.kind is HookKind.ON_SUBSCRIBE)
        self.short_circuited = True

    def require_context(self) -> ExecutionContext:
        """The execution context, which every request-bound event carries."""
        if self.context is None:
            raise InternalPipelineError(f"{self.kind.value} event has no execution context")
        return self.context

    def extend_context(self, values: Mapping[str, Any] | None = None, **kwargs: Any) -> None:
        """Merge keys into the execution context."""
        self._require(ControlAction.EXTEND_CONTEXT)
        if self.context is None:
            raise ContractViolation("No execution context to extend")
        self.context.extend({**(values or {}), **kwargs})

    def replace_schema(self, schema: Any) -> None:
        """Select the schema used by the remaining phases."""
        self._require(ControlAction.REPLACE_SCHEMA)
        self.schema = resolve_schema(schema)

    def set_document(self, document: DocumentNode) -> None:
        """Supply or replace the parsed document, clearing parse errors."""
        self._require(ControlAction.SET_DOCUMENT)
        if not isinstance(document, DocumentNode):
            raise ContractViolation(f"Expected DocumentNode, got {type(document).__name__}")
        self.document = document
        self.errors = []

    def add_validation_rule(self, rule: Any) -> None:
        """Add a validation rule evaluated together with the built-in rules."""
        self._require(ControlAction.ADD_VALIDATION_RULE)
        self.rules.append(rule)

    def set_errors(self, errors: list[GraphQLError]) -> None:
        """Replace the validation errors."""
        self._require(ControlAction.SET_ERRORS)
        self.errors = list(errors)

    def wrap_resolver(self, wrapper: ResolverWrapper) -> None:
        """Wrap the field resolver. The last registered wrapper is outermost."""
        self._require(ControlAction.WRAP_RESOLVER)
        if not callable(wrapper):
            raise ContractViolation("Resolver wrapper must be callable")
        self.wrappers.append(wrapper)


def coerce_result(result: Any, allow_stream: bool = False) -> Any:
    """Normalize a value passed to set_result into an ExecutionResult.

    Accepts an ExecutionResult or a mapping with ``data``/``errors`` keys.
    Async iterators are accepted for subscriptions.
    """
    if isinstance(result, ExecutionResult):
        return result
    if isinstance(result, Mapping):
        errors = result.get("errors")
        return ExecutionResult(
            data=result.get("data"),
            errors=[_coerce_error(e) for e in errors] if errors else None,
            extensions=result.get("extensions"),
        )
    if allow_stream and hasattr(result, "__aiter__"):
        return result
    raise ContractViolation(f"set_result expects an ExecutionResult, got {type(result).__name__}")


def _coerce_error(error: Any) -> GraphQLError:
    if isinstance(error, GraphQLError):
        return error
    if isinstance(error, Mapping):
        return GraphQLError(str(error.get("message", "")), extensions=error.get("extensions"))
    return GraphQLError(str(error))


AfterHook = Callable[[HookEvent], Awaitable[None] | None]
HookHandler = Callable[[HookEvent], Awaitable[AfterHook | None] | AfterHook | None]


@dataclass(frozen=True)
class HookRegistration:
    """Registration of a hook handler in a fused pipeline."""

    kind: HookKind
    plugin: str
    handler: HookHandler
    actions: frozenset[ControlAction] | None = None
    # (plugin index, hook index within plugin); assigned by the composer
    order: tuple[int, int] = (0, 0)

    @property
    def best_effort(self) -> bool:
        return HOOK_METADATA[self.kind].best_effort
