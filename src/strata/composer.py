"""Composer: fuse an ordered plugin list into one pipeline.

Composition happens once at startup and again whenever the plugin list or
schema changes; a pipeline is never patched in place. All contract and
exclusivity problems surface here as exceptions, before the first request.

Ordering contract:
- before-side hooks run in registration order
- after-side hooks run in reverse registration order
- resolver wrappers nest so that the last registered plugin is outermost

Example:
    pipeline = compose([SchemaPlugin(schema), MaskedErrorsPlugin()])
    pipeline.hooks_for(HookKind.ON_PARSE)
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field, replace
from types import MappingProxyType

from graphql import GraphQLSchema

from strata.errors import CompositionError, ContractViolation
from strata.hooks import HookEvent, HookKind, HookRegistration
from strata.plugin import ErrorMasker, Plugin

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FusedPipeline:
    """Immutable, request-independent result of composition."""

    plugins: tuple[Plugin, ...]
    schema: GraphQLSchema | None
    hooks: Mapping[HookKind, tuple[HookRegistration, ...]]
    error_masker: ErrorMasker | None = None
    owners: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))

    def hooks_for(self, kind: HookKind) -> tuple[HookRegistration, ...]:
        """Registrations for a kind, in registration order."""
        return self.hooks.get(kind, ())

    def has_hooks(self, kind: HookKind) -> bool:
        return bool(self.hooks.get(kind))

    def get_hook_count(self, kind: HookKind) -> int:
        return len(self.hooks.get(kind, ()))

    @property
    def plugin_names(self) -> list[str]:
        return [plugin.display_name for plugin in self.plugins]


def compose(
    plugins: Sequence[Plugin],
    schema: GraphQLSchema | None = None,
) -> FusedPipeline:
    """Build a fused pipeline from an ordered plugin list.

    Args:
        plugins: Plugins in caller-controlled order
        schema: Initial schema, may be replaced by ON_SCHEMA_CHANGE hooks

    Returns:
        Immutable FusedPipeline

    Raises:
        ContractViolation: If a plugin breaks the hook contract
        CompositionError: If plugins conflict with each other
    """
    ordered = tuple(plugins)
    seen: list[str] = []
    owners: dict[str, str] = {}
    collected: dict[HookKind, list[HookRegistration]] = {kind: [] for kind in HookKind}
    error_masker: ErrorMasker | None = None

    for index, plugin in enumerate(ordered):
        if not isinstance(plugin, Plugin):
            raise ContractViolation(f"Not a plugin: {plugin!r}")

        plugin.bind()
        name = plugin.display_name

        for dep in plugin.dependencies:
            if dep not in seen:
                raise CompositionError(f"Plugin {name} requires {dep} to be registered before it")

        for capability in sorted(plugin.claims):
            if capability in owners:
                raise CompositionError(
                    f"Plugins {owners[capability]} and {name} both claim "
                    f"exclusive capability '{capability}'"
                )
            owners[capability] = name

        for hook_index, registration in enumerate(plugin.get_registered_hooks()):
            collected[registration.kind].append(replace(registration, order=(index, hook_index)))

        if plugin.error_masker is not None:
            error_masker = plugin.error_masker

        seen.append(name)

    hooks = MappingProxyType(
        {kind: tuple(registrations) for kind, registrations in collected.items() if registrations}
    )
    final_schema = _notify_schema_change(hooks.get(HookKind.ON_SCHEMA_CHANGE, ()), schema)

    pipeline = FusedPipeline(
        plugins=ordered,
        schema=final_schema,
        hooks=hooks,
        error_masker=error_masker,
        owners=MappingProxyType(owners),
    )
    logger.info(
        f"Composed pipeline with {len(ordered)} plugins: {pipeline.plugin_names}",
    )
    return pipeline


def _notify_schema_change(
    registrations: Sequence[HookRegistration],
    schema: GraphQLSchema | None,
) -> GraphQLSchema | None:
    """Run ON_SCHEMA_CHANGE hooks and return the final schema.

    A replacement is visible to later hooks. Hooks that ran before the last
    replacement are notified once more with the final schema; the plugin
    that replaced it is not.
    """
    if not registrations:
        return schema

    current = schema
    last_replacer: int | None = None

    for position, registration in enumerate(registrations):
        event = HookEvent(kind=HookKind.ON_SCHEMA_CHANGE, schema=current)
        _call_sync(registration, event)
        if event.schema is not current:
            current = event.schema
            last_replacer = position

    if last_replacer is not None:
        for registration in registrations[:last_replacer]:
            event = HookEvent(kind=HookKind.ON_SCHEMA_CHANGE, schema=current)
            _call_sync(registration, event)
            if event.schema is not current:
                raise CompositionError(
                    f"Plugin {registration.plugin} replaced the schema while being "
                    "notified of a replacement"
                )

    return current


def _call_sync(registration: HookRegistration, event: HookEvent) -> None:
    outcome = registration.handler(event)
    if inspect.isawaitable(outcome):
        if inspect.iscoroutine(outcome):
            outcome.close()
        raise ContractViolation(
            f"Plugin {registration.plugin}: {HookKind.ON_SCHEMA_CHANGE.value} handlers "
            "must be synchronous"
        )
    if outcome is not None:
        raise ContractViolation(
            f"Plugin {registration.plugin}: {HookKind.ON_SCHEMA_CHANGE.value} handlers "
            "must not return after hooks"
        )
