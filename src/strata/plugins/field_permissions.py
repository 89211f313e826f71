"""Per-field access control.

The permission set is computed once per request, when context building
finishes, and stored in the context. Selecting a field outside the set
resolves it to an error while sibling fields still resolve, so the
response carries partial data.

Permission entries:
- ``*``: every field
- ``Query.*``: every field of a type
- ``Query.secret``: a single field

Example:
    def get_permissions(context: ExecutionContext) -> set[str]:
        user = context.get("user")
        return {"*"} if user and user.is_admin else {"Query.hello"}

    FieldPermissionsPlugin(get_permissions)
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterable
from typing import Any

from graphql import GraphQLResolveInfo

from strata.context import ExecutionContext
from strata.engine import maybe_await
from strata.errors import SafeError
from strata.hooks import AfterHook, ControlAction, HookEvent, HookKind, Resolver
from strata.plugin import Plugin

logger = logging.getLogger(__name__)

PERMISSIONS_CONTEXT_KEY = "field_permissions"

PermissionsFactory = Callable[[ExecutionContext], Iterable[str] | Awaitable[Iterable[str]]]


def is_field_allowed(permissions: frozenset[str], type_name: str, field_name: str) -> bool:
    """Check a field against a permission set."""
    return (
        "*" in permissions
        or f"{type_name}.*" in permissions
        or f"{type_name}.{field_name}" in permissions
    )


class FieldPermissionsPlugin(Plugin):
    """Deny resolution of fields the request has no permission for."""

    name = "field-permissions"
    version = "1.0.0"
    description = "Rejects fields not covered by the request's permission set"

    def __init__(
        self,
        get_permissions: PermissionsFactory,
        message: str = "Insufficient permissions for selecting '{field}'.",
    ) -> None:
        super().__init__()
        self.get_permissions = get_permissions
        self.message = message

    def setup(self) -> None:
        self.register_hook(
            HookKind.ON_CONTEXT_BUILDING,
            self.on_context_building,
            actions={ControlAction.EXTEND_CONTEXT},
        )
        self.register_hook(
            HookKind.ON_RESOLVER_CALLED,
            self.on_resolver_called,
            actions={ControlAction.WRAP_RESOLVER},
        )

    def on_context_building(self, event: HookEvent) -> AfterHook:
        return self._store_permissions

    async def _store_permissions(self, event: HookEvent) -> None:
        permissions = await maybe_await(self.get_permissions(event.require_context()))
        event.extend_context({PERMISSIONS_CONTEXT_KEY: frozenset(permissions or ())})

    def on_resolver_called(self, event: HookEvent) -> None:
        info: GraphQLResolveInfo = event.info
        type_name = info.parent_type.name
        field_name = info.field_name
        if type_name.startswith("__") or field_name.startswith("__"):
            return

        permissions = event.context.get(PERMISSIONS_CONTEXT_KEY) if event.context else None
        if permissions and is_field_allowed(permissions, type_name, field_name):
            return

        qualified = f"{type_name}.{field_name}"
        logger.debug(f"Denied field {qualified}")
        event.wrap_resolver(self._deny(qualified))

    def _deny(self, qualified: str) -> Callable[[Resolver], Resolver]:
        message = self.message.format(field=qualified)

        def wrapper(resolver: Resolver) -> Resolver:
            async def denied(root: Any, info: Any, **args: Any) -> Any:
                raise SafeError(message, extensions={"code": "FORBIDDEN"})

            return denied

        return wrapper
