"""Base class for strata plugins.

A plugin is an ordered unit contributing zero or more hooks. It has no
knowledge of other plugins; the composer fuses all plugins into one
pipeline. Hooks are registered once, in ``setup()``, after which the
plugin is frozen.

Example:
    class RejectAnonymous(Plugin):
        name = "reject-anonymous"
        version = "1.0.0"

        def setup(self) -> None:
            self.register_hook(
                HookKind.ON_CONTEXT_BUILDING,
                self.check_user,
                actions={ControlAction.SET_RESULT},
            )

        async def check_user(self, event: HookEvent) -> None:
            if not event.context.get("user"):
                event.set_result({"errors": [{"message": "Login required"}]})

Plugins can also be built from plain callables:

    timing = make_plugin("timing", on_execute=start_timer)
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from typing import Any

from graphql import GraphQLError

from strata.errors import ContractViolation
from strata.hooks import HOOK_METADATA, ControlAction, HookHandler, HookKind, HookRegistration

logger = logging.getLogger(__name__)

# Capability claimed by a plugin that registers an error masker
ERROR_MASKING = "error_masking"
# Capability claimed by plugins that own schema selection
SCHEMA_OWNER = "schema"

ErrorMasker = Callable[[GraphQLError], GraphQLError]


class Plugin:
    """Base class for all strata plugins.

    Class attributes:
    - name: Identifier used in diagnostics
    - version: Version string
    - description: Human-readable description
    - dependencies: Plugin names that must be registered earlier
    - exclusive: Capabilities this plugin claims exclusively
    """

    name: str = ""
    version: str = "0.0.0"
    description: str = ""
    dependencies: tuple[str, ...] = ()
    exclusive: frozenset[str] = frozenset()

    def __init__(self) -> None:
        self._hooks: list[HookRegistration] = []
        self._error_masker: ErrorMasker | None = None
        self._claims: set[str] = set(self.exclusive)
        self._frozen = False

    @property
    def qualified_name(self) -> str:
        """Full plugin name with version."""
        return f"{self.name or type(self).__name__}@{self.version}"

    @property
    def display_name(self) -> str:
        return self.name or type(self).__name__

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def claims(self) -> frozenset[str]:
        """Exclusive capabilities claimed by this plugin."""
        return frozenset(self._claims)

    @property
    def error_masker(self) -> ErrorMasker | None:
        return self._error_masker

    def setup(self) -> None:
        """Register hooks. Called exactly once by the composer."""
        pass

    def bind(self) -> None:
        """Run setup once and freeze the plugin."""
        if self._frozen:
            return
        self.setup()
        self._frozen = True
        logger.debug(f"Plugin {self.qualified_name} bound with {len(self._hooks)} hooks")

    def register_hook(
        self,
        kind: HookKind,
        handler: HookHandler,
        *,
        actions: Iterable[ControlAction] | None = None,
    ) -> None:
        """Register a hook handler.

        Args:
            kind: Hook kind to register for
            handler: Sync or async callable receiving a HookEvent
            actions: Control actions the handler intends to use; checked
                against the registry

        Raises:
            ContractViolation: If the registration breaks the hook contract
        """
        self._check_mutable()
        if not isinstance(kind, HookKind):
            raise ContractViolation(f"Plugin {self.display_name}: unknown hook kind {kind!r}")
        if not callable(handler):
            raise ContractViolation(
                f"Plugin {self.display_name}: handler for {kind.value} is not callable"
            )

        declared: frozenset[ControlAction] | None = None
        if actions is not None:
            declared = frozenset(actions)
            illegal = declared - HOOK_METADATA[kind].legal_actions
            if illegal:
                names = ", ".join(sorted(a.name for a in illegal))
                raise ContractViolation(
                    f"Plugin {self.display_name}: {names} not allowed in {kind.value}"
                )

        self._hooks.append(
            HookRegistration(
                kind=kind,
                plugin=self.display_name,
                handler=handler,
                actions=declared,
            )
        )

    def register_error_masker(self, masker: ErrorMasker) -> None:
        """Register the function applied to every outgoing error."""
        self._check_mutable()
        if not callable(masker):
            raise ContractViolation(f"Plugin {self.display_name}: error masker is not callable")
        if self._error_masker is not None:
            raise ContractViolation(f"Plugin {self.display_name}: error masker already registered")
        self._error_masker = masker
        self._claims.add(ERROR_MASKING)

    def get_registered_hooks(self) -> list[HookRegistration]:
        """Get all registered hooks for this plugin."""
        return self._hooks.copy()

    def _check_mutable(self) -> None:
        if self._frozen:
            raise ContractViolation(
                f"Plugin {self.display_name} is already registered and cannot change"
            )

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.qualified_name}>"


class FunctionPlugin(Plugin):
    """Plugin assembled from plain callables, one per hook kind."""

    def __init__(
        self,
        name: str,
        hooks: Mapping[HookKind, HookHandler],
        *,
        error_masker: ErrorMasker | None = None,
        exclusive: Iterable[str] = (),
        dependencies: Iterable[str] = (),
    ) -> None:
        self.name = name
        self.exclusive = frozenset(exclusive)
        self.dependencies = tuple(dependencies)
        super().__init__()
        self._handlers = dict(hooks)
        self._masker = error_masker

    def setup(self) -> None:
        for kind, handler in self._handlers.items():
            self.register_hook(kind, handler)
        if self._masker is not None:
            self.register_error_masker(self._masker)


def make_plugin(name: str, **handlers: Any) -> FunctionPlugin:
    """Build a plugin from keyword handlers such as ``on_parse=fn``.

    ``error_masker``, ``exclusive`` and ``dependencies`` are passed through.

    Raises:
        ContractViolation: If a keyword is not a hook kind
    """
    options = {
        key: handlers.pop(key)
        for key in ("error_masker", "exclusive", "dependencies")
        if key in handlers
    }
    hooks: dict[HookKind, HookHandler] = {}
    for key, handler in handlers.items():
        try:
            kind = HookKind[key.upper()]
        except KeyError:
            raise ContractViolation(f"Plugin {name}: unknown hook {key!r}") from None
        hooks[kind] = handler
    return FunctionPlugin(name, hooks, **options)
