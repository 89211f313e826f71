"""Plugins adding validation rules to every request."""

from __future__ import annotations

from collections.abc import Callable

from graphql.validation import NoSchemaIntrospectionCustomRule

from strata.context import ExecutionContext
from strata.engine import ValidationRuleType
from strata.hooks import ControlAction, HookEvent, HookKind
from strata.plugin import Plugin


class ValidationRulePlugin(Plugin):
    """Add rules that run together with the built-in validation rules.

    Example:
        ValidationRulePlugin(NoDeprecatedCustomRule)
    """

    name = "validation-rules"
    version = "1.0.0"

    def __init__(self, *rules: ValidationRuleType) -> None:
        super().__init__()
        self.rules = list(rules)

    def setup(self) -> None:
        self.register_hook(
            HookKind.ON_VALIDATE,
            self.on_validate,
            actions={ControlAction.ADD_VALIDATION_RULE},
        )

    def on_validate(self, event: HookEvent) -> None:
        if not self.applies_to(event):
            return
        for rule in self.rules:
            event.add_validation_rule(rule)

    def applies_to(self, event: HookEvent) -> bool:
        return True


class DisableIntrospectionPlugin(ValidationRulePlugin):
    """Reject documents that query ``__schema`` or ``__type``.

    Args:
        disable_if: Optional predicate on the execution context; introspection
            is only rejected when it returns True
    """

    name = "disable-introspection"

    def __init__(self, disable_if: Callable[[ExecutionContext], bool] | None = None) -> None:
        super().__init__(NoSchemaIntrospectionCustomRule)
        self.disable_if = disable_if

    def applies_to(self, event: HookEvent) -> bool:
        if self.disable_if is None or event.context is None:
            return True
        return bool(self.disable_if(event.context))
