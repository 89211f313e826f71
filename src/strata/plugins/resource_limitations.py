"""Node cost limits for connection fields.

Cost is calculated the way GitHub's API does it: every field returning a
connection type must be paginated with ``first`` or ``last``, and the
number of nodes it may return is multiplied by the node count of every
enclosing connection. The sum over all connections is the node cost of
the operation.

    {
      repositories(first: 50) {     # 50
        edges { node {
          issues(first: 10) { ... } # 50 * 10 = 500
        } }
      }
    }                               # cost 550

Documents above ``node_cost_limit`` are rejected during validation, so
they never execute. The cost can be reported under
``extensions.resourceLimitations.nodeCost`` of the result.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from graphql import (
    ExecutionResult,
    FieldNode,
    FragmentSpreadNode,
    GraphQLError,
    GraphQLInt,
    GraphQLNamedType,
    InlineFragmentNode,
    OperationDefinitionNode,
    SelectionSetNode,
    get_named_type,
    value_from_ast,
)
from graphql.pyutils import Undefined
from graphql.validation import ASTValidationRule

from strata.engine import ValidationRuleType
from strata.hooks import ControlAction, HookEvent, HookKind
from strata.plugin import Plugin

logger = logging.getLogger(__name__)

COST_CONTEXT_KEY = "resource_limitations"
PAGINATION_ARGUMENTS = ("first", "last")


def create_resource_limitations_rule(
    *,
    node_cost_limit: int,
    pagination_minimum: int,
    pagination_maximum: int,
    variables: Mapping[str, Any] | None = None,
    operation_name: str | None = None,
    report: dict[str, Any] | None = None,
    connection_suffix: str = "Connection",
) -> ValidationRuleType:
    """Build a rule bound to one request's variables.

    Args:
        node_cost_limit: Highest accepted node cost
        pagination_minimum: Lowest accepted ``first``/``last`` value
        pagination_maximum: Highest accepted ``first``/``last`` value
        variables: Variable values used to read pagination arguments
        operation_name: Only this operation is checked when given
        report: Mapping that receives the calculated ``nodeCost``
        connection_suffix: Type name suffix identifying connection types
    """

    class ResourceLimitationsRule(ASTValidationRule):
        def enter_operation_definition(self, node: OperationDefinitionNode, *_args: Any) -> None:
            if operation_name and (node.name is None or node.name.value != operation_name):
                return
            root = self.context.schema.get_root_type(node.operation)
            if root is None:
                return
            cost = self._cost(node.selection_set, root, 1, frozenset())
            if report is not None:
                report["nodeCost"] = cost
            if cost > node_cost_limit:
                self.report_error(
                    GraphQLError(
                        f"Cannot request more than {node_cost_limit} nodes in a single "
                        "document. Please split your operation into multiple sub "
                        "operations or reduce the amount of requested nodes.",
                        node,
                    )
                )

        def _cost(
            self,
            selection_set: SelectionSetNode | None,
            parent: GraphQLNamedType,
            multiplier: int,
            visited: frozenset[str],
        ) -> int:
            if selection_set is None:
                return 0
            total = 0
            for selection in selection_set.selections:
                if isinstance(selection, FieldNode):
                    total += self._field_cost(selection, parent, multiplier, visited)
                elif isinstance(selection, InlineFragmentNode):
                    scope = self._type_condition(selection, parent)
                    total += self._cost(selection.selection_set, scope, multiplier, visited)
                elif isinstance(selection, FragmentSpreadNode):
                    name = selection.name.value
                    fragment = self.context.get_fragment(name)
                    if fragment is None or name in visited:
                        continue
                    scope = self._type_condition(fragment, parent)
                    total += self._cost(fragment.selection_set, scope, multiplier, visited | {name})
            return total

        def _field_cost(
            self,
            node: FieldNode,
            parent: GraphQLNamedType,
            multiplier: int,
            visited: frozenset[str],
        ) -> int:
            fields = getattr(parent, "fields", None)
            definition = fields.get(node.name.value) if fields else None
            if definition is None:
                return 0
            field_type = get_named_type(definition.type)
            if not field_type.name.endswith(connection_suffix):
                return self._cost(node.selection_set, field_type, multiplier, visited)

            count = self._page_size(node, f"{parent.name}.{node.name.value}")
            if count is None:
                return 0
            nodes = multiplier * count
            return nodes + self._cost(node.selection_set, field_type, nodes, visited)

        def _page_size(self, node: FieldNode, coordinate: str) -> int | None:
            values: dict[str, Any] = {}
            for argument in node.arguments:
                name = argument.name.value
                if name in PAGINATION_ARGUMENTS:
                    value = value_from_ast(argument.value, GraphQLInt, variables)
                    if value is not Undefined and value is not None:
                        values[name] = value

            if not values:
                self.report_error(
                    GraphQLError(
                        f"Missing pagination argument for field '{coordinate}'. Please "
                        "provide either the 'first' or 'last' field argument.",
                        node,
                    )
                )
                return None

            for name, value in values.items():
                if not pagination_minimum <= value <= pagination_maximum:
                    self.report_error(
                        GraphQLError(
                            f"Invalid pagination argument for field {coordinate}. The value "
                            f"for the '{name}' argument must be an integer within "
                            f"{pagination_minimum}-{pagination_maximum}.",
                            node,
                        )
                    )
                    return None
            return max(values.values())

        def _type_condition(self, node: Any, parent: GraphQLNamedType) -> GraphQLNamedType:
            if node.type_condition is None:
                return parent
            return self.context.schema.get_type(node.type_condition.name.value) or parent

    return ResourceLimitationsRule


class ResourceLimitationsPlugin(Plugin):
    """Reject operations requesting too many connection nodes.

    Args:
        node_cost_limit: Highest accepted node cost
        pagination_minimum: Lowest accepted ``first``/``last`` value
        pagination_maximum: Highest accepted ``first``/``last`` value
        extensions: Report the node cost in the result extensions
    """

    name = "resource-limitations"
    version = "1.0.0"
    description = "Limits the number of connection nodes an operation may request"

    def __init__(
        self,
        node_cost_limit: int = 500000,
        pagination_minimum: int = 1,
        pagination_maximum: int = 100,
        extensions: bool = False,
        connection_suffix: str = "Connection",
    ) -> None:
        super().__init__()
        if pagination_minimum > pagination_maximum:
            raise ValueError("pagination_minimum must not exceed pagination_maximum")
        self.node_cost_limit = node_cost_limit
        self.pagination_minimum = pagination_minimum
        self.pagination_maximum = pagination_maximum
        self.extensions = extensions
        self.connection_suffix = connection_suffix

    def setup(self) -> None:
        self.register_hook(
            HookKind.ON_CONTEXT_BUILDING,
            self.on_context_building,
            actions={ControlAction.EXTEND_CONTEXT},
        )
        self.register_hook(
            HookKind.ON_VALIDATE,
            self.on_validate,
            actions={ControlAction.ADD_VALIDATION_RULE},
        )
        if self.extensions:
            self.register_hook(
                HookKind.ON_EXECUTE_DONE,
                self.on_execute_done,
                actions={ControlAction.SET_RESULT},
            )

    def on_context_building(self, event: HookEvent) -> None:
        # The nested dict stays writable after the context is sealed
        event.extend_context({COST_CONTEXT_KEY: {"nodeCost": 0}})

    def on_validate(self, event: HookEvent) -> None:
        report = event.context.get(COST_CONTEXT_KEY) if event.context else None
        event.add_validation_rule(
            create_resource_limitations_rule(
                node_cost_limit=self.node_cost_limit,
                pagination_minimum=self.pagination_minimum,
                pagination_maximum=self.pagination_maximum,
                variables=event.variables,
                operation_name=event.operation_name,
                report=report or None,
                connection_suffix=self.connection_suffix,
            )
        )

    def on_execute_done(self, event: HookEvent) -> None:
        result = event.result
        report = event.context.get(COST_CONTEXT_KEY) if event.context else None
        if not isinstance(result, ExecutionResult) or not report:
            return
        extensions = dict(result.extensions or {})
        extensions["resourceLimitations"] = {"nodeCost": report["nodeCost"]}
        event.set_result(
            ExecutionResult(data=result.data, errors=result.errors, extensions=extensions)
        )
        logger.debug(f"Node cost {report['nodeCost']}")
