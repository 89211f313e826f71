"""Document size limits enforced during validation.

Both limits are plain validation rules, so a rejected document never
reaches execution.

Example:
    Orchestrator([SchemaPlugin(schema), MaxTokensPlugin(1000), MaxDepthPlugin(10)])
"""

from __future__ import annotations

from typing import Any

from graphql import (
    FieldNode,
    FragmentSpreadNode,
    GraphQLError,
    InlineFragmentNode,
    OperationDefinitionNode,
    SelectionSetNode,
)
from graphql.language import Lexer, Source, TokenKind, print_ast
from graphql.validation import ASTValidationRule

from strata.engine import ValidationRuleType
from strata.plugins.validation import ValidationRulePlugin


def count_tokens(source: Source | str) -> int:
    """Number of lexical tokens in a document, comments excluded."""
    lexer = Lexer(source if isinstance(source, Source) else Source(source))
    count = 0
    token = lexer.advance()
    while token.kind is not TokenKind.EOF:
        count += 1
        token = lexer.advance()
    return count


def create_max_tokens_rule(max_tokens: int) -> ValidationRuleType:
    """Build a rule rejecting documents with more than ``max_tokens`` tokens."""
    if max_tokens < 1:
        raise ValueError("max_tokens must be positive")

    class MaxTokensRule(ASTValidationRule):
        def enter_document(self, node: Any, *_args: Any) -> Any:
            source = node.loc.source if node.loc is not None else print_ast(node)
            tokens = count_tokens(source)
            if tokens > max_tokens:
                self.report_error(
                    GraphQLError(f"Token limit of {max_tokens} exceeded, found {tokens}.")
                )
            return self.BREAK

    return MaxTokensRule


def create_max_depth_rule(max_depth: int, ignore_introspection: bool = True) -> ValidationRuleType:
    """Build a rule rejecting operations nested deeper than ``max_depth`` fields.

    A selection of leaf fields has depth 1. Fragments are followed, each
    at most once per path.
    """
    if max_depth < 1:
        raise ValueError("max_depth must be positive")

    class MaxDepthRule(ASTValidationRule):
        def enter_operation_definition(self, node: OperationDefinitionNode, *_args: Any) -> None:
            depth = self._depth(node.selection_set, frozenset())
            if depth > max_depth:
                self.report_error(
                    GraphQLError(
                        f"Query depth limit of {max_depth} exceeded, found {depth}.",
                        node,
                    )
                )

        def _depth(self, selection_set: SelectionSetNode | None, visited: frozenset[str]) -> int:
            if selection_set is None:
                return 0
            deepest = 0
            for selection in selection_set.selections:
                if isinstance(selection, FieldNode):
                    if ignore_introspection and selection.name.value.startswith("__"):
                        continue
                    deepest = max(deepest, 1 + self._depth(selection.selection_set, visited))
                elif isinstance(selection, InlineFragmentNode):
                    deepest = max(deepest, self._depth(selection.selection_set, visited))
                elif isinstance(selection, FragmentSpreadNode):
                    name = selection.name.value
                    fragment = self.context.get_fragment(name)
                    if fragment is None or name in visited:
                        continue
                    deepest = max(deepest, self._depth(fragment.selection_set, visited | {name}))
            return deepest

    return MaxDepthRule


class MaxTokensPlugin(ValidationRulePlugin):
    """Limit the number of tokens in a document."""

    name = "max-tokens"

    def __init__(self, max_tokens: int = 1000) -> None:
        super().__init__(create_max_tokens_rule(max_tokens))
        self.max_tokens = max_tokens


class MaxDepthPlugin(ValidationRulePlugin):
    """Limit the selection depth of operations."""

    name = "max-depth"

    def __init__(self, max_depth: int = 6, ignore_introspection: bool = True) -> None:
        super().__init__(create_max_depth_rule(max_depth, ignore_introspection))
        self.max_depth = max_depth
