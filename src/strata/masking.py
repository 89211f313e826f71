"""Error masking and result formatting.

Masking replaces the message of every error that is not known to be safe
with a generic one. An error is safe when it was produced by the engine or
a plugin as a GraphQL error (parse and validation errors, errors built
without an underlying exception) or when it wraps a GraphQLError or a
SafeError. Masked errors carry no original error, so masking an already
masked error returns it unchanged.

Example:
    masked = mask_error(error)
    payload = format_result(mask_result(result, mask_error))
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import orjson
from graphql import ExecutionResult, GraphQLError

from strata.errors import SafeError

DEFAULT_MASKED_MESSAGE = "Unexpected error."


def is_safe_error(error: GraphQLError) -> bool:
    """Check whether an error may be exposed as is."""
    original = error.original_error
    return original is None or isinstance(original, (GraphQLError, SafeError))


def mask_error(
    error: GraphQLError,
    message: str = DEFAULT_MASKED_MESSAGE,
    expose_details: bool = False,
) -> GraphQLError:
    """Replace the message of an unsafe error.

    Locations, path and extensions are preserved.

    Args:
        error: Error to mask
        message: Generic replacement message
        expose_details: Add the original message under
            ``extensions.originalError`` (development only)

    Returns:
        The same error if safe, otherwise a new masked error
    """
    if is_safe_error(error):
        return error

    extensions: dict[str, Any] = dict(error.extensions or {})
    if expose_details:
        original = error.original_error
        extensions["originalError"] = {
            "message": str(original),
            "type": type(original).__name__,
        }

    return GraphQLError(
        message,
        nodes=error.nodes,
        source=error.source,
        positions=error.positions,
        path=error.path,
        extensions=extensions or None,
    )


def mask_result(
    result: ExecutionResult,
    masker: Callable[[GraphQLError], GraphQLError] | None,
) -> ExecutionResult:
    """Apply a masker to every error of a result."""
    if masker is None or not result.errors:
        return result
    return ExecutionResult(
        data=result.data,
        errors=[masker(error) for error in result.errors],
        extensions=result.extensions,
    )


def format_result(result: ExecutionResult) -> dict[str, Any]:
    """Wire representation of a result.

    Errors use the ``{message, locations, path, extensions}`` shape.
    """
    payload: dict[str, Any] = {"data": result.data}
    if result.errors:
        payload["errors"] = [error.formatted for error in result.errors]
    if result.extensions:
        payload["extensions"] = result.extensions
    return payload


def dumps_result(result: ExecutionResult, indent: bool = False) -> bytes:
    """Serialize a result to JSON bytes."""
    option = orjson.OPT_INDENT_2 if indent else 0
    return orjson.dumps(format_result(result), option=option, default=str)
