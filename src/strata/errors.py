"""Error taxonomy for the strata pipeline.

Two families of errors exist:
- Composition errors, raised at startup while fusing plugins
  (CompositionError, ContractViolation). These are programmer errors and
  are never converted into GraphQL errors.
- Request errors, which cross the system boundary as GraphQL errors.
  Parse, validation and resolver errors are produced by graphql-core;
  InternalPipelineError covers unexpected conditions in the core itself.

SafeError marks an exception whose message may be shown to clients even
when error masking is enabled.
"""

from __future__ import annotations

from typing import Any

from graphql import GraphQLError

INTERNAL_PIPELINE_ERROR_CODE = "INTERNAL_PIPELINE_ERROR"


class StrataError(Exception):
    """Base exception for strata errors."""

    pass


class PipelineError(StrataError):
    """Base exception for pipeline composition and execution errors."""

    pass


class ContractViolation(PipelineError):
    """A plugin used the hook contract in a way the registry forbids.

    Raised at registration or composition time when the misuse is visible
    statically, and at request time when a hook invokes a control action
    that is not legal for the current phase.
    """

    pass


class CompositionError(PipelineError):
    """The plugin list cannot be fused into a pipeline."""

    pass


class InternalPipelineError(PipelineError):
    """Unexpected condition in the core, isolated to a single request."""

    pass


class SafeError(Exception):
    """Error whose message is safe to expose to clients.

    Resolvers and plugins raise this to keep their message when error
    masking is active. ``extensions`` are copied onto the GraphQL error.
    """

    def __init__(self, message: str, extensions: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.extensions = extensions


def to_structured_error(error: BaseException) -> GraphQLError:
    """Convert any exception into a GraphQL error.

    GraphQL errors pass through untouched. Contract violations caught at
    request time are reported as internal pipeline errors.

    Args:
        error: Exception raised by a hook or the engine

    Returns:
        GraphQLError carrying the original exception
    """
    if isinstance(error, GraphQLError):
        return error

    if isinstance(error, ContractViolation):
        internal = InternalPipelineError(f"Illegal control action: {error}")
        internal.__cause__ = error
        error = internal

    if isinstance(error, InternalPipelineError):
        return GraphQLError(
            str(error),
            original_error=error,
            extensions={"code": INTERNAL_PIPELINE_ERROR_CODE},
        )

    return GraphQLError(str(error) or error.__class__.__name__, original_error=error)
