"""Mask unexpected errors before they leave the system.

Errors raised by resolvers or plugins are replaced with a generic message
unless they are SafeErrors or GraphQL errors. The masker runs once per
emitted result, after every other hook.

Example:
    MaskedErrorsPlugin(message="Something went wrong", expose_details=settings.env == "dev")
"""

from __future__ import annotations

from graphql import GraphQLError

from strata.masking import DEFAULT_MASKED_MESSAGE, mask_error
from strata.plugin import Plugin


class MaskedErrorsPlugin(Plugin):
    """Register the error masker."""

    name = "masked-errors"
    version = "1.0.0"
    description = "Replaces unexpected error messages with a generic one"

    def __init__(
        self,
        message: str = DEFAULT_MASKED_MESSAGE,
        expose_details: bool = False,
    ) -> None:
        super().__init__()
        self.message = message
        self.expose_details = expose_details

    def setup(self) -> None:
        self.register_error_masker(self.mask)

    def mask(self, error: GraphQLError) -> GraphQLError:
        return mask_error(error, self.message, self.expose_details)
