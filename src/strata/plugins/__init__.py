"""Built-in plugins.

Example:
    from strata import Orchestrator
    from strata.plugins import FieldPermissionsPlugin, MaskedErrorsPlugin, SchemaPlugin

    orchestrator = Orchestrator(
        [
            SchemaPlugin(schema),
            FieldPermissionsPlugin(lambda ctx: {"Query.hello"}),
            MaskedErrorsPlugin(),
        ]
    )
"""

from strata.plugins.error_handler import ErrorHandlerPlugin
from strata.plugins.extend_context import ExtendContextPlugin
from strata.plugins.field_permissions import FieldPermissionsPlugin, is_field_allowed
from strata.plugins.limits import (
    MaxDepthPlugin,
    MaxTokensPlugin,
    count_tokens,
    create_max_depth_rule,
    create_max_tokens_rule,
)
from strata.plugins.logger import LoggerPlugin
from strata.plugins.masked_errors import MaskedErrorsPlugin
from strata.plugins.metrics import PrometheusPlugin
from strata.plugins.payload_formatter import PayloadFormatterPlugin
from strata.plugins.resource_limitations import (
    ResourceLimitationsPlugin,
    create_resource_limitations_rule,
)
from strata.plugins.schema import SchemaByContextPlugin, SchemaPlugin
from strata.plugins.tracing import OpenTelemetryPlugin
from strata.plugins.validation import DisableIntrospectionPlugin, ValidationRulePlugin

__all__ = [
    # Schema and context
    "SchemaPlugin",
    "SchemaByContextPlugin",
    "ExtendContextPlugin",
    # Errors and results
    "ErrorHandlerPlugin",
    "MaskedErrorsPlugin",
    "PayloadFormatterPlugin",
    # Validation
    "ValidationRulePlugin",
    "DisableIntrospectionPlugin",
    "MaxTokensPlugin",
    "MaxDepthPlugin",
    "count_tokens",
    "create_max_tokens_rule",
    "create_max_depth_rule",
    "ResourceLimitationsPlugin",
    "create_resource_limitations_rule",
    # Access control
    "FieldPermissionsPlugin",
    "is_field_allowed",
    # Observability
    "LoggerPlugin",
    "PrometheusPlugin",
    "OpenTelemetryPlugin",
]
