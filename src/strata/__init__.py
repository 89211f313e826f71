"""strata: a plugin pipeline around GraphQL execution.

Plugins contribute hooks to a fixed request lifecycle (context building,
parsing, validation, execution). An ordered plugin list is fused once into
an immutable pipeline; every request then runs through that pipeline with
its own execution context.

Example:

    from strata import Orchestrator
    from strata.plugins import ExtendContextPlugin, MaskedErrorsPlugin, SchemaPlugin

    orchestrator = Orchestrator(
        [
            SchemaPlugin(schema),
            ExtendContextPlugin(lambda ctx: {"user": load_user(ctx["token"])}),
            MaskedErrorsPlugin(),
        ]
    )
    result = await orchestrator.run("{ hello }", context={"token": token})
"""

from strata.composer import FusedPipeline, compose
from strata.context import ABSENT, ExecutionContext
from strata.engine import Engine
from strata.errors import (
    CompositionError,
    ContractViolation,
    InternalPipelineError,
    PipelineError,
    SafeError,
    StrataError,
)
from strata.hooks import HOOK_METADATA, AfterHook, ControlAction, HookEvent, HookKind, HookSide
from strata.masking import dumps_result, format_result, mask_error
from strata.orchestrator import Orchestrator, RequestState
from strata.plugin import FunctionPlugin, Plugin, make_plugin

__version__ = "0.1.0"

__all__ = [
    # Core
    "Orchestrator",
    "RequestState",
    "Engine",
    "compose",
    "FusedPipeline",
    "ExecutionContext",
    "ABSENT",
    # Plugins and hooks
    "Plugin",
    "FunctionPlugin",
    "make_plugin",
    "HookKind",
    "HookSide",
    "HookEvent",
    "AfterHook",
    "ControlAction",
    "HOOK_METADATA",
    # Errors
    "StrataError",
    "PipelineError",
    "ContractViolation",
    "CompositionError",
    "InternalPipelineError",
    "SafeError",
    "mask_error",
    "format_result",
    "dumps_result",
]
