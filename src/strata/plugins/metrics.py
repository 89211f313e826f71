"""Prometheus metrics for the request lifecycle.

Provides:
- Phase duration histograms (context, parse, validate, execute, subscribe)
- Request counter per operation
- Error counter per phase

Usage:
    from prometheus_client import generate_latest

    plugin = PrometheusPlugin()
    orchestrator = Orchestrator([SchemaPlugin(schema), plugin])
    generate_latest(plugin.registry)
"""

from __future__ import annotations

import logging
import time
import weakref
from dataclasses import dataclass
from typing import Any

from graphql import ExecutionResult
from graphql.utilities import get_operation_ast
from prometheus_client import REGISTRY, CollectorRegistry, Counter, Histogram

from strata.hooks import AfterHook, HookEvent, HookKind
from strata.plugin import Plugin

logger = logging.getLogger(__name__)

PHASE_BUCKETS = (0.0005, 0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5)

_PHASES = {
    HookKind.ON_CONTEXT_BUILDING: "context",
    HookKind.ON_PARSE: "parse",
    HookKind.ON_VALIDATE: "validate",
    HookKind.ON_EXECUTE: "execute",
    HookKind.ON_SUBSCRIBE: "subscribe",
}


@dataclass
class GraphQLMetrics:
    """Metric objects registered in one registry."""

    requests_total: Counter
    errors_total: Counter
    phase_duration_seconds: Histogram


_metrics_cache: weakref.WeakKeyDictionary[CollectorRegistry, dict[str, GraphQLMetrics]] = (
    weakref.WeakKeyDictionary()
)


def get_graphql_metrics(
    registry: CollectorRegistry = REGISTRY,
    prefix: str = "strata_graphql",
) -> GraphQLMetrics:
    """Get metrics for a registry, creating them on first access.

    Metric names can only be registered once per registry, so plugins
    sharing a registry share their metric objects.
    """
    by_prefix = _metrics_cache.setdefault(registry, {})
    metrics = by_prefix.get(prefix)
    if metrics is None:
        metrics = GraphQLMetrics(
            requests_total=Counter(
                f"{prefix}_requests_total",
                "Total executed GraphQL operations",
                ["operation_type", "operation_name"],
                registry=registry,
            ),
            errors_total=Counter(
                f"{prefix}_errors_total",
                "GraphQL errors by lifecycle phase",
                ["phase"],
                registry=registry,
            ),
            phase_duration_seconds=Histogram(
                f"{prefix}_phase_duration_seconds",
                "Duration of request lifecycle phases in seconds",
                ["phase"],
                buckets=PHASE_BUCKETS,
                registry=registry,
            ),
        )
        by_prefix[prefix] = metrics
        logger.info(f"Prometheus metrics initialized ({prefix})")
    return metrics


class PrometheusPlugin(Plugin):
    """Record phase durations, operations and errors."""

    name = "prometheus"
    version = "1.0.0"
    description = "Exports request lifecycle metrics to Prometheus"

    def __init__(
        self,
        registry: CollectorRegistry | None = None,
        prefix: str = "strata_graphql",
    ) -> None:
        super().__init__()
        self.registry = registry if registry is not None else REGISTRY
        self.metrics = get_graphql_metrics(self.registry, prefix)

    def setup(self) -> None:
        for kind in _PHASES:
            self.register_hook(kind, self.on_phase)
        self.register_hook(HookKind.ON_EXECUTE_DONE, self.on_execute_done)

    def on_phase(self, event: HookEvent) -> AfterHook:
        phase = _PHASES[event.kind]
        started = time.perf_counter()

        if event.kind in (HookKind.ON_EXECUTE, HookKind.ON_SUBSCRIBE):
            self.metrics.requests_total.labels(
                operation_type=_operation_type(event),
                operation_name=event.operation_name or "anonymous",
            ).inc()

        observed = False

        def done(after: HookEvent) -> None:
            nonlocal observed
            # Subscriptions call this once per emitted result; time the first one
            if not observed:
                observed = True
                self.metrics.phase_duration_seconds.labels(phase=phase).observe(
                    time.perf_counter() - started
                )
            if after.kind in (HookKind.ON_PARSE, HookKind.ON_VALIDATE) and after.errors:
                self.metrics.errors_total.labels(phase=phase).inc(len(after.errors))

        return done

    def on_execute_done(self, event: HookEvent) -> None:
        result = event.result
        if isinstance(result, ExecutionResult) and result.errors:
            self.metrics.errors_total.labels(phase="execute").inc(len(result.errors))


def _operation_type(event: HookEvent) -> str:
    if event.document is None:
        return "unknown"
    operation: Any = get_operation_ast(event.document, event.operation_name)
    return operation.operation.value if operation is not None else "unknown"
