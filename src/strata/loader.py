"""Plugin discovery and loading.

Plugins are looked up by name in:
- The built-in plugin table
- Python entry points (strata.plugins group)

Example:
    # plugins.yaml
    plugins:
      - name: max-depth
        config: {max_depth: 8}
      - name: masked-errors
        enabled: false

    loader = PluginLoader(load_config_file(Path("plugins.yaml")))
    orchestrator = Orchestrator(loader.load(), schema)

Example - third-party plugins in pyproject.toml:

    [project.entry-points."strata.plugins"]
    my-plugin = "my_package:MyPlugin"
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from importlib.metadata import entry_points
from pathlib import Path
from typing import Any

import yaml

from strata.config import Settings, settings as default_settings
from strata.errors import StrataError
from strata.plugin import Plugin
from strata.plugins import (
    DisableIntrospectionPlugin,
    LoggerPlugin,
    MaskedErrorsPlugin,
    MaxDepthPlugin,
    MaxTokensPlugin,
    OpenTelemetryPlugin,
    PrometheusPlugin,
    ResourceLimitationsPlugin,
)

logger = logging.getLogger(__name__)

# Entry point group for plugin discovery
ENTRY_POINT_GROUP = "strata.plugins"

# Plugins that can be built from configuration alone
BUILTIN_PLUGINS: dict[str, type[Plugin]] = {
    cls.name: cls
    for cls in (
        LoggerPlugin,
        MaskedErrorsPlugin,
        MaxTokensPlugin,
        MaxDepthPlugin,
        DisableIntrospectionPlugin,
        ResourceLimitationsPlugin,
        PrometheusPlugin,
        OpenTelemetryPlugin,
    )
}


class PluginNotFoundError(StrataError):
    """No plugin is known under the requested name."""

    pass


class PluginLoadError(StrataError):
    """A plugin class could not be instantiated from its configuration."""

    pass


@dataclass
class PluginConfig:
    """Configuration for a single plugin."""

    name: str
    enabled: bool = True
    config: dict[str, Any] = field(default_factory=dict)


@dataclass
class LoaderConfig:
    """Configuration for the plugin loader."""

    # Entry point discovery
    discover_entry_points: bool = True

    # Plugins in pipeline order
    plugins: list[PluginConfig] = field(default_factory=list)


class PluginLoader:
    """Instantiate plugins from configuration, preserving their order."""

    def __init__(self, config: LoaderConfig | None = None) -> None:
        self.config = config or LoaderConfig()
        self._discovered: dict[str, type[Plugin]] | None = None

    def discover(self) -> dict[str, type[Plugin]]:
        """Get all plugin classes available by name.

        Entry points override built-ins with the same name.
        """
        if self._discovered is not None:
            return self._discovered

        discovered = dict(BUILTIN_PLUGINS)
        if self.config.discover_entry_points:
            for ep in entry_points(group=ENTRY_POINT_GROUP):
                try:
                    plugin_class = ep.load()
                except Exception as e:
                    logger.error(f"Failed to load entry point {ep.name}: {e}")
                    continue
                if isinstance(plugin_class, type) and issubclass(plugin_class, Plugin):
                    name = plugin_class.name or ep.name
                    discovered[name] = plugin_class
                    logger.debug(f"Discovered plugin from entry point: {name}")
                else:
                    logger.warning(f"Entry point {ep.name} is not a Plugin subclass")

        self._discovered = discovered
        return discovered

    def load(self) -> list[Plugin]:
        """Instantiate all enabled plugins in configuration order.

        Raises:
            PluginNotFoundError: If a configured name is unknown
            PluginLoadError: If a plugin rejects its configuration
        """
        available = self.discover()
        plugins: list[Plugin] = []

        for entry in self.config.plugins:
            if not entry.enabled:
                logger.info(f"Skipping disabled plugin: {entry.name}")
                continue

            plugin_class = available.get(entry.name)
            if plugin_class is None:
                raise PluginNotFoundError(f"Plugin not found: {entry.name}")

            try:
                plugins.append(plugin_class(**entry.config))
            except (TypeError, ValueError) as e:
                raise PluginLoadError(f"Failed to load plugin {entry.name}: {e}") from e

        logger.info(f"Loaded {len(plugins)} plugins: {[p.display_name for p in plugins]}")
        return plugins


def load_config_file(path: Path) -> LoaderConfig:
    """Load plugin configuration from a YAML/JSON file.

    Args:
        path: Path to configuration file

    Returns:
        LoaderConfig instance
    """
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    content = path.read_text()

    if path.suffix in (".yaml", ".yml"):
        data = yaml.safe_load(content) or {}
    else:
        data = json.loads(content)

    plugin_configs = []
    for cfg in data.get("plugins", []):
        if isinstance(cfg, str):
            cfg = {"name": cfg}
        plugin_configs.append(
            PluginConfig(
                name=cfg["name"],
                enabled=cfg.get("enabled", True),
                config=cfg.get("config") or {},
            )
        )

    return LoaderConfig(
        discover_entry_points=data.get("discover_entry_points", True),
        plugins=plugin_configs,
    )


def build_default_plugins(settings: Settings | None = None) -> list[Plugin]:
    """Build the plugin list described by settings.

    A plugin config file, when set, replaces the settings-derived list.
    """
    settings = settings or default_settings

    if settings.plugins_config:
        return PluginLoader(load_config_file(Path(settings.plugins_config))).load()

    plugins: list[Plugin] = [LoggerPlugin(skip_introspection=True)]
    if settings.enable_tracing:
        plugins.append(OpenTelemetryPlugin(resolvers=settings.trace_resolvers))
    if settings.enable_metrics:
        plugins.append(PrometheusPlugin())
    if settings.disable_introspection:
        plugins.append(DisableIntrospectionPlugin())
    if settings.max_tokens:
        plugins.append(MaxTokensPlugin(settings.max_tokens))
    if settings.max_depth:
        plugins.append(MaxDepthPlugin(settings.max_depth))
    if settings.mask_errors:
        plugins.append(
            MaskedErrorsPlugin(
                message=settings.masked_error_message,
                expose_details=settings.expose_error_details,
            )
        )
    return plugins
