"""Tests for plugin loader."""

import json
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from strata.config import Settings
from strata.loader import (
    BUILTIN_PLUGINS,
    ENTRY_POINT_GROUP,
    LoaderConfig,
    PluginConfig,
    PluginLoader,
    PluginLoadError,
    PluginNotFoundError,
    build_default_plugins,
    load_config_file,
)
from strata.plugin import Plugin
from strata.plugins import (
    DisableIntrospectionPlugin,
    LoggerPlugin,
    MaskedErrorsPlugin,
    MaxDepthPlugin,
    MaxTokensPlugin,
)


class SimplePlugin(Plugin):
    """Simple test plugin."""

    name = "simple-plugin"
    version = "1.0.0"

    def __init__(self, greeting: str = "hi") -> None:
        super().__init__()
        self.greeting = greeting


class TestLoaderConfig:
    """Tests for LoaderConfig."""

    def test_default_config(self) -> None:
        """Default config has expected values."""
        config = LoaderConfig()

        assert config.discover_entry_points is True
        assert config.plugins == []

    def test_plugin_config_defaults(self) -> None:
        """PluginConfig is enabled with no options by default."""
        config = PluginConfig(name="max-depth")

        assert config.enabled is True
        assert config.config == {}


class TestPluginLoader:
    """Tests for PluginLoader."""

    def test_builtin_names(self) -> None:
        """Built-in plugins are available by name."""
        assert BUILTIN_PLUGINS["max-depth"] is MaxDepthPlugin
        assert BUILTIN_PLUGINS["masked-errors"] is MaskedErrorsPlugin
        assert "schema" not in BUILTIN_PLUGINS

    def test_load_in_order(self) -> None:
        """Plugins are instantiated with their config, in list order."""
        loader = PluginLoader(
            LoaderConfig(
                discover_entry_points=False,
                plugins=[
                    PluginConfig(name="max-tokens", config={"max_tokens": 50}),
                    PluginConfig(name="logger"),
                    PluginConfig(name="masked-errors", config={"message": "Oops"}),
                ],
            )
        )

        plugins = loader.load()

        assert [type(p) for p in plugins] == [MaxTokensPlugin, LoggerPlugin, MaskedErrorsPlugin]
        assert plugins[0].max_tokens == 50
        assert plugins[2].message == "Oops"

    def test_disabled_plugins_skipped(self) -> None:
        """Disabled entries are not instantiated."""
        loader = PluginLoader(
            LoaderConfig(
                discover_entry_points=False,
                plugins=[PluginConfig(name="logger", enabled=False)],
            )
        )

        assert loader.load() == []

    def test_unknown_plugin(self) -> None:
        """Unknown names raise PluginNotFoundError."""
        loader = PluginLoader(
            LoaderConfig(discover_entry_points=False, plugins=[PluginConfig(name="nope")])
        )

        with pytest.raises(PluginNotFoundError, match="nope"):
            loader.load()

    def test_bad_config(self) -> None:
        """Invalid options raise PluginLoadError."""
        loader = PluginLoader(
            LoaderConfig(
                discover_entry_points=False,
                plugins=[PluginConfig(name="max-depth", config={"depth": 3})],
            )
        )

        with pytest.raises(PluginLoadError, match="max-depth"):
            loader.load()

    def test_entry_points(self) -> None:
        """Entry point plugins are discovered in the strata group."""
        entry_point = MagicMock()
        entry_point.name = "simple"
        entry_point.load.return_value = SimplePlugin

        with patch("strata.loader.entry_points", return_value=[entry_point]) as mock_eps:
            loader = PluginLoader(
                LoaderConfig(
                    plugins=[PluginConfig(name="simple-plugin", config={"greeting": "hello"})]
                )
            )
            [plugin] = loader.load()

        mock_eps.assert_called_once_with(group=ENTRY_POINT_GROUP)
        assert isinstance(plugin, SimplePlugin)
        assert plugin.greeting == "hello"

    def test_broken_entry_point_is_skipped(self) -> None:
        """Entry points that fail to import are logged and ignored."""
        entry_point = MagicMock()
        entry_point.name = "broken"
        entry_point.load.side_effect = ImportError("missing module")

        with patch("strata.loader.entry_points", return_value=[entry_point]):
            discovered = PluginLoader().discover()

        assert "broken" not in discovered
        assert "logger" in discovered


class TestLoadConfigFile:
    """Tests for configuration files."""

    def test_yaml(self, tmp_path: Path) -> None:
        """YAML files keep plugin order."""
        path = tmp_path / "plugins.yaml"
        path.write_text(
            "discover_entry_points: false\n"
            "plugins:\n"
            "  - name: max-depth\n"
            "    config:\n"
            "      max_depth: 4\n"
            "  - name: masked-errors\n"
            "    enabled: false\n"
            "  - logger\n"
        )

        config = load_config_file(path)

        assert config.discover_entry_points is False
        assert [p.name for p in config.plugins] == ["max-depth", "masked-errors", "logger"]
        assert config.plugins[0].config == {"max_depth": 4}
        assert config.plugins[1].enabled is False

    def test_json(self, tmp_path: Path) -> None:
        """JSON files are supported."""
        path = tmp_path / "plugins.json"
        path.write_text(json.dumps({"plugins": [{"name": "max-tokens"}]}))

        config = load_config_file(path)

        assert config.plugins == [PluginConfig(name="max-tokens")]

    def test_missing_file(self, tmp_path: Path) -> None:
        """Missing files raise FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            load_config_file(tmp_path / "missing.yaml")


class TestBuildDefaultPlugins:
    """Tests for the settings-derived plugin list."""

    def test_defaults(self) -> None:
        """Default settings give logging and masking."""
        plugins = build_default_plugins(Settings())

        assert [type(p) for p in plugins] == [LoggerPlugin, MaskedErrorsPlugin]

    def test_limits(self) -> None:
        """Configured limits add their plugins."""
        settings = Settings(
            max_tokens=100, max_depth=5, disable_introspection=True, mask_errors=False
        )

        plugins = build_default_plugins(settings)

        assert [type(p) for p in plugins] == [
            LoggerPlugin,
            DisableIntrospectionPlugin,
            MaxTokensPlugin,
            MaxDepthPlugin,
        ]

    def test_config_file_overrides(self, tmp_path: Path) -> None:
        """A plugin config file replaces the settings-derived list."""
        path = tmp_path / "plugins.yaml"
        path.write_text("discover_entry_points: false\nplugins:\n  - name: max-depth\n")

        plugins = build_default_plugins(Settings(plugins_config=str(path)))

        assert [type(p) for p in plugins] == [MaxDepthPlugin]
