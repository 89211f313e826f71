"""Tests for the plugin contract."""

import pytest

from strata.errors import ContractViolation
from strata.hooks import ControlAction, HookEvent, HookKind
from strata.plugin import ERROR_MASKING, FunctionPlugin, Plugin, make_plugin


class ParsePlugin(Plugin):
    """Plugin with one parse hook."""

    name = "parse-plugin"
    version = "1.2.0"
    setup_calls = 0

    def setup(self) -> None:
        self.setup_calls += 1
        self.register_hook(HookKind.ON_PARSE, self.on_parse)

    def on_parse(self, event: HookEvent) -> None:
        pass


class TestPlugin:
    """Tests for the Plugin base class."""

    def test_identity(self) -> None:
        """Plugins expose their name and version."""
        plugin = ParsePlugin()

        assert plugin.qualified_name == "parse-plugin@1.2.0"
        assert plugin.display_name == "parse-plugin"
        assert "parse-plugin@1.2.0" in repr(plugin)

    def test_unnamed_plugin_uses_class_name(self) -> None:
        """A plugin without a name is identified by its class."""

        class Anonymous(Plugin):
            pass

        assert Anonymous().display_name == "Anonymous"

    def test_dependencies_not_shared(self) -> None:
        """Plugins without dependencies get an immutable empty tuple."""

        class Other(Plugin):
            pass

        assert ParsePlugin.dependencies == ()
        assert Other.dependencies == ()
        assert make_plugin("deps", dependencies=["auth"]).dependencies == ("auth",)
        assert Plugin.dependencies == ()

    def test_bind_runs_setup_once(self) -> None:
        """bind() calls setup exactly once and freezes the plugin."""
        plugin = ParsePlugin()

        plugin.bind()
        plugin.bind()

        assert plugin.setup_calls == 1
        assert plugin.frozen
        assert len(plugin.get_registered_hooks()) == 1

    def test_register_after_bind_raises(self) -> None:
        """A bound plugin cannot register more hooks."""
        plugin = ParsePlugin()
        plugin.bind()

        with pytest.raises(ContractViolation, match="cannot change"):
            plugin.register_hook(HookKind.ON_VALIDATE, lambda event: None)

    def test_unknown_kind_raises(self) -> None:
        """Registering an unknown kind raises ContractViolation."""
        plugin = Plugin()

        with pytest.raises(ContractViolation, match="unknown hook kind"):
            plugin.register_hook("onParse", lambda event: None)  # type: ignore[arg-type]

    def test_non_callable_handler_raises(self) -> None:
        """Handlers must be callable."""
        plugin = Plugin()

        with pytest.raises(ContractViolation, match="not callable"):
            plugin.register_hook(HookKind.ON_PARSE, "handler")  # type: ignore[arg-type]

    def test_declared_illegal_action_raises(self) -> None:
        """Declared actions are checked against the registry."""
        plugin = Plugin()

        with pytest.raises(ContractViolation, match="WRAP_RESOLVER not allowed in onParse"):
            plugin.register_hook(
                HookKind.ON_PARSE,
                lambda event: None,
                actions={ControlAction.WRAP_RESOLVER},
            )

    def test_declared_legal_action(self) -> None:
        """Legal declared actions are kept on the registration."""
        plugin = Plugin()

        plugin.register_hook(
            HookKind.ON_VALIDATE,
            lambda event: None,
            actions={ControlAction.ADD_VALIDATION_RULE},
        )

        [registration] = plugin.get_registered_hooks()
        assert registration.actions == {ControlAction.ADD_VALIDATION_RULE}

    def test_error_masker_claims_capability(self) -> None:
        """Registering an error masker claims error masking."""
        plugin = Plugin()

        plugin.register_error_masker(lambda error: error)

        assert ERROR_MASKING in plugin.claims
        assert plugin.error_masker is not None

    def test_second_error_masker_raises(self) -> None:
        """A plugin may register one error masker."""
        plugin = Plugin()
        plugin.register_error_masker(lambda error: error)

        with pytest.raises(ContractViolation, match="already registered"):
            plugin.register_error_masker(lambda error: error)


class TestMakePlugin:
    """Tests for function plugins."""

    def test_keyword_handlers(self) -> None:
        """Keyword handlers map to hook kinds."""

        def on_parse(event: HookEvent) -> None:
            pass

        def on_execute_done(event: HookEvent) -> None:
            pass

        plugin = make_plugin("timing", on_parse=on_parse, on_execute_done=on_execute_done)
        plugin.bind()

        assert isinstance(plugin, FunctionPlugin)
        kinds = [registration.kind for registration in plugin.get_registered_hooks()]
        assert kinds == [HookKind.ON_PARSE, HookKind.ON_EXECUTE_DONE]

    def test_unknown_keyword_raises(self) -> None:
        """Unknown keywords raise ContractViolation."""
        with pytest.raises(ContractViolation, match="unknown hook 'on_banana'"):
            make_plugin("bad", on_banana=lambda event: None)

    def test_options_pass_through(self) -> None:
        """Masker, exclusivity and dependencies are passed through."""
        plugin = make_plugin(
            "masker",
            error_masker=lambda error: error,
            exclusive={"cache"},
            dependencies=["auth"],
        )
        plugin.bind()

        assert plugin.claims == {"cache", ERROR_MASKING}
        assert plugin.dependencies == ("auth",)
