"""Tests for pipeline composition."""

import pytest
from graphql import GraphQLSchema, build_schema

from strata.composer import FusedPipeline, compose
from strata.errors import CompositionError, ContractViolation
from strata.hooks import ControlAction, HookEvent, HookKind
from strata.plugin import ERROR_MASKING, SCHEMA_OWNER, Plugin, make_plugin
from strata.plugins import MaskedErrorsPlugin, SchemaPlugin


class AuthPlugin(Plugin):
    """Plugin others depend on."""

    name = "auth"


class NeedsAuth(Plugin):
    """Plugin declaring a dependency."""

    name = "needs-auth"
    dependencies = ("auth",)


class SchemaWatcher(Plugin):
    """Records every schema it is notified with."""

    def __init__(self, name: str, replacement: GraphQLSchema | None = None) -> None:
        self.name = name
        super().__init__()
        self.replacement = replacement
        self.seen: list[GraphQLSchema | None] = []

    def setup(self) -> None:
        self.register_hook(
            HookKind.ON_SCHEMA_CHANGE,
            self.on_schema_change,
            actions={ControlAction.REPLACE_SCHEMA},
        )

    def on_schema_change(self, event: HookEvent) -> None:
        self.seen.append(event.schema)
        if self.replacement is not None and event.schema is not self.replacement:
            event.replace_schema(self.replacement)


class TestCompose:
    """Tests for compose()."""

    def test_pipeline_defaults(self) -> None:
        """A pipeline built without owners has an empty, read-only owner map."""
        pipeline = FusedPipeline(plugins=(), schema=None, hooks={})

        assert pipeline.owners == {}
        with pytest.raises(TypeError):
            pipeline.owners["schema"] = "mine"

    def test_hooks_in_registration_order(self) -> None:
        """Registrations are collected per kind in plugin order."""
        first = make_plugin("first", on_parse=lambda e: None)
        second = make_plugin("second", on_parse=lambda e: None, on_validate=lambda e: None)

        pipeline = compose([first, second])

        parse_hooks = pipeline.hooks_for(HookKind.ON_PARSE)
        assert [r.plugin for r in parse_hooks] == ["first", "second"]
        assert [r.order for r in parse_hooks] == [(0, 0), (1, 0)]
        assert pipeline.get_hook_count(HookKind.ON_VALIDATE) == 1
        assert not pipeline.has_hooks(HookKind.ON_EXECUTE)
        assert pipeline.plugin_names == ["first", "second"]

    def test_pipeline_is_read_only(self) -> None:
        """The hook table of a pipeline cannot be modified."""
        pipeline = compose([make_plugin("p", on_parse=lambda e: None)])

        with pytest.raises(TypeError):
            pipeline.hooks[HookKind.ON_EXECUTE] = ()  # type: ignore[index]

    def test_dependency_must_come_first(self) -> None:
        """A dependency registered later fails composition."""
        with pytest.raises(CompositionError, match="requires auth"):
            compose([NeedsAuth(), AuthPlugin()])

        pipeline = compose([AuthPlugin(), NeedsAuth()])
        assert pipeline.plugin_names == ["auth", "needs-auth"]

    def test_two_schema_owners_conflict(self, schema: GraphQLSchema) -> None:
        """Only one plugin may own the schema."""
        with pytest.raises(CompositionError, match=f"'{SCHEMA_OWNER}'"):
            compose([SchemaPlugin(schema), SchemaPlugin(schema)])

    def test_two_error_maskers_conflict(self) -> None:
        """Only one plugin may mask errors."""
        with pytest.raises(CompositionError, match=ERROR_MASKING):
            compose([MaskedErrorsPlugin(), MaskedErrorsPlugin(message="Oops")])

    def test_owners_and_masker(self, schema: GraphQLSchema) -> None:
        """The pipeline records capability owners and the masker."""
        masked = MaskedErrorsPlugin()

        pipeline = compose([SchemaPlugin(schema), masked])

        assert pipeline.owners == {SCHEMA_OWNER: "schema", ERROR_MASKING: "masked-errors"}
        assert pipeline.error_masker == masked.mask
        assert pipeline.schema is schema

    def test_not_a_plugin(self) -> None:
        """Only Plugin instances can be composed."""
        with pytest.raises(ContractViolation, match="Not a plugin"):
            compose([object()])  # type: ignore[list-item]

    def test_plugins_reused_across_compositions(self) -> None:
        """A bound plugin can be composed again."""
        plugin = make_plugin("p", on_parse=lambda e: None)

        compose([plugin])
        pipeline = compose([plugin])

        assert pipeline.get_hook_count(HookKind.ON_PARSE) == 1


class TestSchemaChange:
    """Tests for schema change notification."""

    def test_initial_schema_is_announced(self, schema: GraphQLSchema) -> None:
        """Hooks see the initial schema."""
        watcher = SchemaWatcher("watcher")

        compose([watcher], schema)

        assert watcher.seen == [schema]

    def test_replacement_seen_by_later_hooks(self, schema: GraphQLSchema) -> None:
        """Later hooks see the replacement; earlier hooks are notified again."""
        replacement = build_schema("type Query { other: String }")
        early = SchemaWatcher("early")
        replacer = SchemaWatcher("replacer", replacement=replacement)
        late = SchemaWatcher("late")

        pipeline = compose([early, replacer, late], schema)

        assert pipeline.schema is replacement
        assert early.seen == [schema, replacement]
        assert replacer.seen == [schema]
        assert late.seen == [replacement]

    def test_async_handler_rejected(self, schema: GraphQLSchema) -> None:
        """Schema change handlers must be synchronous."""

        async def on_schema_change(event: HookEvent) -> None:
            pass

        with pytest.raises(ContractViolation, match="must be synchronous"):
            compose([make_plugin("async", on_schema_change=on_schema_change)], schema)

    def test_illegal_action_aborts_composition(self, schema: GraphQLSchema) -> None:
        """A contract violation during the build is raised to the caller."""

        def on_schema_change(event: HookEvent) -> None:
            event.set_result({"data": None})

        with pytest.raises(ContractViolation, match="SET_RESULT"):
            compose([make_plugin("bad", on_schema_change=on_schema_change)], schema)
