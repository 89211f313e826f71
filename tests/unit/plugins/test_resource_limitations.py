"""Tests for ResourceLimitationsPlugin."""

import pytest
from graphql import GraphQLSchema

from strata import Orchestrator
from strata.plugins import ResourceLimitationsPlugin, SchemaPlugin

NESTED_QUERY = """
{
  users(first: 50) {
    edges { node { friends(first: 10) { edges { node { name } } } } }
  }
}
"""


class TestNodeCost:
    """Tests for node cost calculation."""

    @pytest.mark.asyncio
    async def test_nested_connections_multiply(self, schema: GraphQLSchema) -> None:
        """Nested connections are multiplied by the enclosing page size."""
        orchestrator = Orchestrator(
            [SchemaPlugin(schema), ResourceLimitationsPlugin(extensions=True)]
        )

        result = await orchestrator.run(NESTED_QUERY)

        assert result.errors is None
        assert result.extensions == {"resourceLimitations": {"nodeCost": 550}}

    @pytest.mark.asyncio
    async def test_variables_are_read(self, schema: GraphQLSchema) -> None:
        """Pagination arguments may come from variables."""
        orchestrator = Orchestrator(
            [SchemaPlugin(schema), ResourceLimitationsPlugin(extensions=True)]
        )

        result = await orchestrator.run(
            "query Q($n: Int) { users(last: $n) { edges { node { name } } } }",
            variables={"n": 30},
        )

        assert result.extensions["resourceLimitations"]["nodeCost"] == 30

    @pytest.mark.asyncio
    async def test_no_extensions_by_default(self, schema: GraphQLSchema) -> None:
        """The cost is only reported when asked for."""
        orchestrator = Orchestrator([SchemaPlugin(schema), ResourceLimitationsPlugin()])

        result = await orchestrator.run(NESTED_QUERY)

        assert result.errors is None
        assert result.extensions is None

    @pytest.mark.asyncio
    async def test_over_limit(self, schema: GraphQLSchema, calls: list[str]) -> None:
        """Operations above the limit are rejected before execution."""
        orchestrator = Orchestrator(
            [SchemaPlugin(schema), ResourceLimitationsPlugin(node_cost_limit=500)]
        )

        result = await orchestrator.run(NESTED_QUERY)

        assert result.data is None
        assert result.errors[0].message.startswith(
            "Cannot request more than 500 nodes in a single document."
        )
        assert calls == []


class TestPaginationArguments:
    """Tests for pagination argument checks."""

    @pytest.mark.asyncio
    async def test_missing_argument(self, schema: GraphQLSchema) -> None:
        """Connections must be paginated."""
        orchestrator = Orchestrator([SchemaPlugin(schema), ResourceLimitationsPlugin()])

        result = await orchestrator.run("{ users { edges { node { name } } } }")

        assert result.errors[0].message == (
            "Missing pagination argument for field 'Query.users'. Please provide "
            "either the 'first' or 'last' field argument."
        )

    @pytest.mark.asyncio
    async def test_argument_out_of_range(self, schema: GraphQLSchema) -> None:
        """Page sizes must be within the configured bounds."""
        orchestrator = Orchestrator([SchemaPlugin(schema), ResourceLimitationsPlugin()])

        result = await orchestrator.run("{ users(first: 101) { edges { node { name } } } }")

        assert result.errors[0].message == (
            "Invalid pagination argument for field Query.users. The value for the "
            "'first' argument must be an integer within 1-100."
        )

    @pytest.mark.asyncio
    async def test_custom_bounds(self, schema: GraphQLSchema) -> None:
        """Bounds are configurable."""
        orchestrator = Orchestrator(
            [
                SchemaPlugin(schema),
                ResourceLimitationsPlugin(pagination_minimum=5, pagination_maximum=10),
            ]
        )

        result = await orchestrator.run("{ users(first: 2) { edges { node { name } } } }")

        assert "within 5-10" in result.errors[0].message

    def test_invalid_bounds(self) -> None:
        """Minimum above maximum is a configuration error."""
        with pytest.raises(ValueError):
            ResourceLimitationsPlugin(pagination_minimum=10, pagination_maximum=5)
