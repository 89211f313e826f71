"""Global pytest configuration and fixtures.

Provides a small graphql-core schema whose resolvers record every call, so
tests can assert which fields actually ran.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from typing import Any

import pytest
from graphql import (
    GraphQLArgument,
    GraphQLField,
    GraphQLInt,
    GraphQLList,
    GraphQLNonNull,
    GraphQLObjectType,
    GraphQLSchema,
    GraphQLString,
)

from strata.errors import SafeError


def build_test_schema(calls: list[str], gate: asyncio.Event | None = None) -> GraphQLSchema:
    """Schema used across the test suite.

    Fields:
    - hello, secret: plain strings
    - boom: raises an unexpected error
    - missing: raises a SafeError
    - slow: waits on ``gate``
    - users / User.friends: connections taking first/last
    - Subscription.count(to): emits 1..to
    """

    def record(name: str, value: Any) -> Any:
        def resolve(root: Any, info: Any, **args: Any) -> Any:
            calls.append(name)
            return value

        return resolve

    def boom(root: Any, info: Any) -> Any:
        calls.append("boom")
        raise ValueError("database password is hunter2")

    def missing(root: Any, info: Any) -> Any:
        calls.append("missing")
        raise SafeError("Thing not found", extensions={"code": "NOT_FOUND"})

    async def slow(root: Any, info: Any) -> str:
        calls.append("slow")
        if gate is not None:
            await gate.wait()
        return "done"

    def connection(root: Any, info: Any, first: int | None = None, last: int | None = None):
        calls.append(f"{info.parent_type.name}.{info.field_name}")
        count = first or last or 0
        return {"edges": [{"node": {"name": f"user{i}"}} for i in range(min(count, 2))]}

    pagination = {"first": GraphQLArgument(GraphQLInt), "last": GraphQLArgument(GraphQLInt)}

    user_type: GraphQLObjectType = GraphQLObjectType(
        "User",
        lambda: {
            "name": GraphQLField(GraphQLString),
            "friends": GraphQLField(user_connection, args=pagination, resolve=connection),
        },
    )
    user_edge = GraphQLObjectType("UserEdge", {"node": GraphQLField(user_type)})
    user_connection = GraphQLObjectType(
        "UserConnection", {"edges": GraphQLField(GraphQLList(user_edge))}
    )

    query = GraphQLObjectType(
        "Query",
        {
            "hello": GraphQLField(GraphQLString, resolve=record("hello", "world")),
            "secret": GraphQLField(GraphQLString, resolve=record("secret", "s3cr3t")),
            "boom": GraphQLField(GraphQLString, resolve=boom),
            "missing": GraphQLField(GraphQLString, resolve=missing),
            "slow": GraphQLField(GraphQLString, resolve=slow),
            "users": GraphQLField(user_connection, args=pagination, resolve=connection),
        },
    )

    async def count(root: Any, info: Any, to: int) -> AsyncIterator[int]:
        for i in range(1, to + 1):
            yield i

    subscription = GraphQLObjectType(
        "Subscription",
        {
            "count": GraphQLField(
                GraphQLInt,
                args={"to": GraphQLArgument(GraphQLNonNull(GraphQLInt))},
                subscribe=count,
                resolve=lambda event, info, **args: event,
            )
        },
    )

    return GraphQLSchema(query=query, subscription=subscription)


@pytest.fixture
def calls() -> list[str]:
    """Names of resolvers invoked during a test."""
    return []


@pytest.fixture
def schema(calls: list[str]) -> GraphQLSchema:
    """Test schema recording resolver calls."""
    return build_test_schema(calls)


@pytest.fixture
def gate() -> asyncio.Event:
    """Event holding the ``slow`` resolver until set."""
    return asyncio.Event()


@pytest.fixture
def gated_schema(calls: list[str], gate: asyncio.Event) -> GraphQLSchema:
    """Test schema whose ``slow`` field waits on ``gate``."""
    return build_test_schema(calls, gate)
