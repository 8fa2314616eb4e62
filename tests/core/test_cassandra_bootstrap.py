"""Tests for keyspace and table bootstrap."""

from unittest.mock import AsyncMock, Mock

import pytest

from student_tracker.config import Settings
from student_tracker.core.database.async_cassandra import (
    init_async_keyspace,
    init_async_students_tables,
    replication_clause,
)


class TestReplication:
    """Tests for replication_clause."""

    def test_simple_strategy_outside_production(self):
        settings = Settings(environment="development", cassandra_replication_factor=2)
        assert replication_clause(settings) == (
            "{'class': 'SimpleStrategy', 'replication_factor': 2}"
        )

    def test_network_topology_in_production(self):
        settings = Settings(
            environment="production",
            cassandra_datacenter="eu-west",
            cassandra_replication_factor=3,
        )
        assert replication_clause(settings) == (
            "{'class': 'NetworkTopologyStrategy', 'eu-west': 3}"
        )


class TestSchemaBootstrap:
    """Statements issued when the store starts."""

    @pytest.mark.asyncio
    async def test_creates_keyspace(self):
        session = Mock()
        session.aexecute = AsyncMock()
        settings = Settings(environment="testing", cassandra_keyspace="roster")

        await init_async_keyspace(session, settings)

        cql = session.aexecute.call_args.args[0]
        assert cql.startswith("CREATE KEYSPACE IF NOT EXISTS roster ")
        assert "SimpleStrategy" in cql

    @pytest.mark.asyncio
    async def test_creates_students_table_in_keyspace(self):
        session = Mock()
        session.aexecute = AsyncMock()

        await init_async_students_tables(session, "roster")

        cql = session.aexecute.call_args.args[0]
        assert "CREATE TABLE IF NOT EXISTS roster.students" in cql
        assert "slug TEXT PRIMARY KEY" in cql
