"""Cassandra session for the student store.

The session comes from ``cassandra_asyncio``, which adds an awaitable
``session.aexecute()`` to the regular cassandra-driver session. Connecting is
blocking and happens once, in the application lifespan.
"""

from typing import TYPE_CHECKING, Any

import structlog
from cassandra.auth import PlainTextAuthProvider
from cassandra.policies import DCAwareRoundRobinPolicy, TokenAwarePolicy
from cassandra_asyncio.cluster import Cluster

from student_tracker.config.settings import get_settings
from student_tracker.students.models import STUDENTS_TABLES_CQL


if TYPE_CHECKING:
    from student_tracker.config.settings import Settings

logger = structlog.get_logger(__name__)


def _build_cluster(settings: "Settings") -> Cluster:
    auth_provider = None
    if settings.cassandra_username and settings.cassandra_password:
        auth_provider = PlainTextAuthProvider(
            username=settings.cassandra_username,
            password=settings.cassandra_password,
        )

    return Cluster(
        contact_points=settings.cassandra_hosts,
        port=settings.cassandra_port,
        auth_provider=auth_provider,
        protocol_version=settings.cassandra_protocol_version,
        load_balancing_policy=TokenAwarePolicy(
            DCAwareRoundRobinPolicy(local_dc=settings.cassandra_datacenter)
        ),
        connect_timeout=settings.cassandra_connect_timeout,
    )


def replication_clause(settings: "Settings") -> str:
    """Replication map for the keyspace.

    Production keyspaces replicate per datacenter; everything else uses
    ``SimpleStrategy``.
    """
    factor = settings.cassandra_replication_factor
    if settings.is_production:
        return (
            "{'class': 'NetworkTopologyStrategy', "
            f"'{settings.cassandra_datacenter}': {factor}}}"
        )
    return f"{{'class': 'SimpleStrategy', 'replication_factor': {factor}}}"


class AsyncCassandraConnection:
    """Process-wide cluster and session holder."""

    _cluster: Cluster | None = None
    _session: Any = None

    @classmethod
    def connect(cls) -> Any:
        """Open the session, reusing it when already connected.

        Raises:
            ConnectionError: If no contact point answers
        """
        if cls._session is not None:
            return cls._session

        settings = get_settings()
        cls._cluster = _build_cluster(settings)

        try:
            session = cls._cluster.connect()
        except Exception as e:
            logger.error(
                "cassandra_connect_failed",
                hosts=settings.cassandra_hosts,
                error=str(e),
            )
            cls._cluster.shutdown()
            cls._cluster = None
            raise ConnectionError(f"Cannot reach Cassandra: {e}") from e

        session.default_timeout = settings.cassandra_request_timeout
        cls._session = session
        logger.info(
            "cassandra_connected",
            hosts=settings.cassandra_hosts,
            port=settings.cassandra_port,
            datacenter=settings.cassandra_datacenter,
        )
        return session

    @classmethod
    def disconnect(cls) -> None:
        """Shut down the session and the cluster, if open."""
        if cls._session is not None:
            cls._session.shutdown()
            cls._session = None
        if cls._cluster is not None:
            cls._cluster.shutdown()
            cls._cluster = None
            logger.info("cassandra_disconnected")

    @classmethod
    def is_connected(cls) -> bool:
        return cls._session is not None and not cls._session.is_shutdown


async def init_async_keyspace(session: Any, settings: "Settings") -> None:
    """Create the keyspace when missing."""
    keyspace = settings.cassandra_keyspace
    await session.aexecute(
        f"CREATE KEYSPACE IF NOT EXISTS {keyspace} "
        f"WITH replication = {replication_clause(settings)} "
        "AND durable_writes = true"
    )
    logger.info("cassandra_keyspace_ready", keyspace=keyspace)


async def init_async_students_tables(session: Any, keyspace: str) -> None:
    """Create the students table when missing."""
    for cql_template in STUDENTS_TABLES_CQL:
        await session.aexecute(cql_template.format(keyspace=keyspace))
    logger.info("cassandra_students_table_ready", keyspace=keyspace)


async def init_async_cassandra() -> Any:
    """Connect and bootstrap the schema; returns the session."""
    settings = get_settings()
    session = AsyncCassandraConnection.connect()

    await init_async_keyspace(session, settings)
    session.set_keyspace(settings.cassandra_keyspace)
    await init_async_students_tables(session, settings.cassandra_keyspace)

    return session


async def shutdown_async_cassandra() -> None:
    AsyncCassandraConnection.disconnect()
