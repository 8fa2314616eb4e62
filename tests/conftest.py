"""Shared fixtures.

``FakeCassandraSession`` stands in for a cassandra-asyncio session: it keeps
rows in a dict and answers the handful of statements StudentService prepares,
including lightweight-transaction ``was_applied`` flags.
"""

import os
from collections.abc import Iterator
from types import SimpleNamespace
from typing import Any

import pytest


os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("LOG_REQUESTS", "false")

from fastapi.testclient import TestClient  # noqa: E402

from student_tracker.students.service import StudentService  # noqa: E402


class FakePrepared:
    """Prepared statement placeholder keeping the normalized CQL."""

    def __init__(self, cql: str) -> None:
        self.cql = " ".join(cql.split())

    def bind(self, values: list[Any]) -> "FakeBound":
        return FakeBound(self, values)


class FakeBound:
    def __init__(self, prepared: FakePrepared, values: list[Any]) -> None:
        self.prepared = prepared
        self.values = values
        self.fetch_size: int | None = None


class FakeResult:
    """Result set with ``one()``, ``was_applied`` and async iteration."""

    def __init__(
        self,
        rows: list[Any] | None = None,
        applied: bool = True,
        fail_after: int | None = None,
    ) -> None:
        self.current_rows = rows or []
        self.was_applied = applied
        self.fail_after = fail_after

    def one(self) -> Any:
        return self.current_rows[0] if self.current_rows else None

    async def _iterate(self):
        for index, row in enumerate(self.current_rows):
            if self.fail_after is not None and index >= self.fail_after:
                raise RuntimeError("connection lost while paging")
            yield row

    def __aiter__(self):
        return self._iterate()


class FakeCassandraSession:
    """In-memory ``students`` table."""

    def __init__(self) -> None:
        self.rows: dict[str, dict[str, Any]] = {}
        self.prepared: list[FakePrepared] = []
        self.fail_statements: set[str] = set()
        self.fail_slugs: set[str] = set()
        self.scan_fail_after: int | None = None

    def prepare(self, cql: str) -> FakePrepared:
        statement = FakePrepared(cql)
        self.prepared.append(statement)
        return statement

    def add(self, slug: str, name: str | None, progress: str = "{}") -> None:
        self.rows[slug] = {
            "slug": slug,
            "name": name,
            "progress": progress,
            "created_at": None,
            "updated_at": None,
        }

    async def aexecute(
        self, statement: Any, parameters: list[Any] | None = None, **_: Any
    ) -> FakeResult:
        if isinstance(statement, FakeBound):
            cql, params = statement.prepared.cql, statement.values
        else:
            cql, params = statement.cql, parameters or []

        if any(marker in cql for marker in self.fail_statements):
            raise RuntimeError(f"store unavailable: {cql}")
        if any(slug in params for slug in self.fail_slugs):
            raise RuntimeError("write timeout")

        if cql.startswith("SELECT"):
            if "WHERE slug = ?" in cql:
                row = self.rows.get(params[0])
                return FakeResult([SimpleNamespace(**row)] if row else [])
            rows = [SimpleNamespace(**row) for row in self.rows.values()]
            return FakeResult(rows, fail_after=self.scan_fail_after)

        if cql.startswith("UPDATE") and "SET progress" in cql:
            progress, updated_at, slug = params
            row = self.rows.setdefault(
                slug, {"slug": slug, "name": None, "created_at": None}
            )
            row.update(progress=progress, updated_at=updated_at)
            return FakeResult()

        if cql.startswith("UPDATE") and "SET name" in cql:
            name, updated_at, slug = params
            if slug not in self.rows:
                return FakeResult(applied=False)
            self.rows[slug].update(name=name, updated_at=updated_at)
            return FakeResult()

        if cql.startswith("INSERT"):
            slug, name, progress, created_at, updated_at = params
            if "IF NOT EXISTS" in cql and slug in self.rows:
                return FakeResult(applied=False)
            self.rows[slug] = {
                "slug": slug,
                "name": name,
                "progress": progress,
                "created_at": created_at,
                "updated_at": updated_at,
            }
            return FakeResult()

        if cql.startswith("DELETE"):
            return FakeResult(applied=self.rows.pop(params[0], None) is not None)

        raise AssertionError(f"unexpected statement: {cql}")


@pytest.fixture
def fake_session() -> FakeCassandraSession:
    """In-memory Cassandra session."""
    return FakeCassandraSession()


@pytest.fixture
def student_service(fake_session: FakeCassandraSession) -> StudentService:
    """StudentService over the in-memory session."""
    return StudentService(session=fake_session, keyspace="test_keyspace", page_size=2)


@pytest.fixture
def client(student_service: StudentService) -> Iterator[TestClient]:
    """Test client wired to the in-memory student service.

    The lifespan is not entered, so no real cluster is contacted.
    """
    from student_tracker.main import app

    app.state.student_service = student_service
    yield TestClient(app, raise_server_exceptions=False)
    app.state.student_service = None


@pytest.fixture
def client_without_store() -> Iterator[TestClient]:
    """Test client for an app whose store failed to initialize."""
    from student_tracker.main import app

    app.state.student_service = None
    yield TestClient(app, raise_server_exceptions=False)
