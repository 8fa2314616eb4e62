"""Student record store.

Business logic for:
- Progress reads and writes by slug
- Creating, renaming and deleting students
- Bulk roster import and bulk restore
- Streaming full-table scans for backups

Uniqueness of slugs relies on Cassandra lightweight transactions
(``IF NOT EXISTS`` / ``IF EXISTS``); the service never checks-then-writes.
"""

import asyncio
from collections.abc import AsyncIterator, Iterable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import structlog

from .models import Student, encode_progress, slugify
from .schemas import StudentSummary


if TYPE_CHECKING:
    from cassandra.cluster import Session

logger = structlog.get_logger(__name__)

DEFAULT_PAGE_SIZE = 500


# ==============================================================================
# Custom Exceptions
# ==============================================================================


class StudentError(Exception):
    """Base student error."""

    def __init__(self, message: str, code: str = "student_error"):
        self.message = message
        self.code = code
        super().__init__(message)


class InvalidNameError(StudentError):
    """Name does not produce a usable slug."""

    def __init__(self, message: str = "Name has no letters or digits"):
        super().__init__(message, "invalid_name")


class StudentNotFoundError(StudentError):
    """No student stored under the slug."""

    def __init__(self, message: str = "Student not found"):
        super().__init__(message, "student_not_found")


class DuplicateSlugError(StudentError):
    """Another student already owns the slug."""

    def __init__(self, message: str = "A student with this slug already exists"):
        super().__init__(message, "duplicate_slug")


class EmptyBatchError(StudentError):
    """Restore payload contains no usable entries."""

    def __init__(self, message: str = "No valid student entries to restore"):
        super().__init__(message, "empty_batch")


# ==============================================================================
# Results
# ==============================================================================


@dataclass(frozen=True)
class ImportResult:
    """Outcome of a bulk roster import."""

    inserted_count: int
    duplicate_count: int


@dataclass(frozen=True)
class RestoreResult:
    """Outcome of a bulk restore."""

    upserted: int
    modified: int
    matched: int
    failed: int = 0


# ==============================================================================
# Student Service
# ==============================================================================


class StudentService:
    """Record store for students, keyed by slug."""

    def __init__(
        self,
        session: "Session",
        keyspace: str,
        page_size: int = DEFAULT_PAGE_SIZE,
    ):
        """Initialize with Cassandra session."""
        self.session = session
        self.keyspace = keyspace
        self.page_size = page_size
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient execution."""
        self._get_student = self.session.prepare(f"""
            SELECT slug, name, progress, created_at, updated_at
            FROM {self.keyspace}.students
            WHERE slug = ?
        """)

        self._list_summaries = self.session.prepare(f"""
            SELECT name, slug FROM {self.keyspace}.students
        """)

        self._scan_students = self.session.prepare(f"""
            SELECT slug, name, progress FROM {self.keyspace}.students
        """)

        # UPDATE creates the row when missing and leaves name untouched
        self._upsert_progress = self.session.prepare(f"""
            UPDATE {self.keyspace}.students
            SET progress = ?, updated_at = ?
            WHERE slug = ?
        """)

        self._insert_student = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.students
            (slug, name, progress, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?)
            IF NOT EXISTS
        """)

        self._upsert_student = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.students
            (slug, name, progress, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?)
        """)

        self._update_name = self.session.prepare(f"""
            UPDATE {self.keyspace}.students
            SET name = ?, updated_at = ?
            WHERE slug = ?
            IF EXISTS
        """)

        self._delete_student = self.session.prepare(f"""
            DELETE FROM {self.keyspace}.students
            WHERE slug = ?
            IF EXISTS
        """)

    # ==========================================================================
    # Progress
    # ==========================================================================

    async def get_by_slug(self, slug: str) -> Student | None:
        """Get a student by slug."""
        result = await self.session.aexecute(self._get_student, [slug])
        row = result.one()
        return Student.from_row(row) if row else None

    async def upsert_progress(self, slug: str, progress: dict[str, Any]) -> None:
        """Store the progress document for ``slug``, creating the row if absent.

        A row created this way has no name; progress writes never invent one.
        """
        await self.session.aexecute(
            self._upsert_progress,
            [encode_progress(progress), datetime.now(UTC), slug],
        )
        logger.info("student_progress_saved", slug=slug, keys=len(progress))

    # ==========================================================================
    # Student CRUD
    # ==========================================================================

    async def list_summaries(self) -> list[StudentSummary]:
        """List name and slug of every student (unordered)."""
        return [
            StudentSummary(name=row.name, slug=row.slug)
            async for row in self._paged_rows(self._list_summaries)
        ]

    async def insert_new(self, name: str) -> str:
        """Create a student with empty progress.

        Returns:
            The derived slug

        Raises:
            InvalidNameError: If the name slugifies to an empty string
            DuplicateSlugError: If the slug is already taken
        """
        slug = slugify(name)
        if not slug:
            raise InvalidNameError

        if not await self._insert_if_absent(slug, name, {}):
            raise DuplicateSlugError

        logger.info("student_created", slug=slug)
        return slug

    async def rename(self, old_slug: str, new_name: str) -> str:
        """Rename a student, moving it to the slug derived from ``new_name``.

        Raises:
            InvalidNameError: If the new name slugifies to an empty string
            StudentNotFoundError: If nothing is stored under ``old_slug``
            DuplicateSlugError: If another student owns the new slug
        """
        new_slug = slugify(new_name)
        if not new_slug:
            raise InvalidNameError

        now = datetime.now(UTC)

        if new_slug == old_slug:
            result = await self.session.aexecute(
                self._update_name, [new_name, now, old_slug]
            )
            if not result.was_applied:
                raise StudentNotFoundError
            logger.info("student_renamed", slug=old_slug, new_slug=new_slug)
            return new_slug

        current = await self.get_by_slug(old_slug)
        if current is None:
            raise StudentNotFoundError

        if not await self._insert_if_absent(
            new_slug,
            new_name,
            current.progress,
            created_at=current.created_at,
        ):
            raise DuplicateSlugError

        try:
            deleted = await self.delete(old_slug)
        except Exception:
            logger.warning(
                "student_rename_rolled_back", slug=old_slug, new_slug=new_slug
            )
            await self.session.aexecute(self._delete_student, [new_slug])
            raise

        if not deleted:
            # Deleted concurrently; drop the copy so the delete wins
            await self.session.aexecute(self._delete_student, [new_slug])
            raise StudentNotFoundError

        logger.info("student_renamed", slug=old_slug, new_slug=new_slug)
        return new_slug

    async def delete(self, slug: str) -> bool:
        """Delete a student. Returns False when no row matched."""
        result = await self.session.aexecute(self._delete_student, [slug])
        deleted = bool(result.was_applied)
        if deleted:
            logger.info("student_deleted", slug=slug)
        return deleted

    # ==========================================================================
    # Bulk Operations
    # ==========================================================================

    async def bulk_insert(self, names: Iterable[str]) -> ImportResult:
        """Create students for a roster of names, unordered.

        Exact repeats are dropped before writing and names without a usable
        slug are skipped. Names whose slug already exists are counted as
        duplicates; the rest are still inserted.

        A store error on any insert is raised once every insert has finished.
        """
        unique_names = list(dict.fromkeys(names))
        candidates = [(slugify(name), name) for name in unique_names]
        candidates = [(slug, name) for slug, name in candidates if slug]

        outcomes = await asyncio.gather(
            *(self._insert_if_absent(slug, name, {}) for slug, name in candidates),
            return_exceptions=True,
        )

        errors = [o for o in outcomes if isinstance(o, BaseException)]
        if errors:
            logger.error(
                "students_import_failed",
                requested=len(unique_names),
                failed=len(errors),
                error=str(errors[0]),
            )
            raise errors[0]

        inserted = sum(1 for ok in outcomes if ok)
        result = ImportResult(
            inserted_count=inserted,
            duplicate_count=len(candidates) - inserted,
        )
        logger.info(
            "students_imported",
            requested=len(unique_names),
            inserted=result.inserted_count,
            duplicates=result.duplicate_count,
        )
        return result

    async def bulk_upsert(self, records: Iterable[Any]) -> RestoreResult:
        """Restore students from backup entries, unordered.

        Entries that are not objects or lack a non-empty string ``slug`` are
        dropped. Later entries for the same slug replace earlier ones.

        Raises:
            EmptyBatchError: If no entry survives filtering
        """
        batch: dict[str, Student] = {}
        for record in records:
            student = _restore_entry(record)
            if student is not None:
                batch[student.slug] = student

        if not batch:
            raise EmptyBatchError

        outcomes = await asyncio.gather(
            *(self._upsert_one(student) for student in batch.values()),
            return_exceptions=True,
        )

        upserted = modified = matched = 0
        errors: list[BaseException] = []
        for student, outcome in zip(batch.values(), outcomes, strict=True):
            if isinstance(outcome, BaseException):
                logger.error(
                    "student_restore_failed",
                    slug=student.slug,
                    error=str(outcome),
                    error_type=type(outcome).__name__,
                )
                errors.append(outcome)
            elif outcome == "upserted":
                upserted += 1
            else:
                matched += 1
                if outcome == "modified":
                    modified += 1

        if len(errors) == len(batch):
            raise errors[0]

        result = RestoreResult(
            upserted=upserted,
            modified=modified,
            matched=matched,
            failed=len(errors),
        )
        logger.info(
            "students_restored",
            entries=len(batch),
            upserted=result.upserted,
            modified=result.modified,
            matched=result.matched,
            failed=result.failed,
        )
        return result

    async def scan_all(self) -> AsyncIterator[Student]:
        """Yield every student, one driver page at a time."""
        async for row in self._paged_rows(self._scan_students):
            yield Student.from_row(row)

    # ==========================================================================
    # Helpers
    # ==========================================================================

    async def _insert_if_absent(
        self,
        slug: str,
        name: str,
        progress: dict[str, Any],
        created_at: datetime | None = None,
    ) -> bool:
        now = datetime.now(UTC)
        result = await self.session.aexecute(
            self._insert_student,
            [slug, name, encode_progress(progress), created_at or now, now],
        )
        return bool(result.was_applied)

    async def _upsert_one(self, student: Student) -> str:
        """Write one restored student; report 'upserted', 'modified' or 'matched'."""
        existing = await self.get_by_slug(student.slug)
        now = datetime.now(UTC)
        created_at = existing.created_at if existing and existing.created_at else now

        await self.session.aexecute(
            self._upsert_student,
            [
                student.slug,
                student.name,
                encode_progress(student.progress),
                created_at,
                now,
            ],
        )

        if existing is None:
            return "upserted"
        if existing.name != student.name or existing.progress != student.progress:
            return "modified"
        return "matched"

    async def _paged_rows(self, statement: Any) -> AsyncIterator[Any]:
        """Iterate a full-table query; pages are fetched as rows are consumed."""
        bound = statement.bind([])
        bound.fetch_size = self.page_size
        result = await self.session.aexecute(bound)
        async for row in result:
            yield row


def _restore_entry(record: Any) -> Student | None:
    """Normalize one restore entry, or None if it has no usable slug."""
    if not isinstance(record, dict):
        return None

    raw_slug = record.get("slug")
    if not isinstance(raw_slug, str) or not raw_slug:
        return None

    slug = slugify(raw_slug)
    if not slug:
        return None

    name = record.get("name")
    progress = record.get("progress")
    return Student(
        slug=slug,
        name="" if name is None else str(name),
        progress=progress if isinstance(progress, dict) else {},
    )
