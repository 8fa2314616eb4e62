"""Database models for student records.

Cassandra table definitions and the Student entity. A student is addressed
by its slug, which is the partition key of the ``students`` table, so the
store itself guarantees one row per slug.
"""

import json
import re
from datetime import UTC, datetime
from typing import Any


_WHITESPACE_RUN = re.compile(r"\s+")
_NOT_SLUG_CHAR = re.compile(r"[^a-z0-9-]")


def slugify(name: str | None = "") -> str:
    """Derive the slug for a display name.

    Lowercases, turns each whitespace run into a single hyphen and drops every
    character outside ``[a-z0-9-]``. ``"Ada Lovelace"`` becomes
    ``"ada-lovelace"``; ``None`` and ``""`` give ``""``.
    """
    if not name:
        return ""
    slug = _WHITESPACE_RUN.sub("-", name.lower())
    return _NOT_SLUG_CHAR.sub("", slug)


def ensure_utc_aware(dt: datetime | None) -> datetime | None:
    """Ensure datetime is UTC-aware (Cassandra returns naive datetimes)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


def encode_progress(progress: dict[str, Any]) -> str:
    """Serialize a progress document for the ``progress`` text column."""
    return json.dumps(progress, separators=(",", ":"), ensure_ascii=False)


def decode_progress(raw: str | None) -> dict[str, Any]:
    """Parse a stored progress document; missing or non-object data is ``{}``."""
    if not raw:
        return {}
    value = json.loads(raw)
    return value if isinstance(value, dict) else {}


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

# progress holds the client-defined JSON document as text
STUDENTS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.students (
    slug TEXT PRIMARY KEY,
    name TEXT,
    progress TEXT,
    created_at TIMESTAMP,
    updated_at TIMESTAMP
)
"""

STUDENTS_TABLES_CQL = [
    STUDENTS_TABLE_CQL,
]


# ==============================================================================
# Entity Classes
# ==============================================================================


class Student:
    """Student record.

    Attributes:
        slug: Unique key derived from the name
        name: Display name (None for rows created by a progress write)
        progress: Opaque client-defined progress document
        created_at: Creation timestamp
        updated_at: Last write timestamp
    """

    def __init__(
        self,
        slug: str,
        name: str | None = None,
        progress: dict[str, Any] | None = None,
        created_at: datetime | None = None,
        updated_at: datetime | None = None,
    ):
        self.slug = slug
        self.name = name
        self.progress = progress if progress is not None else {}
        self.created_at = ensure_utc_aware(created_at)
        self.updated_at = ensure_utc_aware(updated_at)

    @classmethod
    def from_row(cls, row: Any) -> "Student":
        """Create Student instance from Cassandra row."""
        return cls(
            slug=row.slug,
            name=row.name,
            progress=decode_progress(row.progress),
            created_at=getattr(row, "created_at", None),
            updated_at=getattr(row, "updated_at", None),
        )

    def to_backup(self) -> dict[str, Any]:
        """Export shape used by backups: no timestamps, name always a string."""
        return {
            "name": self.name if self.name is not None else "",
            "slug": self.slug,
            "progress": self.progress,
        }

    def __repr__(self) -> str:
        return f"<Student {self.slug!r} name={self.name!r}>"
