"""Student record module.

Provides:
- Slug derivation from display names
- Slug-keyed record store on Cassandra
- HTTP endpoints for progress, CRUD, import, backup and restore
"""

from .models import STUDENTS_TABLES_CQL, Student, slugify


__all__ = [
    "STUDENTS_TABLES_CQL",
    "Student",
    "slugify",
]
