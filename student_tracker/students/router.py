"""Student record API endpoints.

Provides routes for:
- Progress reads and writes by slug
- Student listing, creation, rename and deletion
- Roster import, backup export and restore
"""

import json
from collections.abc import AsyncIterator
from datetime import UTC, datetime
from typing import Annotated, Any

import structlog
from fastapi import APIRouter, Body, status
from fastapi.responses import ORJSONResponse, StreamingResponse

from .dependencies import StudentServiceDep, handle_student_error
from .models import Student
from .schemas import (
    AddStudentRequest,
    ImportConflictResponse,
    ImportResponse,
    ImportStudentsRequest,
    RenameStudentRequest,
    RestoreFailureResponse,
    RestoreResponse,
    StudentSlugResponse,
    StudentSummary,
    SuccessResponse,
)
from .service import StudentError, StudentNotFoundError


logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/students", tags=["students"])
maintenance_router = APIRouter(tags=["maintenance"])


def backup_filename(now: datetime) -> str:
    """Attachment name for a backup taken at ``now``.

    The timestamp is ISO-8601 UTC with milliseconds and a trailing ``Z``,
    with ``:`` and ``.`` replaced by ``-``.
    """
    now = now.astimezone(UTC)
    stamp = f"{now:%Y-%m-%dT%H:%M:%S}.{now.microsecond // 1000:03d}Z"
    return f"students-backup-{stamp.replace(':', '-').replace('.', '-')}.json"


def _dump(student: Student) -> str:
    return json.dumps(student.to_backup(), separators=(",", ":"), ensure_ascii=False)


# ==============================================================================
# Student Endpoints
# ==============================================================================


@router.get(
    "",
    response_model=list[StudentSummary],
    summary="List students",
)
async def list_students(student_service: StudentServiceDep) -> list[StudentSummary]:
    """List name and slug of every student. Order is not guaranteed."""
    return await student_service.list_summaries()


@router.post(
    "",
    response_model=StudentSlugResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add student",
)
async def add_student(
    data: AddStudentRequest,
    student_service: StudentServiceDep,
) -> StudentSlugResponse:
    """Create a student; the slug is derived from the name."""
    try:
        slug = await student_service.insert_new(data.name)
    except StudentError as e:
        raise handle_student_error(e) from e
    return StudentSlugResponse(slug=slug)


@router.get(
    "/{slug}",
    response_model=dict[str, Any],
    summary="Get student progress",
)
async def get_progress(slug: str, student_service: StudentServiceDep) -> dict[str, Any]:
    """Return the stored progress, or ``{}`` for an unknown slug."""
    student = await student_service.get_by_slug(slug)
    return student.progress if student else {}


@router.post(
    "/{slug}",
    response_model=SuccessResponse,
    summary="Save student progress",
)
async def save_progress(
    slug: str,
    progress: Annotated[dict[str, Any], Body()],
    student_service: StudentServiceDep,
) -> SuccessResponse:
    """Replace the progress document, creating the record if needed."""
    await student_service.upsert_progress(slug, progress)
    return SuccessResponse()


@router.put(
    "/{slug}",
    response_model=StudentSlugResponse,
    summary="Rename student",
)
async def rename_student(
    slug: str,
    data: RenameStudentRequest,
    student_service: StudentServiceDep,
) -> StudentSlugResponse:
    """Rename a student. The response carries the re-derived slug."""
    try:
        new_slug = await student_service.rename(slug, data.name)
    except StudentError as e:
        raise handle_student_error(e) from e
    return StudentSlugResponse(slug=new_slug)


@router.delete(
    "/{slug}",
    response_model=SuccessResponse,
    summary="Delete student",
)
async def delete_student(
    slug: str,
    student_service: StudentServiceDep,
) -> SuccessResponse:
    """Delete a student by slug."""
    if not await student_service.delete(slug):
        raise handle_student_error(StudentNotFoundError())
    return SuccessResponse()


# ==============================================================================
# Import / Backup / Restore Endpoints
# ==============================================================================


@maintenance_router.post(
    "/import-students",
    response_model=ImportResponse,
    responses={
        409: {"model": ImportConflictResponse, "description": "Some names collided"},
    },
    summary="Import a roster of students",
)
async def import_students(
    data: ImportStudentsRequest,
    student_service: StudentServiceDep,
) -> ImportResponse | ORJSONResponse:
    """Create a student for each name. Colliding names are skipped."""
    result = await student_service.bulk_insert(data.names)

    if result.duplicate_count:
        conflict = ImportConflictResponse(
            inserted_count=result.inserted_count,
            duplicate_count=result.duplicate_count,
        )
        return ORJSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content=conflict.model_dump(by_alias=True),
        )

    return ImportResponse(inserted_count=result.inserted_count)


@maintenance_router.get(
    "/backup",
    response_class=StreamingResponse,
    summary="Download a JSON backup of all students",
)
async def export_backup(student_service: StudentServiceDep) -> StreamingResponse:
    """Stream every record as a JSON array attachment.

    The first page is read before the response starts so a store failure
    still yields a 500. A failure after that truncates the body.
    """
    students = student_service.scan_all()
    first = await anext(students, None)
    filename = backup_filename(datetime.now(UTC))

    logger.info("backup_started", filename=filename)

    return StreamingResponse(
        _backup_body(students, first),
        media_type="application/json",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


async def _backup_body(
    students: AsyncIterator[Student],
    first: Student | None,
) -> AsyncIterator[str]:
    yield "["
    if first is not None:
        yield _dump(first)
        count = 1
        try:
            async for student in students:
                yield "," + _dump(student)
                count += 1
        except Exception as e:
            logger.exception("backup_stream_failed", exported=count, error=str(e))
            raise
        logger.info("backup_completed", exported=count)
    yield "]"


@maintenance_router.post(
    "/restore",
    response_model=RestoreResponse,
    responses={
        500: {
            "model": RestoreFailureResponse,
            "description": "Some entries were not written",
        },
    },
    summary="Restore students from a backup",
)
async def restore_backup(
    records: Annotated[list[Any], Body()],
    student_service: StudentServiceDep,
) -> RestoreResponse | ORJSONResponse:
    """Upsert every backup entry that carries a slug.

    Entries that fail to write are reported with a 500 and a ``failed`` count;
    the other entries stay written.
    """
    try:
        result = await student_service.bulk_upsert(records)
    except StudentError as e:
        raise handle_student_error(e) from e

    if result.failed:
        failure = RestoreFailureResponse(
            upserted=result.upserted,
            modified=result.modified,
            matched=result.matched,
            failed=result.failed,
        )
        return ORJSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=failure.model_dump(),
        )

    return RestoreResponse(
        upserted=result.upserted,
        modified=result.modified,
        matched=result.matched,
    )
