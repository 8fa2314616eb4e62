"""Pydantic schemas for the student record endpoints."""

from pydantic import BaseModel, ConfigDict, Field


# ==============================================================================
# Request Schemas
# ==============================================================================


class AddStudentRequest(BaseModel):
    """Request to create a student from a display name."""

    name: str = Field(..., description="Display name; the slug is derived from it")


class RenameStudentRequest(BaseModel):
    """Request to rename a student (re-derives the slug)."""

    name: str = Field(..., description="New display name")


class ImportStudentsRequest(BaseModel):
    """Roster of display names to create in bulk."""

    names: list[str] = Field(..., description="Display names; exact repeats ignored")


# ==============================================================================
# Response Schemas
# ==============================================================================


class SuccessResponse(BaseModel):
    """Plain acknowledgment."""

    success: bool = True


class StudentSlugResponse(BaseModel):
    """Slug of a created or renamed student."""

    slug: str


class StudentSummary(BaseModel):
    """Listing entry."""

    model_config = ConfigDict(from_attributes=True)

    name: str | None = None
    slug: str


class ImportResponse(BaseModel):
    """Bulk import outcome."""

    model_config = ConfigDict(populate_by_name=True)

    inserted_count: int = Field(..., serialization_alias="insertedCount")


class ImportConflictResponse(ImportResponse):
    """Bulk import outcome when some names collided with existing slugs."""

    error: str = "Some duplicates skipped"
    duplicate_count: int = Field(..., serialization_alias="duplicateCount")


class RestoreResponse(BaseModel):
    """Restore outcome with aggregate counts."""

    ok: bool = True
    upserted: int
    modified: int
    matched: int


class RestoreFailureResponse(RestoreResponse):
    """Restore outcome when some entries could not be written."""

    ok: bool = False
    error: str = "Some entries failed to restore"
    failed: int
