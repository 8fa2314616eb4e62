"""FastAPI dependencies for student records.

Provides dependency injection for:
- Student service
- Error handlers
"""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from .service import StudentError, StudentService


async def get_student_service(request: Request) -> StudentService:
    """Get student service from app state.

    Args:
        request: FastAPI request

    Returns:
        StudentService instance
    """
    app_state = request.app.state
    if not getattr(app_state, "student_service", None):
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Student service not available",
        )
    return app_state.student_service


# Type alias for dependency injection
StudentServiceDep = Annotated[StudentService, Depends(get_student_service)]


def handle_student_error(error: StudentError) -> HTTPException:
    """Convert student errors to HTTP exceptions.

    Args:
        error: Student error

    Returns:
        HTTPException with appropriate status code
    """
    status_map = {
        "invalid_name": status.HTTP_400_BAD_REQUEST,
        "empty_batch": status.HTTP_400_BAD_REQUEST,
        "student_not_found": status.HTTP_404_NOT_FOUND,
        "duplicate_slug": status.HTTP_409_CONFLICT,
    }

    status_code = status_map.get(error.code, status.HTTP_500_INTERNAL_SERVER_ERROR)

    return HTTPException(
        status_code=status_code,
        detail=error.message,
    )
