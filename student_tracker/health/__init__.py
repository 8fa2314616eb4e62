"""Health check module."""

from student_tracker.health.router import router


__all__ = ["router"]
