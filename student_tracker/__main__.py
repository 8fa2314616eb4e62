"""Run the API with uvicorn: ``python -m student_tracker``."""

import uvicorn

from student_tracker.config import get_settings


def main() -> None:
    """Start uvicorn with host and port from settings."""
    settings = get_settings()
    uvicorn.run(
        "student_tracker.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.api_reload,
        log_config=None,
    )


if __name__ == "__main__":
    main()
