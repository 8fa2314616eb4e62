# Core infrastructure
from student_tracker.core.context import (
    clear_context,
    get_context,
    get_request_id,
    get_trace_id,
    set_request_id,
    set_trace_id,
)
from student_tracker.core.database import (
    init_async_cassandra,
    shutdown_async_cassandra,
)
from student_tracker.core.logging import configure_structlog, get_logger
from student_tracker.core.middleware import RequestContextMiddleware


__all__ = [
    "RequestContextMiddleware",
    "clear_context",
    "configure_structlog",
    "get_context",
    "get_logger",
    "get_request_id",
    "get_trace_id",
    "init_async_cassandra",
    "set_request_id",
    "set_trace_id",
    "shutdown_async_cassandra",
]
