"""Per-request identifiers kept in contextvars.

The logging processors read these so every event emitted while a request is
handled carries its ``request_id`` (and ``trace_id`` when the caller sent one).
"""

from contextvars import ContextVar
from typing import Any
from uuid import uuid4


request_id_var: ContextVar[str] = ContextVar("request_id", default="")
trace_id_var: ContextVar[str | None] = ContextVar("trace_id", default=None)


def generate_request_id() -> str:
    return uuid4().hex


def get_request_id() -> str:
    return request_id_var.get()


def set_request_id(request_id: str | None = None) -> str:
    """Bind ``request_id`` (or a fresh one) and return what was bound."""
    value = request_id or generate_request_id()
    request_id_var.set(value)
    return value


def get_trace_id() -> str | None:
    return trace_id_var.get()


def set_trace_id(trace_id: str | None) -> None:
    trace_id_var.set(trace_id)


def get_context() -> dict[str, Any]:
    """Bound identifiers, omitting unset ones."""
    values = {"request_id": get_request_id(), "trace_id": get_trace_id()}
    return {key: value for key, value in values.items() if value}


def clear_context() -> None:
    request_id_var.set("")
    trace_id_var.set(None)
