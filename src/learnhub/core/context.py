"""Request and operation context carried through contextvars.

Every log entry picks up the request id, the authenticated user and any
fields bound for the current unit of work (for example the item being
processed inside a batch enrollment).
"""

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any
from uuid import UUID, uuid4


request_id_var: ContextVar[str] = ContextVar("request_id", default="")
user_id_var: ContextVar[str | None] = ContextVar("user_id", default=None)
operation_var: ContextVar[dict[str, Any] | None] = ContextVar("operation", default=None)


def generate_request_id() -> str:
    return str(uuid4())


def get_request_id() -> str:
    return request_id_var.get()


def set_request_id(request_id: str | None = None) -> str:
    """Set the request ID, generating one when not provided."""
    rid = request_id or generate_request_id()
    request_id_var.set(rid)
    return rid


def get_user_id() -> str | None:
    return user_id_var.get()


def set_user_id(user_id: str | UUID | None) -> None:
    user_id_var.set(str(user_id) if user_id is not None else None)


@contextmanager
def bind_operation(**fields: Any) -> Iterator[None]:
    """Attach fields to every log entry emitted inside the block.

    Nested blocks extend the outer fields; values are stringified.

    Usage:
        with bind_operation(program_id=program_id, batch_item=email):
            await manager.create_enrollment(...)
    """
    current = operation_var.get() or {}
    token = operation_var.set(
        {**current, **{k: str(v) for k, v in fields.items() if v is not None}}
    )
    try:
        yield
    finally:
        operation_var.reset(token)


def get_context() -> dict[str, Any]:
    """Current context as a flat dict, empty values omitted."""
    context: dict[str, Any] = dict(operation_var.get() or {})

    request_id = get_request_id()
    if request_id:
        context["request_id"] = request_id

    user_id = get_user_id()
    if user_id:
        context["user_id"] = user_id

    return context


def clear_context() -> None:
    """Reset all context variables at the end of a request."""
    request_id_var.set("")
    user_id_var.set(None)
    operation_var.set(None)
