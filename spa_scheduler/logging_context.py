"""Request ID logging context for tracing a booking through the core.

Every public scheduler operation runs under a request id so that the
availability check, the locked re-validation, and the commit of a
single booking attempt can be grepped together.

Usage:
    from spa_scheduler.logging_context import get_request_logger, request_scope

    logger = get_request_logger(__name__)
    with request_scope("REQ-abc123"):
        logger.info("Reserving slot")  # -> [REQ-abc123] Reserving slot
"""

import logging
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator, Optional

_request_id: ContextVar[str] = ContextVar("request_id", default="-")


def set_request_id(request_id: str) -> None:
    """Set the request ID for the current context."""
    _request_id.set(request_id)


def get_request_id() -> str:
    """Retrieve the current request ID."""
    return _request_id.get()


def new_request_id() -> str:
    return f"REQ-{uuid.uuid4().hex[:8]}"


@contextmanager
def request_scope(request_id: Optional[str] = None) -> Iterator[str]:
    """Bind a request ID for the duration of the block.

    An id already bound by the caller (e.g. the HTTP layer) is kept.
    """
    if request_id is None and _request_id.get() != "-":
        yield _request_id.get()
        return
    token = _request_id.set(request_id or new_request_id())
    try:
        yield _request_id.get()
    finally:
        _request_id.reset(token)


class RequestIdFilter(logging.Filter):
    """Injects request_id into every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = _request_id.get()  # type: ignore[attr-defined]
        return True


def get_request_logger(name: str) -> logging.Logger:
    """Return a logger with the RequestIdFilter attached.

    The filter adds ``request_id`` to each record so formatters can
    include ``%(request_id)s`` in their format string.
    """
    logger = logging.getLogger(name)
    if not any(isinstance(f, RequestIdFilter) for f in logger.filters):
        logger.addFilter(RequestIdFilter())
    return logger
