"""Trace header propagation onto outbox messages."""

from contextvars import ContextVar
from typing import Optional

TRACE_HEADER_ATTRIBUTE = "traceHeader"

_trace_header: ContextVar[Optional[str]] = ContextVar("trace_header", default=None)


def current_trace_header() -> Optional[str]:
    return _trace_header.get()


class trace_context:
    """Activate a trace header for the enclosed block.

    Example:
        >>> with trace_context("Root=1-5759e988-bd862e3fe1be46a994272793"):
        ...     outbox.send_to_outbox(ids)
    """

    def __init__(self, header: Optional[str]):
        self.header = header
        self.token = None

    def __enter__(self):
        self.token = _trace_header.set(self.header)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.token is not None:
            _trace_header.reset(self.token)
        return False
