"""Per-flow correlation IDs for auth logs.

Each AuthFlowOrchestrator gets a FLOW-xxxxxxxx id and binds it to the
current context on mount. Loggers from get_flow_logger stamp that id on
every record, so one visitor's path from code request to redirect can
be pulled out of interleaved logs with ``%(flow_id)s`` in the format.

Records logged outside any flow carry ``NO_FLOW_ID``.
"""

import logging
import uuid
from contextvars import ContextVar

_flow_id: ContextVar[str] = ContextVar("flow_id", default="NO_FLOW_ID")


def new_flow_id() -> str:
    """Generate a fresh correlation ID for a flow instance."""
    return f"FLOW-{uuid.uuid4().hex[:8]}"


def set_flow_id(flow_id: str) -> None:
    """Set the correlation ID for the current async context."""
    _flow_id.set(flow_id)


def get_flow_id() -> str:
    """Retrieve the current correlation ID."""
    return _flow_id.get()


class FlowIdFilter(logging.Filter):
    """Injects flow_id into every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.flow_id = get_flow_id()  # type: ignore[attr-defined]
        return True


def get_flow_logger(name: str) -> logging.Logger:
    """Return a logger with the FlowIdFilter attached.

    The filter adds ``flow_id`` to each record so formatters can
    include ``%(flow_id)s`` in their format string.
    """
    logger = logging.getLogger(name)
    if not any(isinstance(f, FlowIdFilter) for f in logger.filters):
        logger.addFilter(FlowIdFilter())
    return logger
