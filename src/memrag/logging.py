import logging
import sys
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator, Optional

# Id of the current operation (a CLI command, a pending pass, a sync run);
# every log line emitted inside it carries the id
op_id_ctx: ContextVar[Optional[str]] = ContextVar("op_id", default=None)

NO_OP = "-"


def _make_op_id(kind: str) -> str:
    return f"{kind}-{uuid.uuid4().hex[:8]}"


def get_op_id() -> str:
    """Current op id, or "-" outside any operation."""
    return op_id_ctx.get() or NO_OP


def new_op_id(kind: str = "op") -> str:
    """Start an operation that lasts until the next one in this context."""
    oid = _make_op_id(kind)
    op_id_ctx.set(oid)
    return oid


@contextmanager
def op_scope(kind: str) -> Iterator[str]:
    """
    Run a nested operation under its own id, restoring the outer id after.

    A pending pass started by ``rag process`` logs as ``process-…`` and hands
    back to the command's id when it is done.
    """
    token = op_id_ctx.set(_make_op_id(kind))
    try:
        yield op_id_ctx.get()
    finally:
        op_id_ctx.reset(token)


class OpIDFilter(logging.Filter):
    def filter(self, record):
        record.op_id = get_op_id()
        return True


def configure_logging(level: str = "INFO"):
    root = logging.getLogger()
    root.setLevel(level)

    if root.handlers:
        root.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(
        "%(asctime)s | %(levelname)-8s | [%(op_id)s] | %(name)s:%(funcName)s:%(lineno)d - %(message)s"
    ))
    handler.addFilter(OpIDFilter())
    root.addHandler(handler)

    # The provider client logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


configure_logging()
logger = logging.getLogger("memrag")
