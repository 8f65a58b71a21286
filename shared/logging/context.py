"""
Logging context for concurrent query resolution.

Each query task runs in its own copy of the context (asyncio tasks copy
the current context when created), so run and query identifiers set here
never leak between sibling tasks.
"""

import uuid
from contextvars import ContextVar
from contextlib import contextmanager
from typing import Optional, Generator

_correlation_id: ContextVar[str] = ContextVar('correlation_id', default='')
_run_id: ContextVar[str] = ContextVar('run_id', default='')
_query_name: ContextVar[str] = ContextVar('query_name', default='')


def get_correlation_id() -> str:
    """Get current correlation ID, generating one if none exists."""
    cid = _correlation_id.get()
    if not cid:
        cid = str(uuid.uuid4())
        _correlation_id.set(cid)
    return cid


def set_correlation_id(cid: str) -> None:
    """Set correlation ID for current context."""
    _correlation_id.set(cid)


def get_run_id() -> Optional[str]:
    """Get the run currently being resolved, if any."""
    return _run_id.get() or None


def set_run_id(run_id: str) -> None:
    _run_id.set(run_id)


def get_query_name() -> Optional[str]:
    """Get the query currently being resolved, if any."""
    return _query_name.get() or None


def set_query_name(name: str) -> None:
    _query_name.set(name)


@contextmanager
def correlation_context(
    correlation_id: Optional[str] = None,
) -> Generator[str, None, None]:
    """
    Context manager for setting the correlation ID.

    A fresh ID is generated when none is given and none is set.

    Yields:
        The correlation ID being used
    """
    old_cid = _correlation_id.get()
    try:
        if correlation_id:
            _correlation_id.set(correlation_id)
        elif not old_cid:
            _correlation_id.set(str(uuid.uuid4()))
        yield get_correlation_id()
    finally:
        _correlation_id.set(old_cid)


@contextmanager
def run_context(run_id: str) -> Generator[str, None, None]:
    """Tag every record logged inside the block with a run ID."""
    token = _run_id.set(run_id)
    try:
        yield run_id
    finally:
        _run_id.reset(token)


@contextmanager
def query_context(name: str) -> Generator[str, None, None]:
    """Tag every record logged inside the block with a query name."""
    token = _query_name.set(name)
    try:
        yield name
    finally:
        _query_name.reset(token)
