"""
Data models for query orchestration.

Descriptors and states are frozen dataclasses: a state transition always
produces a new snapshot, never mutates the previous one.
"""

import math
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, Optional, Union

from .errors import TransportError


class QueryMode(str, Enum):
    """How a descriptor is resolved."""
    SINGLE = "single"
    TWO_STEP = "two_step"
    # Single-phase, but the request carries an explicit query_mode suffix
    FAST = "fast"
    SLOW = "slow"


def with_query_mode(request_id: str, mode: str) -> str:
    """Append a query_mode parameter to a request id."""
    separator = "&" if "?" in request_id else "?"
    return f"{request_id}{separator}query_mode={mode}"


@dataclass(frozen=True)
class QueryDescriptor:
    """
    One named fetch within a run.

    min_sufficient_count only matters for TWO_STEP queries: a fast result
    that is a list with len(result) <= min_sufficient_count is insufficient
    and triggers the slow request.
    """
    name: str
    request_id: str
    mode: QueryMode = QueryMode.SINGLE
    min_sufficient_count: Union[int, float] = 0

    # Called with the unwrapped body; returning False or raising rejects it
    validator: Optional[Callable[[Any], Any]] = field(default=None, compare=False)

    def __post_init__(self):
        if not self.name:
            raise ValueError("query name must not be empty")
        if not isinstance(self.mode, QueryMode):
            object.__setattr__(self, "mode", QueryMode(self.mode))
        if self.min_sufficient_count is None:
            object.__setattr__(self, "min_sufficient_count", 0)

    @property
    def is_two_step(self) -> bool:
        return self.mode == QueryMode.TWO_STEP

    @property
    def fast_request_id(self) -> str:
        return with_query_mode(self.request_id, QueryMode.FAST.value)

    @property
    def slow_request_id(self) -> str:
        return with_query_mode(self.request_id, QueryMode.SLOW.value)

    @property
    def single_request_id(self) -> str:
        """Request id used for single-phase resolution."""
        if self.mode in (QueryMode.FAST, QueryMode.SLOW):
            return with_query_mode(self.request_id, self.mode.value)
        return self.request_id

    def is_sufficient(self, fast_result: Any) -> bool:
        """Whether a fast-phase result can stand as the final result."""
        if not isinstance(fast_result, (list, tuple)):
            return True
        return len(fast_result) > self.min_sufficient_count

    def to_dict(self) -> dict:
        threshold = self.min_sufficient_count
        return {
            "name": self.name,
            "request_id": self.request_id,
            "mode": self.mode.value,
            "min_sufficient_count": "inf" if threshold == math.inf else threshold,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "QueryDescriptor":
        """
        Build a descriptor from a plain mapping.

        Accepts snake_case keys as well as url / queryMode / queryModeMinItems.
        """
        threshold = data.get("min_sufficient_count", data.get("queryModeMinItems", 0))
        if isinstance(threshold, str):
            threshold = float(threshold) if threshold.lower() in ("inf", "infinity") else int(threshold)
        return cls(
            name=data["name"],
            request_id=data.get("request_id") or data["url"],
            mode=QueryMode(data.get("mode") or data.get("queryMode") or QueryMode.SINGLE.value),
            min_sufficient_count=threshold,
        )


@dataclass(frozen=True)
class QueryError:
    """Error published on a query's state."""
    message: str
    status: Optional[int] = None
    response: Any = None

    @classmethod
    def from_exception(cls, error: BaseException) -> "QueryError":
        if isinstance(error, TransportError):
            return cls(message=error.message, status=error.status, response=error.response_body)
        return cls(message=str(error) or type(error).__name__)

    def to_dict(self) -> dict:
        return {
            "message": self.message,
            "status": self.status,
            "response": self.response,
        }


@dataclass(frozen=True)
class QueryState:
    """
    Published state of one query.

    When is_loading is False, exactly one of data / error is set and
    partially_loaded is False. While loading, data may already hold a
    two-step query's fast result.
    """
    is_loading: bool = True
    data: Any = None
    error: Optional[QueryError] = None
    partially_loaded: bool = False
    warnings: tuple = ()

    @classmethod
    def loading(cls, two_step: bool = False) -> "QueryState":
        """Initial snapshot at the start of a run."""
        return cls(is_loading=True, partially_loaded=two_step)

    def with_partial(self, data: Any) -> "QueryState":
        """Fast result visible, authoritative result still pending."""
        return replace(self, data=data, error=None, partially_loaded=True)

    def with_data(self, data: Any) -> "QueryState":
        """Terminal success."""
        return replace(self, is_loading=False, data=data, error=None, partially_loaded=False)

    def with_error(self, error: QueryError) -> "QueryState":
        """Terminal failure. Any preview data is dropped."""
        return replace(self, is_loading=False, data=None, error=error, partially_loaded=False)

    @property
    def is_terminal(self) -> bool:
        return not self.is_loading

    def to_dict(self) -> dict:
        return {
            "is_loading": self.is_loading,
            "data": self.data,
            "error": self.error.to_dict() if self.error else None,
            "partially_loaded": self.partially_loaded,
            "warnings": list(self.warnings),
        }
