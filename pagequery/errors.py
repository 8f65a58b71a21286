"""
Exceptions raised by the cache store and resource client.

TransportError is what a consumer eventually sees (converted to a
QueryError on the query's state). CacheError never reaches consumers.
"""

from typing import Any, Optional


class PageQueryError(Exception):
    """Base class for pagequery errors."""


class TransportError(PageQueryError):
    """A network or HTTP failure while fetching a resource."""

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        response_body: Any = None,
    ):
        super().__init__(message)
        self.message = message
        self.status = status
        self.response_body = response_body

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r}, status={self.status!r})"


class ValidationError(TransportError):
    """A descriptor's validator rejected a fetched body."""


class CacheError(PageQueryError):
    """A cache read or write failed."""


class CacheMiss(CacheError):
    """The requested key is not in the cache."""

    def __init__(self, key: str):
        super().__init__(f"cache miss: {key}")
        self.key = key
