"""
pagequery - concurrent, cached query orchestration.

Resolves several named data fetches per page load, each backed by a
persistent cache, and publishes one loading / data / error state per
query name.

Usage:
    from pagequery import QueryOrchestrator, QueryDescriptor, QueryMode

    orch = QueryOrchestrator(HttpResourceClient(base_url), FileCacheStore())
    run = orch.run(
        [
            QueryDescriptor("gene", "/genes/BRCA1"),
            QueryDescriptor("variants", "/variants?gene=BRCA1", QueryMode.TWO_STEP),
        ],
        fingerprint=["BRCA1"],
    )
    await run.wait()
"""

from .errors import (
    PageQueryError,
    TransportError,
    ValidationError,
    CacheError,
    CacheMiss,
)
from .models import (
    QueryMode,
    QueryDescriptor,
    QueryError,
    QueryState,
    with_query_mode,
)
from .cache import CacheStore, MemoryCacheStore, FileCacheStore
from .client import ResourceClient, HttpResourceClient, unwrap_body
from .state import QueryStateStore
from .orchestrator import QueryOrchestrator, QueryRun
from .config import QueryConfig, load_config, build_cache_store, build_client

__all__ = [
    # Errors
    "PageQueryError",
    "TransportError",
    "ValidationError",
    "CacheError",
    "CacheMiss",
    # Models
    "QueryMode",
    "QueryDescriptor",
    "QueryError",
    "QueryState",
    "with_query_mode",
    # Cache
    "CacheStore",
    "MemoryCacheStore",
    "FileCacheStore",
    # Client
    "ResourceClient",
    "HttpResourceClient",
    "unwrap_body",
    # State
    "QueryStateStore",
    # Orchestrator
    "QueryOrchestrator",
    "QueryRun",
    # Config
    "QueryConfig",
    "load_config",
    "build_cache_store",
    "build_client",
]

__version__ = "0.1.0"
