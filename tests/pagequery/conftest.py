"""
Shared fixtures for pagequery tests.
"""

import asyncio
from typing import Any, Optional

import pytest

from pagequery.cache import MemoryCacheStore
from pagequery.client import ResourceClient
from pagequery.errors import CacheError, TransportError
from pagequery.models import QueryDescriptor, QueryMode
from pagequery.orchestrator import QueryOrchestrator


class StubClient(ResourceClient):
    """
    Resource client serving canned bodies.

    responses maps request id -> body, or -> an exception instance to raise.
    gates maps request id -> asyncio.Event the fetch waits on before answering.
    """

    def __init__(self, responses: Optional[dict[str, Any]] = None):
        self.responses = dict(responses or {})
        self.gates: dict[str, asyncio.Event] = {}
        self.calls: list[str] = []
        self.closed = False

    def gate(self, request_id: str) -> asyncio.Event:
        event = asyncio.Event()
        self.gates[request_id] = event
        return event

    async def fetch_resource(self, request_id: str) -> Any:
        self.calls.append(request_id)
        if request_id in self.gates:
            await self.gates[request_id].wait()
        else:
            await asyncio.sleep(0)
        if request_id not in self.responses:
            raise TransportError("Request failed with status code 404", status=404,
                                 response_body={"error": "not found"})
        body = self.responses[request_id]
        if isinstance(body, BaseException):
            raise body
        return body

    async def close(self) -> None:
        self.closed = True


class RecordingCache(MemoryCacheStore):
    """Memory cache that records every get/put."""

    def __init__(self):
        super().__init__()
        self.gets: list[str] = []
        self.puts: list[tuple[str, Any]] = []

    async def get(self, key: str) -> Any:
        self.gets.append(key)
        return await super().get(key)

    async def put(self, key: str, value: Any) -> None:
        self.puts.append((key, value))
        await super().put(key, value)


class BrokenCache(RecordingCache):
    """Cache whose reads and writes always fail."""

    async def get(self, key: str) -> Any:
        self.gets.append(key)
        raise CacheError("disk unavailable")

    async def put(self, key: str, value: Any) -> None:
        self.puts.append((key, value))
        raise CacheError("disk full")


@pytest.fixture
def client() -> StubClient:
    return StubClient()


@pytest.fixture
def cache() -> RecordingCache:
    return RecordingCache()


@pytest.fixture
def broken_cache() -> BrokenCache:
    return BrokenCache()


@pytest.fixture
def orchestrator(client, cache) -> QueryOrchestrator:
    return QueryOrchestrator(client, cache, cache_enabled=True)


@pytest.fixture
def gene_query() -> QueryDescriptor:
    return QueryDescriptor(name="gene", request_id="/genes/ENSG00000012048")


@pytest.fixture
def assoc_query() -> QueryDescriptor:
    return QueryDescriptor(
        name="associations",
        request_id="/variants/associations?analysis_id=height",
        mode=QueryMode.TWO_STEP,
    )


@pytest.fixture
def record_states():
    """
    Return a function that subscribes to an orchestrator and collects
    every distinct committed state of one query.
    """
    def record(orchestrator: QueryOrchestrator, name: str) -> list:
        history = []

        def on_change(states):
            if name in states and (not history or history[-1] is not states[name]):
                history.append(states[name])

        orchestrator.subscribe(on_change)
        return history

    return record
