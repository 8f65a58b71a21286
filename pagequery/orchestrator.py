"""
Query Orchestrator.

Drives one fetch cycle ("run") per fingerprint change:

1. Every descriptor's state is reset to loading, synchronously.
2. One asyncio task per descriptor resolves it cache-then-network.
3. Each task commits its own snapshots through the state store; a failure
   becomes that query's error state and never touches its siblings.

Runs are not cancelled when superseded. Each run gets a generation number
and a task only commits while its generation is still the current one, so
results from an older run are dropped instead of overwriting newer state.

Two-step queries fetch a cheap "fast" variant first and publish it as a
partial result. If the fast result is a list no longer than the
descriptor's min_sufficient_count, the "slow" variant is fetched and
replaces it entirely.
"""

import asyncio
import time
from typing import Any, Iterable, Optional

from shared.logging import get_logger, run_context, query_context

from .cache import CacheStore
from .client import ResourceClient, unwrap_body
from .errors import CacheMiss, ValidationError
from .models import QueryDescriptor, QueryError, QueryState
from .state import QueryStateStore, StateMap, Subscriber

log = get_logger("pagequery", "orchestrator")

SOURCE_CACHE = "cache"
SOURCE_NETWORK = "network"

_MISS = object()


def _freeze(fingerprint: Any) -> Any:
    """Turn a fingerprint into a value-comparable, immutable form."""
    if isinstance(fingerprint, (list, tuple)):
        return tuple(_freeze(item) for item in fingerprint)
    return fingerprint


class QueryRun:
    """Handle for one run, returned by QueryOrchestrator.run()."""

    def __init__(
        self,
        orchestrator: "QueryOrchestrator",
        generation: int,
        fingerprint: Any,
        descriptors: tuple[QueryDescriptor, ...],
        cache_enabled: bool,
    ):
        self.generation = generation
        self.fingerprint = fingerprint
        self.descriptors = descriptors
        self.cache_enabled = cache_enabled
        self.started_at = time.time()
        self._orchestrator = orchestrator
        self._tasks: list[asyncio.Task] = []
        self._pending = 0

    @property
    def states(self) -> StateMap:
        return self._orchestrator.states

    @property
    def is_current(self) -> bool:
        return self._orchestrator.generation == self.generation

    @property
    def done(self) -> bool:
        return all(task.done() for task in self._tasks)

    def all_loading(self) -> bool:
        return self._orchestrator.all_loading()

    def any_loading(self) -> bool:
        return self._orchestrator.any_loading()

    async def wait(self) -> StateMap:
        """Wait until every task of this run has settled."""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        return self.states

    def _track(self, task: asyncio.Task) -> None:
        self._tasks.append(task)
        self._pending += 1
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._pending -= 1
        if self._pending:
            return
        log.info("pagequery.run.settled",
                 generation=self.generation,
                 current=self.is_current,
                 queries=len(self.descriptors),
                 duration_ms=round((time.time() - self.started_at) * 1000, 2))

    def to_dict(self) -> dict:
        return {
            "generation": self.generation,
            "cache_enabled": self.cache_enabled,
            "queries": [d.to_dict() for d in self.descriptors],
            "states": {name: state.to_dict() for name, state in self.states.items()},
        }


class QueryOrchestrator:
    """
    Resolves named queries concurrently and publishes their states.

    Usage:
        orch = QueryOrchestrator(HttpResourceClient(base_url), FileCacheStore())
        run = orch.run(descriptors, fingerprint=[gene_id, analysis_id])
        await run.wait()
        gene = run.states["gene"].data
        await orch.close()
    """

    def __init__(
        self,
        client: ResourceClient,
        cache: Optional[CacheStore] = None,
        cache_enabled: bool = True,
        store: Optional[QueryStateStore] = None,
    ):
        """
        Args:
            client: Fetches resources over the network
            cache: Cache store; None disables caching entirely
            cache_enabled: Default for runs that don't pass cache_enabled
            store: State store to publish into (a fresh one by default)
        """
        self.client = client
        self.cache = cache
        self.cache_enabled = cache_enabled
        self.store = store or QueryStateStore()

        self._generation = 0
        self._current: Optional[QueryRun] = None

    async def close(self) -> None:
        await self.client.close()

    # ==================== State Sink ====================

    @property
    def states(self) -> StateMap:
        return self.store.states

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def current_run(self) -> Optional[QueryRun]:
        return self._current

    def all_loading(self) -> bool:
        return self.store.all_loading()

    def any_loading(self) -> bool:
        return self.store.any_loading()

    def subscribe(self, callback: Subscriber):
        return self.store.subscribe(callback)

    # ==================== Runs ====================

    def run(
        self,
        descriptors: Iterable[QueryDescriptor],
        fingerprint: Any,
        cache_enabled: Optional[bool] = None,
    ) -> QueryRun:
        """
        Start a run if the fingerprint changed, else return the current run.

        Must be called from a running event loop. States are reset to loading
        before this returns; resolution happens in background tasks.

        Raises:
            ValueError: two descriptors share a name
        """
        frozen = _freeze(fingerprint)
        if self._current is not None and self._current.fingerprint == frozen:
            return self._current

        # Raises RuntimeError when called outside a running event loop
        asyncio.get_running_loop()

        descriptors = tuple(descriptors)
        seen: set[str] = set()
        for descriptor in descriptors:
            if descriptor.name in seen:
                raise ValueError(f"Duplicate query name: {descriptor.name}")
            seen.add(descriptor.name)

        use_cache = self.cache_enabled if cache_enabled is None else cache_enabled
        use_cache = use_cache and self.cache is not None

        self._generation += 1
        generation = self._generation
        self.store.reset(
            (d.name, QueryState.loading(two_step=d.is_two_step)) for d in descriptors
        )

        log.info("pagequery.run.started",
                 generation=generation,
                 queries=[d.name for d in descriptors],
                 cache_enabled=use_cache)

        run = QueryRun(self, generation, frozen, descriptors, use_cache)
        self._current = run
        for descriptor in descriptors:
            run._track(asyncio.create_task(self._resolve(descriptor, generation, use_cache)))
        return run

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation

    def _commit(self, name: str, generation: int, fn) -> bool:
        """Apply a state update unless the run has been superseded."""
        if not self._is_current(generation):
            log.debug("pagequery.query.stale_discarded",
                      generation=generation, current=self._generation)
            return False
        self.store.update(name, fn)
        return True

    # ==================== Resolution ====================

    async def _resolve(self, descriptor: QueryDescriptor, generation: int, cache_enabled: bool) -> None:
        with run_context(f"run-{generation}"), query_context(descriptor.name):
            try:
                if descriptor.is_two_step:
                    await self._resolve_two_step(descriptor, generation, cache_enabled)
                else:
                    await self._resolve_single(descriptor, generation, cache_enabled)
            except Exception as e:
                error = QueryError.from_exception(e)
                log.warning("pagequery.query.failed",
                            error=error.message,
                            error_class=type(e).__name__,
                            status=error.status)
                self._commit(descriptor.name, generation, lambda state: state.with_error(error))

    async def _resolve_single(self, descriptor: QueryDescriptor, generation: int, cache_enabled: bool) -> None:
        request_id = descriptor.single_request_id
        data, source = await self._fetch(descriptor, request_id, cache_enabled)

        self._commit(descriptor.name, generation, lambda state: state.with_data(data))
        log.debug("pagequery.query.resolved", source=source)

        if source == SOURCE_NETWORK and cache_enabled:
            await self._write_cache(request_id, data)

    async def _resolve_two_step(self, descriptor: QueryDescriptor, generation: int, cache_enabled: bool) -> None:
        fast_id = descriptor.fast_request_id
        fast_data, source = await self._fetch(descriptor, fast_id, cache_enabled)

        self._commit(descriptor.name, generation, lambda state: state.with_partial(fast_data))
        if source == SOURCE_NETWORK and cache_enabled:
            await self._write_cache(fast_id, fast_data)

        if descriptor.is_sufficient(fast_data):
            self._commit(descriptor.name, generation, lambda state: state.with_data(fast_data))
            log.debug("pagequery.two_step.fast_sufficient", source=source)
            return

        if not self._is_current(generation):
            log.debug("pagequery.two_step.slow_skipped", generation=generation)
            return

        log.info("pagequery.two_step.fast_insufficient",
                 items=len(fast_data),
                 min_sufficient_count=descriptor.min_sufficient_count)

        slow_id = descriptor.slow_request_id
        slow_data, source = await self._fetch(descriptor, slow_id, cache_enabled)

        self._commit(descriptor.name, generation, lambda state: state.with_data(slow_data))
        log.debug("pagequery.query.resolved", source=source, phase="slow")

        if source == SOURCE_NETWORK and cache_enabled:
            await self._write_cache(slow_id, slow_data)

    async def _fetch(
        self,
        descriptor: QueryDescriptor,
        request_id: str,
        cache_enabled: bool,
    ) -> tuple[Any, str]:
        """
        Resolve one request id, cache first.

        Returns:
            (unwrapped data, source) where source is "cache" or "network"

        Raises:
            TransportError: the network fetch failed or the body was rejected
        """
        if cache_enabled:
            cached = await self._read_cache(descriptor, request_id)
            if cached is not _MISS:
                return cached, SOURCE_CACHE

        body = await self.client.fetch_resource(request_id)
        data = unwrap_body(body)
        self._validate(descriptor, data)
        return data, SOURCE_NETWORK

    def _validate(self, descriptor: QueryDescriptor, data: Any) -> None:
        if descriptor.validator is None:
            return
        try:
            accepted = descriptor.validator(data)
        except Exception as e:
            raise ValidationError(f"Validation failed for {descriptor.name}: {e}") from e
        if accepted is False:
            raise ValidationError(f"Validation failed for {descriptor.name}")

    async def _read_cache(self, descriptor: QueryDescriptor, request_id: str) -> Any:
        """Return cached data, or _MISS on a miss or any cache failure."""
        try:
            value = await self.cache.get(request_id)
        except CacheMiss:
            log.debug("pagequery.cache.miss", request_id=request_id)
            return _MISS
        except Exception as e:
            log.debug("pagequery.cache.read_failed", request_id=request_id, error=str(e))
            return _MISS

        data = unwrap_body(value)
        try:
            self._validate(descriptor, data)
        except ValidationError as e:
            log.warning("pagequery.cache.rejected", request_id=request_id, error=e.message)
            return _MISS

        log.debug("pagequery.cache.hit", request_id=request_id)
        return data

    async def _write_cache(self, request_id: str, data: Any) -> None:
        """Best-effort write; failures are logged and dropped."""
        try:
            await self.cache.put(request_id, data)
        except Exception as e:
            log.warning("pagequery.cache.write_failed", request_id=request_id, error=str(e))
