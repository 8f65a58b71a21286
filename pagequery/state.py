"""
State Sink - the consumer-visible map of query states.

The map is immutable: every commit installs a fresh read-only mapping.
Writers never read-modify-write a local copy; they pass a function
(previous_state) -> next_state that the store applies to the value current
at commit time, replacing only that one key. Concurrent tasks resolving
different queries therefore cannot overwrite each other's entries.
"""

from types import MappingProxyType
from typing import Callable, Iterable, Mapping, Optional

from shared.logging import get_logger

from .models import QueryState

log = get_logger("pagequery", "state")

StateMap = Mapping[str, QueryState]
Subscriber = Callable[[StateMap], None]
StateUpdate = Callable[[QueryState], QueryState]


class QueryStateStore:
    """Owns the published {name: QueryState} map."""

    def __init__(self, initial: Optional[dict[str, QueryState]] = None):
        self._states: StateMap = MappingProxyType(dict(initial or {}))
        self._subscribers: list[Subscriber] = []

    @property
    def states(self) -> StateMap:
        """Current snapshot. Later commits never change it."""
        return self._states

    def get(self, name: str) -> Optional[QueryState]:
        return self._states.get(name)

    def reset(self, initial: Iterable[tuple[str, QueryState]]) -> None:
        """Replace the whole map (start of a run)."""
        self._commit(dict(initial))

    def update(self, name: str, fn: StateUpdate) -> QueryState:
        """
        Apply fn to the current state of one query and publish the result.

        Returns the committed state.
        """
        previous = self._states.get(name, QueryState())
        next_state = fn(previous)
        states = dict(self._states)
        states[name] = next_state
        self._commit(states)
        return next_state

    def _commit(self, states: dict[str, QueryState]) -> None:
        self._states = MappingProxyType(states)
        snapshot = self._states
        for subscriber in list(self._subscribers):
            try:
                subscriber(snapshot)
            except Exception as e:
                log.exception(e, "pagequery.state.subscriber_failed",
                              {"subscriber": getattr(subscriber, "__name__", repr(subscriber))})

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """
        Call callback with every committed snapshot.

        Returns a function that removes the subscription.
        """
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def all_loading(self) -> bool:
        """True when every query is loading (vacuously true when empty)."""
        return all(state.is_loading for state in self._states.values())

    def any_loading(self) -> bool:
        """True when at least one query is loading."""
        return any(state.is_loading for state in self._states.values())

    def to_dict(self) -> dict:
        return {name: state.to_dict() for name, state in self._states.items()}
