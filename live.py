from __future__ import annotations

import logging
from typing import AsyncIterator, Awaitable, Callable, Generic, Optional, Sequence, TypeVar

import anyio

from errors import StoreIOError
from store import RecordStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


class LiveQuery(Generic[T]):
    """Re-runs ``compute`` whenever one of ``collections`` changes in the store.

    Store failures never escape: the query logs them and yields ``fallback()``
    instead, so views backed by it keep rendering.
    """

    def __init__(
        self,
        store: RecordStore,
        collections: Sequence[str],
        compute: Callable[[], Awaitable[T]],
        fallback: Callable[[], T],
        *,
        name: str = "live_query",
    ) -> None:
        self.store = store
        self.collections = tuple(collections)
        self.name = name
        self._compute = compute
        self._fallback = fallback
        self._seen: Optional[tuple[int, ...]] = None
        self._value: Optional[T] = None
        self._subscribers: list[Callable[[T], None]] = []

    def _versions(self) -> tuple[int, ...]:
        return tuple(self.store.version(c) for c in self.collections)

    @property
    def is_stale(self) -> bool:
        return self._seen != self._versions()

    @property
    def value(self) -> T:
        return self._value if self._seen is not None else self._fallback()

    def subscribe(self, callback: Callable[[T], None]) -> Callable[[], None]:
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    async def refresh(self, *, force: bool = False) -> T:
        """Recompute if the underlying collections moved on since the last run."""
        if not force and not self.is_stale:
            return self._value
        versions = self._versions()
        try:
            value = await self._compute()
        except StoreIOError as exc:
            logger.warning(f"{self.name}: store_error={exc}; serving fallback")
            value = self._fallback()
        self._seen = versions
        self._value = value
        for callback in list(self._subscribers):
            callback(value)
        return value

    async def watch(self) -> AsyncIterator[T]:
        """Yield the current value, then a fresh one after every relevant change."""
        changed = anyio.Event()

        def on_change(collection: str) -> None:
            if collection in self.collections:
                changed.set()

        self.store.add_listener(on_change)
        try:
            yield await self.refresh(force=True)
            while True:
                await changed.wait()
                changed = anyio.Event()
                yield await self.refresh()
        finally:
            self.store.remove_listener(on_change)
