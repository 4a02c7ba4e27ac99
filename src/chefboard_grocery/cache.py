from __future__ import annotations
import asyncio
import hashlib
import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, Iterable, Optional, Protocol
from chefboard_grocery.models import AggregatedIngredient, Recipe, SelectionCacheEntry

logger = logging.getLogger(__name__)

Compute = Callable[[], Awaitable[list[AggregatedIngredient]]]


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def selection_key(recipes: Iterable[Recipe]) -> str:
    return ",".join(sorted(r.id for r in recipes))


def content_fingerprint(recipes: Iterable[Recipe]) -> str:
    """Hash of every selected recipe's ingredient data, so edits invalidate a cached list."""
    digest = hashlib.sha256()
    for recipe in sorted(recipes, key=lambda r: r.id):
        digest.update(recipe.model_dump_json(include={"id", "ingredients", "structured_ingredients"}).encode())
    return digest.hexdigest()


class CacheStore(Protocol):
    def get(self, key: str) -> Optional[SelectionCacheEntry]: ...

    def set(self, entry: SelectionCacheEntry) -> None: ...

    def clear(self) -> None: ...


class SingleSlotStore:
    """Remembers only the most recent selection; setting a new key evicts the old entry."""

    def __init__(self) -> None:
        self._entry: Optional[SelectionCacheEntry] = None

    def get(self, key: str) -> Optional[SelectionCacheEntry]:
        if self._entry is not None and self._entry.selection_key == key:
            return self._entry
        return None

    def set(self, entry: SelectionCacheEntry) -> None:
        self._entry = entry

    def clear(self) -> None:
        self._entry = None


class SelectionCache:
    def __init__(self, store: Optional[CacheStore] = None):
        self.store = store if store is not None else SingleSlotStore()
        self._latest_key: Optional[str] = None
        self._in_flight: dict[tuple[str, str], asyncio.Future] = {}

    async def get_or_compute(self, recipes: Iterable[Recipe], compute: Compute) -> list[AggregatedIngredient]:
        recipes = list(recipes)
        key = selection_key(recipes)
        fingerprint = content_fingerprint(recipes)
        self._latest_key = key

        entry = self.store.get(key)
        if entry is not None and entry.fingerprint == fingerprint:
            logger.debug("Selection cache hit for %s", key)
            return [item.model_copy(deep=True) for item in entry.items]

        pending = self._in_flight.get((key, fingerprint))
        if pending is None:
            logger.debug("Selection cache miss for %s", key)
            pending = asyncio.ensure_future(compute())
            self._in_flight[(key, fingerprint)] = pending
            pending.add_done_callback(
                lambda done: self._settle(key, fingerprint, done)
            )
        return await asyncio.shield(pending)

    def _settle(self, key: str, fingerprint: str, done: asyncio.Future) -> None:
        self._in_flight.pop((key, fingerprint), None)
        if done.cancelled() or done.exception() is not None:
            return
        if key != self._latest_key:
            logger.debug("Discarding stale result for %s (latest is %s)", key, self._latest_key)
            return
        self.store.set(SelectionCacheEntry(
            selection_key=key,
            fingerprint=fingerprint,
            items=[item.model_copy(deep=True) for item in done.result()],
            generated_at=_now(),
        ))

    def clear(self) -> None:
        self.store.clear()
        self._latest_key = None
