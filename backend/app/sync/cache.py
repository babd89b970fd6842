"""
Client-side query cache.

Snapshots are stored per query key, e.g. ``("material-requests", "pending")``.
A snapshot is an immutable tuple of row dicts and is replaced, never edited.
Every write bumps the key's version, which lets a caller holding an older
snapshot detect that someone else wrote after it. While a collection is
held by a pending mutation its loaded snapshots are served as they are and
are not reloaded.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Sequence, Set, Tuple

logger = logging.getLogger(__name__)

QueryKey = Tuple[Any, ...]
Row = Dict[str, Any]
Snapshot = Tuple[Row, ...]
Fetcher = Callable[[], Awaitable[Sequence[Row]]]
KeyPredicate = Callable[[QueryKey], bool]
Transform = Callable[[Snapshot], Snapshot]


def freeze(rows: Iterable[Row]) -> Snapshot:
    return tuple(dict(row) for row in rows)


def collection_predicate(collection: str) -> KeyPredicate:
    return lambda key: bool(key) and key[0] == collection


@dataclass
class _CacheEntry:
    data: Optional[Snapshot] = None
    version: int = 0
    stale: bool = False
    fetcher: Optional[Fetcher] = None


class QueryCache:
    def __init__(self) -> None:
        self._entries: Dict[QueryKey, _CacheEntry] = {}
        self._refetches: Set[asyncio.Task] = set()
        self._holds: Dict[Any, int] = {}

    def keys(self, predicate: Optional[KeyPredicate] = None) -> List[QueryKey]:
        return [key for key in self._entries if predicate is None or predicate(key)]

    def get(self, key: QueryKey) -> Optional[Snapshot]:
        entry = self._entries.get(key)
        return entry.data if entry else None

    def version(self, key: QueryKey) -> int:
        entry = self._entries.get(key)
        return entry.version if entry else 0

    def is_stale(self, key: QueryKey) -> bool:
        entry = self._entries.get(key)
        return entry.stale if entry else True

    async def fetch(self, key: QueryKey, fetcher: Fetcher) -> Snapshot:
        """Return the cached snapshot, loading it with ``fetcher`` when missing or stale."""
        entry = self._entries.setdefault(key, _CacheEntry())
        entry.fetcher = fetcher
        if entry.data is not None and (not entry.stale or self.is_held(key)):
            return entry.data

        started_at = entry.version
        rows = await fetcher()
        if self._entries.get(key) is entry and entry.version == started_at:
            self._write(key, freeze(rows))
            entry.stale = False
        return entry.data

    def hold(self, collection: Any) -> None:
        """Keep loaded snapshots of ``collection`` from being reloaded until ``release``."""
        self._holds[collection] = self._holds.get(collection, 0) + 1

    def release(self, collection: Any) -> None:
        remaining = self._holds.get(collection, 0) - 1
        if remaining > 0:
            self._holds[collection] = remaining
        else:
            self._holds.pop(collection, None)

    def holds(self, collection: Any) -> int:
        return self._holds.get(collection, 0)

    def is_held(self, key: QueryKey) -> bool:
        return bool(key) and key[0] in self._holds

    def patch(self, key: QueryKey, transform: Transform) -> int:
        """Replace the snapshot under ``key`` with ``transform(snapshot)``; return the new version."""
        entry = self._entries.get(key)
        if entry is None or entry.data is None:
            raise KeyError(key)
        return self._write(key, transform(entry.data))

    def restore(self, key: QueryKey, snapshot: Snapshot, expected_version: int) -> bool:
        """Put ``snapshot`` back only if nothing wrote ``key`` since ``expected_version``."""
        if self.version(key) != expected_version:
            logger.info(f"Skipping rollback of {key}: written since version {expected_version}")
            return False
        self.patch(key, lambda _current: snapshot)
        return True

    def invalidate(self, predicate: KeyPredicate, refetch: bool = True) -> List[QueryKey]:
        """Mark matching keys stale.

        With ``refetch`` the keys that have a known fetcher are reloaded in the
        background; otherwise they reload on their next ``fetch``. Held keys are
        only marked stale.
        """
        invalidated = self.keys(predicate)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        for key in invalidated:
            entry = self._entries[key]
            entry.stale = True
            if refetch and loop is not None and entry.fetcher is not None and not self.is_held(key):
                task = loop.create_task(self._refetch(key, entry.fetcher, entry.version))
                self._refetches.add(task)
                task.add_done_callback(self._refetches.discard)
        return invalidated

    def drop(self, predicate: KeyPredicate) -> List[QueryKey]:
        """Forget matching keys, snapshots and fetchers included."""
        dropped = self.keys(predicate)
        for key in dropped:
            del self._entries[key]
        return dropped

    async def wait_idle(self) -> None:
        while self._refetches:
            pending = list(self._refetches)
            self._refetches.difference_update(pending)
            await asyncio.gather(*pending)

    def _write(self, key: QueryKey, snapshot: Snapshot) -> int:
        entry = self._entries.setdefault(key, _CacheEntry())
        entry.data = snapshot
        entry.version += 1
        return entry.version

    async def _refetch(self, key: QueryKey, fetcher: Fetcher, started_at: int) -> None:
        try:
            rows = await fetcher()
        except Exception as e:
            logger.warning(f"Background refetch of {key} failed: {e}")
            return

        entry = self._entries.get(key)
        if entry is None or entry.version != started_at or self.is_held(key):
            logger.debug(f"Dropping refetch of {key}: written while in flight")
            return
        self._write(key, freeze(rows))
        entry.stale = False
