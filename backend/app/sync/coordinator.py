import logging
from typing import Any, Dict, Optional, Protocol, Tuple

from app.common.errors import ValidationError
from app.requests.domain.models import MUTABLE_FIELDS, RequestPatch
from app.sync.cache import QueryCache, QueryKey, Row, Snapshot, collection_predicate

logger = logging.getLogger(__name__)

MATERIAL_REQUESTS = "material-requests"


class RequestUpdater(Protocol):
    async def update_request(self, request_id: str, patch: RequestPatch) -> Dict[str, Any]:
        ...


class OptimisticMutationCoordinator:
    """Apply material request updates to every cached list before the backend confirms them.

    The cache is patched synchronously, then the update is sent. If the
    backend rejects it, each snapshot is put back unless a later update has
    written it since. Either way the collection is invalidated so that fields
    set by the store, such as ``updated_at``, are refetched. The collection is
    held in the cache while the update is pending, so no read or refetch
    replaces the patched rows before it settles.
    """

    def __init__(
        self,
        cache: QueryCache,
        updater: RequestUpdater,
        collection: str = MATERIAL_REQUESTS,
    ) -> None:
        self._cache = cache
        self._updater = updater
        self._collection = collection

    def current_entry(self, request_id: str) -> Optional[Row]:
        for key in self._cache.keys(collection_predicate(self._collection)):
            for row in self._cache.get(key) or ():
                if row.get("id") == request_id:
                    return row
        return None

    async def apply_update(self, request_id: str, patch: RequestPatch) -> Optional[Dict[str, Any]]:
        """Update one request optimistically. Returns the stored row, or None for a no-op."""
        if not patch:
            raise ValidationError("Update must contain at least one field")
        immutable = sorted(set(patch) - MUTABLE_FIELDS)
        if immutable:
            raise ValidationError(f"Fields cannot be updated: {', '.join(immutable)}")

        current = self.current_entry(request_id)
        if current is not None and all(current.get(name) == value for name, value in patch.items()):
            logger.debug(f"Update of {request_id} changes nothing, skipping")
            return None

        self._cache.hold(self._collection)
        rollback = self._patch_snapshots(request_id, dict(patch))
        try:
            return await self._updater.update_request(request_id, dict(patch))
        except Exception as e:
            logger.warning(f"Update of {request_id} failed, rolling back: {e}")
            for key, (previous, version) in rollback.items():
                self._cache.restore(key, previous, version)
            raise
        finally:
            self._cache.release(self._collection)
            # Reloads wait for the last pending update on the collection
            self._cache.invalidate(
                collection_predicate(self._collection),
                refetch=self._cache.holds(self._collection) == 0,
            )

    async def update_status(self, request_id: str, status: str) -> Optional[Dict[str, Any]]:
        return await self.apply_update(request_id, {"status": status})

    def _patch_snapshots(self, request_id: str, patch: RequestPatch) -> Dict[QueryKey, Tuple[Snapshot, int]]:
        def merge(rows: Snapshot) -> Snapshot:
            return tuple(
                {**row, **patch} if row.get("id") == request_id else row
                for row in rows
            )

        rollback: Dict[QueryKey, Tuple[Snapshot, int]] = {}
        for key in self._cache.keys(collection_predicate(self._collection)):
            previous = self._cache.get(key)
            if previous is None:
                continue
            rollback[key] = (previous, self._cache.patch(key, merge))
        return rollback
