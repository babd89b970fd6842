import asyncio

import pytest

from app.common.errors import MutationConflictError, ValidationError
from app.sync.cache import QueryCache
from app.sync.coordinator import OptimisticMutationCoordinator

ALL = ("material-requests", "all")
PENDING = ("material-requests", "pending")


def run(coro):
    return asyncio.run(coro)


class FakeStore:
    """Authoritative rows plus a scriptable update endpoint."""

    def __init__(self):
        self.rows = {
            "req-1": {"id": "req-1", "material_name": "Cement", "status": "pending", "priority": "urgent"},
            "req-2": {"id": "req-2", "material_name": "Sand", "status": "pending", "priority": "low"},
            "req-3": {"id": "req-3", "material_name": "Rebar", "status": "approved", "priority": "high"},
        }
        self.update_calls = []
        self.fail_with = None
        self.gates = {}
        self.seen_during_update = []
        self.cache = None

    def fetcher(self, status):
        async def fetch():
            return [
                dict(row) for row in self.rows.values()
                if status == "all" or row["status"] == status
            ]
        return fetch

    async def update_request(self, request_id, patch):
        self.update_calls.append((request_id, dict(patch)))
        if self.cache is not None:
            self.seen_during_update.append({key: self.cache.get(key) for key in (ALL, PENDING)})
        gate = self.gates.get(patch.get("status"))
        if gate is not None:
            error = await gate
            if error is not None:
                raise error
        elif self.fail_with is not None:
            raise self.fail_with
        self.rows[request_id] = {**self.rows[request_id], **patch, "updated_at": "2026-01-18T09:30:00"}
        return dict(self.rows[request_id])


def setup():
    store = FakeStore()
    cache = QueryCache()
    store.cache = cache
    coordinator = OptimisticMutationCoordinator(cache, store)
    return store, cache, coordinator


async def load(cache, store):
    await cache.fetch(ALL, store.fetcher("all"))
    await cache.fetch(PENDING, store.fetcher("pending"))


def test_no_op_patch_skips_network_and_cache():
    store, cache, coordinator = setup()

    async def scenario():
        await load(cache, store)
        versions = (cache.version(ALL), cache.version(PENDING))
        result = await coordinator.update_status("req-1", "pending")
        return versions, result

    versions, result = run(scenario())

    assert result is None
    assert store.update_calls == []
    assert (cache.version(ALL), cache.version(PENDING)) == versions
    assert cache.is_stale(ALL) is False


def test_patch_is_visible_in_every_snapshot_before_network_resolves():
    store, cache, coordinator = setup()

    async def scenario():
        await load(cache, store)
        before = {key: cache.get(key) for key in (ALL, PENDING)}
        result = await coordinator.update_status("req-1", "approved")
        await cache.wait_idle()
        return before, result

    before, result = run(scenario())
    during = store.seen_during_update[0]

    for key in (ALL, PENDING):
        assert [row["id"] for row in during[key]] == [row["id"] for row in before[key]]
        for old, new in zip(before[key], during[key]):
            if old["id"] == "req-1":
                assert new == {**old, "status": "approved"}
            else:
                assert new is old
    assert result["status"] == "approved"
    assert store.update_calls == [("req-1", {"status": "approved"})]


def test_success_invalidates_and_refetches_store_fields():
    store, cache, coordinator = setup()

    async def scenario():
        await load(cache, store)
        await coordinator.update_status("req-1", "approved")
        await cache.wait_idle()

    run(scenario())

    all_rows = {row["id"]: row for row in cache.get(ALL)}
    assert all_rows["req-1"]["updated_at"] == "2026-01-18T09:30:00"
    assert [row["id"] for row in cache.get(PENDING)] == ["req-2"]
    assert cache.is_stale(ALL) is False
    assert cache.is_stale(PENDING) is False


def test_failure_restores_every_snapshot_exactly():
    store, cache, coordinator = setup()
    store.fail_with = MutationConflictError("row is locked by another transaction")

    async def scenario():
        await load(cache, store)
        before = {key: cache.get(key) for key in (ALL, PENDING)}
        with pytest.raises(MutationConflictError) as exc_info:
            await coordinator.apply_update("req-2", {"priority": "urgent", "notes": "rush"})
        after = {key: cache.get(key) for key in (ALL, PENDING)}
        stale = {key: cache.is_stale(key) for key in (ALL, PENDING)}
        return before, after, stale, exc_info.value

    before, after, stale, error = run(scenario())

    assert error.message == "row is locked by another transaction"
    for key in (ALL, PENDING):
        assert after[key] is before[key]
        assert stale[key] is True
    assert len(store.update_calls) == 1


def test_immutable_fields_are_rejected_before_anything_happens():
    store, cache, coordinator = setup()

    async def scenario():
        await load(cache, store)
        versions = cache.version(ALL)
        with pytest.raises(ValidationError):
            await coordinator.apply_update("req-1", {"company_id": "other"})
        return versions

    versions = run(scenario())

    assert store.update_calls == []
    assert cache.version(ALL) == versions


def test_stale_rollback_does_not_clobber_newer_patch():
    store, cache, coordinator = setup()

    async def scenario():
        loop = asyncio.get_running_loop()
        await load(cache, store)
        store.gates["approved"] = loop.create_future()
        store.gates["rejected"] = loop.create_future()

        first = asyncio.create_task(coordinator.update_status("req-1", "approved"))
        await asyncio.sleep(0)
        second = asyncio.create_task(coordinator.update_status("req-1", "rejected"))
        await asyncio.sleep(0)

        store.gates["approved"].set_result(MutationConflictError("conflict"))
        with pytest.raises(MutationConflictError):
            await first
        after_rollback = {row["id"]: row["status"] for row in cache.get(ALL)}

        store.gates["rejected"].set_result(None)
        await second
        await cache.wait_idle()
        return after_rollback

    after_rollback = run(scenario())

    assert after_rollback["req-1"] == "rejected"
    assert {row["id"]: row["status"] for row in cache.get(ALL)}["req-1"] == "rejected"
    assert store.rows["req-1"]["status"] == "rejected"


def test_later_patch_wins_in_cache():
    store, cache, coordinator = setup()

    async def scenario():
        loop = asyncio.get_running_loop()
        await load(cache, store)
        store.gates["approved"] = loop.create_future()
        store.gates["fulfilled"] = loop.create_future()

        first = asyncio.create_task(coordinator.update_status("req-1", "approved"))
        await asyncio.sleep(0)
        second = asyncio.create_task(coordinator.update_status("req-1", "fulfilled"))
        await asyncio.sleep(0)
        status_before_settle = {row["id"]: row["status"] for row in cache.get(ALL)}["req-1"]

        store.gates["approved"].set_result(None)
        store.gates["fulfilled"].set_result(None)
        await asyncio.gather(first, second)
        await cache.wait_idle()
        return status_before_settle

    assert run(scenario()) == "fulfilled"


def test_read_of_stale_key_keeps_pending_patch():
    store, cache, coordinator = setup()

    async def scenario():
        loop = asyncio.get_running_loop()
        await load(cache, store)
        cache.invalidate(lambda key: key[0] == "material-requests", refetch=False)
        store.gates["approved"] = loop.create_future()

        update = asyncio.create_task(coordinator.update_status("req-1", "approved"))
        await asyncio.sleep(0)
        read = await cache.fetch(ALL, store.fetcher("all"))
        during = {row["id"]: row["status"] for row in read}["req-1"]

        store.gates["approved"].set_result(None)
        await update
        await cache.wait_idle()
        return during

    assert run(scenario()) == "approved"
    all_rows = {row["id"]: row for row in cache.get(ALL)}
    assert all_rows["req-1"]["updated_at"] == "2026-01-18T09:30:00"
    assert cache.is_stale(ALL) is False


def test_background_refetch_waits_for_pending_update():
    store, cache, coordinator = setup()

    async def scenario():
        loop = asyncio.get_running_loop()
        await load(cache, store)
        store.gates["approved"] = loop.create_future()

        update = asyncio.create_task(coordinator.update_status("req-1", "approved"))
        await asyncio.sleep(0)
        cache.invalidate(lambda key: key[0] == "material-requests")
        await cache.wait_idle()
        during = {row["id"]: row["status"] for row in cache.get(ALL)}["req-1"]
        held = cache.holds("material-requests")

        store.gates["approved"].set_result(None)
        await update
        await cache.wait_idle()
        return during, held

    during, held = run(scenario())

    assert during == "approved"
    assert held == 1
    assert cache.holds("material-requests") == 0
    assert {row["id"]: row["status"] for row in cache.get(ALL)}["req-1"] == "approved"


def test_second_update_stays_visible_after_first_settles():
    store, cache, coordinator = setup()

    async def scenario():
        loop = asyncio.get_running_loop()
        await load(cache, store)
        store.gates["approved"] = loop.create_future()
        slow = asyncio.create_task(coordinator.update_status("req-1", "approved"))
        await asyncio.sleep(0)

        await coordinator.apply_update("req-2", {"priority": "high"})
        read = await cache.fetch(ALL, store.fetcher("all"))
        during = {row["id"]: row["status"] for row in read}["req-1"]

        store.gates["approved"].set_result(None)
        await slow
        await cache.wait_idle()
        return during

    assert run(scenario()) == "approved"
    all_rows = {row["id"]: row for row in cache.get(ALL)}
    assert all_rows["req-2"]["priority"] == "high"
    assert all_rows["req-1"]["status"] == "approved"
