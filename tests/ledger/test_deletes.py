import asyncio

import pytest

from errors import PendingDeleteError
from ledger.deletes import CollectionCache, DeferredDeleteCoordinator
from tests.helpers import make_transaction


@pytest.fixture
def expenses(services, run):
    """Three stored expenses, loaded into the services' cached view."""
    created = [
        run(services.transactions.create(make_transaction(amount=str(amount))))
        for amount in (1, 2, 3)
    ]
    services.cache.replace("expense", created)
    return created


def slow_coordinator(services):
    return DeferredDeleteCoordinator(services.records, services.cache, grace_seconds=60)


def stored_ids(services, run):
    return [r["id"] for r in run(services.records.list("Expense"))]


class TestCollectionCache:
    """Tests for CollectionCache."""

    def test_get_returns_copy(self):
        cache = CollectionCache()
        cache.replace("expense", [1, 2])

        cache.get("expense").append(3)

        assert cache.get("expense") == [1, 2]

    def test_unknown_kind_is_empty(self):
        assert CollectionCache().get("income") == []

    def test_replace_refused_while_held(self):
        """Test a held kind cannot be replaced until released."""
        cache = CollectionCache()
        cache.hold("expense", "expense:1")

        with pytest.raises(PendingDeleteError):
            cache.replace("expense", [])
        cache.replace("income", [])

        cache.release("expense", "expense:1")
        cache.replace("expense", [])


class TestDeferredDeleteCoordinator:
    """Tests for DeferredDeleteCoordinator."""

    def test_delete_is_optimistic_then_committed(self, services, run, expenses):
        """Test the cached view changes at once and the store after the grace period."""
        target = expenses[1]

        async def scenario():
            scheduled = await services.deletes.schedule_delete("expense", target.id)
            assert scheduled is True
            assert [e.id for e in services.cache.get("expense")] == [expenses[0].id, expenses[2].id]
            assert target.id in stored_ids_now()
            await asyncio.sleep(services.deletes.grace_seconds * 3)
            await services.deletes.wait_idle()

        def stored_ids_now():
            with services.db_manager.connect() as conn:
                return [row[0] for row in conn.execute("SELECT id FROM records")]

        run(scenario())

        assert target.id not in stored_ids(services, run)
        assert services.deletes.pending_keys() == []

    def test_undo_restores_exact_state(self, services, run, expenses):
        """Test undo within the window restores the snapshot and never touches the store."""
        coordinator = slow_coordinator(services)
        before = services.cache.snapshot("expense")

        run(coordinator.schedule_delete("expense", expenses[0].id))
        assert coordinator.pending_keys() == [f"expense:{expenses[0].id}"]

        assert coordinator.undo("expense", expenses[0].id) is True

        assert services.cache.get("expense") == before
        assert stored_ids(services, run) == [e.id for e in expenses]
        assert coordinator.pending_keys() == []

    def test_undo_after_expiry_has_no_effect(self, services, run, expenses):
        """Test undo once the delete committed returns False and changes nothing."""

        async def scenario():
            await services.deletes.schedule_delete("expense", expenses[0].id)
            await asyncio.sleep(services.deletes.grace_seconds * 3)
            await services.deletes.wait_idle()

        run(scenario())
        view = services.cache.get("expense")

        assert services.deletes.undo("expense", expenses[0].id) is False
        assert services.cache.get("expense") == view
        assert expenses[0].id not in stored_ids(services, run)

    def test_undo_without_pending_delete(self, services):
        assert services.deletes.undo("expense", "nope") is False

    def test_uncached_item_is_deleted_immediately(self, services, run, expenses):
        """Test items missing from the cached view skip the undo window."""
        other = run(services.transactions.create(make_transaction(amount="9")))

        scheduled = run(services.deletes.schedule_delete("expense", other.id))

        assert scheduled is False
        assert other.id not in stored_ids(services, run)
        assert services.deletes.pending_keys() == []

    def test_duplicate_request_is_ignored(self, services, run, expenses):
        """Test a second delete of the same item keeps the first timer."""
        coordinator = slow_coordinator(services)
        run(coordinator.schedule_delete("expense", expenses[0].id))

        again = run(coordinator.schedule_delete("expense", expenses[0].id))

        assert again is False
        assert len(coordinator.pending_keys()) == 1
        assert expenses[0].id in stored_ids(services, run)

        coordinator.undo("expense", expenses[0].id)

        assert [e.id for e in services.cache.get("expense")] == [e.id for e in expenses]
        assert expenses[0].id in stored_ids(services, run)

    def test_pending_delete_blocks_refresh(self, services, run, expenses):
        """Test the cached view cannot be replaced under a pending delete."""
        coordinator = slow_coordinator(services)
        run(coordinator.schedule_delete("expense", expenses[0].id))

        with pytest.raises(PendingDeleteError):
            services.cache.replace("expense", expenses)

        coordinator.undo("expense", expenses[0].id)
        services.cache.replace("expense", expenses)

    def test_undo_keeps_other_pending_deletes_hidden(self, services, run, expenses):
        """Test undoing one delete does not resurrect another pending one."""
        coordinator = slow_coordinator(services)
        run(coordinator.schedule_delete("expense", expenses[0].id))
        run(coordinator.schedule_delete("expense", expenses[1].id))

        coordinator.undo("expense", expenses[0].id)

        assert [e.id for e in services.cache.get("expense")] == [expenses[0].id, expenses[2].id]
        assert coordinator.pending_keys() == [f"expense:{expenses[1].id}"]

    def test_undoing_every_pending_delete_restores_full_view(self, services, run, expenses):
        """Test undo order does not matter once all pending deletes are undone."""
        coordinator = slow_coordinator(services)
        for expense in expenses:
            run(coordinator.schedule_delete("expense", expense.id))

        for expense in expenses:
            coordinator.undo("expense", expense.id)

        assert services.cache.get("expense") == expenses
        services.cache.replace("expense", expenses)

    def test_commit_keeps_undo_of_other_deletes_exact(self, services, run, expenses):
        """Test an item whose delete committed stays out of later undos."""
        coordinator = slow_coordinator(services)
        run(coordinator.schedule_delete("expense", expenses[0].id))
        run(coordinator.schedule_delete("expense", expenses[1].id))

        pending = coordinator._pending.pop(f"expense:{expenses[0].id}")
        pending.task.cancel()
        assert run(coordinator._commit(pending)) is True
        coordinator.undo("expense", expenses[1].id)

        assert [e.id for e in services.cache.get("expense")] == [expenses[1].id, expenses[2].id]
        assert stored_ids(services, run) == [expenses[1].id, expenses[2].id]

    def test_flush_commits_immediately(self, services, run, expenses):
        """Test flush skips the rest of the undo window."""
        coordinator = slow_coordinator(services)
        run(coordinator.schedule_delete("expense", expenses[0].id))
        run(coordinator.schedule_delete("expense", expenses[2].id))

        run(coordinator.flush())

        assert stored_ids(services, run) == [expenses[1].id]
        assert coordinator.pending_keys() == []
        services.cache.replace("expense", [expenses[1]])

    def test_commit_failure_is_logged_not_raised(self, services, run, expenses):
        """Test a failing store delete does not surface from the timer."""
        coordinator = slow_coordinator(services)

        async def failing_delete(entity_type, record_id):
            raise RuntimeError("offline")

        run(coordinator.schedule_delete("expense", expenses[0].id))
        services.records.delete = failing_delete

        run(coordinator.flush())

        assert coordinator.pending_keys() == []
