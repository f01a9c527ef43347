"""Tests for spendvolt.state — single-writer state store."""

import threading
from dataclasses import replace

import pytest

from spendvolt.models import TransactionStatus
from spendvolt.state import (
    ANALYTICS,
    CATEGORIES,
    FACADE,
    LIFECYCLE,
    PROFILE,
    SYNC,
    AppState,
    OwnershipError,
    StateStore,
)
from tests.conftest import make_txn


class TestCommit:
    def test_replaces_snapshot(self):
        store = StateStore()
        before = store.state
        store.commit(LIFECYCLE, transactions=[make_txn("a")])
        assert store.state is not before
        assert before.transactions == ()
        assert isinstance(store.state.transactions, tuple)

    def test_notifies_listeners(self):
        store = StateStore()
        changes = []
        store.subscribe(changes.append)
        store.commit(SYNC, is_loading=True)
        assert changes[0].writer == SYNC
        assert changes[0].fields == frozenset({"is_loading"})
        assert changes[0].state.is_loading is True

    def test_unsubscribe(self):
        store = StateStore()
        changes = []
        unsubscribe = store.subscribe(changes.append)
        unsubscribe()
        store.commit(SYNC, is_loading=True)
        assert changes == []

    def test_listener_error_does_not_block_commit(self):
        store = StateStore()

        def broken(change):
            raise RuntimeError("listener bug")

        store.subscribe(broken)
        store.commit(FACADE, error_message="x")
        assert store.state.error_message == "x"

    def test_unknown_field(self):
        with pytest.raises(ValueError, match="Unknown state fields"):
            StateStore().commit(SYNC, balance=1)

    def test_foreign_thread_rejected(self):
        store = StateStore()
        errors = []

        def worker():
            try:
                store.commit(SYNC, is_loading=True)
            except RuntimeError as e:
                errors.append(e)

        t = threading.Thread(target=worker)
        t.start()
        t.join()
        assert errors
        assert store.state.is_loading is False


class TestOwnership:
    def test_stats_only_from_analytics(self):
        with pytest.raises(OwnershipError):
            StateStore().commit(SYNC, total_spent_this_month=5.0)
        StateStore().commit(ANALYTICS, total_spent_this_month=5.0)

    def test_recurring_only_from_sync(self):
        with pytest.raises(OwnershipError):
            StateStore().commit(CATEGORIES, recurring_transactions=[])

    def test_error_message_from_anyone(self):
        StateStore().commit(ANALYTICS, error_message="hi")

    def test_status_change_only_from_lifecycle_or_sync(self):
        txn = make_txn("a")
        store = StateStore(AppState(transactions=(txn,)))
        confirmed = replace(txn, status=TransactionStatus.SUCCESS)
        with pytest.raises(OwnershipError, match="status"):
            store.commit(CATEGORIES, transactions=[confirmed])
        store.commit(LIFECYCLE, transactions=[confirmed])
        assert store.state.transactions[0].status is TransactionStatus.SUCCESS

    def test_category_writer_may_recategorize(self):
        txn = make_txn("a")
        store = StateStore(AppState(transactions=(txn,)))
        store.commit(CATEGORIES, transactions=[replace(txn, category_name="Fuel")])
        assert store.state.transactions[0].category_name == "Fuel"

    def test_profile_may_clear_transactions(self):
        store = StateStore(AppState(transactions=(make_txn("a"),)))
        store.commit(PROFILE, transactions=[], is_authenticated=False)
        assert store.state.transactions == ()


class TestDerived:
    def test_pending_and_find(self):
        done = make_txn(1, status=TransactionStatus.SUCCESS)
        state = AppState(transactions=(make_txn("a"), done))
        assert [str(t.id) for t in state.pending_transactions] == ["a"]
        assert state.find_transaction(done.id) is done
        assert state.find_transaction(make_txn("zzz").id) is None
