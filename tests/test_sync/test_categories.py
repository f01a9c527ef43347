"""Tests for spendvolt.sync.categories — add, delete with reassignment, move."""

from dataclasses import replace
from unittest.mock import MagicMock, patch

import pytest

from spendvolt.gateway.errors import ServerError
from spendvolt.models import (
    RemoteId,
    TransactionStatus,
    UserCategory,
    ValidationError,
)
from spendvolt.state import AppState, StateStore
from spendvolt.sync.categories import CategoryManager
from spendvolt.sync.dispatcher import InlineDispatcher
from tests.conftest import make_txn

SUCCESS = TransactionStatus.SUCCESS

CATEGORIES = (
    UserCategory("Fuel", "fuelpump.fill", id=1),
    UserCategory("Dining", "fork.knife", id=2),
    UserCategory("Other", "bag.fill"),
)


def _manager(cache, gateway, transactions=()):
    store = StateStore(AppState(transactions=tuple(transactions), categories=CATEGORIES))
    return CategoryManager(
        store, cache, gateway, InlineDispatcher(),
        on_dashboard=MagicMock(),
        on_remote_error=MagicMock(),
    )


def _dining_history():
    return [
        make_txn(10, category="Dining", status=SUCCESS),
        make_txn("tmp-1", category="Dining"),
        make_txn(11, category="Fuel", status=SUCCESS),
        make_txn(12, category="Dining", status=SUCCESS),
    ]


class TestAddCategory:
    def test_adds_and_pushes(self, cache, mock_gateway):
        manager = _manager(cache, mock_gateway)
        cat = manager.add_category(" Travel ", "airplane")
        assert cat.name == "Travel"
        assert manager.store.state.categories[-1] == cat
        assert [c.name for c in cache.load_categories()][-1] == "Travel"
        mock_gateway.create_category.assert_called_once_with(cat)
        manager.on_dashboard.assert_called_once()

    def test_blank_name(self, cache, mock_gateway):
        with pytest.raises(ValidationError):
            _manager(cache, mock_gateway).add_category("   ")

    def test_duplicate_name(self, cache, mock_gateway):
        with pytest.raises(ValidationError, match="already exists"):
            _manager(cache, mock_gateway).add_category("fuel")

    def test_remote_failure_keeps_local(self, cache, mock_gateway):
        mock_gateway.create_category.side_effect = ServerError("Category exists")
        manager = _manager(cache, mock_gateway)
        manager.add_category("Travel")
        assert manager.store.state.categories[-1].name == "Travel"
        manager.on_remote_error.assert_called_once()


class TestDeleteCategory:
    def test_reassigns_exactly_n_to_replacement(self, cache, mock_gateway):
        history = _dining_history()
        manager = _manager(cache, mock_gateway, history)

        moved = manager.delete_category("Dining", replacement="Other")

        assert moved == 3
        after = manager.store.state.transactions
        for before, now in zip(history, after):
            if before.category_name == "Dining":
                assert now == replace(before, category_name="Other")
            else:
                assert now == before
        assert "Dining" not in [c.name for c in manager.store.state.categories]

    def test_unassigned_when_no_replacement(self, cache, mock_gateway):
        manager = _manager(cache, mock_gateway, _dining_history())
        assert manager.delete_category("Dining") == 3
        names = [t.category_name for t in manager.store.state.transactions]
        assert names.count("Unassigned") == 3

    def test_persists_both_slots(self, cache, mock_gateway):
        manager = _manager(cache, mock_gateway, _dining_history())
        manager.delete_category("Dining", "Fuel")
        assert [t.category_name for t in cache.load_transactions()].count("Fuel") == 4
        assert "Dining" not in [c.name for c in cache.load_categories()]

    def test_cache_failure_changes_nothing(self, cache, mock_gateway):
        history = _dining_history()
        manager = _manager(cache, mock_gateway, history)
        with patch.object(cache, "save_many", side_effect=RuntimeError("disk full")):
            with pytest.raises(RuntimeError):
                manager.delete_category("Dining")
        assert list(manager.store.state.transactions) == history
        mock_gateway.delete_category.assert_not_called()

    def test_remote_updates_then_delete(self, cache, mock_gateway):
        manager = _manager(cache, mock_gateway, _dining_history())
        manager.delete_category("Dining", "Fuel")

        updated = [c.args for c in mock_gateway.update_transaction_category.call_args_list]
        assert updated == [(RemoteId(10), "Fuel"), (RemoteId(12), "Fuel")]
        mock_gateway.delete_category.assert_called_once_with(2)
        manager.on_dashboard.assert_called_once()

    def test_unknown_category(self, cache, mock_gateway):
        with pytest.raises(ValidationError, match="not found"):
            _manager(cache, mock_gateway).delete_category("Travel")

    def test_unknown_replacement(self, cache, mock_gateway):
        manager = _manager(cache, mock_gateway, _dining_history())
        with pytest.raises(ValidationError):
            manager.delete_category("Dining", "Travel")
        assert manager.count_transactions("Dining") == 3

    def test_replacement_cannot_be_itself(self, cache, mock_gateway):
        with pytest.raises(ValidationError):
            _manager(cache, mock_gateway).delete_category("Dining", "dining")


class TestMoveTransactions:
    def test_moves_and_counts(self, cache, mock_gateway):
        manager = _manager(cache, mock_gateway, _dining_history())
        assert manager.move_transactions("Dining", "Fuel") == 3
        assert manager.count_transactions("Fuel") == 4
        assert manager.count_transactions("Dining") == 0
        assert "Dining" in [c.name for c in manager.store.state.categories]
        mock_gateway.delete_category.assert_not_called()

    def test_nothing_to_move(self, cache, mock_gateway):
        manager = _manager(cache, mock_gateway, _dining_history())
        assert manager.move_transactions("Rent", "Fuel") == 0
        mock_gateway.update_transaction_category.assert_not_called()
