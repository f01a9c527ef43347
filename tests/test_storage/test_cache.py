"""Tests for spendvolt.storage.cache — SQLite slot store."""

from unittest.mock import patch

import pytest

from spendvolt.gateway.session import Session
from spendvolt.models import (
    LocalId,
    RecurrenceFrequency,
    RecurringTransaction,
    RemoteId,
    TransactionStatus,
    UserCategory,
    UserProfile,
    default_categories,
)
from spendvolt.storage.cache import CacheStore
from tests.conftest import NOW, make_txn


class TestMigrations:
    def test_creates_slot_table(self, cache):
        tables = {
            r[0] for r in cache.conn.execute(
                "SELECT name FROM sqlite_master WHERE type = 'table'"
            ).fetchall()
        }
        assert "cache_slots" in tables
        assert "schema_version" in tables

    def test_idempotent(self, cache):
        cache.apply_migrations()
        row = cache.conn.execute("SELECT COUNT(*) FROM schema_version").fetchone()
        assert row[0] == 1


class TestDefaults:
    def test_empty_cache(self, cache):
        assert cache.load_transactions() == []
        assert cache.load_recurring() == []
        assert cache.load_categories() == default_categories()
        assert cache.load_profile() == UserProfile()
        assert cache.load_session() is None

    def test_configured_defaults(self):
        store = CacheStore.open(
            ":memory:",
            default_categories=[UserCategory("Travel", "airplane")],
            default_profile=UserProfile(name="Asha", monthly_budget=5000.0),
        )
        assert [c.name for c in store.load_categories()] == ["Travel"]
        assert store.load_profile().name == "Asha"
        store.close()

    def test_default_categories_are_copies(self, cache):
        first = cache.default_categories()
        first[0].name = "Changed"
        assert cache.default_categories()[0].name != "Changed"


class TestSlots:
    def test_transactions_keep_id_variant(self, cache):
        cache.save_transactions([
            make_txn("tmp-1", note="tmp-1"),
            make_txn(42, status=TransactionStatus.SUCCESS),
        ])
        loaded = cache.load_transactions()
        assert loaded[0].id == LocalId("tmp-1")
        assert loaded[0].note == "tmp-1"
        assert loaded[1].id == RemoteId(42)
        assert loaded[1].status is TransactionStatus.SUCCESS
        assert loaded[1].date == NOW

    def test_save_replaces_whole_slot(self, cache):
        cache.save_transactions([make_txn("a"), make_txn("b")])
        cache.save_transactions([make_txn("c")])
        assert [str(t.id) for t in cache.load_transactions()] == ["c"]

    def test_empty_categories_are_not_defaulted(self, cache):
        cache.save_categories([])
        assert cache.load_categories() == []

    def test_profile(self, cache):
        cache.save_profile(UserProfile(name="Ravi", monthly_budget=2500.0))
        assert cache.load_profile().monthly_budget == 2500.0

    def test_recurring(self, cache):
        rule = RecurringTransaction(
            "Netflix", 649.0, "Other", RecurrenceFrequency.MONTHLY, NOW, id="9",
        )
        cache.save_recurring([rule])
        assert cache.load_recurring() == [rule]

    def test_session(self, cache):
        cache.save_session(Session(token="abc", username="asha"))
        assert cache.load_session() == Session(token="abc", username="asha")
        cache.clear_session()
        assert cache.load_session() is None


class TestCorruptSlots:
    def test_invalid_json_falls_back(self, cache):
        cache._write("transactions", [])
        cache.conn.execute("UPDATE cache_slots SET payload = '{oops' WHERE slot = 'transactions'")
        cache.conn.commit()
        assert cache.load_transactions() == []

    def test_undecodable_entries_fall_back(self, cache):
        cache._save("categories", [{"icon": "x"}])
        assert cache.load_categories() == default_categories()

    def test_non_list_slot_falls_back(self, cache):
        cache._save("recurring", {"not": "a list"})
        assert cache.load_recurring() == []


class TestSaveMany:
    def test_writes_all_slots(self, cache):
        cache.save_many(
            transactions=[make_txn("a")],
            categories=[UserCategory("Fuel", "fuelpump.fill")],
        )
        assert len(cache.load_transactions()) == 1
        assert [c.name for c in cache.load_categories()] == ["Fuel"]

    def test_failure_writes_nothing(self, cache):
        cache.save_transactions([make_txn("old")])
        original_write = cache._write

        def failing_write(slot, payload):
            if slot == "categories":
                raise RuntimeError("disk full")
            original_write(slot, payload)

        with patch.object(cache, "_write", side_effect=failing_write):
            with pytest.raises(RuntimeError, match="disk full"):
                cache.save_many(
                    transactions=[make_txn("new")],
                    categories=[UserCategory("Fuel", "fuelpump.fill")],
                )

        assert [str(t.id) for t in cache.load_transactions()] == ["old"]
        assert cache.load_categories() == default_categories()
