"""Shared test fixtures."""

from datetime import datetime
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from spendvolt.models import (
    AppDashboard,
    LocalId,
    RemoteId,
    Transaction,
    TransactionStatus,
    UserProfile,
    default_categories,
)
from spendvolt.storage.cache import CacheStore

# Test fixture config directory with synthetic data
FIXTURE_CONFIG_DIR = Path(__file__).parent / "fixtures" / "config"

# 2026-09-10 is day 10 of a 30-day month
NOW = datetime(2026, 9, 10, 12, 0, 0)


def fixed_clock():
    return NOW


def make_txn(
    txn_id="tmp-1",
    merchant="Cafe Coffee Day",
    amount=100.0,
    date=None,
    status=TransactionStatus.PENDING,
    category="Dining",
    note=None,
) -> Transaction:
    """Build a Transaction; string ids are local, ints are remote."""
    if isinstance(txn_id, int):
        ident = RemoteId(txn_id)
    else:
        ident = LocalId(txn_id)
    return Transaction(
        id=ident,
        merchant_name=merchant,
        amount=amount,
        date=date or NOW,
        status=status,
        category_name=category,
        note=note,
    )


def make_dashboard(transactions=(), categories=None, profile=None) -> AppDashboard:
    return AppDashboard(
        transactions=list(transactions),
        categories=categories if categories is not None else default_categories(),
        profile=profile or UserProfile(),
    )


@pytest.fixture
def cache():
    store = CacheStore.open(":memory:")
    yield store
    store.close()


@pytest.fixture
def mock_gateway():
    """Gateway double: every write returns an empty dashboard."""
    gateway = MagicMock()
    gateway.session = None
    empty = make_dashboard()
    for name in (
        "fetch_dashboard", "create_transaction", "delete_transaction",
        "update_transaction_status", "update_transaction_category",
        "update_profile", "create_category", "delete_category",
        "create_recurring", "delete_recurring",
    ):
        getattr(gateway, name).return_value = empty
    gateway.fetch_recurring.return_value = []
    return gateway
