"""Tests for spendvolt.codec — wire and cache JSON conversion."""

from datetime import datetime

import pytest

from spendvolt.codec import (
    CodecError,
    dashboard_from_dict,
    format_date,
    parse_date,
    profile_from_dict,
    recurring_from_dict,
    transaction_from_dict,
    transaction_to_dict,
)
from spendvolt.models import (
    Currency,
    EnergyType,
    LocalId,
    RecurrenceFrequency,
    RemoteId,
    TransactionStatus,
)
from tests.conftest import make_txn


class TestDates:
    def test_format(self):
        assert format_date(datetime(2026, 9, 1, 8, 5, 0)) == "2026-09-01T08:05:00"

    def test_drops_fraction_and_zone(self):
        assert parse_date("2026-09-01T08:05:00.123Z") == datetime(2026, 9, 1, 8, 5, 0)
        assert parse_date("2026-09-01T08:05:00+05:30") == datetime(2026, 9, 1, 8, 5, 0)

    def test_date_only(self):
        assert parse_date("2026-09-01") == datetime(2026, 9, 1)

    def test_garbage_raises(self):
        with pytest.raises(CodecError, match="Invalid date"):
            parse_date("yesterday")


class TestTransactionCodec:
    def test_remote_payload(self):
        txn = transaction_from_dict({
            "id": 42, "merchantName": "Shell", "amount": "1200.5",
            "date": "2026-09-05T10:00:00", "status": "success",
            "categoryName": "Fuel", "note": "abc",
        })
        assert txn.id == RemoteId(42)
        assert txn.amount == 1200.5
        assert txn.status is TransactionStatus.SUCCESS
        assert txn.note == "abc"

    def test_missing_category_defaults_to_other(self):
        txn = transaction_from_dict({
            "id": 1, "merchantName": "X", "amount": 1,
            "date": "2026-09-05T10:00:00", "status": "PENDING",
        })
        assert txn.category_name == "Other"

    def test_non_numeric_remote_id_raises(self):
        with pytest.raises(CodecError, match="not numeric"):
            transaction_from_dict({
                "id": "tmp-1", "merchantName": "X", "amount": 1,
                "date": "2026-09-05T10:00:00", "status": "PENDING",
            })

    def test_unknown_status_raises(self):
        with pytest.raises(CodecError):
            transaction_from_dict({
                "id": 1, "merchantName": "X", "amount": 1,
                "date": "2026-09-05T10:00:00", "status": "REFUNDED",
            })

    def test_backend_payload_omits_local_id(self):
        data = transaction_to_dict(make_txn("tmp-1", note="tmp-1"))
        assert "id" not in data
        assert data["note"] == "tmp-1"
        assert data["status"] == "PENDING"

    def test_cache_payload_keeps_local_id(self):
        data = transaction_to_dict(make_txn("tmp-1"), for_cache=True)
        assert data["id"] == "tmp-1"
        assert data["localId"] is True
        assert transaction_from_dict(data).id == LocalId("tmp-1")


class TestProfileAndRecurring:
    def test_profile_defaults_for_missing_fields(self):
        profile = profile_from_dict({"monthlyBudget": 5000})
        assert profile.monthly_budget == 5000.0
        assert profile.currency is Currency.INR
        assert profile.budget_warning_threshold == 0.8

    def test_profile_currency_symbol_and_energy(self):
        profile = profile_from_dict({"currency": "$", "energyType": "Electric (EV)"})
        assert profile.currency is Currency.USD
        assert profile.energy_type is EnergyType.ELECTRIC

    def test_profile_bad_reset_day(self):
        with pytest.raises(CodecError, match="monthlyResetDay"):
            profile_from_dict({"monthlyResetDay": "first"})
        with pytest.raises(CodecError, match="monthlyResetDay"):
            profile_from_dict({"monthlyResetDay": None})

    def test_recurring_frequency_case_insensitive(self):
        rule = recurring_from_dict({
            "id": 7, "merchantName": "Netflix", "amount": 649,
            "frequency": "half_yearly", "nextDueDate": "2026-10-01",
        })
        assert rule.frequency is RecurrenceFrequency.HALF_YEARLY
        assert rule.id == "7"
        assert rule.is_active is True


class TestDashboard:
    def test_full_dashboard(self):
        dashboard = dashboard_from_dict({
            "transactions": [{
                "id": 1, "merchantName": "Shell", "amount": 500,
                "date": "2026-09-05T10:00:00", "status": "SUCCESS",
            }],
            "categories": [{"id": 3, "name": "Fuel", "icon": "fuelpump.fill"}],
            "profile": {"name": "Asha", "monthlyBudget": 8000},
            "recurringTransactions": [],
            "stats": {
                "totalSpentThisMonth": 500,
                "topThreeSpends": [],
                "dailyInsight": {"allowance": 290.0, "isOverPace": False, "paceDifference": 10},
            },
        })
        assert len(dashboard.transactions) == 1
        assert dashboard.categories[0].id == 3
        assert dashboard.profile.name == "Asha"
        assert dashboard.stats.total_spent_this_month == 500.0
        assert dashboard.stats.daily_insight.allowance == 290.0

    def test_missing_collections_are_empty(self):
        dashboard = dashboard_from_dict({})
        assert dashboard.transactions == []
        assert dashboard.recurring_transactions == []

    def test_non_object_raises(self):
        with pytest.raises(CodecError):
            dashboard_from_dict([1, 2])
