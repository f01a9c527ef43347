"""JSON <-> model conversion for the backend wire format and the local cache.

Keys are camelCase. Dates travel as "YYYY-MM-DDTHH:MM:SS" with no zone;
fractional seconds and a trailing zone designator are dropped on decode.

Local ids only exist in the cache: they are written with "localId": true.
Payloads sent to the backend never include a local id; the token travels
in "note" so the merge engine can correlate the server copy.
"""

from __future__ import annotations

import re
from datetime import datetime

from spendvolt.models import (
    AppDashboard,
    Currency,
    DailyInsight,
    DashboardStats,
    EnergyType,
    LocalId,
    OTHER_CATEGORY,
    RecurrenceFrequency,
    RecurringTransaction,
    RemoteId,
    Transaction,
    TransactionStatus,
    UserCategory,
    UserProfile,
)

DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"

# Trailing ".123", "Z", "+05:30" etc. after the seconds field
_DATE_SUFFIX = re.compile(r"(\.\d+)?(Z|[+-]\d{2}:?\d{2})?$")


class CodecError(ValueError):
    """Raised when a payload cannot be turned into a model."""


def format_date(value: datetime) -> str:
    return value.strftime(DATE_FORMAT)


def parse_date(value: str) -> datetime:
    if not isinstance(value, str):
        raise CodecError(f"Expected date string, got {type(value).__name__}")
    text = _DATE_SUFFIX.sub("", value.strip(), count=1)
    if len(text) == 10:
        text += "T00:00:00"
    try:
        return datetime.strptime(text, DATE_FORMAT)
    except ValueError as e:
        raise CodecError(f"Invalid date: {value!r}") from e


def _require(data: dict, key: str):
    if not isinstance(data, dict):
        raise CodecError(f"Expected object, got {type(data).__name__}")
    if key not in data or data[key] is None:
        raise CodecError(f"Missing field: {key}")
    return data[key]


def _float(value, key: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise CodecError(f"Field {key} is not a number: {value!r}") from e


def _int(value, key: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise CodecError(f"Field {key} is not an integer: {value!r}") from e


# ── Transactions ──────────────────────────────────────────


def transaction_from_dict(data: dict) -> Transaction:
    raw_id = _require(data, "id")
    if data.get("localId"):
        txn_id = LocalId(str(raw_id))
    else:
        try:
            txn_id = RemoteId(int(raw_id))
        except (TypeError, ValueError) as e:
            raise CodecError(f"Remote transaction id is not numeric: {raw_id!r}") from e
    try:
        status = TransactionStatus.parse(_require(data, "status"))
    except ValueError as e:
        raise CodecError(str(e)) from e
    return Transaction(
        id=txn_id,
        merchant_name=_require(data, "merchantName"),
        amount=_float(_require(data, "amount"), "amount"),
        date=parse_date(_require(data, "date")),
        status=status,
        category_name=data.get("categoryName") or OTHER_CATEGORY,
        note=data.get("note"),
    )


def transaction_to_dict(txn: Transaction, for_cache: bool = False) -> dict:
    data: dict = {
        "merchantName": txn.merchant_name,
        "amount": txn.amount,
        "date": format_date(txn.date),
        "status": txn.status.value,
        "categoryName": txn.category_name,
        "note": txn.note,
    }
    if isinstance(txn.id, RemoteId):
        data["id"] = txn.id.value
    elif for_cache:
        data["id"] = txn.id.token
        data["localId"] = True
    return data


# ── Categories ────────────────────────────────────────────


def category_from_dict(data: dict) -> UserCategory:
    name = _require(data, "name")
    raw_id = data.get("id")
    try:
        cat_id = int(raw_id) if raw_id is not None else None
    except (TypeError, ValueError) as e:
        raise CodecError(f"Category id is not numeric: {raw_id!r}") from e
    return UserCategory(
        name=name,
        icon=data.get("icon") or "tag.fill",
        id=cat_id,
        type=data.get("type") or "EXPENSE",
    )


def category_to_dict(cat: UserCategory) -> dict:
    data = {"name": cat.name, "icon": cat.icon, "type": cat.type}
    if cat.id is not None:
        data["id"] = cat.id
    return data


# ── Recurring rules ───────────────────────────────────────


def recurring_from_dict(data: dict) -> RecurringTransaction:
    try:
        frequency = RecurrenceFrequency(str(_require(data, "frequency")).upper())
    except ValueError as e:
        raise CodecError(f"Unknown frequency: {data.get('frequency')!r}") from e
    raw_id = data.get("id")
    is_active = data.get("isActive")
    return RecurringTransaction(
        merchant_name=_require(data, "merchantName"),
        amount=_float(_require(data, "amount"), "amount"),
        category_name=data.get("categoryName") or OTHER_CATEGORY,
        frequency=frequency,
        next_due_date=parse_date(_require(data, "nextDueDate")),
        id=str(raw_id) if raw_id is not None else None,
        is_active=True if is_active is None else bool(is_active),
    )


def recurring_to_dict(rule: RecurringTransaction) -> dict:
    data = {
        "merchantName": rule.merchant_name,
        "amount": rule.amount,
        "categoryName": rule.category_name,
        "frequency": rule.frequency.value,
        "nextDueDate": format_date(rule.next_due_date),
        "isActive": rule.is_active,
    }
    if rule.id is not None:
        data["id"] = rule.id
    return data


# ── Profile ───────────────────────────────────────────────


def _energy_type(value) -> EnergyType:
    for member in EnergyType:
        if value in (member.value, member.name):
            return member
    return EnergyType.PETROL


def profile_from_dict(data: dict) -> UserProfile:
    if not isinstance(data, dict):
        raise CodecError(f"Expected object, got {type(data).__name__}")
    defaults = UserProfile()
    return UserProfile(
        name=data.get("name") or defaults.name,
        currency=Currency.parse(data.get("currency")),
        monthly_budget=_float(data.get("monthlyBudget", defaults.monthly_budget), "monthlyBudget"),
        energy_type=_energy_type(data.get("energyType")),
        default_payment_app=data.get("defaultPaymentApp") or defaults.default_payment_app,
        budget_warning_threshold=_float(
            data.get("budgetWarningThreshold", defaults.budget_warning_threshold),
            "budgetWarningThreshold",
        ),
        monthly_reset_day=_int(
            data.get("monthlyResetDay", defaults.monthly_reset_day), "monthlyResetDay"
        ),
    )


def profile_to_dict(profile: UserProfile) -> dict:
    return {
        "name": profile.name,
        "currency": profile.currency.name,
        "monthlyBudget": profile.monthly_budget,
        "energyType": profile.energy_type.value,
        "defaultPaymentApp": profile.default_payment_app,
        "budgetWarningThreshold": profile.budget_warning_threshold,
        "monthlyResetDay": profile.monthly_reset_day,
    }


# ── Dashboard ─────────────────────────────────────────────


def _stats_from_dict(data: dict | None) -> DashboardStats:
    if not data:
        return DashboardStats()
    insight = data.get("dailyInsight") or {}
    return DashboardStats(
        total_spent_this_month=_float(data.get("totalSpentThisMonth", 0), "totalSpentThisMonth"),
        top_three_spends=[transaction_from_dict(t) for t in data.get("topThreeSpends") or []],
        daily_insight=DailyInsight(
            allowance=_float(insight.get("allowance", 0), "allowance"),
            is_over_pace=bool(insight.get("isOverPace", False)),
            pace_difference=_float(insight.get("paceDifference", 0), "paceDifference"),
        ),
    )


def dashboard_from_dict(data: dict) -> AppDashboard:
    if not isinstance(data, dict):
        raise CodecError(f"Expected dashboard object, got {type(data).__name__}")
    return AppDashboard(
        transactions=[transaction_from_dict(t) for t in data.get("transactions") or []],
        categories=[category_from_dict(c) for c in data.get("categories") or []],
        profile=profile_from_dict(data.get("profile") or {}),
        recurring_transactions=[
            recurring_from_dict(r) for r in data.get("recurringTransactions") or []
        ],
        stats=_stats_from_dict(data.get("stats")),
    )
