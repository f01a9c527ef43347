"""Budget analytics: pure functions over a transaction list.

Nothing here touches the network, the cache or the state store. Only
SUCCESS transactions count as spend; pending and failed attempts never do.
"""

from __future__ import annotations

import calendar
import enum
from datetime import date, datetime, timedelta
from typing import Iterable

from spendvolt.models import (
    FALLBACK_ICON,
    OTHERS_GROUP,
    OTHERS_ICON,
    CategorySpending,
    DailyInsight,
    DashboardStats,
    Transaction,
    TransactionStatus,
    UserCategory,
    UserProfile,
)

# Groups shown before the remainder is folded into "Others"
MAX_DISPLAY_GROUPS = 5

TOP_SPENDS_LIMIT = 3


class AnalysisPeriod(enum.Enum):
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"


class BudgetStatus(enum.Enum):
    SAFE = "safe"
    WARNING = "warning"
    DANGER = "danger"


def _successful(transactions: Iterable[Transaction]) -> list[Transaction]:
    return [t for t in transactions if t.status is TransactionStatus.SUCCESS]


def _in_month(txn: Transaction, month: int, year: int) -> bool:
    return txn.date.month == month and txn.date.year == year


def shift_months(moment: datetime, months: int) -> datetime:
    """Move ``moment`` by whole calendar months, clamping the day."""
    index = moment.year * 12 + (moment.month - 1) + months
    year, month = divmod(index, 12)
    month += 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def period_start(period: AnalysisPeriod, now: datetime) -> datetime:
    if period is AnalysisPeriod.WEEK:
        return now - timedelta(days=7)
    if period is AnalysisPeriod.MONTH:
        return shift_months(now, -1)
    return shift_months(now, -12)


def monthly_total(transactions: Iterable[Transaction], month: int, year: int) -> float:
    return sum(
        t.amount for t in _successful(transactions) if _in_month(t, month, year)
    )


def top_spends(
    transactions: Iterable[Transaction], month: int, year: int, limit: int = TOP_SPENDS_LIMIT
) -> list[Transaction]:
    """Largest SUCCESS transactions in the month. Ties keep list order."""
    in_period = [t for t in _successful(transactions) if _in_month(t, month, year)]
    return sorted(in_period, key=lambda t: t.amount, reverse=True)[:limit]


def daily_insight(total_spent: float, budget: float, today: date | None = None) -> DailyInsight:
    """Safe-to-spend allowance and pace for the current calendar month.

    allowance spreads the remaining budget evenly over the days left,
    today included. Pace compares the month-to-date daily average with
    the budget's even daily rate.
    """
    today = today or date.today()
    total_days = calendar.monthrange(today.year, today.month)[1]
    current_day = today.day
    days_remaining = max(1, total_days - current_day + 1)

    daily_budget_rate = budget / total_days
    current_average_rate = total_spent / max(1, current_day)

    return DailyInsight(
        allowance=max(0.0, (budget - total_spent) / days_remaining),
        is_over_pace=current_average_rate > daily_budget_rate,
        pace_difference=abs(current_average_rate - daily_budget_rate),
    )


def category_spending(
    transactions: Iterable[Transaction],
    categories: Iterable[UserCategory],
    period: AnalysisPeriod,
    now: datetime | None = None,
) -> list[CategorySpending]:
    """Spend per category over the trailing period, largest first.

    Categories that no longer exist keep their name but get the generic
    tag icon. Returns [] when nothing was spent in the period.
    """
    now = now or datetime.now()
    start = period_start(period, now)

    in_period = [t for t in _successful(transactions) if start <= t.date <= now]
    total = sum(t.amount for t in in_period)
    if total <= 0:
        return []

    grouping: dict[str, float] = {}
    for txn in in_period:
        grouping[txn.category_name] = grouping.get(txn.category_name, 0.0) + txn.amount

    icons: dict[str, str] = {}
    for cat in categories:
        icons.setdefault(cat.name, cat.icon)

    result = [
        CategorySpending(
            category_name=name,
            total_amount=amount,
            percentage=amount / total * 100,
            icon=icons.get(name, FALLBACK_ICON),
        )
        for name, amount in grouping.items()
    ]
    result.sort(key=lambda s: s.total_amount, reverse=True)
    return result


def group_spending(
    spending: list[CategorySpending], max_groups: int = MAX_DISPLAY_GROUPS
) -> list[CategorySpending]:
    """Keep the top ``max_groups`` entries and fold the rest into "Others"."""
    if len(spending) <= max_groups:
        return list(spending)
    shown = list(spending[:max_groups])
    folded = spending[max_groups:]
    shown.append(CategorySpending(
        category_name=OTHERS_GROUP,
        total_amount=sum(s.total_amount for s in folded),
        percentage=sum(s.percentage for s in folded),
        icon=OTHERS_ICON,
    ))
    return shown


def grouped_category_spending(
    transactions: Iterable[Transaction],
    categories: Iterable[UserCategory],
    period: AnalysisPeriod,
    now: datetime | None = None,
) -> list[CategorySpending]:
    return group_spending(category_spending(transactions, categories, period, now))


def budget_status(total_spent: float, profile: UserProfile) -> BudgetStatus:
    """DANGER over budget, WARNING past the warning threshold, else SAFE."""
    if total_spent > profile.monthly_budget:
        return BudgetStatus.DANGER
    if total_spent > profile.budget_warning_threshold * profile.monthly_budget:
        return BudgetStatus.WARNING
    return BudgetStatus.SAFE


def compute_stats(
    transactions: Iterable[Transaction], budget: float, today: date | None = None
) -> DashboardStats:
    """Month-to-date total, top three spends and daily pace for ``today``."""
    today = today or date.today()
    transactions = list(transactions)
    total = monthly_total(transactions, today.month, today.year)
    return DashboardStats(
        total_spent_this_month=total,
        top_three_spends=top_spends(transactions, today.month, today.year),
        daily_insight=daily_insight(total, budget, today),
    )
