"""Publishes derived stats into the state store.

The only writer of the derived-stat fields. Reads transactions and the
profile budget from the current state, never mutates them.
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Callable

from spendvolt.analytics import engine
from spendvolt.analytics.engine import AnalysisPeriod, BudgetStatus
from spendvolt.models import CategorySpending
from spendvolt.state import ANALYTICS, StateChange, StateStore

logger = logging.getLogger(__name__)

# Fields whose change invalidates the derived stats
_INPUT_FIELDS = frozenset({"transactions", "profile"})


class AnalyticsManager:
    """Derived views over the current state.

    Args:
        store: State store to read from and publish stats into.
        clock: Returns "now"; injected for tests.
    """

    def __init__(self, store: StateStore, clock: Callable[[], datetime] = datetime.now):
        self.store = store
        self.clock = clock

    def _today(self) -> date:
        return self.clock().date()

    def refresh(self) -> None:
        state = self.store.state
        stats = engine.compute_stats(
            state.transactions, state.profile.monthly_budget, self._today(),
        )
        logger.debug(
            "Stats refreshed: %.2f spent this month", stats.total_spent_this_month,
        )
        self.store.commit(
            ANALYTICS,
            total_spent_this_month=stats.total_spent_this_month,
            top_three_spends=stats.top_three_spends,
            daily_insight=stats.daily_insight,
        )

    def on_state_change(self, change: StateChange) -> None:
        """Store listener: recompute when transactions or profile changed."""
        if change.writer != ANALYTICS and change.fields & _INPUT_FIELDS:
            self.refresh()

    def category_spending(self, period: AnalysisPeriod) -> list[CategorySpending]:
        state = self.store.state
        return engine.category_spending(
            state.transactions, state.categories, period, self.clock(),
        )

    def grouped_category_spending(self, period: AnalysisPeriod) -> list[CategorySpending]:
        return engine.group_spending(self.category_spending(period))

    def budget_status(self) -> BudgetStatus:
        state = self.store.state
        return engine.budget_status(state.total_spent_this_month, state.profile)
