"""Sync engine: merge the backend dashboard with local-only transactions.

The backend snapshot is authoritative for everything it contains. Local
transactions the backend has not acknowledged yet survive the merge:

  - local id + PENDING:  the user has not confirmed yet, never sent
  - local id + SUCCESS:  confirmed but the push has not landed

A local transaction is acknowledged once some server transaction carries
its token in ``note``; from then on only the server copy (with its
numeric id) is kept. Everything else in the local list (remote ids, local
FAILURE records) is replaced by the snapshot.

The merged list is sorted newest first. Merging the same snapshot twice
gives the same list.
"""

from __future__ import annotations

import calendar
import logging
from datetime import date, datetime
from typing import Callable, Iterable

from spendvolt.gateway.errors import NetworkError, UnauthorizedError
from spendvolt.models import (
    AppDashboard,
    DateRange,
    LocalId,
    RecurrenceFrequency,
    RecurringTransaction,
    Transaction,
    TransactionStatus,
    ValidationError,
    parse_amount,
)
from spendvolt.state import SYNC, StateStore

logger = logging.getLogger(__name__)

_UNSYNCED_STATUSES = (TransactionStatus.PENDING, TransactionStatus.SUCCESS)


def current_period(today: date) -> DateRange:
    """Calendar-month boundaries containing ``today``."""
    last_day = calendar.monthrange(today.year, today.month)[1]
    return DateRange(
        start=datetime(today.year, today.month, 1),
        end=datetime(today.year, today.month, last_day, 23, 59, 59),
    )


def unsynced_local(
    local: Iterable[Transaction], server: Iterable[Transaction]
) -> list[Transaction]:
    """Local-only PENDING/SUCCESS transactions not yet echoed by the server."""
    acknowledged = {t.note for t in server if t.note}
    return [
        t for t in local
        if isinstance(t.id, LocalId)
        and t.status in _UNSYNCED_STATUSES
        and t.id.token not in acknowledged
    ]


def merge_transactions(
    local: Iterable[Transaction], server: Iterable[Transaction]
) -> list[Transaction]:
    server = list(server)
    merged = server + unsynced_local(local, server)
    # stable: equal timestamps keep server-then-local order
    merged.sort(key=lambda t: t.date, reverse=True)
    return merged


class SyncEngine:
    """Fetches the dashboard and replaces local lists with merged values.

    Args:
        store: State store (this engine writes as SYNC).
        cache: CacheStore for persisting the merged collections.
        gateway: BackendGateway.
        dispatcher: Runs backend calls; results arrive on the owner thread.
        clock: Returns "now"; injected for tests.
        on_unauthorized: Called when the backend rejects the session.
        on_synced: Called after a full dashboard fetch has been applied.
    """

    def __init__(
        self,
        store: StateStore,
        cache,
        gateway,
        dispatcher,
        clock: Callable[[], datetime] = datetime.now,
        on_unauthorized: Callable[[], None] | None = None,
        on_synced: Callable[[], None] | None = None,
    ):
        self.store = store
        self.cache = cache
        self.gateway = gateway
        self.dispatcher = dispatcher
        self.clock = clock
        self.on_unauthorized = on_unauthorized
        self.on_synced = on_synced

    # ── Dashboard ───────────────────────────────────────────

    def apply_dashboard(self, dashboard: AppDashboard) -> None:
        state = self.store.state
        merged = merge_transactions(state.transactions, dashboard.transactions)
        kept = len(merged) - len(dashboard.transactions)
        if kept:
            logger.info("Merge kept %d local-only transaction(s)", kept)

        self.cache.save_many(
            transactions=merged,
            categories=dashboard.categories,
            profile=dashboard.profile,
            recurring=dashboard.recurring_transactions,
        )
        self.store.commit(
            SYNC,
            transactions=merged,
            categories=dashboard.categories,
            profile=dashboard.profile,
            recurring_transactions=dashboard.recurring_transactions,
            is_authenticated=True,
            is_loading=False,
        )

    def _fetch_dashboard(self):
        period = current_period(self.clock().date())
        return self.gateway.fetch_dashboard(period.start, period.end)

    def _on_fetched(self, dashboard: AppDashboard) -> None:
        self.apply_dashboard(dashboard)
        if self.on_synced is not None:
            self.on_synced()

    def _on_sync_error(self, exc: Exception) -> None:
        if self.store.state.is_loading:
            self.store.commit(SYNC, is_loading=False)
        if isinstance(exc, UnauthorizedError):
            logger.warning("Session rejected during sync, logging out")
            if self.on_unauthorized is not None:
                self.on_unauthorized()
            return
        logger.warning("Dashboard sync failed: %s", exc)
        message = exc.message if isinstance(exc, NetworkError) else str(exc)
        self.store.commit(SYNC, error_message=message)

    def sync_with_backend(self) -> bool:
        """Fetch this month's dashboard and merge it. False if logged out."""
        if not self.store.state.is_authenticated:
            logger.debug("Not authenticated, skipping sync")
            return False
        self.store.commit(SYNC, is_loading=True)
        self.dispatcher.submit(
            self._fetch_dashboard,
            on_success=self._on_fetched,
            on_error=self._on_sync_error,
            label="dashboard sync",
        )
        self.fetch_recurring()
        return True

    def refresh_stats(self) -> None:
        """Quiet refresh: failures are logged, not shown to the user."""
        self.dispatcher.submit(
            self._fetch_dashboard,
            on_success=self.apply_dashboard,
            label="dashboard refresh",
        )

    # ── Recurring rules ─────────────────────────────────────

    def _set_recurring(self, recurring: list[RecurringTransaction]) -> None:
        self.cache.save_recurring(recurring)
        self.store.commit(SYNC, recurring_transactions=recurring)

    def _report(self, exc: Exception) -> None:
        if isinstance(exc, UnauthorizedError) and self.on_unauthorized is not None:
            self.on_unauthorized()
            return
        message = exc.message if isinstance(exc, NetworkError) else str(exc)
        self.store.commit(SYNC, error_message=message)

    def fetch_recurring(self) -> None:
        self.dispatcher.submit(
            self.gateway.fetch_recurring,
            on_success=self._set_recurring,
            label="fetch recurring",
        )

    def add_recurring(
        self,
        merchant_name: str,
        amount: float | str,
        category_name: str,
        frequency: RecurrenceFrequency,
        start_date: datetime,
    ) -> RecurringTransaction:
        value = parse_amount(amount)
        if value <= 0:
            raise ValidationError("Please enter an amount greater than zero.")
        if not merchant_name.strip():
            raise ValidationError("Please enter a name for the recurring payment.")

        rule = RecurringTransaction(
            merchant_name=merchant_name.strip(),
            amount=value,
            category_name=category_name,
            frequency=frequency,
            next_due_date=start_date,
        )
        self.dispatcher.submit(
            lambda: self.gateway.create_recurring(rule),
            on_success=self.apply_dashboard,
            on_error=self._report,
            label="create recurring",
        )
        return rule

    def delete_recurring(self, rule_id: str) -> None:
        self.dispatcher.submit(
            lambda: self.gateway.delete_recurring(rule_id),
            on_success=self.apply_dashboard,
            on_error=self._report,
            label="delete recurring",
        )
