"""SpendVolt application facade.

Wires the cache, gateway, dispatcher and managers around one StateStore
and exposes the operations a front end needs. Field ownership:

  - lifecycle manager: transaction status, inserts and deletes
  - sync engine: wholesale replacement of every collection
  - category manager: categories and category reassignment
  - profile manager: profile, login and logout
  - analytics manager: derived stats

Local validation failures are recorded in ``error_message`` and raised.
Backend failures are only recorded; UnauthorizedError logs out.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Callable

from spendvolt.analytics.engine import AnalysisPeriod, BudgetStatus
from spendvolt.analytics.manager import AnalyticsManager
from spendvolt.gateway.errors import NetworkError, UnauthorizedError
from spendvolt.models import (
    OTHER_CATEGORY,
    AppDashboard,
    CategorySpending,
    LocalId,
    RecurrenceFrequency,
    RecurringTransaction,
    Transaction,
    UserCategory,
    UserProfile,
    ValidationError,
    parse_transaction_id,
)
from spendvolt.parsers.launcher import PaymentLauncher
from spendvolt.parsers.upi import InvalidQRError, ScannedPayment, scan
from spendvolt.state import FACADE, AppState, StateChange, StateStore
from spendvolt.sync.categories import CategoryManager
from spendvolt.sync.dispatcher import InlineDispatcher
from spendvolt.sync.lifecycle import TransactionLifecycleManager
from spendvolt.sync.merge import SyncEngine
from spendvolt.sync.profile import ProfileManager

logger = logging.getLogger(__name__)


def _coerce_id(txn_id):
    if isinstance(txn_id, str):
        return parse_transaction_id(txn_id)
    return txn_id


class SpendVoltApp:
    """Single entry point over the SpendVolt managers.

    Args:
        cache: CacheStore with migrations applied.
        gateway: BackendGateway. If it has no session, the cached one is used.
        dispatcher: InlineDispatcher (default) or ThreadedDispatcher. With
            the threaded one, call process_results() from the owner thread.
        launcher: PaymentLauncher for payment-app hand-off.
        clock: Returns "now"; injected for tests.
        initial_dashboard: Applied instead of a sync on start.
        sync_on_start: Fetch the dashboard at construction when logged in.
    """

    def __init__(
        self,
        cache,
        gateway,
        dispatcher=None,
        launcher: PaymentLauncher | None = None,
        clock: Callable[[], datetime] = datetime.now,
        initial_dashboard: AppDashboard | None = None,
        sync_on_start: bool = True,
    ):
        self.cache = cache
        self.gateway = gateway
        self.dispatcher = dispatcher if dispatcher is not None else InlineDispatcher()
        self.launcher = launcher if launcher is not None else PaymentLauncher()

        if gateway.session is None:
            gateway.session = cache.load_session()

        self.store = StateStore(AppState(
            profile=cache.load_profile(),
            transactions=tuple(cache.load_transactions()),
            categories=tuple(cache.load_categories()),
            recurring_transactions=tuple(cache.load_recurring()),
            is_authenticated=gateway.session is not None,
        ))

        self.analytics = AnalyticsManager(self.store, clock=clock)
        self.store.subscribe(self.analytics.on_state_change)
        self.analytics.refresh()

        self.sync_engine = SyncEngine(
            self.store, cache, gateway, self.dispatcher,
            clock=clock,
            on_unauthorized=self.logout,
            on_synced=self._on_synced,
        )
        self.lifecycle = TransactionLifecycleManager(
            self.store, cache, gateway, self.dispatcher,
            launcher=self.launcher,
            on_dashboard=self.sync_engine.apply_dashboard,
            on_remote_error=self._on_remote_error,
            clock=clock,
        )
        self.category_manager = CategoryManager(
            self.store, cache, gateway, self.dispatcher,
            on_dashboard=self.sync_engine.apply_dashboard,
            on_remote_error=self._on_remote_error,
        )
        self.profile_manager = ProfileManager(
            self.store, cache, gateway, self.dispatcher,
            on_dashboard=self.sync_engine.apply_dashboard,
            on_remote_error=self._on_remote_error,
            on_login=self._on_login,
        )

        if initial_dashboard is not None:
            self.sync_engine.apply_dashboard(initial_dashboard)
        elif sync_on_start:
            self.sync_engine.sync_with_backend()

    # ── State ───────────────────────────────────────────────

    @property
    def state(self) -> AppState:
        return self.store.state

    def subscribe(self, listener: Callable[[StateChange], None]) -> Callable[[], None]:
        return self.store.subscribe(listener)

    @property
    def pending_transactions(self) -> list[Transaction]:
        return self.store.state.pending_transactions

    def clear_error(self) -> None:
        self.store.commit(FACADE, error_message=None)

    def process_results(self) -> int:
        """Apply finished backend calls. Call from the owner thread."""
        return self.dispatcher.drain()

    def wait(self, timeout: float | None = None) -> None:
        self.dispatcher.wait(timeout)

    def close(self) -> None:
        self.dispatcher.shutdown()
        self.cache.close()

    # ── Error reporting ─────────────────────────────────────

    def _on_remote_error(self, exc: Exception) -> None:
        if isinstance(exc, UnauthorizedError):
            logger.warning("Session expired, logging out")
            self.logout()
            return
        message = exc.message if isinstance(exc, NetworkError) else str(exc)
        logger.warning("Backend call failed: %s", message)
        self.store.commit(FACADE, error_message=message)

    @contextmanager
    def _user_action(self):
        try:
            yield
        except ValidationError as e:
            self.store.commit(FACADE, error_message=e.message)
            raise
        except InvalidQRError as e:
            self.store.commit(FACADE, error_message=str(e))
            raise

    def _on_synced(self) -> None:
        self.lifecycle.push_unsynced()

    def _on_login(self, dashboard: AppDashboard | None) -> None:
        if dashboard is not None:
            self.sync_engine.apply_dashboard(dashboard)
            self.lifecycle.push_unsynced()
        else:
            self.sync_engine.sync_with_backend()

    # ── Scanning and payments ───────────────────────────────

    def scan(self, raw: str) -> ScannedPayment:
        with self._user_action():
            return scan(raw)

    @property
    def supported_apps(self) -> list[str]:
        return self.launcher.supported_apps

    def initiate_payment(
        self,
        merchant_name: str,
        amount: float | str | None,
        category_name: str,
        raw_url: str,
        app: str | None = None,
        launch: bool = True,
    ) -> LocalId:
        app = app or self.store.state.profile.default_payment_app
        return self.lifecycle.initiate_payment(
            merchant_name, amount, category_name, raw_url, app, launch=launch,
        )

    def confirm_transaction(self, txn_id, final_amount: float | str | None = None) -> Transaction:
        with self._user_action():
            return self.lifecycle.confirm_transaction(_coerce_id(txn_id), final_amount)

    def reject_transaction(self, txn_id) -> Transaction:
        with self._user_action():
            return self.lifecycle.reject_transaction(_coerce_id(txn_id))

    def delete_transaction(self, txn_id) -> None:
        with self._user_action():
            self.lifecycle.delete_transaction(_coerce_id(txn_id))

    def add_manual_transaction(
        self,
        merchant_name: str,
        amount: float | str,
        category_name: str = OTHER_CATEGORY,
        date: datetime | None = None,
    ) -> Transaction:
        with self._user_action():
            return self.lifecycle.add_manual_transaction(merchant_name, amount, category_name, date)

    def update_transaction_category(self, txn_id, category_name: str) -> Transaction:
        with self._user_action():
            return self.lifecycle.update_transaction_category(_coerce_id(txn_id), category_name)

    # ── Categories ──────────────────────────────────────────

    def add_category(self, name: str, icon: str | None = None) -> UserCategory:
        with self._user_action():
            if icon:
                return self.category_manager.add_category(name, icon)
            return self.category_manager.add_category(name)

    def delete_category(self, name: str, replacement: str | None = None) -> int:
        with self._user_action():
            return self.category_manager.delete_category(name, replacement)

    def move_transactions(self, old_name: str, new_name: str) -> int:
        with self._user_action():
            return self.category_manager.move_transactions(old_name, new_name)

    def count_transactions(self, category_name: str) -> int:
        return self.category_manager.count_transactions(category_name)

    # ── Recurring rules ─────────────────────────────────────

    def fetch_recurring(self) -> None:
        self.sync_engine.fetch_recurring()

    def add_recurring(
        self,
        merchant_name: str,
        amount: float | str,
        category_name: str,
        frequency: RecurrenceFrequency,
        start_date: datetime,
    ) -> RecurringTransaction:
        with self._user_action():
            return self.sync_engine.add_recurring(
                merchant_name, amount, category_name, frequency, start_date,
            )

    def delete_recurring(self, rule_id: str) -> None:
        self.sync_engine.delete_recurring(rule_id)

    # ── Profile and session ─────────────────────────────────

    def save_profile(self, profile: UserProfile) -> None:
        with self._user_action():
            self.profile_manager.save_profile(profile)

    def login(self, username: str, password: str) -> None:
        with self._user_action():
            if not username or not password:
                raise ValidationError("Please enter your username and password.")
            self.profile_manager.login(username, password)

    def logout(self) -> None:
        self.profile_manager.logout()
        self.lifecycle.reset()

    def sync(self) -> bool:
        return self.sync_engine.sync_with_backend()

    def refresh_stats(self) -> None:
        self.sync_engine.refresh_stats()

    # ── Analytics ───────────────────────────────────────────

    def category_spending(self, period: AnalysisPeriod = AnalysisPeriod.MONTH) -> list[CategorySpending]:
        return self.analytics.category_spending(period)

    def grouped_category_spending(
        self, period: AnalysisPeriod = AnalysisPeriod.MONTH
    ) -> list[CategorySpending]:
        return self.analytics.grouped_category_spending(period)

    def budget_status(self) -> BudgetStatus:
        return self.analytics.budget_status()
