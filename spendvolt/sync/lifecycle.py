"""Transaction lifecycle: pending → success | failure, plus delete.

Every operation validates first, then writes the cache, then commits to
the state store, and only then talks to the backend. A backend failure
is reported but never undoes a local transition.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from typing import Callable

from spendvolt.models import (
    OTHER_CATEGORY,
    AppDashboard,
    LocalId,
    RemoteId,
    Transaction,
    TransactionStatus,
    ValidationError,
    new_local_id,
    parse_amount,
)
from spendvolt.state import LIFECYCLE, StateStore

logger = logging.getLogger(__name__)


def _log_remote_error(exc: Exception) -> None:
    logger.warning("Backend push failed: %s", exc)


def _find_by_note(dashboard: AppDashboard, token: str) -> Transaction | None:
    for txn in dashboard.transactions:
        if txn.note == token and isinstance(txn.id, RemoteId):
            return txn
    return None


def _with_category(dashboard: AppDashboard, txn_id: RemoteId, category_name: str) -> AppDashboard:
    return replace(dashboard, transactions=[
        replace(t, category_name=category_name) if t.id == txn_id else t
        for t in dashboard.transactions
    ])


class TransactionLifecycleManager:
    """Owns status changes, inserts and deletes of individual transactions.

    Args:
        store: State store (writes as LIFECYCLE).
        cache: CacheStore; the transaction slot is saved synchronously.
        gateway: BackendGateway.
        dispatcher: Runs backend calls.
        launcher: PaymentLauncher used to hand off to the payment app.
        on_dashboard: Receives dashboards returned by backend writes.
        on_remote_error: Receives backend failures. Defaults to logging.
        clock: Returns "now"; injected for tests.
    """

    def __init__(
        self,
        store: StateStore,
        cache,
        gateway,
        dispatcher,
        launcher=None,
        on_dashboard: Callable[[AppDashboard], None] | None = None,
        on_remote_error: Callable[[Exception], None] | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.store = store
        self.cache = cache
        self.gateway = gateway
        self.dispatcher = dispatcher
        self.launcher = launcher
        self.on_dashboard = on_dashboard
        self.on_remote_error = on_remote_error or _log_remote_error
        self.clock = clock
        # Local tokens whose create call has not returned yet
        self._in_flight: set[str] = set()
        # In-flight tokens the user deleted before the create returned
        self._deleted: set[str] = set()
        # Tokens the backend acknowledged without echoing them back
        self._unmatched: set[str] = set()

    def reset(self) -> None:
        """Forget in-flight bookkeeping. Called on logout."""
        self._in_flight.clear()
        self._deleted.clear()
        self._unmatched.clear()

    # ── Helpers ─────────────────────────────────────────────

    def _publish(self, transactions: list[Transaction]) -> None:
        self.cache.save_transactions(transactions)
        self.store.commit(LIFECYCLE, transactions=transactions)

    def _require(self, txn_id) -> Transaction:
        txn = self.store.state.find_transaction(txn_id)
        if txn is None:
            raise ValidationError(f"Transaction {txn_id} was not found.")
        return txn

    def _replace(self, updated: Transaction) -> None:
        self._publish([
            updated if t.id == updated.id else t for t in self.store.state.transactions
        ])

    def _apply_dashboard(self, dashboard: AppDashboard) -> None:
        if self.on_dashboard is not None:
            self.on_dashboard(dashboard)

    # ── Backend pushes ──────────────────────────────────────

    def _push_create(self, txn: Transaction) -> None:
        token = txn.id.token
        self._in_flight.add(token)
        logger.debug("Pushing local transaction %s", token)
        self.dispatcher.submit(
            lambda: self.gateway.create_transaction(txn),
            on_success=lambda dashboard: self._on_created(token, dashboard),
            on_error=lambda exc: self._on_create_failed(token, exc),
            label=f"create transaction {token}",
        )

    def _on_created(self, token: str, dashboard: AppDashboard) -> None:
        self._in_flight.discard(token)
        server_txn = _find_by_note(dashboard, token)

        if token in self._deleted:
            # Deleted locally while the create was in flight
            self._deleted.discard(token)
            if server_txn is not None:
                logger.info("Deleting late-created transaction %s", server_txn.id)
                self._push_delete(server_txn.id)
            return

        if server_txn is None:
            self._unmatched.add(token)
            logger.warning(
                "Backend acknowledged transaction %s without echoing its note; "
                "it will not be pushed again",
                token,
            )
            self._apply_dashboard(dashboard)
            return

        # Recategorised locally while the create was in flight
        local = self.store.state.find_transaction(LocalId(token))
        if local is not None and local.category_name != server_txn.category_name:
            dashboard = _with_category(dashboard, server_txn.id, local.category_name)
            self._apply_dashboard(dashboard)
            self._push_category(server_txn.id, local.category_name)
            return

        self._apply_dashboard(dashboard)

    def _on_create_failed(self, token: str, exc: Exception) -> None:
        self._in_flight.discard(token)
        self._deleted.discard(token)
        self.on_remote_error(exc)

    def _push_status(self, txn_id: RemoteId, status: TransactionStatus) -> None:
        self.dispatcher.submit(
            lambda: self.gateway.update_transaction_status(txn_id, status),
            on_success=self._apply_dashboard,
            on_error=self.on_remote_error,
            label=f"status update {txn_id}",
        )

    def _push_delete(self, txn_id: RemoteId) -> None:
        self.dispatcher.submit(
            lambda: self.gateway.delete_transaction(txn_id),
            on_success=self._apply_dashboard,
            on_error=self.on_remote_error,
            label=f"delete transaction {txn_id}",
        )

    def _push_category(self, txn_id: RemoteId, category_name: str) -> None:
        self.dispatcher.submit(
            lambda: self.gateway.update_transaction_category(txn_id, category_name),
            on_success=self._apply_dashboard,
            on_error=self.on_remote_error,
            label=f"category update {txn_id}",
        )

    # ── Operations ──────────────────────────────────────────

    def initiate_payment(
        self,
        merchant_name: str,
        amount: float | str | None,
        category_name: str,
        raw_url: str,
        app: str,
        launch: bool = True,
    ) -> LocalId:
        """Record a pending payment and open the payment app.

        The pending record is persisted before the app is launched, so it
        survives a crash during hand-off. Returns the temporary id.
        """
        txn_id = new_local_id()
        txn = Transaction(
            id=txn_id,
            merchant_name=merchant_name,
            amount=parse_amount(amount),
            date=self.clock(),
            status=TransactionStatus.PENDING,
            category_name=category_name or OTHER_CATEGORY,
            note=txn_id.token,
        )
        self._publish([txn, *self.store.state.transactions])
        logger.info("Payment to %s initiated as %s", merchant_name, txn_id)

        if launch and self.launcher is not None:
            self.launcher.launch(raw_url, app)
        return txn_id

    def confirm_transaction(self, txn_id, final_amount: float | str | None = None) -> Transaction:
        amount = None
        if final_amount is not None:
            amount = parse_amount(final_amount)
            if amount <= 0:
                raise ValidationError("Please enter an amount greater than zero.")

        txn = self._require(txn_id)
        if txn.status is not TransactionStatus.PENDING:
            raise ValidationError("Only pending transactions can be confirmed.")
        if amount is None and txn.amount <= 0:
            raise ValidationError("Please enter the amount you paid.")

        confirmed = replace(
            txn,
            status=TransactionStatus.SUCCESS,
            amount=txn.amount if amount is None else amount,
        )
        self._replace(confirmed)
        logger.info("Transaction %s confirmed at %.2f", txn_id, confirmed.amount)

        if isinstance(confirmed.id, LocalId):
            self._push_create(confirmed)
        else:
            self._push_status(confirmed.id, TransactionStatus.SUCCESS)
        return confirmed

    def reject_transaction(self, txn_id) -> Transaction:
        txn = self._require(txn_id)
        if txn.status is not TransactionStatus.PENDING:
            raise ValidationError("Only pending transactions can be rejected.")

        rejected = replace(txn, status=TransactionStatus.FAILURE)
        self._replace(rejected)
        logger.info("Transaction %s marked failed", txn_id)

        if isinstance(rejected.id, RemoteId):
            self._push_status(rejected.id, TransactionStatus.FAILURE)
        return rejected

    def delete_transaction(self, txn_id) -> None:
        """Remove locally; remote delete is fire-and-forget."""
        txn = self._require(txn_id)
        self._publish([t for t in self.store.state.transactions if t.id != txn.id])
        logger.info("Transaction %s deleted", txn_id)

        if isinstance(txn.id, RemoteId):
            self._push_delete(txn.id)
        elif txn.id.token in self._in_flight:
            self._deleted.add(txn.id.token)

    def add_manual_transaction(
        self,
        merchant_name: str,
        amount: float | str,
        category_name: str = OTHER_CATEGORY,
        date: datetime | None = None,
    ) -> Transaction:
        """Record an already-completed payment and push it."""
        value = parse_amount(amount)
        if value <= 0:
            raise ValidationError("Please enter an amount greater than zero.")
        if not merchant_name or not merchant_name.strip():
            raise ValidationError("Please enter a merchant name.")

        txn_id = new_local_id()
        txn = Transaction(
            id=txn_id,
            merchant_name=merchant_name.strip(),
            amount=value,
            date=date or self.clock(),
            status=TransactionStatus.SUCCESS,
            category_name=category_name or OTHER_CATEGORY,
            note=txn_id.token,
        )
        self._publish([txn, *self.store.state.transactions])
        logger.info("Manual transaction %s added: %s %.2f", txn_id, txn.merchant_name, value)
        self._push_create(txn)
        return txn

    def update_transaction_category(self, txn_id, category_name: str) -> Transaction:
        if not category_name or not category_name.strip():
            raise ValidationError("Please choose a category.")
        txn = self._require(txn_id)
        updated = replace(txn, category_name=category_name.strip())
        self._replace(updated)

        if isinstance(updated.id, RemoteId):
            self._push_category(updated.id, updated.category_name)
        return updated

    def push_unsynced(self) -> int:
        """Re-push confirmed local-only transactions. Returns how many were sent.

        Transactions the backend already acknowledged without echoing the
        note are skipped, so a dropped note leaves one duplicate rather
        than one more per sync.
        """
        pushed = 0
        skipped = 0
        for txn in self.store.state.transactions:
            if not isinstance(txn.id, LocalId) or txn.status is not TransactionStatus.SUCCESS:
                continue
            if txn.id.token in self._in_flight:
                continue
            if txn.id.token in self._unmatched:
                skipped += 1
                continue
            self._push_create(txn)
            pushed += 1
        if skipped:
            logger.warning(
                "%d transaction(s) were created on the backend but never matched; not re-pushing",
                skipped,
            )
        if pushed:
            logger.info("Re-pushed %d unsynced transaction(s)", pushed)
        return pushed
