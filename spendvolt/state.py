"""Observable application state with single-writer-per-field ownership.

AppState is an immutable-by-convention snapshot. StateStore.commit()
replaces it with a new snapshot and notifies subscribers. Each field has
a fixed set of writers, so a manual edit and an in-flight sync overwrite
can't trample each other's fields:

  - transactions: lifecycle (status/amount/insert/delete), categories
    (category reassignment), sync (wholesale merge), profile (logout)
  - categories:   categories, sync, profile (logout reset)
  - recurring:    sync
  - profile:      profile, sync
  - derived stats: analytics only
  - error_message: any writer

Transaction status may only change through the lifecycle manager or the
sync engine's wholesale replacement.

Commits must come from the thread that created the store.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field, fields, replace
from typing import Callable

from spendvolt.models import (
    DailyInsight,
    RecurringTransaction,
    Transaction,
    TransactionStatus,
    UserCategory,
    UserProfile,
)

logger = logging.getLogger(__name__)

LIFECYCLE = "lifecycle"
SYNC = "sync"
CATEGORIES = "categories"
PROFILE = "profile"
ANALYTICS = "analytics"
# User-facing error reporting from the app facade
FACADE = "facade"

ANY_WRITER = "*"

FIELD_WRITERS: dict[str, frozenset[str]] = {
    "transactions": frozenset({LIFECYCLE, SYNC, CATEGORIES, PROFILE}),
    "categories": frozenset({CATEGORIES, SYNC, PROFILE}),
    "recurring_transactions": frozenset({SYNC}),
    "profile": frozenset({PROFILE, SYNC}),
    "total_spent_this_month": frozenset({ANALYTICS}),
    "top_three_spends": frozenset({ANALYTICS}),
    "daily_insight": frozenset({ANALYTICS}),
    "is_authenticated": frozenset({SYNC, PROFILE}),
    "is_loading": frozenset({SYNC}),
    "error_message": frozenset({ANY_WRITER}),
}

_STATUS_WRITERS = frozenset({LIFECYCLE, SYNC})


class OwnershipError(RuntimeError):
    """Raised when a component writes a field it does not own."""


@dataclass(frozen=True)
class AppState:
    profile: UserProfile = field(default_factory=UserProfile)
    transactions: tuple[Transaction, ...] = ()
    categories: tuple[UserCategory, ...] = ()
    recurring_transactions: tuple[RecurringTransaction, ...] = ()
    total_spent_this_month: float = 0.0
    top_three_spends: tuple[Transaction, ...] = ()
    daily_insight: DailyInsight = field(default_factory=DailyInsight)
    is_authenticated: bool = False
    is_loading: bool = False
    error_message: str | None = None

    @property
    def pending_transactions(self) -> list[Transaction]:
        return [t for t in self.transactions if t.status is TransactionStatus.PENDING]

    def find_transaction(self, txn_id) -> Transaction | None:
        for txn in self.transactions:
            if txn.id == txn_id:
                return txn
        return None


_STATE_FIELDS = frozenset(f.name for f in fields(AppState))


@dataclass(frozen=True)
class StateChange:
    """Notification sent to subscribers after each commit."""
    writer: str
    fields: frozenset[str]
    state: AppState


Listener = Callable[[StateChange], None]


class StateStore:
    """Holds the current AppState and publishes every change."""

    def __init__(self, initial: AppState | None = None):
        self._state = initial or AppState()
        self._listeners: list[Listener] = []
        self._owner = threading.get_ident()

    @property
    def state(self) -> AppState:
        return self._state

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener. Returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _check_writer(self, writer: str, changes: dict) -> None:
        unknown = set(changes) - _STATE_FIELDS
        if unknown:
            raise ValueError(f"Unknown state fields: {sorted(unknown)}")
        for name in changes:
            allowed = FIELD_WRITERS[name]
            if ANY_WRITER not in allowed and writer not in allowed:
                raise OwnershipError(f"{writer!r} may not write {name!r}")

        if "transactions" in changes and writer not in _STATUS_WRITERS:
            before = {t.id: t.status for t in self._state.transactions}
            for txn in changes["transactions"]:
                if txn.id in before and before[txn.id] is not txn.status:
                    raise OwnershipError(
                        f"{writer!r} may not change the status of transaction {txn.id}"
                    )

    def commit(self, writer: str, **changes) -> AppState:
        if threading.get_ident() != self._owner:
            raise RuntimeError("State may only be changed from the owner thread")
        self._check_writer(writer, changes)

        for name in ("transactions", "categories", "recurring_transactions", "top_three_spends"):
            if name in changes:
                changes[name] = tuple(changes[name])

        self._state = replace(self._state, **changes)
        change = StateChange(writer=writer, fields=frozenset(changes), state=self._state)
        for listener in list(self._listeners):
            try:
                listener(change)
            except Exception:
                logger.exception("State listener raised")
        return self._state
