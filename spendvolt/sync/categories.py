"""Category management: add, delete with reassignment, bulk move."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Callable

from spendvolt.models import (
    FALLBACK_ICON,
    UNASSIGNED_CATEGORY,
    AppDashboard,
    RemoteId,
    Transaction,
    UserCategory,
    ValidationError,
)
from spendvolt.state import CATEGORIES, StateStore

logger = logging.getLogger(__name__)


def reassign(
    transactions, old_name: str, new_name: str
) -> tuple[list[Transaction], list[Transaction]]:
    """Return (all transactions, the ones that were moved) with ``old_name`` → ``new_name``.

    Only the category field changes.
    """
    result, moved = [], []
    for txn in transactions:
        if txn.category_name == old_name:
            txn = replace(txn, category_name=new_name)
            moved.append(txn)
        result.append(txn)
    return result, moved


class CategoryManager:
    """Owns the category list and category reassignment of transactions.

    Args:
        store: State store (writes as CATEGORIES).
        cache: CacheStore; reassignment and category removal are saved together.
        gateway: BackendGateway.
        dispatcher: Runs backend calls.
        on_dashboard: Receives dashboards returned by backend writes.
        on_remote_error: Receives backend failures.
    """

    def __init__(
        self,
        store: StateStore,
        cache,
        gateway,
        dispatcher,
        on_dashboard: Callable[[AppDashboard], None] | None = None,
        on_remote_error: Callable[[Exception], None] | None = None,
    ):
        self.store = store
        self.cache = cache
        self.gateway = gateway
        self.dispatcher = dispatcher
        self.on_dashboard = on_dashboard
        self.on_remote_error = on_remote_error

    def _find(self, name: str) -> UserCategory | None:
        for cat in self.store.state.categories:
            if cat.name.lower() == name.lower():
                return cat
        return None

    def _apply_dashboard(self, dashboard: AppDashboard | None) -> None:
        if dashboard is not None and self.on_dashboard is not None:
            self.on_dashboard(dashboard)

    def count_transactions(self, name: str) -> int:
        return sum(1 for t in self.store.state.transactions if t.category_name == name)

    def add_category(self, name: str, icon: str = FALLBACK_ICON) -> UserCategory:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Please enter a category name.")
        if self._find(name) is not None:
            raise ValidationError(f"A category named '{name}' already exists.")

        category = UserCategory(name=name, icon=icon or FALLBACK_ICON)
        categories = [*self.store.state.categories, category]
        self.cache.save_categories(categories)
        self.store.commit(CATEGORIES, categories=categories)
        logger.info("Category '%s' added", name)

        self.dispatcher.submit(
            lambda: self.gateway.create_category(category),
            on_success=self._apply_dashboard,
            on_error=self.on_remote_error,
            label=f"create category {name}",
        )
        return category

    def _push_reassignment(
        self, moved: list[Transaction], category_id: int | None = None
    ) -> None:
        """Send category updates, then the category delete, as one backend call.

        Only the dashboard from the last request is merged, so intermediate
        snapshots still listing the old category are never applied.
        """
        remote = [t for t in moved if isinstance(t.id, RemoteId)]
        if not remote and category_id is None:
            return

        def push() -> AppDashboard | None:
            dashboard = None
            for txn in remote:
                dashboard = self.gateway.update_transaction_category(txn.id, txn.category_name)
            if category_id is not None:
                dashboard = self.gateway.delete_category(category_id)
            return dashboard

        self.dispatcher.submit(
            push,
            on_success=self._apply_dashboard,
            on_error=self.on_remote_error,
            label="category reassignment",
        )

    def move_transactions(self, old_name: str, new_name: str) -> int:
        """Move every transaction in ``old_name`` to ``new_name``. Returns the count."""
        new_name = (new_name or "").strip()
        if not new_name:
            raise ValidationError("Please choose a category.")
        if old_name == new_name:
            return 0

        transactions, moved = reassign(self.store.state.transactions, old_name, new_name)
        if not moved:
            return 0
        self.cache.save_transactions(transactions)
        self.store.commit(CATEGORIES, transactions=transactions)
        logger.info("Moved %d transaction(s) from '%s' to '%s'", len(moved), old_name, new_name)

        self._push_reassignment(moved)
        return len(moved)

    def delete_category(self, name: str, replacement: str | None = None) -> int:
        """Delete a category, reassigning its transactions.

        Transactions move to ``replacement`` when given, otherwise to
        "Unassigned". The transaction and category slots are written in
        one cache transaction. Returns the number of reassigned
        transactions.

        Raises:
            ValidationError: If the category or the replacement does not
                exist, or the replacement is the category being deleted.
        """
        category = self._find(name)
        if category is None:
            raise ValidationError(f"Category '{name}' was not found.")

        if replacement is None:
            target = UNASSIGNED_CATEGORY
        else:
            replacement_cat = self._find(replacement)
            if replacement_cat is None:
                raise ValidationError(f"Category '{replacement}' was not found.")
            if replacement_cat.name == category.name:
                raise ValidationError("Choose a different category to move transactions to.")
            target = replacement_cat.name

        transactions, moved = reassign(self.store.state.transactions, category.name, target)
        categories = [c for c in self.store.state.categories if c.name != category.name]

        self.cache.save_many(transactions=transactions, categories=categories)
        self.store.commit(CATEGORIES, transactions=transactions, categories=categories)
        logger.info(
            "Category '%s' deleted, %d transaction(s) moved to '%s'",
            category.name, len(moved), target,
        )

        self._push_reassignment(moved, category.id)
        return len(moved)
