"""Profile edits and the authentication session."""

from __future__ import annotations

import logging
from typing import Callable

from spendvolt.gateway.session import Session
from spendvolt.models import AppDashboard, UserProfile
from spendvolt.state import PROFILE, StateStore

logger = logging.getLogger(__name__)


class ProfileManager:
    """Owns the profile singleton and the login/logout transitions.

    Args:
        store: State store (writes as PROFILE).
        cache: CacheStore; holds the profile and the persisted Session.
        gateway: BackendGateway; its ``session`` is set on login and
            cleared on logout.
        dispatcher: Runs backend calls.
        on_dashboard: Receives dashboards returned by backend writes.
        on_remote_error: Receives backend failures.
        on_login: Called after a successful login with the dashboard the
            backend returned alongside the token, or None.
    """

    def __init__(
        self,
        store: StateStore,
        cache,
        gateway,
        dispatcher,
        on_dashboard: Callable[[AppDashboard], None] | None = None,
        on_remote_error: Callable[[Exception], None] | None = None,
        on_login: Callable[[AppDashboard | None], None] | None = None,
    ):
        self.store = store
        self.cache = cache
        self.gateway = gateway
        self.dispatcher = dispatcher
        self.on_dashboard = on_dashboard
        self.on_remote_error = on_remote_error
        self.on_login = on_login

    def _apply_dashboard(self, dashboard: AppDashboard) -> None:
        if self.on_dashboard is not None:
            self.on_dashboard(dashboard)

    def save_profile(self, profile: UserProfile) -> None:
        """Validate, persist and push the profile.

        Raises:
            ValidationError: If the budget, threshold or reset day is out
                of range. Nothing is saved in that case.
        """
        profile.validate()
        self.cache.save_profile(profile)
        self.store.commit(PROFILE, profile=profile)
        logger.info("Profile saved (budget %.2f %s)", profile.monthly_budget, profile.currency.name)

        self.dispatcher.submit(
            lambda: self.gateway.update_profile(profile),
            on_success=self._apply_dashboard,
            on_error=self.on_remote_error,
            label="update profile",
        )

    # ── Session ─────────────────────────────────────────────

    def login(self, username: str, password: str) -> None:
        """Authenticate in the background. Failures go to on_remote_error."""
        self.dispatcher.submit(
            lambda: self.gateway.login(username, password),
            on_success=self._on_logged_in,
            on_error=self.on_remote_error,
            label="login",
        )

    def _on_logged_in(self, result: tuple[Session, AppDashboard | None]) -> None:
        session, dashboard = result
        self.gateway.session = session
        self.cache.save_session(session)
        self.store.commit(PROFILE, is_authenticated=True, error_message=None)
        logger.info("Logged in as %s", session.username or "user")
        if self.on_login is not None:
            self.on_login(dashboard)

    def logout(self) -> None:
        """Clear the session and the cached transactions, reset categories."""
        self.dispatcher.discard_pending()
        categories = self.cache.default_categories()
        self.cache.clear_session()
        self.cache.save_many(transactions=[], categories=categories)
        self.gateway.session = None
        self.store.commit(
            PROFILE,
            is_authenticated=False,
            transactions=[],
            categories=categories,
        )
        logger.info("Logged out")
