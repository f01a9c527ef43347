"""Backend gateway: typed operations against the SpendVolt REST API.

Every authenticated call carries the session's bearer token. Most
mutating calls return a refreshed AppDashboard, which callers hand to the
sync engine for merging.

The requests session is injected via constructor for testability: tests
pass a mock, production passes a real requests.Session.
"""

from __future__ import annotations

import logging
from datetime import datetime
from urllib.parse import quote, urlparse

import requests

from spendvolt.codec import (
    CodecError,
    category_from_dict,
    category_to_dict,
    dashboard_from_dict,
    format_date,
    profile_from_dict,
    profile_to_dict,
    recurring_from_dict,
    recurring_to_dict,
    transaction_to_dict,
)
from spendvolt.gateway.errors import (
    InvalidEndpointError,
    MalformedResponseError,
    NoResponseError,
    ServerError,
    UnauthorizedError,
    UnknownNetworkError,
    extract_message,
)
from spendvolt.gateway.session import Session
from spendvolt.models import (
    AppDashboard,
    RecurringTransaction,
    RemoteId,
    Transaction,
    TransactionStatus,
    UserCategory,
    UserProfile,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 15.0


class BackendGateway:
    """REST client for the dashboard/transactions/categories/profile API.

    Args:
        base_url: API root, e.g. "https://api.example.com/api".
        session: Authenticated Session, or None before login.
        http: requests.Session (or compatible) used for all calls.
        timeout: Per-request timeout in seconds.
    """

    def __init__(
        self,
        base_url: str,
        session: Session | None = None,
        http=None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.base_url = base_url.rstrip("/")
        self.session = session
        self.http = http if http is not None else requests.Session()
        self.timeout = timeout

    # ── Transport ───────────────────────────────────────────

    def _url(self, path: str) -> str:
        url = f"{self.base_url}{path}"
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise InvalidEndpointError(url)
        return url

    def _request(
        self,
        method: str,
        path: str,
        body=None,
        params: dict | None = None,
        authenticated: bool = True,
        default_error: str = "The server encountered an issue.",
    ):
        url = self._url(path)
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if authenticated and self.session is not None:
            headers["Authorization"] = self.session.authorization_header

        try:
            response = self.http.request(
                method, url, json=body, params=params,
                headers=headers, timeout=self.timeout,
            )
        except (requests.ConnectionError, requests.Timeout) as e:
            logger.warning("%s %s: no response (%s)", method, path, e)
            raise NoResponseError(str(e)) from e
        except requests.RequestException as e:
            logger.warning("%s %s failed: %s", method, path, e)
            raise UnknownNetworkError(str(e)) from e

        status = response.status_code
        if status == 401 and authenticated:
            logger.info("%s %s: unauthorized", method, path)
            raise UnauthorizedError()
        if not 200 <= status < 300:
            message = extract_message(response.content, default_error)
            logger.warning("%s %s: HTTP %d: %s", method, path, status, message)
            raise ServerError(message, status_code=status)

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            logger.error("%s %s: response is not JSON", method, path)
            raise MalformedResponseError(str(e)) from e

    def _decode(self, decode, data):
        if data is None:
            raise NoResponseError("empty response body")
        try:
            return decode(data)
        except (CodecError, TypeError, KeyError) as e:
            logger.error("Failed to decode response: %s", e)
            raise MalformedResponseError(str(e)) from e

    def _dashboard(self, data) -> AppDashboard:
        return self._decode(dashboard_from_dict, data)

    @staticmethod
    def _remote_id(txn_id) -> int:
        if isinstance(txn_id, RemoteId):
            return txn_id.value
        if isinstance(txn_id, int):
            return txn_id
        raise TypeError(f"Backend calls need a remote id, got {txn_id!r}")

    # ── Auth ────────────────────────────────────────────────

    def login(self, username: str, password: str) -> tuple[Session, AppDashboard | None]:
        """Exchange credentials for a Session (and optional first dashboard)."""
        data = self._request(
            "POST", "/public/auth/login",
            body={"username": username, "password": password},
            authenticated=False,
            default_error="Login failed. Please try again.",
        )
        if not isinstance(data, dict) or not data.get("accessToken"):
            raise MalformedResponseError("login response has no accessToken")
        session = Session(token=data["accessToken"], username=data.get("username", username))
        dashboard = None
        if data.get("dashboard"):
            dashboard = self._dashboard(data["dashboard"])
        self.session = session
        return session, dashboard

    def signup(self, first_name: str, last_name: str, email: str) -> str:
        """Register a new account. Returns the server's confirmation message."""
        data = self._request(
            "POST", "/public/auth/register",
            body={"firstName": first_name, "lastName": last_name, "email": email},
            authenticated=False,
            default_error="Registration failed.",
        )
        if isinstance(data, dict):
            return data.get("message", "")
        return ""

    # ── Dashboard ───────────────────────────────────────────

    def fetch_dashboard(
        self, start: datetime | None = None, end: datetime | None = None
    ) -> AppDashboard:
        params = {}
        if start is not None:
            params["startDate"] = format_date(start)
        if end is not None:
            params["endDate"] = format_date(end)
        return self._dashboard(self._request("GET", "/dashboard", params=params or None))

    # ── Transactions ────────────────────────────────────────

    def create_transaction(self, txn: Transaction) -> AppDashboard:
        return self._dashboard(
            self._request("POST", "/transactions", body=transaction_to_dict(txn))
        )

    def delete_transaction(self, txn_id: RemoteId | int) -> AppDashboard:
        return self._dashboard(
            self._request("DELETE", f"/transactions/{self._remote_id(txn_id)}")
        )

    def update_transaction_status(
        self, txn_id: RemoteId | int, status: TransactionStatus
    ) -> AppDashboard:
        return self._dashboard(self._request(
            "PATCH", f"/transactions/{self._remote_id(txn_id)}/status",
            params={"status": status.value},
        ))

    def update_transaction_category(
        self, txn_id: RemoteId | int, category_name: str
    ) -> AppDashboard:
        return self._dashboard(self._request(
            "PATCH", f"/transactions/{self._remote_id(txn_id)}/category",
            params={"categoryName": category_name},
        ))

    # ── Profile ─────────────────────────────────────────────

    def fetch_profile(self) -> UserProfile:
        return self._decode(profile_from_dict, self._request("GET", "/user/profile"))

    def update_profile(self, profile: UserProfile) -> AppDashboard:
        return self._dashboard(
            self._request("PUT", "/user/profile", body=profile_to_dict(profile))
        )

    # ── Categories ──────────────────────────────────────────

    def fetch_categories(self) -> list[UserCategory]:
        data = self._request("GET", "/categories")
        return self._decode(lambda d: [category_from_dict(c) for c in d], data)

    def create_category(self, category: UserCategory) -> AppDashboard:
        return self._dashboard(
            self._request("POST", "/categories", body=category_to_dict(category))
        )

    def delete_category(self, category_id: int) -> AppDashboard:
        return self._dashboard(self._request("DELETE", f"/categories/{category_id}"))

    # ── Recurring rules ─────────────────────────────────────

    def fetch_recurring(self) -> list[RecurringTransaction]:
        data = self._request("GET", "/recurring-transactions")
        return self._decode(lambda d: [recurring_from_dict(r) for r in d], data)

    def create_recurring(self, rule: RecurringTransaction) -> AppDashboard:
        return self._dashboard(
            self._request("POST", "/recurring-transactions", body=recurring_to_dict(rule))
        )

    def delete_recurring(self, rule_id: str) -> AppDashboard:
        return self._dashboard(
            self._request("DELETE", f"/recurring-transactions/{quote(str(rule_id), safe='')}")
        )
