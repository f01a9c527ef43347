"""Payment-app launcher: rewrite a UPI URL for a specific app and open it.

Each supported app has a handler that swaps the ``upi://pay`` scheme for
the app's own deep-link scheme. The URL opener is injected so tests (and
headless runs) can capture the URL instead of opening it.

Launching is fire-and-forget. Whether money actually moved is only ever
learned from the user's later confirm/reject.
"""

from __future__ import annotations

import logging
import webbrowser
from dataclasses import dataclass
from urllib.parse import unquote

from spendvolt.parsers.upi import UPI_SCHEME, parse_field

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PaymentAppHandler:
    app_name: str
    scheme: str  # replacement for "upi://pay"

    def transform(self, upi_url: str) -> str:
        if upi_url.lower().startswith(UPI_SCHEME):
            return self.scheme + upi_url[len(UPI_SCHEME):]
        return upi_url


GOOGLE_PAY = PaymentAppHandler("Google Pay", "tez://upi/pay")
PHONEPE = PaymentAppHandler("PhonePe", "phonepe://pay")
PAYTM = PaymentAppHandler("Paytm", "paytmmp://pay")

DEFAULT_HANDLERS = (GOOGLE_PAY, PHONEPE, PAYTM)


def normalize_upi_url(url: str) -> str:
    """Trim whitespace, undo percent-encoding of the whole string, lower-case the scheme."""
    cleaned = unquote(url.strip())
    if cleaned.lower().startswith(UPI_SCHEME):
        cleaned = UPI_SCHEME + cleaned[len(UPI_SCHEME):]
    return cleaned


class PaymentLauncher:
    """Opens the chosen payment app for a scanned UPI URL.

    Args:
        opener: Callable taking a URL string. Defaults to webbrowser.open,
            which hands custom schemes to the platform's URL handler.
        handlers: Known apps. Unknown app names fall back to the
            plain upi:// URL so the OS can pick an app.
        apps: Names of the apps to offer, in display order (the
            ``payment_apps`` setting). None offers every known app.
    """

    def __init__(self, opener=None, handlers=DEFAULT_HANDLERS, apps=None):
        self.opener = opener or webbrowser.open
        known = {h.app_name: h for h in handlers}
        if apps is None:
            self.handlers = known
        else:
            self.handlers = {}
            for name in apps:
                if name in known:
                    self.handlers[name] = known[name]
                else:
                    logger.warning("No handler for payment app '%s', ignoring it", name)

    @property
    def supported_apps(self) -> list[str]:
        return list(self.handlers)

    def build_url(self, url: str, app: str) -> str | None:
        normalized = normalize_upi_url(url)
        if not parse_field(normalized, "pa"):
            return None
        handler = self.handlers.get(app)
        if handler is None:
            logger.warning("Unknown payment app '%s', using generic UPI scheme", app)
            return normalized
        return handler.transform(normalized)

    def launch(self, url: str, app: str) -> None:
        target = self.build_url(url, app)
        if target is None:
            logger.warning("Not launching %s: no payee address in URL", app)
            return
        logger.info("Launching %s", app)
        try:
            self.opener(target)
        except Exception:
            logger.exception("Failed to open payment app %s", app)
