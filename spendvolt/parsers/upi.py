"""UPI deep-link parser: field extraction, payee resolution, classification.

A scanned UPI QR code is a URL of the form

    upi://pay?pa=merchant@bank&pn=Coffee+Shop&am=45.50&mc=5812

Classification:
  - merchant: merchant category code present and not "0000", or signed
    merchant parameters (orgid / sign) present
  - personal: valid payee address, no merchant signal
  - invalid:  not a upi://pay URL, or no payee address
"""

from __future__ import annotations

import enum
import logging
import re
from dataclasses import dataclass
from urllib.parse import unquote

from spendvolt.models import UNKNOWN_PAYEE

logger = logging.getLogger(__name__)

UPI_SCHEME = "upi://pay"

# Merchant category code meaning "unclassified" (personal VPA)
UNCLASSIFIED_MCC = "0000"

_HAS_PAYEE = re.compile(r"[?&]pa=")
_MCC_VALUE = re.compile(r"[?&]mc=([^&]+)")
_MERCHANT_SIGNATURE = re.compile(r"[?&](orgid|sign)=")
_PATH_VPA = re.compile(r"(?<=upi://pay/)[^?&;]+", re.IGNORECASE)
_TOKEN_SPLIT = re.compile(r"[?&;=/]")


class QRType(enum.Enum):
    MERCHANT = "merchant"
    PERSONAL = "personal"
    INVALID = "invalid"


class InvalidQRError(ValueError):
    """Raised when scanned content is not a usable UPI payment URL."""

    def __init__(self, raw: str):
        self.raw = raw
        super().__init__("This QR code is not a valid UPI payment code.")


@dataclass
class ScannedPayment:
    """Fields pulled from a scanned code, ready for the payment sheet."""
    raw_url: str
    qr_type: QRType
    payee_address: str
    payee_name: str
    amount: str | None = None


def validate_qr(url: str) -> QRType:
    cleaned = url.strip().lower()

    if not cleaned.startswith(UPI_SCHEME):
        return QRType.INVALID
    if not _HAS_PAYEE.search(cleaned):
        return QRType.INVALID

    mc_match = _MCC_VALUE.search(cleaned)
    mc_value = mc_match.group(1) if mc_match else None
    has_valid_mc = mc_value is not None and mc_value != UNCLASSIFIED_MCC
    has_signature = _MERCHANT_SIGNATURE.search(cleaned) is not None

    if has_valid_mc or has_signature:
        return QRType.MERCHANT
    return QRType.PERSONAL


def _decode(value: str) -> str:
    """Form-decode a query value: '+' is a space, then percent-decode."""
    return unquote(value.replace("+", " "))


def parse_field(url: str, key: str) -> str | None:
    """Return the decoded value of ``key`` in a UPI URL, or None.

    Keys match case-insensitively after any of ``? & ; =`` or at the start
    of the string. For the payee address ("pa") a path-style address
    (``upi://pay/someone@bank``) or a bare VPA string are accepted too.
    """
    cleaned = url.strip()
    key = key.lower()

    pattern = re.compile(rf"(?:[?&;=]|^){re.escape(key)}=([^&;?]+)", re.IGNORECASE)
    match = pattern.search(cleaned)
    if match:
        return _decode(match.group(1))

    if key == "pa":
        path_match = _PATH_VPA.search(cleaned)
        if path_match and "@" in path_match.group(0):
            return path_match.group(0)
        if "@" in cleaned and "=" not in cleaned and ":" not in cleaned:
            return cleaned

    return None


def best_payee_name(url: str) -> str:
    """Best display name for the payee. Never empty."""
    cleaned = unquote(url)

    name = parse_field(cleaned, "pn")
    if name and name.strip():
        return name.strip()

    address = parse_field(cleaned, "pa")
    if address and address.strip():
        return address.strip()

    for part in _TOKEN_SPLIT.split(cleaned):
        if "@" in part:
            return part

    residual = re.sub(re.escape(UPI_SCHEME), "", cleaned, flags=re.IGNORECASE)
    residual = residual.strip(" \t\r\n?&;=/:.,-")
    return residual or UNKNOWN_PAYEE


def scan(raw: str) -> ScannedPayment:
    """Parse scanned content into a payment intent.

    Raises:
        InvalidQRError: If the content is not a UPI payment URL with a
            payee address. The scanner should discard it and re-scan.
    """
    qr_type = validate_qr(raw)
    if qr_type is QRType.INVALID:
        logger.info("Rejected scanned code (not a UPI payment URL)")
        raise InvalidQRError(raw)

    return ScannedPayment(
        raw_url=raw.strip(),
        qr_type=qr_type,
        payee_address=parse_field(raw, "pa") or "",
        payee_name=best_payee_name(raw),
        amount=parse_field(raw, "am"),
    )
