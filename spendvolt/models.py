"""Dataclass models for transactions, categories, recurring rules and profile.

Transaction identity is a tagged union: a LocalId is allocated on the
device before the backend has seen the transaction, a RemoteId is the
numeric id the backend assigned. The local token doubles as the
correlation note sent to the backend.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import date, datetime
from uuid import uuid4

OTHER_CATEGORY = "Other"
UNASSIGNED_CATEGORY = "Unassigned"
OTHERS_GROUP = "Others"
FALLBACK_ICON = "tag.fill"
OTHERS_ICON = "ellipsis.circle.fill"
UNKNOWN_PAYEE = "Unknown Payee"


class ValidationError(Exception):
    """Raised when user input is rejected before any state is touched."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


# ── Identifiers ───────────────────────────────────────────


@dataclass(frozen=True)
class LocalId:
    token: str

    def __str__(self) -> str:
        return self.token


@dataclass(frozen=True)
class RemoteId:
    value: int

    def __str__(self) -> str:
        return str(self.value)


TransactionId = LocalId | RemoteId


def new_local_id() -> LocalId:
    return LocalId(str(uuid4()))


def parse_transaction_id(text: str) -> TransactionId:
    """Interpret user-supplied id text: all digits is remote, else local."""
    text = text.strip()
    if text.isdigit():
        return RemoteId(int(text))
    return LocalId(text)


def parse_amount(value: float | int | str | None) -> float:
    """Parse an amount the way the entry forms do: garbage becomes 0.0."""
    if value is None:
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(value.strip().replace(",", ""))
    except ValueError:
        return 0.0


# ── Transactions ──────────────────────────────────────────


class TransactionStatus(enum.Enum):
    PENDING = "PENDING"
    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"

    @classmethod
    def parse(cls, value: str) -> TransactionStatus:
        try:
            return cls(value.upper())
        except ValueError:
            raise ValueError(f"Unknown transaction status: {value!r}") from None


@dataclass
class Transaction:
    id: TransactionId
    merchant_name: str
    amount: float
    date: datetime
    status: TransactionStatus
    category_name: str = OTHER_CATEGORY
    note: str | None = None

    @property
    def is_local(self) -> bool:
        return isinstance(self.id, LocalId)


# ── Categories ────────────────────────────────────────────


@dataclass
class UserCategory:
    name: str
    icon: str
    id: int | None = None
    type: str = "EXPENSE"


DEFAULT_CATEGORIES: tuple[tuple[str, str], ...] = (
    ("Fuel", "fuelpump.fill"),
    ("Grocery", "cart.fill"),
    ("Rent", "house.fill"),
    ("Electricity", "bolt.fill"),
    ("Dining", "fork.knife"),
    (OTHER_CATEGORY, "bag.fill"),
)


def default_categories() -> list[UserCategory]:
    return [UserCategory(name=name, icon=icon) for name, icon in DEFAULT_CATEGORIES]


# ── Recurring rules ───────────────────────────────────────


class RecurrenceFrequency(enum.Enum):
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    QUARTERLY = "QUARTERLY"
    HALF_YEARLY = "HALF_YEARLY"
    YEARLY = "YEARLY"

    @property
    def display_name(self) -> str:
        return self.value.replace("_", " ").title()


@dataclass
class RecurringTransaction:
    merchant_name: str
    amount: float
    category_name: str
    frequency: RecurrenceFrequency
    next_due_date: datetime
    id: str | None = None
    is_active: bool = True


# ── Profile ───────────────────────────────────────────────


class Currency(enum.Enum):
    INR = "₹"
    USD = "$"
    EUR = "€"
    GBP = "£"

    @property
    def symbol(self) -> str:
        return self.value

    @classmethod
    def parse(cls, value: str | None) -> Currency:
        """Accept either the ISO code or the symbol; anything else is INR."""
        for member in cls:
            if value in (member.name, member.value):
                return member
        return cls.INR


class EnergyType(enum.Enum):
    PETROL = "Petrol"
    DIESEL = "Diesel"
    ELECTRIC = "Electric (EV)"
    GAS = "Natural Gas"

    @property
    def icon(self) -> str:
        if self is EnergyType.ELECTRIC:
            return "bolt.car.fill"
        if self is EnergyType.GAS:
            return "flame.fill"
        return "fuelpump.fill"


@dataclass
class UserProfile:
    name: str = "User"
    currency: Currency = Currency.INR
    monthly_budget: float = 10000.0
    energy_type: EnergyType = EnergyType.PETROL
    default_payment_app: str = "Google Pay"
    budget_warning_threshold: float = 0.8
    monthly_reset_day: int = 1

    def validate(self) -> None:
        if self.monthly_budget <= 0:
            raise ValidationError("Monthly budget must be greater than zero.")
        if not 0.0 <= self.budget_warning_threshold <= 1.0:
            raise ValidationError("Budget warning threshold must be between 0 and 1.")
        if not 1 <= self.monthly_reset_day <= 31:
            raise ValidationError("Monthly reset day must be between 1 and 31.")


# ── Derived / aggregate ───────────────────────────────────


@dataclass
class DailyInsight:
    allowance: float = 0.0
    is_over_pace: bool = False
    pace_difference: float = 0.0


@dataclass
class DashboardStats:
    total_spent_this_month: float = 0.0
    top_three_spends: list[Transaction] = field(default_factory=list)
    daily_insight: DailyInsight = field(default_factory=DailyInsight)


@dataclass
class AppDashboard:
    """Authoritative snapshot returned by most backend calls."""
    transactions: list[Transaction]
    categories: list[UserCategory]
    profile: UserProfile
    recurring_transactions: list[RecurringTransaction] = field(default_factory=list)
    stats: DashboardStats = field(default_factory=DashboardStats)


@dataclass
class CategorySpending:
    category_name: str
    total_amount: float
    percentage: float
    icon: str


@dataclass
class DateRange:
    start: datetime
    end: datetime

    def contains(self, moment: datetime | date) -> bool:
        if not isinstance(moment, datetime):
            moment = datetime(moment.year, moment.month, moment.day)
        return self.start <= moment <= self.end
