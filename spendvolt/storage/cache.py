"""Local cache: whole-collection JSON blobs in SQLite.

Each slot (transactions, categories, profile, recurring, session) holds one
JSON document. Loads fall back to a default when the slot is missing or
unreadable; saves replace the whole slot. There are no partial updates.

Connection management mirrors the rest of the codebase: a single lazily
opened connection with WAL mode.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime
from pathlib import Path

from spendvolt.codec import (
    CodecError,
    category_from_dict,
    category_to_dict,
    profile_from_dict,
    profile_to_dict,
    recurring_from_dict,
    recurring_to_dict,
    transaction_from_dict,
    transaction_to_dict,
)
from spendvolt.gateway.session import Session
from spendvolt.models import (
    RecurringTransaction,
    Transaction,
    UserCategory,
    UserProfile,
    default_categories,
)

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).parent / "migrations"

SLOT_TRANSACTIONS = "transactions"
SLOT_CATEGORIES = "categories"
SLOT_PROFILE = "profile"
SLOT_RECURRING = "recurring"
SLOT_SESSION = "session"


class CacheStore:
    """Load/save of the locally cached collections.

    Args:
        db_path: SQLite path, ":memory:" for tests.
        default_categories: Returned when no categories are cached.
            Defaults to the built-in set.
        default_profile: Returned when no profile is cached.
    """

    def __init__(
        self,
        db_path: str = ":memory:",
        default_categories: list[UserCategory] | None = None,
        default_profile: UserProfile | None = None,
    ):
        self.db_path = db_path
        self._default_categories = default_categories
        self._default_profile = default_profile
        self._conn: sqlite3.Connection | None = None

    @classmethod
    def open(cls, db_path: str, **kwargs) -> CacheStore:
        """Create a store and bring its schema up to date."""
        store = cls(db_path, **kwargs)
        store.apply_migrations()
        return store

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode = WAL")
        return self._conn

    def close(self):
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    # ── Migrations ──────────────────────────────────────────

    def apply_migrations(self, migrations_dir: Path = MIGRATIONS_DIR):
        """Apply all pending SQL migrations in order.

        Each migration runs in a transaction: if the SQL fails, the
        schema_version row is not inserted, allowing retry on next startup.
        """
        self.conn.execute(
            "CREATE TABLE IF NOT EXISTS schema_version ("
            "  version INTEGER PRIMARY KEY,"
            "  description TEXT,"
            "  applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP"
            ")"
        )
        self.conn.commit()

        row = self.conn.execute(
            "SELECT MAX(version) FROM schema_version"
        ).fetchone()
        current = row[0] or 0

        for sql_file in sorted(migrations_dir.glob("*.sql")):
            version = int(sql_file.name.split("_")[0])
            if version > current:
                try:
                    self.conn.execute("BEGIN")
                    for statement in sql_file.read_text().split(";"):
                        lines = [
                            line for line in statement.splitlines()
                            if not line.strip().startswith("--")
                        ]
                        statement = "\n".join(lines).strip()
                        if statement:
                            self.conn.execute(statement)
                    self.conn.execute(
                        "INSERT INTO schema_version (version, description) VALUES (?, ?)",
                        (version, sql_file.stem),
                    )
                    self.conn.commit()
                    logger.debug("Applied cache migration %s", sql_file.name)
                except Exception:
                    self.conn.rollback()
                    raise

    # ── Raw slot access ─────────────────────────────────────

    def _read(self, slot: str):
        row = self.conn.execute(
            "SELECT payload FROM cache_slots WHERE slot = ?", (slot,)
        ).fetchone()
        if row is None:
            return None
        try:
            return json.loads(row["payload"])
        except json.JSONDecodeError:
            logger.warning("Cached %s slot is not valid JSON, ignoring it", slot)
            return None

    def _write(self, slot: str, payload) -> None:
        self.conn.execute(
            "INSERT INTO cache_slots (slot, payload, updated_at) VALUES (?, ?, ?)"
            " ON CONFLICT(slot) DO UPDATE SET"
            "  payload = excluded.payload, updated_at = excluded.updated_at",
            (slot, json.dumps(payload, ensure_ascii=False), datetime.now().isoformat()),
        )

    def _save(self, slot: str, payload) -> None:
        try:
            self._write(slot, payload)
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise

    def save_many(
        self,
        transactions: list[Transaction] | None = None,
        categories: list[UserCategory] | None = None,
        profile: UserProfile | None = None,
        recurring: list[RecurringTransaction] | None = None,
    ) -> None:
        """Write several slots atomically: either all are saved or none are."""
        try:
            self.conn.execute("BEGIN")
            if transactions is not None:
                self._write(SLOT_TRANSACTIONS, self._encode_transactions(transactions))
            if categories is not None:
                self._write(SLOT_CATEGORIES, [category_to_dict(c) for c in categories])
            if profile is not None:
                self._write(SLOT_PROFILE, profile_to_dict(profile))
            if recurring is not None:
                self._write(SLOT_RECURRING, [recurring_to_dict(r) for r in recurring])
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise

    def _decode_list(self, slot: str, decode) -> list | None:
        data = self._read(slot)
        if data is None:
            return None
        if not isinstance(data, list):
            logger.warning("Cached %s slot is not a list, ignoring it", slot)
            return None
        try:
            return [decode(item) for item in data]
        except CodecError as e:
            logger.warning("Cached %s slot is unreadable (%s), ignoring it", slot, e)
            return None

    # ── Transactions ────────────────────────────────────────

    @staticmethod
    def _encode_transactions(transactions: list[Transaction]) -> list[dict]:
        return [transaction_to_dict(t, for_cache=True) for t in transactions]

    def load_transactions(self) -> list[Transaction]:
        return self._decode_list(SLOT_TRANSACTIONS, transaction_from_dict) or []

    def save_transactions(self, transactions: list[Transaction]) -> None:
        self._save(SLOT_TRANSACTIONS, self._encode_transactions(transactions))

    # ── Categories ──────────────────────────────────────────

    def default_categories(self) -> list[UserCategory]:
        if self._default_categories is not None:
            return [UserCategory(c.name, c.icon, c.id, c.type) for c in self._default_categories]
        return default_categories()

    def load_categories(self) -> list[UserCategory]:
        categories = self._decode_list(SLOT_CATEGORIES, category_from_dict)
        if categories is None:
            return self.default_categories()
        return categories

    def save_categories(self, categories: list[UserCategory]) -> None:
        self._save(SLOT_CATEGORIES, [category_to_dict(c) for c in categories])

    # ── Profile ─────────────────────────────────────────────

    def default_profile(self) -> UserProfile:
        if self._default_profile is not None:
            return profile_from_dict(profile_to_dict(self._default_profile))
        return UserProfile()

    def load_profile(self) -> UserProfile:
        data = self._read(SLOT_PROFILE)
        if data is None:
            return self.default_profile()
        try:
            return profile_from_dict(data)
        except (CodecError, ValueError) as e:
            logger.warning("Cached profile is unreadable (%s), using default", e)
            return self.default_profile()

    def save_profile(self, profile: UserProfile) -> None:
        self._save(SLOT_PROFILE, profile_to_dict(profile))

    # ── Recurring rules ─────────────────────────────────────

    def load_recurring(self) -> list[RecurringTransaction]:
        return self._decode_list(SLOT_RECURRING, recurring_from_dict) or []

    def save_recurring(self, recurring: list[RecurringTransaction]) -> None:
        self._save(SLOT_RECURRING, [recurring_to_dict(r) for r in recurring])

    # ── Session ─────────────────────────────────────────────

    def load_session(self) -> Session | None:
        data = self._read(SLOT_SESSION)
        if not isinstance(data, dict) or not data.get("token"):
            return None
        return Session(token=data["token"], username=data.get("username", ""))

    def save_session(self, session: Session) -> None:
        self._save(SLOT_SESSION, {"token": session.token, "username": session.username})

    def clear_session(self) -> None:
        self.conn.execute("DELETE FROM cache_slots WHERE slot = ?", (SLOT_SESSION,))
        self.conn.commit()
