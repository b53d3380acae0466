import sqlite3
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, List, Optional

from ...domain.exceptions import LedgerQueryError, PlanNotFoundError, SubscriptionNotFoundError
from ...domain.models import Account, Plan, Subscription
from ...domain.ports.persistence import PersistenceGateway


class SQLitePersistence(PersistenceGateway):
    """SQLite-backed implementation of the persistence gateway."""

    def __init__(self, path: Path) -> None:
        if str(path) != ":memory:":
            path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self._initialize()

    def _initialize(self) -> None:
        with self._conn:
            self._conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS accounts (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    email TEXT NOT NULL UNIQUE,
                    stripe_customer_id TEXT,
                    additional_units_bought INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS subscriptions (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    account_id INTEGER NOT NULL,
                    stripe_subscription_id TEXT NOT NULL UNIQUE,
                    plan_id TEXT NOT NULL,
                    previous_plan_id TEXT,
                    quantity INTEGER NOT NULL DEFAULT 1,
                    trial_ends_at TEXT,
                    ends_at TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    FOREIGN KEY(account_id) REFERENCES accounts(id) ON DELETE CASCADE
                );

                CREATE INDEX IF NOT EXISTS idx_subscriptions_account_id
                    ON subscriptions(account_id);

                CREATE TABLE IF NOT EXISTS plans (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    units_per_cycle INTEGER NOT NULL
                );

                CREATE TABLE IF NOT EXISTS usage_records (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    account_id INTEGER NOT NULL,
                    units INTEGER NOT NULL,
                    recorded_at TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_usage_records_account_recorded
                    ON usage_records(account_id, recorded_at);

                CREATE TABLE IF NOT EXISTS cycle_cache (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    expires_at TEXT
                );
                """
            )

    def close(self) -> None:
        self._conn.close()

    # AccountRepository API --------------------------------------------------
    def create_account(
        self,
        email: str,
        stripe_customer_id: Optional[str] = None,
        additional_units_bought: int = 0,
    ) -> Account:
        now = self._format(self._now())
        with self._lock, self._conn:
            cur = self._conn.execute(
                """
                INSERT INTO accounts (email, stripe_customer_id, additional_units_bought, created_at)
                VALUES (?, ?, ?, ?)
                """,
                (email.lower(), stripe_customer_id, additional_units_bought, now),
            )
            account_id = cur.lastrowid
            cur = self._conn.execute("SELECT * FROM accounts WHERE id = ?", (account_id,))
            row = cur.fetchone()
        if not row:
            raise RuntimeError("Failed to persist account.")
        return self._row_to_account(row)

    def get_account(self, account_id: int) -> Optional[Account]:
        with self._lock:
            cur = self._conn.execute("SELECT * FROM accounts WHERE id = ?", (account_id,))
            row = cur.fetchone()
        return self._row_to_account(row) if row else None

    def set_additional_units_bought(self, account_id: int, units: int) -> Account:
        with self._lock, self._conn:
            self._conn.execute(
                "UPDATE accounts SET additional_units_bought = ? WHERE id = ?",
                (units, account_id),
            )
            cur = self._conn.execute("SELECT * FROM accounts WHERE id = ?", (account_id,))
            row = cur.fetchone()
        if not row:
            raise SubscriptionNotFoundError(f"Account {account_id} not found")
        return self._row_to_account(row)

    # SubscriptionRepository API ---------------------------------------------
    def create_subscription(
        self,
        subscriber_id: int,
        provider_id: str,
        plan_id: str,
        quantity: int = 1,
        trial_ends_at: Optional[datetime] = None,
    ) -> Subscription:
        now = self._format(self._now())
        with self._lock, self._conn:
            cur = self._conn.execute(
                """
                INSERT INTO subscriptions (
                    account_id, stripe_subscription_id, plan_id, quantity,
                    trial_ends_at, created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    subscriber_id,
                    provider_id,
                    plan_id,
                    quantity,
                    self._format(trial_ends_at),
                    now,
                    now,
                ),
            )
            subscription_id = cur.lastrowid
            cur = self._conn.execute("SELECT * FROM subscriptions WHERE id = ?", (subscription_id,))
            row = cur.fetchone()
        if not row:
            raise RuntimeError("Failed to persist subscription.")
        return self._row_to_subscription(row)

    def get_subscription(self, subscription_id: int) -> Optional[Subscription]:
        with self._lock:
            cur = self._conn.execute("SELECT * FROM subscriptions WHERE id = ?", (subscription_id,))
            row = cur.fetchone()
        return self._row_to_subscription(row) if row else None

    def get_current_subscription(self, subscriber_id: int) -> Optional[Subscription]:
        with self._lock:
            cur = self._conn.execute(
                """
                SELECT * FROM subscriptions
                WHERE account_id = ?
                ORDER BY created_at DESC, id DESC
                LIMIT 1
                """,
                (subscriber_id,),
            )
            row = cur.fetchone()
        return self._row_to_subscription(row) if row else None

    def save_subscription(self, subscription: Subscription) -> Subscription:
        with self._lock, self._conn:
            cur = self._conn.execute(
                """
                UPDATE subscriptions
                SET plan_id = ?, previous_plan_id = ?, quantity = ?,
                    trial_ends_at = ?, ends_at = ?, updated_at = ?
                WHERE id = ?
                """,
                (
                    subscription.plan_id,
                    subscription.previous_plan_id,
                    subscription.quantity,
                    self._format(subscription.trial_ends_at),
                    self._format(subscription.ends_at),
                    self._format(subscription.updated_at),
                    subscription.id,
                ),
            )
            if cur.rowcount == 0:
                raise SubscriptionNotFoundError(f"Subscription {subscription.id} not found")
        return subscription

    # PlanCatalog API ----------------------------------------------------------
    def lookup(self, plan_id: str) -> Plan:
        with self._lock:
            cur = self._conn.execute("SELECT * FROM plans WHERE id = ?", (plan_id,))
            row = cur.fetchone()
        if not row:
            raise PlanNotFoundError(plan_id)
        return Plan(id=row["id"], name=row["name"], units_per_cycle=row["units_per_cycle"])

    def upsert_plan(self, plan: Plan) -> Plan:
        with self._lock, self._conn:
            self._conn.execute(
                "INSERT INTO plans (id, name, units_per_cycle) VALUES (?, ?, ?) "
                "ON CONFLICT(id) DO UPDATE SET name = excluded.name, "
                "units_per_cycle = excluded.units_per_cycle",
                (plan.id, plan.name, plan.units_per_cycle),
            )
        return plan

    # UsageLedger API ----------------------------------------------------------
    def record_usage(self, account_id: int, units: int, recorded_at: Optional[datetime] = None) -> None:
        with self._lock, self._conn:
            self._conn.execute(
                "INSERT INTO usage_records (account_id, units, recorded_at) VALUES (?, ?, ?)",
                (account_id, units, self._format(recorded_at or self._now())),
            )

    def sum_units(self, account_id: int, start: datetime, end: Optional[datetime]) -> int:
        query = "SELECT SUM(units) AS units FROM usage_records WHERE account_id = ? AND recorded_at >= ?"
        params: List[Any] = [account_id, self._format(start)]
        if end is not None:
            query += " AND recorded_at < ?"
            params.append(self._format(end))
        try:
            with self._lock:
                cur = self._conn.execute(query, params)
                row = cur.fetchone()
        except sqlite3.Error as exc:
            raise LedgerQueryError(f"Usage sum failed for account {account_id}: {exc}") from exc
        return row["units"] or 0

    # CycleCache API -----------------------------------------------------------
    def get(self, key: str) -> Optional[datetime]:
        with self._lock:
            cur = self._conn.execute("SELECT value, expires_at FROM cycle_cache WHERE key = ?", (key,))
            row = cur.fetchone()
        if not row:
            return None
        if row["expires_at"] and self._parse_datetime(row["expires_at"]) <= self._now():
            self.forget(key)
            return None
        return self._parse_datetime(row["value"])

    def put(self, key: str, value: datetime, ttl: Optional[timedelta] = None) -> None:
        expires_at = self._format(self._now() + ttl) if ttl is not None else None
        with self._lock, self._conn:
            self._conn.execute(
                "INSERT INTO cycle_cache (key, value, expires_at) VALUES (?, ?, ?) "
                "ON CONFLICT(key) DO UPDATE SET value = excluded.value, expires_at = excluded.expires_at",
                (key, self._format(value), expires_at),
            )

    def forget(self, key: str) -> None:
        with self._lock, self._conn:
            self._conn.execute("DELETE FROM cycle_cache WHERE key = ?", (key,))

    # Helpers ----------------------------------------------------------------
    @staticmethod
    def _now() -> datetime:
        return datetime.now(timezone.utc).replace(microsecond=0)

    @staticmethod
    def _format(value: Optional[datetime]) -> Optional[str]:
        # Stored as UTC so lexicographic comparison in SQL matches time order.
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc).isoformat()

    @staticmethod
    def _parse_datetime(value: str) -> datetime:
        try:
            result = datetime.fromisoformat(value)
        except ValueError:
            # Fallback for legacy formats without 'T'
            result = datetime.strptime(value, "%Y-%m-%d %H:%M:%S")
        if result.tzinfo is None:
            return result.replace(tzinfo=timezone.utc)
        return result.astimezone(timezone.utc)

    def _row_to_account(self, row: sqlite3.Row) -> Account:
        return Account(
            id=row["id"],
            email=row["email"],
            stripe_customer_id=row["stripe_customer_id"],
            additional_units_bought=row["additional_units_bought"],
            created_at=self._parse_datetime(row["created_at"]),
        )

    def _row_to_subscription(self, row: sqlite3.Row) -> Subscription:
        return Subscription(
            id=row["id"],
            subscriber_id=row["account_id"],
            provider_id=row["stripe_subscription_id"],
            plan_id=row["plan_id"],
            previous_plan_id=row["previous_plan_id"],
            quantity=row["quantity"],
            trial_ends_at=self._parse_datetime(row["trial_ends_at"]) if row["trial_ends_at"] else None,
            ends_at=self._parse_datetime(row["ends_at"]) if row["ends_at"] else None,
            created_at=self._parse_datetime(row["created_at"]),
            updated_at=self._parse_datetime(row["updated_at"]),
        )
