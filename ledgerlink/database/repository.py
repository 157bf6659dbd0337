"""SQLite storage for imported transactions and account balances.

Rows map to the dataclasses in models.py. One lazily opened connection per
Repository; every write method commits before returning.
"""

from __future__ import annotations

import sqlite3
from pathlib import Path

from .models import AccountBalance, Transaction, new_id

MIGRATIONS_DIR = Path(__file__).parent / "migrations"

_PRAGMAS = ("PRAGMA foreign_keys = ON", "PRAGMA journal_mode = WAL")

_TXN_COLUMNS = (
    "id", "user_id", "title", "subtitle", "display_name", "amount", "kind",
    "date", "category_id", "currency", "account", "exclude_from_analytics",
    "is_analytics_protected", "matched_transfer_id", "source",
    "import_batch_id", "status", "created_at",
)


def _split_statements(sql_text: str) -> list[str]:
    """Split a migration file on ';'. Migrations must not use ';' elsewhere."""
    return [s.strip() for s in sql_text.split(";") if s.strip()]


def _pending_migrations(migrations_dir: Path, applied: int) -> list[tuple[int, Path]]:
    """(version, path) for NNN_name.sql files newer than applied, in order."""
    found = [(int(p.name.split("_", 1)[0]), p) for p in migrations_dir.glob("*.sql")]
    return sorted((v, p) for v, p in found if v > applied)


class Repository:
    def __init__(self, db_path: str = ":memory:"):
        self.db_path = db_path
        self._conn: sqlite3.Connection | None = None

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            conn = sqlite3.connect(self.db_path, check_same_thread=False)
            conn.row_factory = sqlite3.Row
            for pragma in _PRAGMAS:
                conn.execute(pragma)
            self._conn = conn
        return self._conn

    def close(self):
        if self._conn is None:
            return
        self._conn.close()
        self._conn = None

    # ── Migrations ──────────────────────────────────────────

    def _schema_version(self) -> int:
        self.conn.execute(
            "CREATE TABLE IF NOT EXISTS schema_version ("
            "  version INTEGER PRIMARY KEY,"
            "  description TEXT,"
            "  applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP"
            ")"
        )
        self.conn.commit()
        (version,) = self.conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
        return version or 0

    def apply_migrations(self, migrations_dir: Path | None = None) -> int:
        """Bring the schema up to date. Returns the number of files applied.

        A file and its schema_version row commit together, so a failed
        migration leaves the version unchanged.
        """
        pending = _pending_migrations(migrations_dir or MIGRATIONS_DIR, self._schema_version())
        for version, sql_file in pending:
            try:
                self.conn.execute("BEGIN")
                for statement in _split_statements(sql_file.read_text()):
                    self.conn.execute(statement)
                self.conn.execute(
                    "INSERT INTO schema_version (version, description) VALUES (?, ?)",
                    (version, sql_file.stem),
                )
                self.conn.commit()
            except sqlite3.Error:
                self.conn.rollback()
                raise
        return len(pending)

    # ── Transactions ────────────────────────────────────────

    def insert_transactions_batch(self, txns: list[Transaction]) -> list[Transaction]:
        """Insert in one commit. Records without an id get one assigned."""
        for txn in txns:
            if txn.id is None:
                txn.id = new_id()
        placeholders = ", ".join("?" for _ in _TXN_COLUMNS)
        self.conn.executemany(
            f"INSERT INTO transactions ({', '.join(_TXN_COLUMNS)}) VALUES ({placeholders})",
            [self._transaction_to_row(t) for t in txns],
        )
        self.conn.commit()
        return txns

    def get_transaction(self, txn_id: str) -> Transaction | None:
        row = self.conn.execute(
            "SELECT * FROM transactions WHERE id = ?", (txn_id,)
        ).fetchone()
        return self._row_to_transaction(row) if row else None

    def get_transactions_for_user(
        self, user_id: str, status: str | None = None,
    ) -> list[Transaction]:
        sql = "SELECT * FROM transactions WHERE user_id = ?"
        params: list = [user_id]
        if status:
            sql += " AND status = ?"
            params.append(status)
        sql += " ORDER BY date, created_at, rowid"
        rows = self.conn.execute(sql, params).fetchall()
        return [self._row_to_transaction(r) for r in rows]

    def get_transactions_by_batch(self, user_id: str, batch_id: str) -> list[Transaction]:
        rows = self.conn.execute(
            "SELECT * FROM transactions WHERE user_id = ? AND import_batch_id = ?"
            " ORDER BY rowid",
            (user_id, batch_id),
        ).fetchall()
        return [self._row_to_transaction(r) for r in rows]

    _TXN_UPDATE_COLS = frozenset({
        "category_id", "exclude_from_analytics", "is_analytics_protected",
        "matched_transfer_id", "display_name", "account", "status",
    })

    def update_transaction(self, txn_id: str, **fields) -> bool:
        """Partial update. Returns False if no row has this id."""
        # Reject unknown column names to prevent silent bugs
        unknown = set(fields) - self._TXN_UPDATE_COLS
        if unknown:
            raise ValueError(f"Unknown columns for update_transaction: {unknown}")
        if not fields:
            return self.get_transaction(txn_id) is not None

        sets = [f"{col} = ?" for col in fields] + ["updated_at = CURRENT_TIMESTAMP"]
        vals = [int(v) if isinstance(v, bool) else v for v in fields.values()]
        vals.append(txn_id)
        cur = self.conn.execute(
            f"UPDATE transactions SET {', '.join(sets)} WHERE id = ?", vals,
        )
        self.conn.commit()
        return cur.rowcount > 0

    def delete_transactions_by_batch(self, user_id: str, batch_id: str) -> int:
        cur = self.conn.execute(
            "DELETE FROM transactions WHERE user_id = ? AND import_batch_id = ?",
            (user_id, batch_id),
        )
        self.conn.commit()
        return cur.rowcount

    # ── Balances ────────────────────────────────────────────

    def get_account_balances(self, user_id: str) -> list[AccountBalance]:
        rows = self.conn.execute(
            "SELECT * FROM account_balances WHERE user_id = ? ORDER BY account",
            (user_id,),
        ).fetchall()
        return [self._row_to_balance(r) for r in rows]

    def upsert_account_balance(self, bal: AccountBalance) -> AccountBalance:
        self.conn.execute(
            "INSERT INTO account_balances (user_id, account, balance, currency, updated_at)"
            " VALUES (?, ?, ?, ?, ?)"
            " ON CONFLICT(user_id, account) DO UPDATE SET"
            " balance = excluded.balance, currency = excluded.currency,"
            " updated_at = excluded.updated_at",
            (bal.user_id, bal.account, bal.balance, bal.currency, bal.updated_at),
        )
        self.conn.commit()
        return bal

    def snapshot_balances(self, user_id: str, batch_id: str) -> int:
        """Copy the user's current balances under batch_id. Returns rows copied."""
        self.conn.execute(
            "DELETE FROM balance_snapshots WHERE user_id = ? AND batch_id = ?",
            (user_id, batch_id),
        )
        cur = self.conn.execute(
            "INSERT INTO balance_snapshots"
            " (user_id, batch_id, account, balance, currency, updated_at)"
            " SELECT user_id, ?, account, balance, currency, updated_at"
            " FROM account_balances WHERE user_id = ?",
            (batch_id, user_id),
        )
        self.conn.commit()
        return cur.rowcount

    def restore_balances_snapshot(self, user_id: str, batch_id: str) -> int:
        """Replace the user's balances with the batch snapshot, then drop it."""
        try:
            self.conn.execute("BEGIN")
            self.conn.execute(
                "DELETE FROM account_balances WHERE user_id = ?", (user_id,),
            )
            cur = self.conn.execute(
                "INSERT INTO account_balances (user_id, account, balance, currency, updated_at)"
                " SELECT user_id, account, balance, currency, updated_at"
                " FROM balance_snapshots WHERE user_id = ? AND batch_id = ?",
                (user_id, batch_id),
            )
            restored = cur.rowcount
            self.conn.execute(
                "DELETE FROM balance_snapshots WHERE user_id = ? AND batch_id = ?",
                (user_id, batch_id),
            )
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        return restored

    # ── Row mapping ─────────────────────────────────────────

    @staticmethod
    def _transaction_to_row(txn: Transaction) -> tuple:
        return (
            txn.id, txn.user_id, txn.title, txn.subtitle, txn.display_name,
            txn.amount, txn.kind, txn.date, txn.category_id, txn.currency,
            txn.account, int(txn.exclude_from_analytics),
            int(txn.is_analytics_protected), txn.matched_transfer_id,
            txn.source, txn.import_batch_id, txn.status, txn.created_at,
        )

    @staticmethod
    def _row_to_transaction(row: sqlite3.Row) -> Transaction:
        return Transaction(
            id=row["id"], user_id=row["user_id"],
            title=row["title"], subtitle=row["subtitle"],
            display_name=row["display_name"],
            amount=row["amount"], kind=row["kind"], date=row["date"],
            category_id=row["category_id"], currency=row["currency"],
            account=row["account"],
            exclude_from_analytics=bool(row["exclude_from_analytics"]),
            is_analytics_protected=bool(row["is_analytics_protected"]),
            matched_transfer_id=row["matched_transfer_id"],
            source=row["source"], import_batch_id=row["import_batch_id"],
            status=row["status"], created_at=row["created_at"],
        )

    @staticmethod
    def _row_to_balance(row: sqlite3.Row) -> AccountBalance:
        return AccountBalance(
            user_id=row["user_id"], account=row["account"],
            balance=row["balance"], currency=row["currency"],
            updated_at=row["updated_at"],
        )
