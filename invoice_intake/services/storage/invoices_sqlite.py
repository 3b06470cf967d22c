"""
SQLite-based invoice_income store.

Provides persistent storage of processed invoices with SQL query capabilities.
"""

import json
import sqlite3
from datetime import datetime, UTC
from typing import Optional

from loguru import logger

from ..exceptions import PersistenceError
from .invoice_repository_base import InvoiceRepositoryBase

INVOICE_COLUMNS = (
    "project_id",
    "issuer_name",
    "issuer_rut",
    "issuer_address",
    "issuer_email",
    "client_name",
    "client_rut",
    "client_address",
    "client_city",
    "invoice_number",
    "issue_date",
    "description",
    "contract_number",
    "payment_method",
    "net_amount",
    "iva_percentage",
    "iva_amount",
    "additional_tax",
    "total_amount",
    "pdf_url",
    "raw_text",
    "parsed_data",
    "status",
    "is_processed",
    "processed_at",
)

SELECT_COLUMNS = ", ".join(("id",) + INVOICE_COLUMNS + ("created_at", "updated_at"))


class SQLiteInvoiceRepository(InvoiceRepositoryBase):
    """
    SQLite-backed invoice_income table.

    Features:
    - Persistent storage across application restarts
    - Status CHECK constraint matching the invoice workflow
    - parsed_data kept as JSON text for auditing
    """

    def __init__(self, db_path: str = "invoices.db"):
        """
        Initialize repository with database path.

        Args:
            db_path: Path to SQLite database file (default: invoices.db)
        """
        self.db_path = db_path
        self._init_database()

    def _init_database(self):
        """Create invoice_income table if it doesn't exist"""
        conn = sqlite3.connect(self.db_path)
        cursor = conn.cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS invoice_income (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                project_id INTEGER NOT NULL,
                issuer_name TEXT,
                issuer_rut TEXT,
                issuer_address TEXT,
                issuer_email TEXT,
                client_name TEXT,
                client_rut TEXT,
                client_address TEXT,
                client_city TEXT,
                invoice_number TEXT,
                issue_date TEXT,
                description TEXT,
                contract_number TEXT,
                payment_method TEXT,
                net_amount REAL NOT NULL DEFAULT 0,
                iva_percentage REAL NOT NULL DEFAULT 19.0,
                iva_amount REAL NOT NULL DEFAULT 0,
                additional_tax REAL NOT NULL DEFAULT 0,
                total_amount REAL NOT NULL DEFAULT 0,
                pdf_url TEXT,
                raw_text TEXT,
                parsed_data TEXT,
                status TEXT NOT NULL DEFAULT 'pending',
                is_processed INTEGER NOT NULL DEFAULT 0,
                processed_at TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                CHECK (status IN ('pending', 'processed', 'blocked'))
            )
        """)

        # Create indexes for common queries
        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_invoice_project
            ON invoice_income(project_id)
        """)

        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_invoice_status
            ON invoice_income(status)
        """)

        conn.commit()
        conn.close()

    def _get_connection(self) -> sqlite3.Connection:
        """Get database connection with row factory"""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    @staticmethod
    def _to_db(column: str, value):
        if column == "parsed_data":
            return json.dumps(value or {}, ensure_ascii=False)
        if column == "is_processed":
            return 1 if value else 0
        if isinstance(value, datetime):
            return value.isoformat()
        return value

    @staticmethod
    def _from_db(row: sqlite3.Row) -> dict:
        data = dict(row)
        data["parsed_data"] = json.loads(data["parsed_data"]) if data["parsed_data"] else {}
        data["is_processed"] = bool(data["is_processed"])
        return data

    def _write(self, sql: str, params: tuple) -> sqlite3.Cursor:
        conn = self._get_connection()
        try:
            cursor = conn.cursor()
            cursor.execute(sql, params)
            conn.commit()
            return cursor
        except sqlite3.Error as e:
            logger.error(f"invoice_income write failed: {e}")
            raise PersistenceError(f"Error de base de datos: {e}")
        finally:
            conn.close()

    def insert(self, record: dict) -> dict:
        """
        Insert one invoice row.

        Args:
            record: Column values; unknown keys are ignored

        Returns:
            The stored row
        """
        now = datetime.now(UTC).isoformat()
        values = {"status": "pending", "is_processed": False, **record}
        columns = [c for c in INVOICE_COLUMNS if c in values]

        cursor = self._write(
            f"""
            INSERT INTO invoice_income ({", ".join(columns)}, created_at, updated_at)
            VALUES ({", ".join("?" for _ in columns)}, ?, ?)
            """,
            tuple(self._to_db(c, values[c]) for c in columns) + (now, now),
        )
        return self.get(cursor.lastrowid)

    def get(self, invoice_id: int) -> Optional[dict]:
        """
        Get invoice row by id.

        Returns:
            Row dictionary or None if not found
        """
        conn = self._get_connection()
        cursor = conn.cursor()

        cursor.execute(f"""
            SELECT {SELECT_COLUMNS}
            FROM invoice_income
            WHERE id = ?
        """, (invoice_id,))

        row = cursor.fetchone()
        conn.close()

        if row is None:
            return None

        return self._from_db(row)

    def list_all(self, project_id: Optional[int] = None) -> list:
        """
        List invoice rows (ordered by creation time, newest first).

        Returns:
            List of row dictionaries
        """
        conn = self._get_connection()
        cursor = conn.cursor()

        if project_id is None:
            cursor.execute(f"""
                SELECT {SELECT_COLUMNS}
                FROM invoice_income
                ORDER BY created_at DESC, id DESC
            """)
        else:
            cursor.execute(f"""
                SELECT {SELECT_COLUMNS}
                FROM invoice_income
                WHERE project_id = ?
                ORDER BY created_at DESC, id DESC
            """, (project_id,))

        rows = cursor.fetchall()
        conn.close()

        return [self._from_db(row) for row in rows]

    def query_by_status(self, status: str, project_id: Optional[int] = None) -> list:
        """
        Query invoices by status.

        Args:
            status: One of 'pending', 'processed', 'blocked'
            project_id: Only rows of this project when given

        Returns:
            List of row dictionaries matching the status
        """
        conn = self._get_connection()
        cursor = conn.cursor()

        sql = f"SELECT {SELECT_COLUMNS} FROM invoice_income WHERE status = ?"
        params: tuple = (status,)
        if project_id is not None:
            sql += " AND project_id = ?"
            params += (project_id,)
        cursor.execute(sql + " ORDER BY created_at DESC, id DESC", params)

        rows = cursor.fetchall()
        conn.close()

        return [self._from_db(row) for row in rows]

    def update(self, invoice_id: int, updates: dict) -> Optional[dict]:
        """
        Apply a partial update.

        Returns:
            The updated row, or None if not found
        """
        columns = [c for c in INVOICE_COLUMNS if c in updates]
        if not columns:
            return self.get(invoice_id)

        assignments = ", ".join(f"{c} = ?" for c in columns)
        cursor = self._write(
            f"UPDATE invoice_income SET {assignments}, updated_at = ? WHERE id = ?",
            tuple(self._to_db(c, updates[c]) for c in columns)
            + (datetime.now(UTC).isoformat(), invoice_id),
        )
        if cursor.rowcount == 0:
            return None
        return self.get(invoice_id)

    def delete(self, invoice_id: int) -> bool:
        cursor = self._write("DELETE FROM invoice_income WHERE id = ?", (invoice_id,))
        return cursor.rowcount > 0
