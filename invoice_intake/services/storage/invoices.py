"""
In-memory invoice_income store (for demo and tests).
In production, use the SQLite store or a real database.
"""
from datetime import datetime, UTC
from typing import Dict, Optional

from ..exceptions import PersistenceError
from .invoice_repository_base import INVOICE_STATUSES, InvoiceRepositoryBase


class InMemoryInvoiceRepository(InvoiceRepositoryBase):
    def __init__(self):
        self._invoices: Dict[int, dict] = {}
        self._next_id = 1

    def _check(self, row: dict):
        if row.get("project_id") is None:
            raise PersistenceError("Error de base de datos: project_id no puede ser nulo")
        if row.get("status") not in INVOICE_STATUSES:
            raise PersistenceError(f"Error de base de datos: estado inválido '{row.get('status')}'")

    def insert(self, record: dict) -> dict:
        """Store a new invoice row and return it with its id"""
        now = datetime.now(UTC).isoformat()
        row = {
            "status": "pending",
            "is_processed": False,
            "processed_at": None,
            **record,
            "id": self._next_id,
            "created_at": now,
            "updated_at": now,
        }
        self._check(row)
        self._invoices[row["id"]] = row
        self._next_id += 1
        return dict(row)

    def get(self, invoice_id: int) -> Optional[dict]:
        row = self._invoices.get(invoice_id)
        return dict(row) if row else None

    def list_all(self, project_id: Optional[int] = None) -> list:
        rows = [
            dict(row) for row in self._invoices.values()
            if project_id is None or row["project_id"] == project_id
        ]
        return sorted(rows, key=lambda row: (row["created_at"], row["id"]), reverse=True)

    def update(self, invoice_id: int, updates: dict) -> Optional[dict]:
        if invoice_id not in self._invoices:
            return None
        row = {**self._invoices[invoice_id], **updates, "id": invoice_id}
        row["updated_at"] = datetime.now(UTC).isoformat()
        self._check(row)
        self._invoices[invoice_id] = row
        return dict(row)

    def delete(self, invoice_id: int) -> bool:
        return self._invoices.pop(invoice_id, None) is not None

    def clear(self):
        self._invoices.clear()
        self._next_id = 1
