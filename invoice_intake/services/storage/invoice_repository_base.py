"""
Abstract base class for invoice_income repositories.

Defines the interface that all invoice stores must implement,
enabling dependency injection and easy swapping of storage backends.
"""

from abc import ABC, abstractmethod
from typing import Optional

INVOICE_STATUSES = ("pending", "processed", "blocked")


class InvoiceRepositoryBase(ABC):
    """
    Abstract base class for the invoice_income table.

    Implementations can use:
    - In-memory storage (for testing/demo)
    - SQLite (for single-instance deployments)
    - PostgreSQL / Supabase (for production)
    """

    @abstractmethod
    def insert(self, record: dict) -> dict:
        """
        Insert one invoice row.

        Args:
            record: Column values (NormalizedInvoiceRecord.model_dump())

        Returns:
            The stored row including id, created_at and updated_at

        Raises:
            PersistenceError: if the row violates a constraint
        """
        pass

    @abstractmethod
    def get(self, invoice_id: int) -> Optional[dict]:
        """
        Get one invoice row by id.

        Returns:
            Row dictionary, or None if not found
        """
        pass

    @abstractmethod
    def list_all(self, project_id: Optional[int] = None) -> list:
        """
        List invoice rows, newest first.

        Args:
            project_id: Only rows of this project when given
        """
        pass

    @abstractmethod
    def update(self, invoice_id: int, updates: dict) -> Optional[dict]:
        """
        Apply a partial update.

        Returns:
            The updated row, or None if not found

        Raises:
            PersistenceError: if the update violates a constraint
        """
        pass

    @abstractmethod
    def delete(self, invoice_id: int) -> bool:
        """
        Delete one row.

        Returns:
            True if a row was deleted, False if not found
        """
        pass

    def query_by_status(self, status: str, project_id: Optional[int] = None) -> list:
        """Rows with the given status, newest first"""
        return [row for row in self.list_all(project_id) if row["status"] == status]
