"""
Error taxonomy for invoice intake.

Each error carries the HTTP status and the user-facing message the API
returns as ``{"error": ..., "details": ...}``.
"""

from typing import Any


class InvoiceProcessingError(Exception):
    """Base class for all invoice intake errors"""

    status_code = 500

    def __init__(self, error: str, details: Any = None, status_code: int | None = None):
        super().__init__(error)
        self.error = error
        self.details = details
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> dict:
        body = {"error": self.error}
        if self.details is not None:
            body["details"] = self.details
        return body


class InvoiceInputError(InvoiceProcessingError):
    """Missing or invalid request input"""

    status_code = 400


class TextExtractionError(InvoiceProcessingError):
    """No extraction strategy produced usable text"""

    def __init__(self, details: Any = None):
        super().__init__("No se pudo extraer texto del PDF", details=details)


class StorageError(InvoiceProcessingError):
    """Object storage upload or removal failed"""


class PersistenceError(InvoiceProcessingError):
    """The invoice_income repository rejected an operation"""


class InvoiceNotFoundError(InvoiceProcessingError):
    status_code = 404

    def __init__(self, invoice_id: int):
        super().__init__(f"Factura {invoice_id} no encontrada")
        self.invoice_id = invoice_id


class InvalidStatusTransitionError(InvoiceProcessingError):
    status_code = 409

    def __init__(self, current: str, requested: str):
        super().__init__(
            "Transición de estado no permitida",
            details=f"{current} -> {requested}",
        )
