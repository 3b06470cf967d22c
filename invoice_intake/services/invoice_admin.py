"""
Invoice administration after intake: manual records, corrections,
status workflow, deletion and income statistics.
"""

from datetime import datetime, UTC
from typing import Optional

from loguru import logger

from .exceptions import InvalidStatusTransitionError, InvoiceInputError, InvoiceNotFoundError
from .invoice_types import EXTENDED_PROFILE, NormalizedInvoiceRecord
from .record_assembler import limit_fields
from .storage import InvoiceRepositoryBase, ObjectStorageBase, INVOICE_STATUSES

# Allowed moves of the pending/processed/blocked workflow
STATUS_TRANSITIONS = {
    "pending": ("processed", "blocked"),
    "processed": ("pending", "blocked"),
    "blocked": ("pending",),
}


def create_manual_invoice(repository: InvoiceRepositoryBase, values: dict) -> dict:
    """
    Persist a human-confirmed invoice.

    Limits are applied as on intake; a missing total is computed from
    net + IVA + additional tax.
    """
    data = limit_fields({k: v for k, v in values.items() if v is not None}, EXTENDED_PROFILE)
    if not data.get("total_amount"):
        data["total_amount"] = round(
            data.get("net_amount", 0) + data.get("iva_amount", 0) + data.get("additional_tax", 0), 2
        )
        data = limit_fields(data, EXTENDED_PROFILE)

    record = NormalizedInvoiceRecord(**data)
    row = repository.insert(record.model_dump(mode="json"))
    logger.info("Manual invoice saved", invoice_id=row["id"], project_id=row["project_id"])
    return row


def update_invoice(repository: InvoiceRepositoryBase, invoice_id: int, updates: dict) -> dict:
    """Apply a partial correction, keeping the column limits"""
    row = repository.update(invoice_id, limit_fields(updates, EXTENDED_PROFILE))
    if row is None:
        raise InvoiceNotFoundError(invoice_id)
    logger.info("Invoice updated", invoice_id=invoice_id, fields=sorted(updates))
    return row


def change_status(
    repository: InvoiceRepositoryBase,
    invoice_id: int,
    status: str,
    now: Optional[datetime] = None,
) -> dict:
    """
    Move an invoice through the status workflow.

    Raises:
        InvoiceInputError: unknown status
        InvoiceNotFoundError: no such invoice
        InvalidStatusTransitionError: move not allowed from the current status
    """
    if status not in INVOICE_STATUSES:
        raise InvoiceInputError(f"Estado inválido: {status}")

    current = repository.get(invoice_id)
    if current is None:
        raise InvoiceNotFoundError(invoice_id)
    if status not in STATUS_TRANSITIONS[current["status"]]:
        raise InvalidStatusTransitionError(current["status"], status)

    processed = status == "processed"
    processed_at = (now or datetime.now(UTC)).isoformat() if processed else None
    row = repository.update(
        invoice_id,
        {"status": status, "is_processed": processed, "processed_at": processed_at},
    )
    logger.info("Invoice status changed", invoice_id=invoice_id, old=current["status"], new=status)
    return row


async def delete_invoice(
    repository: InvoiceRepositoryBase,
    storage: ObjectStorageBase,
    invoice_id: int,
) -> None:
    """Delete the row and, best-effort, its stored PDF"""
    row = repository.get(invoice_id)
    if row is None:
        raise InvoiceNotFoundError(invoice_id)

    object_name = storage.object_name_from_url(row.get("pdf_url"))
    if object_name:
        try:
            await storage.remove(object_name)
        except Exception as e:
            logger.warning(f"Could not remove stored PDF {object_name}: {e}")

    repository.delete(invoice_id)
    logger.info("Invoice deleted", invoice_id=invoice_id)


def compute_stats(rows: list) -> dict:
    """Counts per status plus amount sums; processed sums are the real income"""
    stats = {
        "total": len(rows),
        "processed": 0,
        "pending": 0,
        "blocked": 0,
        "total_amount": 0.0,
        "net_amount": 0.0,
        "iva_amount": 0.0,
        "processed_total_amount": 0.0,
        "processed_net_amount": 0.0,
        "processed_iva_amount": 0.0,
    }
    for row in rows:
        stats[row["status"]] += 1
        for name in ("total_amount", "net_amount", "iva_amount"):
            amount = float(row.get(name) or 0)
            stats[name] += amount
            if row["status"] == "processed":
                stats[f"processed_{name}"] += amount

    return {k: round(v, 2) if isinstance(v, float) else v for k, v in stats.items()}
