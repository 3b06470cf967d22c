from loguru import logger

from .invoice_repository_base import INVOICE_STATUSES, InvoiceRepositoryBase
from .invoices import InMemoryInvoiceRepository
from .invoices_sqlite import SQLiteInvoiceRepository
from .object_storage import (
    InMemoryObjectStorage,
    ObjectStorageBase,
    SupabaseObjectStorage,
    build_object_name,
)


def create_object_storage(settings) -> ObjectStorageBase:
    if settings.supabase_url and settings.supabase_service_key:
        logger.info("Using Supabase Storage for invoice PDFs", bucket=settings.storage_bucket)
        return SupabaseObjectStorage(
            settings.supabase_url,
            settings.supabase_service_key,
            bucket=settings.storage_bucket,
            timeout=settings.storage_timeout_seconds,
        )

    logger.warning(
        "Supabase Storage not configured - keeping PDFs in memory. "
        "Set SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY to persist uploads."
    )
    return InMemoryObjectStorage(bucket=settings.storage_bucket)


def create_invoice_repository(settings) -> InvoiceRepositoryBase:
    if settings.invoice_store == "memory":
        return InMemoryInvoiceRepository()
    return SQLiteInvoiceRepository(settings.database_path)


__all__ = [
    "INVOICE_STATUSES",
    "InvoiceRepositoryBase",
    "InMemoryInvoiceRepository",
    "SQLiteInvoiceRepository",
    "ObjectStorageBase",
    "InMemoryObjectStorage",
    "SupabaseObjectStorage",
    "build_object_name",
    "create_object_storage",
    "create_invoice_repository",
]
