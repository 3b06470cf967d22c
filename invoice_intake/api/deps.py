from functools import lru_cache

from pydantic import BaseModel

from ..core.config import settings
from ..services.invoice_pipeline import InvoicePipeline, PipelinePolicy
from ..services.storage import (
    InvoiceRepositoryBase,
    ObjectStorageBase,
    create_invoice_repository,
    create_object_storage,
)
from ..services.verification_rules import InvoiceVerificationRules, create_verification_rules


class VerificationResponse(BaseModel):
    verified: bool
    reason: str
    checks: dict
    metadata: dict


class InvoiceStatsResponse(BaseModel):
    total: int = 0
    processed: int = 0
    pending: int = 0
    blocked: int = 0
    total_amount: float = 0.0
    net_amount: float = 0.0
    iva_amount: float = 0.0
    processed_total_amount: float = 0.0
    processed_net_amount: float = 0.0
    processed_iva_amount: float = 0.0


@lru_cache
def get_object_storage() -> ObjectStorageBase:
    """PDF object storage shared by all requests (overridden in tests)"""
    return create_object_storage(settings)


@lru_cache
def get_invoice_repository() -> InvoiceRepositoryBase:
    """invoice_income repository shared by all requests (overridden in tests)"""
    return create_invoice_repository(settings)


def get_verification_rules() -> InvoiceVerificationRules:
    return create_verification_rules()


def build_pipeline(
    policy: PipelinePolicy,
    storage: ObjectStorageBase,
    repository: InvoiceRepositoryBase,
) -> InvoicePipeline:
    return InvoicePipeline(
        storage,
        repository,
        policy=policy,
        known_issuer_rut=settings.known_issuer_rut,
        max_reasonable_amount=settings.max_reasonable_amount,
        raw_text_max_length=settings.raw_text_max_length,
    )
