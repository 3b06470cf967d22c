from datetime import datetime
from enum import Enum
from typing import Any
from dataclasses import dataclass
from pydantic import BaseModel, ConfigDict, field_validator


class ExtractionStrategy(str, Enum):
    PRIMARY = "primary"
    FALLBACK = "fallback"


@dataclass(frozen=True)
class RawPdfPayload:
    """Uploaded PDF bytes plus the display filename"""
    content: bytes
    filename: str
    content_type: str | None = None

    @property
    def size(self) -> int:
        return len(self.content)


@dataclass(frozen=True)
class ExtractedText:
    text: str
    strategy: ExtractionStrategy
    page_count: int = 0


@dataclass(frozen=True)
class StoredInvoiceAsset:
    object_name: str
    public_url: str


@dataclass(frozen=True)
class AssemblyProfile:
    """Column limits for one endpoint variant of the invoice_income table"""
    name: str
    amount_ceiling: float
    rut_max_length: int


BASELINE_PROFILE = AssemblyProfile("baseline", amount_ceiling=999_999_999.99, rut_max_length=20)
EXTENDED_PROFILE = AssemblyProfile("extended", amount_ceiling=9_999_999_999.99, rut_max_length=50)


class ParsedFieldSet(BaseModel):
    """
    Raw fields recovered from invoice text.

    Every field is optional. Values are kept exactly as captured (amounts
    stay in their locale form, e.g. "150.000") and are only converted by
    the normalizer at assembly time. Blank captures are stored as None.
    """
    model_config = ConfigDict(frozen=True)

    issuer_name: str | None = None
    issuer_rut: str | None = None
    issuer_address: str | None = None
    issuer_email: str | None = None
    client_name: str | None = None
    client_rut: str | None = None
    client_address: str | None = None
    client_city: str | None = None
    invoice_number: str | None = None
    issue_date: str | None = None
    description: str | None = None
    contract_number: str | None = None
    payment_method: str | None = None
    net_amount: str | None = None
    iva_amount: str | None = None
    additional_tax: str | None = None
    total_amount: str | None = None
    iva_percentage: str | None = None

    @field_validator("*", mode="before")
    @classmethod
    def _blank_is_absent(cls, value: Any):
        if value is None:
            return None
        value = str(value).strip()
        return value or None

    def found(self) -> dict:
        """Only the fields that were recovered"""
        return self.model_dump(exclude_none=True)


class NormalizedInvoiceRecord(BaseModel):
    """Persistence-ready invoice_income row (without id/timestamps)"""
    project_id: int
    issuer_name: str | None = None
    issuer_rut: str | None = None
    issuer_address: str | None = None
    issuer_email: str | None = None
    client_name: str | None = None
    client_rut: str | None = None
    client_address: str | None = None
    client_city: str | None = None
    invoice_number: str | None = None
    issue_date: str | None = None
    description: str | None = None
    contract_number: str | None = None
    payment_method: str | None = None
    net_amount: float = 0.0
    iva_percentage: float = 19.0
    iva_amount: float = 0.0
    additional_tax: float = 0.0
    total_amount: float = 0.0
    pdf_url: str | None = None
    raw_text: str | None = None
    parsed_data: dict = {}
    status: str = "pending"
    is_processed: bool = False
    processed_at: datetime | None = None
