"""
Turn parsed invoice fields into a persistence-ready invoice_income record.

Text is truncated to the column limits (never rejected), amounts are
normalized and clamped to the profile's DECIMAL range, and defaults are
applied only here, never during parsing.
"""

from datetime import datetime
from loguru import logger

from .invoice_types import (
    AssemblyProfile,
    EXTENDED_PROFILE,
    NormalizedInvoiceRecord,
    ParsedFieldSet,
    StoredInvoiceAsset,
)
from .normalizer import normalize_amount, normalize_date, today_iso

DEFAULT_IVA_PERCENTAGE = 19.00
DEFAULT_RAW_TEXT_MAX_LENGTH = 5000

TEXT_LIMITS = {
    "issuer_name": 200,
    "issuer_address": 200,
    "issuer_email": 100,
    "client_name": 200,
    "client_address": 200,
    "client_city": 100,
    "invoice_number": 50,
    "description": 500,
    "contract_number": 100,
    "payment_method": 100,
}

RUT_FIELDS = ("issuer_rut", "client_rut")
AMOUNT_FIELDS = ("net_amount", "iva_amount", "additional_tax", "total_amount")


def limit_text(text: str | None, max_length: int) -> str | None:
    if not text:
        return text
    return text[:max_length] if len(text) > max_length else text


def limit_fields(values: dict, profile: AssemblyProfile = EXTENDED_PROFILE) -> dict:
    """
    Apply column limits to a partial invoice_income row.

    Used both by assembly and by manual corrections coming from the
    verification UI, so only the keys present in ``values`` are touched.
    """
    limited = dict(values)
    for name, max_length in TEXT_LIMITS.items():
        if limited.get(name) is not None:
            limited[name] = limit_text(str(limited[name]).strip(), max_length) or None
    for name in RUT_FIELDS:
        if limited.get(name) is not None:
            limited[name] = limit_text(str(limited[name]).strip(), profile.rut_max_length) or None
    for name in AMOUNT_FIELDS:
        if name in limited:
            limited[name] = normalize_amount(limited[name], ceiling=profile.amount_ceiling)
    if "iva_percentage" in limited:
        percentage = normalize_amount(limited["iva_percentage"], ceiling=100.0)
        limited["iva_percentage"] = percentage or DEFAULT_IVA_PERCENTAGE
    if limited.get("issue_date"):
        limited["issue_date"] = normalize_date(limited["issue_date"])
    return limited


def assemble_record(
    fields: ParsedFieldSet,
    project_id: int,
    pdf_asset: StoredInvoiceAsset | None,
    raw_text: str,
    profile: AssemblyProfile = EXTENDED_PROFILE,
    known_issuer_rut: str | None = None,
    fill_missing_date: bool = True,
    raw_text_max_length: int = DEFAULT_RAW_TEXT_MAX_LENGTH,
    now: datetime | None = None,
) -> NormalizedInvoiceRecord:
    """
    Build the invoice_income record for one processed PDF.

    Args:
        fields: Parser output (absent fields stay absent until here)
        project_id: Project the invoice belongs to
        pdf_asset: Uploaded PDF, or None when the upload was skipped
        raw_text: Full extracted text, kept (truncated) for auditing
        profile: Column limits of the calling endpoint
        known_issuer_rut: Tenant RUT used when no issuer RUT was parsed
        fill_missing_date: Use today's date when the issue date is unknown;
            when False the date stays empty for the human verifier
        raw_text_max_length: Limit for the stored raw text
        now: Clock override (tests)

    Returns:
        NormalizedInvoiceRecord ready for insertion
    """
    values = fields.found()

    issue_date = normalize_date(fields.issue_date)
    if issue_date is None and fill_missing_date:
        issue_date = today_iso(now)
        logger.warning(
            "Issue date not recognized, defaulting to today",
            raw=fields.issue_date,
            issue_date=issue_date,
        )

    iva_percentage = DEFAULT_IVA_PERCENTAGE
    if fields.iva_percentage:
        iva_percentage = normalize_amount(fields.iva_percentage, ceiling=100.0) or DEFAULT_IVA_PERCENTAGE

    limited = limit_fields(
        {
            **{name: values.get(name) for name in TEXT_LIMITS},
            "issuer_rut": fields.issuer_rut or known_issuer_rut,
            "client_rut": fields.client_rut,
            **{name: values.get(name) for name in AMOUNT_FIELDS},
        },
        profile,
    )

    record = NormalizedInvoiceRecord(
        project_id=project_id,
        issue_date=issue_date,
        iva_percentage=iva_percentage,
        pdf_url=pdf_asset.public_url if pdf_asset else "",
        raw_text=limit_text(raw_text or "", raw_text_max_length),
        parsed_data=values,
        status="pending",
        is_processed=False,
        **limited,
    )

    logger.info(
        "Invoice record assembled",
        profile=profile.name,
        project_id=project_id,
        invoice_number=record.invoice_number,
        net_amount=record.net_amount,
        iva_amount=record.iva_amount,
        total_amount=record.total_amount,
    )
    return record
