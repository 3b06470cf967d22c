"""
Invoice PDF processing pipeline shared by both upload endpoints.

    upload -> text extraction -> field parsing -> PDF storage
           -> record assembly -> (optional) invoice_income insert

The two endpoints differ only in their PipelinePolicy:

- /process          best-effort storage, DECIMAL(12,2)-style ceiling,
                    requires an application/pdf upload, always persists
- /process-robust   storage failure aborts the request, extended ceiling,
                    can stop before persisting for human verification
"""

from dataclasses import dataclass

from loguru import logger
from starlette.concurrency import run_in_threadpool

from .exceptions import InvoiceProcessingError, PersistenceError, StorageError
from .field_parser import build_line_rules, parse_invoice_text
from .invoice_types import (
    AssemblyProfile,
    BASELINE_PROFILE,
    EXTENDED_PROFILE,
    ExtractedText,
    NormalizedInvoiceRecord,
    ParsedFieldSet,
    RawPdfPayload,
    StoredInvoiceAsset,
)
from .normalizer import MAX_REASONABLE_AMOUNT
from .record_assembler import DEFAULT_RAW_TEXT_MAX_LENGTH, assemble_record
from .storage import InvoiceRepositoryBase, ObjectStorageBase, build_object_name
from .text_extraction import extract_text


@dataclass(frozen=True)
class PipelinePolicy:
    name: str
    profile: AssemblyProfile
    strict_storage: bool
    require_pdf_content_type: bool


BASELINE_POLICY = PipelinePolicy(
    "process", BASELINE_PROFILE, strict_storage=False, require_pdf_content_type=True
)
ROBUST_POLICY = PipelinePolicy(
    "process-robust", EXTENDED_PROFILE, strict_storage=True, require_pdf_content_type=False
)


@dataclass
class PipelineResult:
    extracted: ExtractedText
    fields: ParsedFieldSet
    asset: StoredInvoiceAsset | None
    record: NormalizedInvoiceRecord
    row: dict | None = None

    @property
    def pdf_url(self) -> str:
        return self.asset.public_url if self.asset else ""


class InvoicePipeline:
    def __init__(
        self,
        storage: ObjectStorageBase,
        repository: InvoiceRepositoryBase,
        policy: PipelinePolicy = ROBUST_POLICY,
        known_issuer_rut: str | None = None,
        max_reasonable_amount: float = MAX_REASONABLE_AMOUNT,
        raw_text_max_length: int = DEFAULT_RAW_TEXT_MAX_LENGTH,
    ):
        self.storage = storage
        self.repository = repository
        self.policy = policy
        self.known_issuer_rut = known_issuer_rut
        self.raw_text_max_length = raw_text_max_length
        self.rules = build_line_rules(max_reasonable_amount)

    async def extract(
        self,
        payload: RawPdfPayload,
        project_id: int,
        fill_missing_date: bool = True,
    ) -> PipelineResult:
        """
        Run everything except the database insert.

        Raises:
            TextExtractionError: no text could be extracted
            StorageError: upload failed under a strict policy
        """
        logger.info(
            "Processing invoice",
            policy=self.policy.name,
            filename=payload.filename,
            size_bytes=payload.size,
            project_id=project_id,
        )

        extracted = await run_in_threadpool(extract_text, payload.content)
        fields = parse_invoice_text(extracted.text, self.known_issuer_rut, rules=self.rules)
        asset = await self._store_pdf(payload)

        record = assemble_record(
            fields,
            project_id,
            asset,
            extracted.text,
            profile=self.policy.profile,
            known_issuer_rut=self.known_issuer_rut,
            fill_missing_date=fill_missing_date,
            raw_text_max_length=self.raw_text_max_length,
        )
        return PipelineResult(extracted=extracted, fields=fields, asset=asset, record=record)

    async def process(self, payload: RawPdfPayload, project_id: int) -> PipelineResult:
        """
        Extract and persist one invoice.

        Raises:
            PersistenceError: the repository rejected the row
        """
        result = await self.extract(payload, project_id)
        result.row = self.persist(result.record)
        return result

    def persist(self, record: NormalizedInvoiceRecord) -> dict:
        try:
            row = self.repository.insert(record.model_dump(mode="json"))
        except InvoiceProcessingError:
            raise
        except Exception as e:
            logger.error(f"Database error: {e}")
            raise PersistenceError(f"Error de base de datos: {e}")

        logger.info("Invoice saved", invoice_id=row["id"], project_id=row["project_id"])
        return row

    async def _store_pdf(self, payload: RawPdfPayload) -> StoredInvoiceAsset | None:
        object_name = build_object_name(payload.filename)
        try:
            return await self.storage.upload(object_name, payload.content, "application/pdf")
        except Exception as e:
            if self.policy.strict_storage:
                logger.error(f"PDF upload failed: {e}")
                if isinstance(e, StorageError):
                    raise
                raise StorageError(f"Error subiendo archivo: {e}")
            logger.warning(f"PDF upload failed, continuing without stored file: {e}")
            return None
