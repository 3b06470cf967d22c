from fastapi import APIRouter, Depends, File, Form, UploadFile
from loguru import logger

from ..deps import (
    InvoiceStatsResponse,
    VerificationResponse,
    build_pipeline,
    get_invoice_repository,
    get_object_storage,
    get_verification_rules,
)
from ...models.invoice import (
    InvoiceCreateRequest,
    InvoiceUpdateRequest,
    StatusUpdateRequest,
    ValidateRequest,
)
from ...services import invoice_admin
from ...services.exceptions import InvoiceInputError, InvoiceNotFoundError
from ...services.invoice_pipeline import BASELINE_POLICY, ROBUST_POLICY
from ...services.invoice_types import RawPdfPayload
from ...services.storage import INVOICE_STATUSES, InvoiceRepositoryBase, ObjectStorageBase
from ...services.verification_rules import InvoiceVerificationRules

router = APIRouter(prefix="/api/invoices", tags=["invoices"])


def _parse_project_id(raw: str) -> int:
    try:
        return int(str(raw).strip())
    except ValueError:
        raise InvoiceInputError("ID de proyecto inválido", details=str(raw))


async def _read_payload(file: UploadFile) -> RawPdfPayload:
    content = await file.read()
    return RawPdfPayload(
        content=content,
        filename=file.filename or "factura.pdf",
        content_type=file.content_type,
    )


@router.post("/process")
async def process_invoice(
    file: UploadFile | None = File(None),
    projectId: str | None = Form(None),
    storage: ObjectStorageBase = Depends(get_object_storage),
    repository: InvoiceRepositoryBase = Depends(get_invoice_repository),
):
    """
    Process an invoice PDF and persist it immediately.

    Form fields:
    - file: the PDF (content type must be application/pdf)
    - projectId: project the invoice belongs to

    The PDF upload is best-effort here: if storage fails the invoice is
    still saved, with an empty pdf_url.
    """
    if file is None:
        raise InvoiceInputError("No se proporcionó archivo")
    if not projectId:
        raise InvoiceInputError("No se proporcionó ID de proyecto")
    if BASELINE_POLICY.require_pdf_content_type and file.content_type != "application/pdf":
        raise InvoiceInputError("El archivo debe ser un PDF")

    project_id = _parse_project_id(projectId)
    payload = await _read_payload(file)

    pipeline = build_pipeline(BASELINE_POLICY, storage, repository)
    result = await pipeline.process(payload, project_id)

    return {
        "success": True,
        "data": result.row,
        "extractedData": result.fields.model_dump(),
    }


@router.post("/process-robust")
async def process_invoice_robust(
    file: UploadFile | None = File(None),
    projectId: str | None = Form(None),
    action: str | None = Form(None),
    storage: ObjectStorageBase = Depends(get_object_storage),
    repository: InvoiceRepositoryBase = Depends(get_invoice_repository),
    rules: InvoiceVerificationRules = Depends(get_verification_rules),
):
    """
    Process an invoice PDF for the verification workflow.

    With action=extract nothing is persisted: the assembled record, the
    raw parsed fields, the stored PDF URL and the consistency checks are
    returned so a person can confirm them (then POST /api/invoices).
    Any other action persists immediately.

    The PDF must be stored for the verification UI, so a storage failure
    aborts the request.
    """
    if file is None or not projectId:
        raise InvoiceInputError("Archivo y proyecto son requeridos")

    project_id = _parse_project_id(projectId)
    payload = await _read_payload(file)
    pipeline = build_pipeline(ROBUST_POLICY, storage, repository)

    if action == "extract":
        result = await pipeline.extract(payload, project_id, fill_missing_date=False)
        verification = rules.evaluate(result.record)
        return {
            "success": True,
            "data": result.record.model_dump(mode="json"),
            "extractedRaw": result.fields.model_dump(),
            "pdfUrl": result.pdf_url,
            "verification": verification.model_dump(),
        }

    result = await pipeline.process(payload, project_id)
    return {
        "success": True,
        "invoice": result.row,
        "extractedData": result.fields.model_dump(),
    }


@router.get("")
async def list_invoices(
    project_id: int | None = None,
    status: str | None = None,
    repository: InvoiceRepositoryBase = Depends(get_invoice_repository),
):
    """List invoices, newest first, optionally filtered by project and status"""
    if status is None:
        return repository.list_all(project_id)
    if status not in INVOICE_STATUSES:
        raise InvoiceInputError(f"Estado inválido: {status}")
    return repository.query_by_status(status, project_id)


@router.get("/stats", response_model=InvoiceStatsResponse)
async def invoice_stats(
    project_id: int | None = None,
    repository: InvoiceRepositoryBase = Depends(get_invoice_repository),
):
    return invoice_admin.compute_stats(repository.list_all(project_id))


@router.post("/validate", response_model=VerificationResponse)
async def validate_invoice(
    req: ValidateRequest,
    rules: InvoiceVerificationRules = Depends(get_verification_rules),
):
    """
    Run the consistency checks on an invoice record.

    Example response:
    {
        "verified": false,
        "reason": "Requiere revisión: Faltan campos: issue_date",
        "checks": {"total_reconciles": true, "required_fields_present": false, ...},
        "metadata": {"computed_total": 178500.0, "expected_iva": 28500.0, ...}
    }
    """
    logger.info("Validation request received", invoice_number=req.invoice_number)
    return rules.evaluate(req.model_dump()).model_dump()


@router.get("/{invoice_id}")
async def get_invoice(
    invoice_id: int,
    repository: InvoiceRepositoryBase = Depends(get_invoice_repository),
):
    row = repository.get(invoice_id)
    if row is None:
        raise InvoiceNotFoundError(invoice_id)
    return row


@router.post("", status_code=201)
async def create_invoice(
    req: InvoiceCreateRequest,
    repository: InvoiceRepositoryBase = Depends(get_invoice_repository),
):
    """Save an invoice confirmed in the verification modal"""
    return invoice_admin.create_manual_invoice(repository, req.model_dump())


@router.patch("/{invoice_id}")
async def update_invoice(
    invoice_id: int,
    req: InvoiceUpdateRequest,
    repository: InvoiceRepositoryBase = Depends(get_invoice_repository),
):
    return invoice_admin.update_invoice(repository, invoice_id, req.model_dump(exclude_unset=True))


@router.patch("/{invoice_id}/status")
async def update_invoice_status(
    invoice_id: int,
    req: StatusUpdateRequest,
    repository: InvoiceRepositoryBase = Depends(get_invoice_repository),
):
    return invoice_admin.change_status(repository, invoice_id, req.status)


@router.delete("/{invoice_id}")
async def delete_invoice(
    invoice_id: int,
    repository: InvoiceRepositoryBase = Depends(get_invoice_repository),
    storage: ObjectStorageBase = Depends(get_object_storage),
):
    await invoice_admin.delete_invoice(repository, storage, invoice_id)
    return {"success": True, "id": invoice_id}
