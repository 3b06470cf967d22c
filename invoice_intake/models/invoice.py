from pydantic import BaseModel, Field


class InvoiceFields(BaseModel):
    """Editable invoice_income columns (as corrected in the verification UI)"""
    issuer_name: str | None = Field(default=None)
    issuer_rut: str | None = Field(default=None)
    issuer_address: str | None = Field(default=None)
    issuer_email: str | None = Field(default=None)
    client_name: str | None = Field(default=None)
    client_rut: str | None = Field(default=None)
    client_address: str | None = Field(default=None)
    client_city: str | None = Field(default=None)
    invoice_number: str | None = Field(default=None)
    issue_date: str | None = Field(default=None)
    description: str | None = Field(default=None)
    contract_number: str | None = Field(default=None)
    payment_method: str | None = Field(default=None)
    net_amount: float | None = Field(default=None)
    iva_percentage: float | None = Field(default=None)
    iva_amount: float | None = Field(default=None)
    additional_tax: float | None = Field(default=None)
    total_amount: float | None = Field(default=None)


class InvoiceCreateRequest(InvoiceFields):
    project_id: int
    pdf_url: str | None = Field(default=None)
    raw_text: str | None = Field(default=None)
    parsed_data: dict = Field(default_factory=dict)


class InvoiceUpdateRequest(InvoiceFields):
    pdf_url: str | None = Field(default=None)


class StatusUpdateRequest(BaseModel):
    status: str


class ValidateRequest(InvoiceFields):
    """Record to check; same shape as the extract-only ``data`` payload"""
    project_id: int | None = Field(default=None)
