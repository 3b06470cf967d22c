"""
Pytest configuration and shared fixtures.

Registers the integration marker/option and provides in-memory storage
collaborators plus a tiny PDF writer so tests can build real invoice
PDFs without fixture files.
"""

import pytest
from fastapi.testclient import TestClient

from invoice_intake.api.deps import get_invoice_repository, get_object_storage
from invoice_intake.api.main import app
from invoice_intake.services.storage import InMemoryInvoiceRepository, InMemoryObjectStorage

SAMPLE_INVOICE_LINES = [
    "Giro: CONSTRUCCION DE OBRAS CIVILES",
    "AVENIDA LOS LEONES 1234 - PROVIDENCIA",
    "e-mail: contacto@obrasandes.cl",
    "R.U.T.: 77.567.635-3",
    "FACTURA ELECTRONICA N 4521",
    "Fecha Emision: 15 de marzo del 2024",
    "SENOR(ES): INMOBILIARIA CORDILLERA SPA R.U.T.: 12.345.678-5",
    "DIRECCION: CALLE NUEVA 55",
    "CIUDAD: SANTIAGO",
    "Forma de Pago: Credito 30 dias",
    "MONTO NETO$150.000",
    "I.V.A. 19%$28.500",
    "TOTAL$178.500",
]


def pytest_addoption(parser):
    """Add custom command-line options"""
    parser.addoption(
        "--run-integration",
        action="store_true",
        default=False,
        help="Run integration tests against a real Supabase project"
    )


def pytest_configure(config):
    """Register custom markers"""
    config.addinivalue_line(
        "markers",
        "integration: mark test as integration test requiring a real Supabase project"
    )


def pytest_collection_modifyitems(config, items):
    """Skip integration tests unless --run-integration is specified"""
    if config.getoption("--run-integration"):
        return

    skip_integration = pytest.mark.skip(reason="need --run-integration option to run")
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_integration)


def _content_stream(runs) -> bytes:
    """
    One BT/ET block per run. A run is either a string (placed on the next
    line from the top) or an ``(x, y, text)`` tuple in PDF points.
    """
    parts = []
    next_y = 760
    for run in runs:
        if isinstance(run, str):
            x, y, text = 50, next_y, run
            next_y -= 16
        else:
            x, y, text = run
        escaped = text.replace("\\", "\\\\").replace("(", "\\(").replace(")", "\\)")
        parts.append(f"BT /F1 10 Tf 1 0 0 1 {x} {y} Tm ({escaped}) Tj ET")
    return "\n".join(parts).encode("cp1252")


def build_pdf(pages) -> bytes:
    """Write a minimal valid PDF (Helvetica, WinAnsi) with one run list per page"""
    page_ids = [4 + 2 * i for i in range(len(pages))]
    kids = " ".join(f"{pid} 0 R" for pid in page_ids)

    objects = [
        b"<< /Type /Catalog /Pages 2 0 R >>",
        f"<< /Type /Pages /Kids [{kids}] /Count {len(pages)} >>".encode(),
        b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica /Encoding /WinAnsiEncoding >>",
    ]
    for page_id, runs in zip(page_ids, pages):
        content = _content_stream(runs)
        objects.append(
            (
                "<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] "
                f"/Resources << /Font << /F1 3 0 R >> >> /Contents {page_id + 1} 0 R >>"
            ).encode()
        )
        objects.append(
            f"<< /Length {len(content)} >>\nstream\n".encode() + content + b"\nendstream"
        )

    out = bytearray(b"%PDF-1.4\n")
    offsets = []
    for number, body in enumerate(objects, start=1):
        offsets.append(len(out))
        out += f"{number} 0 obj\n".encode() + body + b"\nendobj\n"

    xref_offset = len(out)
    out += f"xref\n0 {len(objects) + 1}\n".encode()
    out += b"0000000000 65535 f \n"
    for offset in offsets:
        out += f"{offset:010d} 00000 n \n".encode()
    out += (
        f"trailer\n<< /Size {len(objects) + 1} /Root 1 0 R >>\n"
        f"startxref\n{xref_offset}\n%%EOF\n"
    ).encode()
    return bytes(out)


@pytest.fixture
def make_pdf():
    return build_pdf


@pytest.fixture
def sample_invoice_pdf() -> bytes:
    return build_pdf([SAMPLE_INVOICE_LINES])


@pytest.fixture
def object_storage():
    return InMemoryObjectStorage(bucket="invoices")


@pytest.fixture
def invoice_repository():
    return InMemoryInvoiceRepository()


@pytest.fixture
def client(object_storage, invoice_repository):
    app.dependency_overrides[get_object_storage] = lambda: object_storage
    app.dependency_overrides[get_invoice_repository] = lambda: invoice_repository
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
