import json
from types import SimpleNamespace

import pytest
import requests

import invoice_watcher
from invoice_watcher import InvoiceHandler


class FakeResponse:
    def __init__(self, status_code, payload=None, text=""):
        self.status_code = status_code
        self._payload = payload
        self.text = text

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


@pytest.fixture
def folders(tmp_path):
    watch = tmp_path / "entrantes"
    watch.mkdir()
    return SimpleNamespace(
        root=tmp_path,
        watch=watch,
        processed=tmp_path / "procesadas",
        failed=tmp_path / "fallidas",
    )


@pytest.fixture
def handler(folders):
    return InvoiceHandler(folders.watch, folders.processed, folders.failed, project_id=12, api_url="http://api.test/")


def read_log(folders):
    return json.loads((folders.root / "processing_log.json").read_text(encoding="utf-8"))


def test_success_posts_project_and_moves_file(handler, folders, monkeypatch):
    calls = []

    def fake_post(url, files=None, data=None, timeout=None):
        calls.append({"url": url, "filename": files["file"][0], "data": data})
        return FakeResponse(200, {"success": True, "invoice": {"id": 5, "total_amount": 178500}})

    monkeypatch.setattr(invoice_watcher.requests, "post", fake_post)

    pdf = folders.watch / "factura.pdf"
    pdf.write_bytes(b"%PDF-1.4")

    assert handler.process_invoice(pdf) is True
    assert calls == [{
        "url": "http://api.test/api/invoices/process-robust",
        "filename": "factura.pdf",
        "data": {"projectId": "12"},
    }]
    assert not pdf.exists()
    assert (folders.processed / "✅_factura.pdf").exists()

    entry = read_log(folders)[0]
    assert entry["outcome"] == "processed"
    assert entry["invoice_id"] == 5
    assert entry["project_id"] == 12


def test_api_error_moves_to_failed(handler, folders, monkeypatch):
    monkeypatch.setattr(
        invoice_watcher.requests,
        "post",
        lambda *a, **kw: FakeResponse(500, {"error": "No se pudo extraer texto del PDF", "details": {"primary": "x"}}),
    )

    pdf = folders.watch / "rota.pdf"
    pdf.write_bytes(b"garbage")

    assert handler.process_invoice(pdf) is False
    assert (folders.failed / "ERROR_rota.pdf").exists()

    entry = read_log(folders)[0]
    assert entry["outcome"] == "failed"
    assert entry["error"] == "No se pudo extraer texto del PDF"
    assert entry["details"] == {"primary": "x"}


def test_timeout_moves_to_failed(handler, folders, monkeypatch):
    def timeout(*args, **kwargs):
        raise requests.exceptions.Timeout()

    monkeypatch.setattr(invoice_watcher.requests, "post", timeout)

    pdf = folders.watch / "lenta.pdf"
    pdf.write_bytes(b"%PDF-1.4")

    assert handler.process_invoice(pdf) is False
    assert read_log(folders)[0]["error"] == "Timeout"


def test_log_appends(handler, folders, monkeypatch):
    monkeypatch.setattr(
        invoice_watcher.requests,
        "post",
        lambda *a, **kw: FakeResponse(200, {"success": True, "invoice": {"id": 1}}),
    )
    for name in ("a.pdf", "b.pdf"):
        path = folders.watch / name
        path.write_bytes(b"%PDF-1.4")
        handler.process_invoice(path)

    assert [entry["filename"] for entry in read_log(folders)] == ["a.pdf", "b.pdf"]


def test_extract_action_forwarded_and_filed_as_pending(folders, monkeypatch):
    seen = {}

    def fake_post(url, files=None, data=None, timeout=None):
        seen.update(data)
        return FakeResponse(200, {
            "success": True,
            "data": {"total_amount": 1},
            "pdfUrl": "memory://invoices/x.pdf",
            "verification": {"verified": False},
        })

    monkeypatch.setattr(invoice_watcher.requests, "post", fake_post)
    handler = InvoiceHandler(folders.watch, folders.processed, folders.failed, project_id=3, action="extract")

    pdf = folders.watch / "x.pdf"
    pdf.write_bytes(b"%PDF-1.4")
    assert handler.process_invoice(pdf) is True

    assert seen == {"projectId": "3", "action": "extract"}
    assert (folders.processed / "PENDIENTE_x.pdf").exists()
    assert not (folders.processed / "✅_x.pdf").exists()

    entry = read_log(folders)[0]
    assert entry["outcome"] == "extracted"
    assert entry["pdf_url"] == "memory://invoices/x.pdf"
    assert "invoice_id" not in entry


def test_cli_accepts_action():
    args = invoice_watcher.build_parser().parse_args(["--project-id", "4", "--action", "extract"])
    assert args.project_id == 4
    assert args.action == "extract"

    assert invoice_watcher.build_parser().parse_args(["--project-id", "4"]).action is None


def test_non_pdf_events_ignored(handler, folders, monkeypatch):
    monkeypatch.setattr(handler, "process_invoice", lambda path: pytest.fail("should not process"))
    txt = folders.watch / "nota.txt"
    txt.write_text("hola")

    handler.on_created(SimpleNamespace(is_directory=False, src_path=str(txt)))
    handler.on_created(SimpleNamespace(is_directory=True, src_path=str(folders.watch)))
