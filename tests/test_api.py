from fastapi.testclient import TestClient

from invoice_intake.api.deps import get_invoice_repository
from invoice_intake.api.main import app


class ExplodingRepository:
    def list_all(self, project_id=None):
        raise RuntimeError("disk on fire")


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"


def test_unknown_route_uses_error_shape(client):
    r = client.get("/api/nothing-here")
    assert r.status_code == 404
    assert r.json() == {"error": "Not Found"}


def test_unexpected_errors_become_500():
    app.dependency_overrides[get_invoice_repository] = lambda: ExplodingRepository()
    try:
        client = TestClient(app, raise_server_exceptions=False)
        r = client.get("/api/invoices")
    finally:
        app.dependency_overrides.clear()

    assert r.status_code == 500
    assert r.json() == {"error": "Error interno del servidor: disk on fire"}


def test_validation_errors_use_error_shape(client):
    r = client.patch("/api/invoices/abc/status", json={"status": "processed"})
    assert r.status_code == 422
    body = r.json()
    assert body["error"] == "Datos de entrada inválidos"
    assert body["details"][0]["loc"][-1] == "invoice_id"
