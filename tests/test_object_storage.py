import asyncio
import json

import httpx
import pytest
import respx

from invoice_intake.services.exceptions import StorageError
from invoice_intake.services.storage import (
    InMemoryObjectStorage,
    SupabaseObjectStorage,
    build_object_name,
    create_object_storage,
)

SUPABASE_URL = "https://proj.supabase.co"


@pytest.fixture
def supabase():
    return SupabaseObjectStorage(SUPABASE_URL + "/", "service-key", bucket="invoices", timeout=5)


def test_build_object_name_sanitizes():
    assert build_object_name("Factura Nº 12 (marzo).pdf", now_ms=1710500000000) == (
        "invoice-1710500000000-Factura_N__12__marzo_.pdf"
    )
    assert build_object_name("ok-name.v2.pdf", now_ms=1) == "invoice-1-ok-name.v2.pdf"


@respx.mock
def test_supabase_upload(supabase):
    route = respx.post(f"{SUPABASE_URL}/storage/v1/object/invoices/invoice-1-a.pdf").mock(
        return_value=httpx.Response(200, json={"Key": "invoices/invoice-1-a.pdf"})
    )

    asset = asyncio.run(supabase.upload("invoice-1-a.pdf", b"%PDF-1.4"))

    assert route.called
    request = route.calls.last.request
    assert request.headers["Authorization"] == "Bearer service-key"
    assert request.headers["apikey"] == "service-key"
    assert request.headers["x-upsert"] == "false"
    assert request.headers["cache-control"] == "3600"
    assert request.headers["Content-Type"] == "application/pdf"
    assert request.content == b"%PDF-1.4"
    assert asset.public_url == f"{SUPABASE_URL}/storage/v1/object/public/invoices/invoice-1-a.pdf"


@respx.mock
def test_supabase_upload_rejected(supabase):
    respx.post(f"{SUPABASE_URL}/storage/v1/object/invoices/invoice-1-a.pdf").mock(
        return_value=httpx.Response(400, json={"message": "The resource already exists"})
    )

    with pytest.raises(StorageError) as exc_info:
        asyncio.run(supabase.upload("invoice-1-a.pdf", b"%PDF-1.4"))

    assert exc_info.value.error == "Error subiendo archivo: The resource already exists"
    assert exc_info.value.details == {"http_status": 400}


@respx.mock
def test_supabase_upload_network_error(supabase):
    respx.post(f"{SUPABASE_URL}/storage/v1/object/invoices/invoice-1-a.pdf").mock(
        side_effect=httpx.ConnectError("connection refused")
    )

    with pytest.raises(StorageError):
        asyncio.run(supabase.upload("invoice-1-a.pdf", b"%PDF-1.4"))


@respx.mock
def test_supabase_remove(supabase):
    route = respx.delete(f"{SUPABASE_URL}/storage/v1/object/invoices").mock(
        return_value=httpx.Response(200, json=[])
    )

    asyncio.run(supabase.remove("invoice-1-a.pdf"))

    assert json.loads(route.calls.last.request.content) == {"prefixes": ["invoice-1-a.pdf"]}


def test_object_name_from_url(supabase):
    url = f"{SUPABASE_URL}/storage/v1/object/public/invoices/invoice-1-a.pdf"
    assert supabase.object_name_from_url(url) == "invoice-1-a.pdf"
    assert supabase.object_name_from_url("https://elsewhere.com/x.pdf") is None
    assert supabase.object_name_from_url("") is None


def test_in_memory_storage_roundtrip():
    storage = InMemoryObjectStorage(bucket="invoices")

    asset = asyncio.run(storage.upload("invoice-1-a.pdf", b"data"))
    assert asset.public_url == "memory://invoices/invoice-1-a.pdf"
    assert storage.object_name_from_url(asset.public_url) == "invoice-1-a.pdf"

    with pytest.raises(StorageError):
        asyncio.run(storage.upload("invoice-1-a.pdf", b"again"))

    asyncio.run(storage.remove("invoice-1-a.pdf"))
    assert storage.list_names() == []


def test_factory_uses_supabase_only_when_configured():
    class StubSettings:
        supabase_url = None
        supabase_service_key = None
        storage_bucket = "invoices"
        storage_timeout_seconds = 10.0

    assert isinstance(create_object_storage(StubSettings()), InMemoryObjectStorage)

    StubSettings.supabase_url = SUPABASE_URL
    StubSettings.supabase_service_key = "service-key"
    assert isinstance(create_object_storage(StubSettings()), SupabaseObjectStorage)
