"""
Object storage for uploaded invoice PDFs.

Two backends share one interface:
- InMemoryObjectStorage: local development and tests
- SupabaseObjectStorage: Supabase Storage REST API over httpx
"""

import re
import time
from abc import ABC, abstractmethod
from typing import Dict, Optional
from urllib.parse import quote, unquote

import httpx
from loguru import logger

from ..exceptions import StorageError
from ..invoice_types import StoredInvoiceAsset


def build_object_name(filename: str, now_ms: Optional[int] = None) -> str:
    """Collision-resistant object name: invoice-<epoch ms>-<sanitized filename>"""
    timestamp = now_ms if now_ms is not None else int(time.time() * 1000)
    safe_name = re.sub(r"[^a-zA-Z0-9.-]", "_", filename or "factura.pdf")
    return f"invoice-{timestamp}-{safe_name}"


class ObjectStorageBase(ABC):
    """
    Abstract base class for PDF object storage.

    Implementations must return a public URL for every uploaded object and
    be able to map that URL back to the object name for removal.
    """

    bucket: str

    @abstractmethod
    async def upload(self, object_name: str, content: bytes, content_type: str = "application/pdf") -> StoredInvoiceAsset:
        """
        Store an object and return its reference.

        Raises:
            StorageError: if the backend rejects the upload
        """
        pass

    @abstractmethod
    async def remove(self, object_name: str) -> None:
        """
        Remove an object.

        Raises:
            StorageError: if the backend rejects the removal
        """
        pass

    @abstractmethod
    def public_url(self, object_name: str) -> str:
        pass

    def object_name_from_url(self, url: str | None) -> Optional[str]:
        """Object name inside this bucket for a public URL, or None if it is not ours"""
        if not url:
            return None
        prefix = self.public_url("")
        if not url.startswith(prefix):
            return None
        return unquote(url[len(prefix):]) or None


class InMemoryObjectStorage(ObjectStorageBase):
    def __init__(self, bucket: str = "invoices"):
        self.bucket = bucket
        self._objects: Dict[str, bytes] = {}

    async def upload(self, object_name: str, content: bytes, content_type: str = "application/pdf") -> StoredInvoiceAsset:
        if object_name in self._objects:
            raise StorageError(f"Error subiendo archivo: {object_name} ya existe")
        self._objects[object_name] = bytes(content)
        return StoredInvoiceAsset(object_name=object_name, public_url=self.public_url(object_name))

    async def remove(self, object_name: str) -> None:
        self._objects.pop(object_name, None)

    def public_url(self, object_name: str) -> str:
        return f"memory://{self.bucket}/{object_name}"

    def get(self, object_name: str) -> Optional[bytes]:
        return self._objects.get(object_name)

    def list_names(self) -> list:
        return list(self._objects)


class SupabaseObjectStorage(ObjectStorageBase):
    """
    Supabase Storage backend.

    Uploads go to ``POST {url}/storage/v1/object/{bucket}/{name}`` and are
    served from ``{url}/storage/v1/object/public/{bucket}/{name}``; the
    bucket must be public for the verification UI to open the PDF.
    """

    def __init__(self, base_url: str, service_key: str, bucket: str = "invoices", timeout: float = 30.0):
        self.base_url = base_url.rstrip("/")
        self.service_key = service_key
        self.bucket = bucket
        self.timeout = timeout

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.service_key}",
            "apikey": self.service_key,
        }

    async def upload(self, object_name: str, content: bytes, content_type: str = "application/pdf") -> StoredInvoiceAsset:
        url = f"{self.base_url}/storage/v1/object/{self.bucket}/{quote(object_name)}"
        headers = {
            **self._headers(),
            "Content-Type": content_type,
            "cache-control": "3600",
            "x-upsert": "false",
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                r = await client.post(url, content=content, headers=headers)
        except httpx.HTTPError as e:
            raise StorageError(f"Error subiendo archivo: {e}")

        if r.status_code >= 400:
            logger.error("Supabase upload rejected", status=r.status_code, body=r.text[:500])
            raise StorageError(f"Error subiendo archivo: {_error_message(r)}", details={"http_status": r.status_code})

        public_url = self.public_url(object_name)
        logger.info("PDF uploaded", bucket=self.bucket, object_name=object_name)
        return StoredInvoiceAsset(object_name=object_name, public_url=public_url)

    async def remove(self, object_name: str) -> None:
        url = f"{self.base_url}/storage/v1/object/{self.bucket}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                r = await client.request("DELETE", url, json={"prefixes": [object_name]}, headers=self._headers())
        except httpx.HTTPError as e:
            raise StorageError(f"Error eliminando archivo: {e}")

        if r.status_code >= 400:
            raise StorageError(f"Error eliminando archivo: {_error_message(r)}", details={"http_status": r.status_code})

    def public_url(self, object_name: str) -> str:
        return f"{self.base_url}/storage/v1/object/public/{self.bucket}/{quote(object_name)}"


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(body, dict):
        return str(body.get("message") or body.get("error") or body)
    return str(body)
