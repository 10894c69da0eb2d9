"""HTTP client for the CDN storage API."""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from urllib.parse import quote

import httpx

from ..config import StorageSettings
from ..exceptions import NotConfiguredError, RemoteServiceError

logger = logging.getLogger(__name__)

STREAM_CHUNK_BYTES = 1024 * 1024


async def _iter_file(path: Path, chunk_size: int = STREAM_CHUNK_BYTES) -> AsyncIterator[bytes]:
    with path.open("rb") as handle:
        while True:
            chunk = await asyncio.to_thread(handle.read, chunk_size)
            if not chunk:
                break
            yield chunk


@dataclass
class UploadThrottle:
    """Enforce a minimum delay between consecutive storage calls."""

    delay_seconds: float = 0.2
    sleep: Callable[[float], Any] | None = None
    clock: Callable[[], float] = time.monotonic
    _last_call: float | None = None

    async def wait(self) -> None:
        if self._last_call is not None and self.delay_seconds > 0:
            remaining = self.delay_seconds - (self.clock() - self._last_call)
            if remaining > 0:
                await self._sleep(remaining)
        self._last_call = self.clock()

    async def _sleep(self, seconds: float) -> None:
        if self.sleep is None:
            await asyncio.sleep(seconds)
            return
        result = self.sleep(seconds)
        if inspect.isawaitable(result):
            await result


@dataclass
class StorageClient:
    settings: StorageSettings
    throttle: UploadThrottle = field(default_factory=UploadThrottle)
    log: logging.Logger = field(default_factory=lambda: logger)

    def ensure_configured(self) -> None:
        if not self.settings.is_configured:
            raise NotConfiguredError("storage API", self.settings.missing)

    def object_url(self, relative_path: str) -> str:
        endpoint = self.settings.endpoint.rstrip("/")
        return f"{endpoint}/{self.settings.storage_zone}/{quote(relative_path.lstrip('/'))}"

    def _headers(self, **extra: str) -> dict[str, str]:
        self.ensure_configured()
        return {"AccessKey": self.settings.api_key, **extra}

    async def upload(
        self,
        path: Path,
        relative_path: str,
        *,
        mime_type: str,
        timeout_seconds: float | None = None,
    ) -> None:
        """PUT ``path`` to ``relative_path``; raises :class:`RemoteServiceError`."""
        size = path.stat().st_size
        headers = self._headers(**{"Content-Type": mime_type, "Content-Length": str(size)})
        streamed = size > self.settings.stream_threshold_bytes
        content: bytes | AsyncIterator[bytes]
        if streamed:
            content = _iter_file(path)
        else:
            content = await asyncio.to_thread(path.read_bytes)

        await self.throttle.wait()
        url = self.object_url(relative_path)
        timeout = timeout_seconds or self.settings.primary_timeout_seconds
        try:
            async with httpx.AsyncClient(timeout=timeout) as client:
                response = await client.put(url, headers=headers, content=content)
        except httpx.HTTPError as exc:
            raise RemoteServiceError(f"upload transport error for {relative_path}: {exc}") from exc

        if response.status_code not in (200, 201):
            raise RemoteServiceError(
                f"upload of {relative_path} failed with status {response.status_code}",
                status_code=response.status_code,
            )
        self.log.info(
            "storage.upload.done",
            extra={"path": relative_path, "bytes": size, "streamed": streamed},
        )

    async def delete(self, relative_path: str) -> None:
        """DELETE an object; a missing object counts as deleted."""
        headers = self._headers()
        await self.throttle.wait()
        try:
            async with httpx.AsyncClient(timeout=self.settings.variant_timeout_seconds) as client:
                response = await client.delete(self.object_url(relative_path), headers=headers)
        except httpx.HTTPError as exc:
            raise RemoteServiceError(f"delete transport error for {relative_path}: {exc}") from exc
        if response.status_code not in (200, 404):
            raise RemoteServiceError(
                f"delete of {relative_path} failed with status {response.status_code}",
                status_code=response.status_code,
            )

    async def test_connection(self) -> tuple[bool, str]:
        headers = self._headers(Accept="application/json")
        url = f"{self.settings.endpoint.rstrip('/')}/{self.settings.storage_zone}/"
        try:
            async with httpx.AsyncClient(timeout=30.0) as client:
                response = await client.get(url, headers=headers)
        except httpx.HTTPError as exc:
            return False, f"connection failed: {exc}"
        if response.status_code == 200:
            return True, "connection successful"
        if response.status_code == 401:
            return False, "invalid storage API key"
        if response.status_code == 404:
            return False, "storage zone not found"
        return False, f"unexpected status {response.status_code}"


