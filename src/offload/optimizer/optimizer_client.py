"""HTTP client for the remote image optimization API.

Every success-shaped response body is normalized to one canonical
``list[OptimizationResult]`` by :func:`parse_optimize_response`:

* ``results`` as an array is returned index-aligned with the request;
* ``results`` as a single object (or a body flagged ``batch: false``) becomes
  a one-element list;
* missing or empty ``results`` and ``processed: 0`` become an empty list.

Anything else (non-200 status, empty, truncated or unbalanced bodies,
invalid JSON, ``success`` not true) raises :class:`RemoteServiceError`.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict, ValidationError

from ..exceptions import NotConfiguredError, RemoteServiceError

logger = logging.getLogger(__name__)

OPTIMIZE_PATH = "/v1/images/wp/optimize"
ACCOUNT_STATUS_PATH = "/v1/account/status"

_STATUS_MESSAGES = {
    401: "invalid API key",
    402: "insufficient credits",
    429: "rate limit exceeded",
}


class OptimizedImageData(BaseModel):
    model_config = ConfigDict(extra="allow")

    base64: str | None = None
    targetFormat: str | None = None
    originalSize: int | None = None
    compressedSize: int | None = None
    compressionRatio: float | None = None
    optimizedQuality: int | None = None


class OptimizationResult(BaseModel):
    model_config = ConfigDict(extra="allow")

    success: bool = False
    skipped: bool = False
    file: str | None = None
    error: str | None = None
    message: str | None = None
    data: OptimizedImageData | None = None

    @property
    def error_message(self) -> str:
        return self.error or self.message or "unknown error"


@dataclass(slots=True)
class ImagePayload:
    file: str
    image_data: str

    def to_json(self) -> dict[str, str]:
        return {"file": self.file, "imageData": self.image_data}


def _check_body_shape(text: str) -> None:
    stripped = text.strip()
    if not stripped:
        raise RemoteServiceError("empty response body")
    if stripped[-1] not in "}]":
        raise RemoteServiceError("truncated response body")
    if stripped.count("{") != stripped.count("}") or stripped.count("[") != stripped.count("]"):
        raise RemoteServiceError("unbalanced JSON response body")


def parse_optimize_response(status_code: int, text: str) -> list[OptimizationResult]:
    """Normalize an optimize response into a list of per-file results."""
    if not 200 <= status_code < 300:
        reason = _STATUS_MESSAGES.get(status_code, f"unexpected status {status_code}")
        raise RemoteServiceError(f"optimization API error: {reason}", status_code=status_code)

    _check_body_shape(text)
    try:
        body = json.loads(text)
    except json.JSONDecodeError as exc:
        raise RemoteServiceError(f"invalid JSON response: {exc.msg}") from exc
    if not isinstance(body, dict):
        raise RemoteServiceError("response body is not a JSON object")
    if body.get("success") is not True:
        message = body.get("message") or body.get("error") or "API reported failure"
        raise RemoteServiceError(f"optimization API error: {message}", status_code=status_code)

    if body.get("processed") == 0:
        return []

    raw = body.get("results")
    if not raw:
        return []
    if isinstance(raw, dict):
        raw = [raw]
    if not isinstance(raw, list):
        raise RemoteServiceError("results field has unexpected type")

    results = []
    for item in raw:
        if not isinstance(item, dict):
            results.append(OptimizationResult(error="malformed result entry"))
            continue
        try:
            results.append(OptimizationResult.model_validate(item))
        except ValidationError as exc:
            results.append(OptimizationResult(error=f"malformed result entry: {exc.error_count()} errors"))
    return results


@dataclass(slots=True)
class OptimizerClient:
    api_key: str
    base_url: str
    timeout_seconds: float = 120.0
    log: logging.Logger = field(default_factory=lambda: logger)

    def ensure_configured(self) -> None:
        if not self.api_key:
            raise NotConfiguredError("optimization API", ["OPTIMIZER_API_KEY"])

    def _headers(self) -> dict[str, str]:
        self.ensure_configured()
        return {
            "x-api-key": self.api_key,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    async def optimize(
        self,
        images: list[ImagePayload],
        *,
        max_size_kb: int,
    ) -> list[OptimizationResult]:
        headers = self._headers()
        payload: dict[str, Any] = {
            "images": [image.to_json() for image in images],
            "maxSizeKb": max_size_kb,
            "supportsAVIF": True,
            "supportsHEIF": True,
        }
        url = f"{self.base_url.rstrip('/')}{OPTIMIZE_PATH}"
        self.log.info("optimizer.request.start", extra={"url": url, "images": len(images)})
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                response = await client.post(url, headers=headers, json=payload)
        except httpx.HTTPError as exc:
            raise RemoteServiceError(f"optimization API transport error: {exc}") from exc

        results = parse_optimize_response(response.status_code, response.text)
        self.log.info(
            "optimizer.request.done",
            extra={"status": response.status_code, "results": len(results)},
        )
        return results

    async def account_status(self) -> dict[str, Any]:
        headers = self._headers()
        url = f"{self.base_url.rstrip('/')}{ACCOUNT_STATUS_PATH}"
        try:
            async with httpx.AsyncClient(timeout=30.0) as client:
                response = await client.get(url, headers=headers)
        except httpx.HTTPError as exc:
            raise RemoteServiceError(f"account status transport error: {exc}") from exc
        if response.status_code != 200:
            reason = _STATUS_MESSAGES.get(response.status_code, f"unexpected status {response.status_code}")
            raise RemoteServiceError(f"account status error: {reason}", status_code=response.status_code)
        try:
            body = response.json()
        except ValueError as exc:
            raise RemoteServiceError("account status returned invalid JSON") from exc
        if not isinstance(body, dict):
            raise RemoteServiceError("account status returned unexpected payload")
        return body
